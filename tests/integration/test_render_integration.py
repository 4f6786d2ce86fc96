# tests/integration/test_render_integration.py

import gzip
from pathlib import Path
from typing import Tuple

import pytest
from PIL import Image

from knytt_render.compositor import SCREEN_HEIGHT, SCREEN_WIDTH, ScreenCompositor
from knytt_render.config import RenderOptions, WorldIni
from knytt_render.errors import FormatError
from knytt_render.layout import DecodedWorld, load_world
from knytt_render.resources import ResourceResolver
from knytt_render.types import Arrangement, ResourceCategory, Setting
from knytt_render.world import WorldCompositor
from tests.test_utils import (
    BLUE,
    CYAN,
    GREEN,
    PURPLE,
    RED,
    YELLOW,
    make_data_root,
    make_screen,
    make_world_dir,
    pixel,
    alpha,
)

SETTINGS = {Setting.GRADIENT: 1, Setting.TILESET_A: 0, Setting.TILESET_B: 1}


def cell_center(cell: int) -> Tuple[int, int]:
    return (cell % 25) * 24 + 12, (cell // 25) * 24 + 12


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    return make_data_root(tmp_path / "Data")


def load(tmp_path: Path, *screens) -> DecodedWorld:
    world = load_world(make_world_dir(tmp_path / "World", screens))
    assert world is not None
    return world


def compositor_for(world: DecodedWorld, data_root: Path) -> ScreenCompositor:
    return ScreenCompositor(ResourceResolver(data_root, world.path), world.ini)


def test_load_world_reads_layout_and_metadata(tmp_path: Path) -> None:
    world = load(tmp_path, make_screen(2, 3), make_screen(-1, 5), make_screen(0, 0))
    assert [(s.x, s.y) for s in world] == [(2, 3), (-1, 5), (0, 0)]
    assert (world.bounds.left, world.bounds.top) == (-1, 0)
    assert (world.bounds.width, world.bounds.height) == (4, 6)
    assert world.name == "Test World"
    assert world.author == "Nifflas"
    assert world.metadata.description == "A small world"
    assert world.get(2, 3) is not None and world.get(9, 9) is None


def test_load_world_accepts_uncompressed_layout(tmp_path: Path) -> None:
    world_dir = make_world_dir(tmp_path / "World", [make_screen(4, 4)], compress=False)
    world = load_world(world_dir)
    assert world is not None and len(world) == 1


def test_load_world_without_ini(tmp_path: Path) -> None:
    world_dir = make_world_dir(tmp_path / "World", [make_screen()], ini_text=None)
    world = load_world(world_dir)
    assert world is not None
    assert world.name == ""


def test_load_world_missing_file(tmp_path: Path) -> None:
    assert load_world(tmp_path) is None


def test_load_world_not_a_layout(tmp_path: Path) -> None:
    (tmp_path / "Map.bin").write_bytes(gzip.compress(b"hello"))
    assert load_world(tmp_path) is None


def test_load_world_truncated(tmp_path: Path) -> None:
    (tmp_path / "Map.bin").write_bytes(gzip.compress(b"x0y0\x00\x10\x00\x00\x00abc"))
    with pytest.raises(FormatError):
        load_world(tmp_path)


def test_resolver_paths(tmp_path: Path, data_root: Path) -> None:
    resolver = ResourceResolver(data_root, tmp_path / "World")
    make_world_dir(tmp_path / "World", [make_screen()])
    assert resolver.gradient(1).path == data_root / "Gradients" / "Gradient1.png"
    assert resolver.tileset(0).found
    assert resolver.object(15, 2).path == data_root / "Objects/Bank15/Object2.png"
    assert resolver.resolve(ResourceCategory.OBJECT, 1, 1).found
    assert resolver.resolve(ResourceCategory.CUSTOM_OBJECT, "Thing.png").found
    missing = resolver.gradient(99)
    assert not missing and not missing.found
    with pytest.raises(LookupError):
        missing.require()
    assert resolver.load_image(missing) is None


def test_corrupt_image_is_skipped(tmp_path: Path, data_root: Path) -> None:
    (data_root / "Gradients" / "Gradient2.png").write_bytes(b"not a png")
    resolver = ResourceResolver(data_root)
    assert resolver.gradient(2).found
    assert resolver.load_image(resolver.gradient(2)) is None


def test_render_layers(tmp_path: Path, data_root: Path) -> None:
    screen = make_screen(
        settings=SETTINGS,
        tiles={(0, 0): 1, (0, 1): 129, (0, 2): 128, (3, 3): 5},
        objects={
            (4, 25): (1, 1),  # plain object
            (5, 26): (1, 16),  # invisible bank, suppressed
            (6, 27): (9, 15),  # disappearing block -> id 2
            (7, 28): (3, 1),  # magenta image, keyed out
            (4, 29): (6, 15),  # blue block, suppressed
        },
    )
    world = load(tmp_path, screen)
    image = compositor_for(world, data_root).render(world.get(0, 0))

    assert image.size == (SCREEN_WIDTH, SCREEN_HEIGHT)
    assert image.mode == "RGBA"
    assert pixel(image, *cell_center(0)) == RED
    assert pixel(image, *cell_center(1)) == GREEN
    assert pixel(image, *cell_center(2)) == BLUE
    assert pixel(image, *cell_center(3)) == RED
    assert pixel(image, *cell_center(25)) == YELLOW
    assert pixel(image, *cell_center(26)) == BLUE
    assert pixel(image, *cell_center(27)) == CYAN
    assert pixel(image, *cell_center(28)) == BLUE
    assert pixel(image, *cell_center(29)) == BLUE
    # gradient repeats across the full width
    assert pixel(image, 595, 230) == BLUE
    assert alpha(image, 595, 230) == 255


def test_missing_tileset_skips_tiles_only(tmp_path: Path, data_root: Path) -> None:
    screen = make_screen(
        settings={Setting.GRADIENT: 1, Setting.TILESET_A: 7, Setting.TILESET_B: 1},
        tiles={(0, 0): 1, (0, 1): 129},
        objects={(4, 2): (1, 1)},
    )
    world = load(tmp_path, screen)
    image = compositor_for(world, data_root).render(world.get(0, 0))
    assert pixel(image, *cell_center(0)) == BLUE
    assert pixel(image, *cell_center(1)) == GREEN
    assert pixel(image, *cell_center(2)) == YELLOW


def test_missing_gradient_leaves_transparency(tmp_path: Path, data_root: Path) -> None:
    world = load(tmp_path, make_screen(settings={Setting.GRADIENT: 42}))
    image = compositor_for(world, data_root).render(world.get(0, 0))
    assert alpha(image, 300, 120) == 0


def test_ghost_and_debug_flags(tmp_path: Path, data_root: Path) -> None:
    screen = make_screen(settings=SETTINGS, objects={(4, 0): (1, 16)})
    world = load(tmp_path, screen)
    compositor = compositor_for(world, data_root)
    hidden = compositor.render(world.get(0, 0), remove_debug_objects=True)
    shown = compositor.render(world.get(0, 0), remove_debug_objects=False)
    assert pixel(hidden, *cell_center(0)) == BLUE
    assert pixel(shown, *cell_center(0)) == (255, 255, 255)


def test_trap_redirects_to_bank_8(tmp_path: Path, data_root: Path) -> None:
    world = load(tmp_path, make_screen(settings=SETTINGS, objects={(4, 0): (6, 6)}))
    image = compositor_for(world, data_root).render(world.get(0, 0))
    assert pixel(image, *cell_center(0)) == (255, 255, 255)


def test_custom_object_uses_ini_geometry(tmp_path: Path, data_root: Path) -> None:
    cell = 5 * 25 + 10
    screen = make_screen(
        settings=SETTINGS,
        objects={(4, cell): (1, 255), (5, 0): (2, 255)},  # object 2 undefined
    )
    world = load(tmp_path, screen)
    image = compositor_for(world, data_root).render(world.get(0, 0))
    # 48x48 frame centred on the cell: covers (228, 108) .. (275, 155)
    assert pixel(image, 252, 132) == PURPLE
    assert pixel(image, 228, 108) == PURPLE
    assert pixel(image, 275, 155) == PURPLE
    assert pixel(image, 227, 108) == BLUE
    assert pixel(image, 276, 155) == BLUE
    assert pixel(image, *cell_center(0)) == BLUE


def test_coordinate_label(tmp_path: Path, data_root: Path) -> None:
    world = load(tmp_path, make_screen(3, 4, settings=SETTINGS))
    compositor = compositor_for(world, data_root)
    plain = compositor.render(world.get(3, 4))
    labelled = compositor.render(world.get(3, 4), with_coords=True)
    assert labelled.size == plain.size
    assert labelled.tobytes() != plain.tobytes()


def test_render_at(tmp_path: Path, data_root: Path) -> None:
    world = load(tmp_path, make_screen(3, 4, settings=SETTINGS))
    compositor = compositor_for(world, data_root)
    assert compositor.render_at(world, 3, 4) is not None
    assert compositor.render_at(world, 4, 3) is None


def test_world_grid_mosaic(tmp_path: Path, data_root: Path) -> None:
    screens = [
        make_screen(5, 5, settings=SETTINGS, tiles={(0, 0): 1}),
        make_screen(0, 0, settings=SETTINGS),
        make_screen(1, 0, settings=SETTINGS, tiles={(0, 0): 129}),
    ]
    world = load(tmp_path, *screens)
    mosaic = WorldCompositor(
        compositor_for(world, data_root), RenderOptions(columns=2)
    ).render(world)

    assert mosaic.size == (2 * 600 + 1, 2 * 240 + 1)
    # iteration order, not coordinate order
    assert pixel(mosaic, 12, 12) == RED
    assert pixel(mosaic, 612, 12) == BLUE
    assert pixel(mosaic, 12, 252) == GREEN
    # empty slot and separator stay transparent
    assert alpha(mosaic, 900, 300) == 0
    assert alpha(mosaic, 1200, 10) == 0


def test_world_default_columns(tmp_path: Path, data_root: Path) -> None:
    world = load(tmp_path, *[make_screen(i, 0, settings=SETTINGS) for i in range(7)])
    mosaic = WorldCompositor(compositor_for(world, data_root)).render(world)
    assert mosaic.size == (6 * 600 + 5, 2 * 240 + 1)


def test_world_coordinate_arrangement(tmp_path: Path, data_root: Path) -> None:
    world = load(
        tmp_path,
        make_screen(2, 1, settings=SETTINGS, tiles={(0, 0): 1}),
        make_screen(0, 0, settings=SETTINGS),
    )
    options = RenderOptions(arrangement=Arrangement.COORDINATES)
    mosaic = WorldCompositor(compositor_for(world, data_root), options).render(world)
    assert mosaic.size == (3 * 600, 2 * 240)
    assert pixel(mosaic, 1212, 252) == RED
    assert pixel(mosaic, 12, 12) == BLUE
    assert alpha(mosaic, 700, 100) == 0


def test_threaded_render_matches_inline(tmp_path: Path, data_root: Path) -> None:
    screens = [
        make_screen(i, i % 3, settings=SETTINGS, tiles={(0, i): 1 + i})
        for i in range(8)
    ]
    world = load(tmp_path, *screens)
    compositor = compositor_for(world, data_root)
    inline = WorldCompositor(compositor, RenderOptions(columns=3)).render(world)
    threaded = WorldCompositor(
        compositor, RenderOptions(columns=3, workers=4)
    ).render(world)
    assert inline.tobytes() == threaded.tobytes()


def test_world_rejects_bad_columns(data_root: Path) -> None:
    compositor = ScreenCompositor(ResourceResolver(data_root), WorldIni())
    with pytest.raises(ValueError):
        WorldCompositor(compositor, RenderOptions(columns=0))


def test_mosaic_is_saveable(tmp_path: Path, data_root: Path) -> None:
    world = load(tmp_path, make_screen(settings=SETTINGS))
    mosaic = WorldCompositor(compositor_for(world, data_root)).render(world)
    target = tmp_path / "out.png"
    mosaic.save(target)
    with Image.open(target) as reloaded:
        assert reloaded.size == mosaic.size
