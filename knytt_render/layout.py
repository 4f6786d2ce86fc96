"""World layout (``Map.bin``) decoding.

A layout is an optionally gzip-wrapped sequence of screen records::

    "x<int>y<int>" NUL <i32 payload length> <payload>

Every payload holds eight layers followed by six settings bytes. Their
positions are described once in :data:`LAYERS` and :data:`SETTINGS_OFFSET`;
decoder and encoder both read them from there.

Screens are keyed by their ``(x, y)`` tuple. :func:`screen_id` reproduces the
game's integer screen hash for callers that need it, but it collides once
``|y|`` exceeds 18 so it is never used as a table key.
"""

from __future__ import annotations

import gzip
import logging
import os
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
from pyrsistent import pmap
from pyrsistent.typing import PMap

from knytt_render.config import WorldIni, WorldMetadata
from knytt_render.errors import FormatError
from knytt_render.types import LayerKind, ScreenKey, Setting

logger = logging.getLogger(__name__)

GRID_WIDTH = 25
GRID_HEIGHT = 10
CELL_COUNT = GRID_WIDTH * GRID_HEIGHT

GZIP_MAGIC = b"\x1f\x8b"
LAYOUT_MARKER = b"x"
DEFAULT_MAP_FILE = "Map.bin"

UInt8Grid = npt.NDArray[np.uint8]


@dataclass(frozen=True)
class LayerSpec:
    """Where one layer lives inside a screen payload."""

    index: int
    offset: int
    length: int
    kind: LayerKind


LAYERS: Tuple[LayerSpec, ...] = (
    LayerSpec(0, 0, CELL_COUNT, LayerKind.TILE),
    LayerSpec(1, 250, CELL_COUNT, LayerKind.TILE),
    LayerSpec(2, 500, CELL_COUNT, LayerKind.TILE),
    LayerSpec(3, 750, CELL_COUNT, LayerKind.TILE),
    # object layers: 250 object ids followed by 250 bank ids
    LayerSpec(4, 1000, 2 * CELL_COUNT, LayerKind.OBJECT),
    LayerSpec(5, 1500, 2 * CELL_COUNT, LayerKind.OBJECT),
    LayerSpec(6, 2000, 2 * CELL_COUNT, LayerKind.OBJECT),
    LayerSpec(7, 2500, 2 * CELL_COUNT, LayerKind.OBJECT),
)
TILE_LAYERS: Tuple[LayerSpec, ...] = tuple(
    spec for spec in LAYERS if spec.kind == LayerKind.TILE
)
OBJECT_LAYERS: Tuple[LayerSpec, ...] = tuple(
    spec for spec in LAYERS if spec.kind == LayerKind.OBJECT
)

SETTINGS_OFFSET = 3000
PAYLOAD_SIZE = SETTINGS_OFFSET + len(Setting)


def screen_id(x: int, y: int) -> int:
    """Game-compatible screen hash (seed 23, multiplier 37, signed 32-bit)."""
    value = 23
    value = value * 37 + x
    value = value * 37 + y
    return (value + 2**31) % 2**32 - 2**31


@dataclass(frozen=True)
class Screen:
    """One 25x10 cell of the world.

    Attributes:
        x: Horizontal world coordinate.
        y: Vertical world coordinate.
        settings: Byte value for each :class:`Setting`.
        layers: Eight raw layers laid out as in :data:`LAYERS`.
    """

    x: int
    y: int
    settings: PMap[Setting, int] = field(default_factory=pmap)
    layers: Tuple[bytes, ...] = tuple(bytes(spec.length) for spec in LAYERS)

    @property
    def key(self) -> ScreenKey:
        return (self.x, self.y)

    @property
    def screen_id(self) -> int:
        return screen_id(self.x, self.y)

    def setting(self, setting: Setting) -> int:
        return self.settings.get(setting, 0)

    @staticmethod
    def _has_layer(layer: int, kind: LayerKind) -> bool:
        return 0 <= layer < len(LAYERS) and LAYERS[layer].kind == kind

    def tile(self, layer: int, cell: int) -> int:
        """Tile value of ``cell`` (0..249) in tile layer ``layer`` (0..3)."""
        if not (self._has_layer(layer, LayerKind.TILE) and 0 <= cell < CELL_COUNT):
            raise IndexError(f"No tile cell {cell} in layer {layer}")
        return self.layers[layer][cell]

    def object_at(self, layer: int, cell: int) -> Tuple[int, int]:
        """``(object_id, bank)`` of ``cell`` in object layer ``layer`` (4..7)."""
        if not (self._has_layer(layer, LayerKind.OBJECT) and 0 <= cell < CELL_COUNT):
            raise IndexError(f"No object cell {cell} in layer {layer}")
        data = self.layers[layer]
        return data[cell], data[cell + CELL_COUNT]

    def tile_grid(self, layer: int) -> UInt8Grid:
        """Tile layer as a read-only ``(10, 25)`` array."""
        return np.frombuffer(self.layers[layer], dtype=np.uint8).reshape(
            GRID_HEIGHT, GRID_WIDTH
        )

    def object_grids(self, layer: int) -> Tuple[UInt8Grid, UInt8Grid]:
        """Object layer as ``(ids, banks)`` read-only ``(10, 25)`` arrays."""
        arr = np.frombuffer(self.layers[layer], dtype=np.uint8).reshape(
            2, GRID_HEIGHT, GRID_WIDTH
        )
        return arr[0], arr[1]

    def __str__(self) -> str:
        return f"X={self.x} Y={self.y}"


@dataclass(frozen=True)
class WorldBounds:
    """Rectangle covering every screen coordinate (inclusive)."""

    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width - 1

    @property
    def bottom(self) -> int:
        return self.top + self.height - 1

    @classmethod
    def from_screens(cls, screens: Iterable[Screen]) -> "WorldBounds":
        xs: List[int] = []
        ys: List[int] = []
        for screen in screens:
            xs.append(screen.x)
            ys.append(screen.y)
        if not xs:
            raise ValueError("Cannot compute bounds of an empty world")
        left, top = min(xs), min(ys)
        return cls(left, top, max(xs) - left + 1, max(ys) - top + 1)

    def __str__(self) -> str:
        return f"{{X={self.left},Y={self.top},Width={self.width},Height={self.height}}}"


@dataclass(frozen=True)
class DecodedWorld:
    """Result of loading a world directory.

    ``order`` lists screen keys in the order they first appeared in the
    layout; iterating the world follows it.
    """

    path: Path
    screens: PMap[ScreenKey, Screen]
    order: Tuple[ScreenKey, ...]
    bounds: WorldBounds
    metadata: WorldMetadata = WorldMetadata()
    ini: WorldIni = field(default_factory=WorldIni, compare=False, repr=False)

    def get(self, x: int, y: int) -> Optional[Screen]:
        return self.screens.get((x, y))

    def __iter__(self) -> Iterator[Screen]:
        return (self.screens[key] for key in self.order)

    def __len__(self) -> int:
        return len(self.order)

    # Mirrors the game's fields for callers that print a summary.
    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def author(self) -> str:
        return self.metadata.author


def read_layout_buffer(raw: bytes) -> bytes:
    """Gunzip ``raw`` when it carries the gzip magic, otherwise return it as is."""
    if raw[:2] != GZIP_MAGIC:
        return raw
    try:
        return gzip.decompress(raw)
    except (OSError, EOFError, zlib.error) as exc:
        raise FormatError(f"Corrupt gzip stream: {exc}") from exc


def parse_screen_name(name: str) -> ScreenKey:
    """``"x12y-3"`` -> ``(12, -3)``."""
    if not name.startswith("x") or "y" not in name:
        raise FormatError(f"Invalid screen name {name!r}")
    x_text, _, y_text = name[1:].partition("y")
    try:
        return int(x_text), int(y_text)
    except ValueError:
        raise FormatError(f"Invalid screen coordinates in {name!r}") from None


def parse_screen(x: int, y: int, payload: bytes) -> Screen:
    """Slice one screen payload according to :data:`LAYERS`."""
    if len(payload) < PAYLOAD_SIZE:
        raise FormatError(
            f"Screen x{x}y{y} payload is {len(payload)} bytes, "
            f"expected at least {PAYLOAD_SIZE}"
        )
    settings = pmap(
        {setting: payload[SETTINGS_OFFSET + setting] for setting in Setting}
    )
    layers = tuple(
        bytes(payload[spec.offset : spec.offset + spec.length]) for spec in LAYERS
    )
    return Screen(x=x, y=y, settings=settings, layers=layers)


def decode_layout(
    buffer: bytes,
) -> Tuple[Dict[ScreenKey, Screen], Tuple[ScreenKey, ...]]:
    """Parse a decompressed layout buffer.

    Returns:
        ``(screens, order)``. A repeated coordinate overwrites the earlier
        screen but keeps its original position in ``order``.

    Raises:
        FormatError: Buffer does not start with ``x`` or a record is truncated.
    """
    if buffer[:1] != LAYOUT_MARKER:
        raise FormatError("Not a world layout: data does not start with 'x'")

    screens: Dict[ScreenKey, Screen] = {}
    pos = 0
    while pos < len(buffer):
        end = buffer.find(b"\x00", pos)
        if end < 0:
            raise FormatError(f"Unterminated screen name at offset {pos}")
        name = buffer[pos:end].decode("ascii", errors="replace")
        pos = end + 1

        if pos + 4 > len(buffer):
            raise FormatError(f"Truncated payload length for {name!r}")
        length = int.from_bytes(buffer[pos : pos + 4], "little", signed=True)
        pos += 4
        if length < 0 or pos + length > len(buffer):
            raise FormatError(
                f"Screen {name!r} declares {length} bytes "
                f"but {len(buffer) - pos} remain"
            )

        x, y = parse_screen_name(name)
        screens[(x, y)] = parse_screen(x, y, buffer[pos : pos + length])
        pos += length

    return screens, tuple(screens)


def encode_screen(screen: Screen) -> bytes:
    payload = bytearray(PAYLOAD_SIZE)
    for spec, data in zip(LAYERS, screen.layers):
        if len(data) != spec.length:
            raise ValueError(
                f"Layer {spec.index} of {screen} is {len(data)} bytes, "
                f"expected {spec.length}"
            )
        payload[spec.offset : spec.offset + spec.length] = data
    for setting in Setting:
        payload[SETTINGS_OFFSET + setting] = screen.setting(setting)
    return bytes(payload)


def encode_layout(screens: Sequence[Screen], compress: bool = True) -> bytes:
    """Serialize screens into a layout buffer (gzip-wrapped by default)."""
    out = bytearray()
    for screen in screens:
        payload = encode_screen(screen)
        out += f"x{screen.x}y{screen.y}".encode("ascii") + b"\x00"
        out += len(payload).to_bytes(4, "little", signed=True)
        out += payload
    return gzip.compress(bytes(out)) if compress else bytes(out)


def load_world(
    world_dir: Union[str, "os.PathLike[str]"],
    map_file: str = DEFAULT_MAP_FILE,
    ini: Optional[WorldIni] = None,
) -> Optional[DecodedWorld]:
    """Load ``Map.bin`` and ``World.ini`` from an extracted world directory.

    Returns:
        The decoded world, or ``None`` when the layout file is missing or is
        not a layout at all.

    Raises:
        FormatError: The layout is recognised but truncated or malformed.
    """
    world_path = Path(world_dir)
    map_path = world_path / map_file
    if not map_path.is_file():
        logger.warning("Layout file %s does not exist", map_path)
        return None

    buffer = read_layout_buffer(map_path.read_bytes())
    if buffer[:1] != LAYOUT_MARKER:
        logger.warning("%s is not a recognised world layout", map_path)
        return None

    screens, order = decode_layout(buffer)
    if ini is None:
        ini = WorldIni.for_world(world_path)
    world = DecodedWorld(
        path=world_path,
        screens=pmap(screens),
        order=order,
        bounds=WorldBounds.from_screens(screens.values()),
        metadata=WorldMetadata.from_ini(ini),
        ini=ini,
    )
    logger.debug(
        "Decoded %d screens from %s, bounds %s", len(world), map_path, world.bounds
    )
    return world
