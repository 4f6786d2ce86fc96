"""Rendering a single screen.

A screen is drawn back to front:

1. the gradient, repeated horizontally and stretched to the screen height;
2. the four tile layers, each cell picking a 24x24 tile from tileset A
   (values 1..127) or tileset B (values 129..255);
3. the four object layers, each object filtered / redirected by
   :mod:`knytt_render.rules` or, for bank 255, placed from its
   ``[Custom Object N]`` geometry;
4. optionally a coordinate label.

Any missing or undecodable image only removes the element that needed it.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from knytt_render.config import CustomObject, WorldIni
from knytt_render.layout import (
    GRID_HEIGHT,
    GRID_WIDTH,
    OBJECT_LAYERS,
    TILE_LAYERS,
    DecodedWorld,
    Screen,
)
from knytt_render.resources import ResourceResolver
from knytt_render.rules import CUSTOM_OBJECT_BANK, can_draw
from knytt_render.types import Setting

logger = logging.getLogger(__name__)

TILE_WIDTH = 24
TILE_HEIGHT = 24
TILESET_COLUMNS = 16
TILESET_SPLIT = 128
SCREEN_WIDTH = GRID_WIDTH * TILE_WIDTH
SCREEN_HEIGHT = GRID_HEIGHT * TILE_HEIGHT
# The game repeats gradients across a 1000 pixel wide strip.
GRADIENT_SPAN = 1000

LABEL_FONT_SIZE = 21
LABEL_FILL = (255, 255, 255, 255)
LABEL_OUTLINE = (0, 0, 0, 255)

Box = Tuple[int, int, int, int]


def blit(
    canvas: Image.Image,
    image: Image.Image,
    dest: Tuple[int, int],
    source: Optional[Box] = None,
) -> None:
    """Alpha-composite ``image`` (or its ``source`` box) onto ``canvas``.

    Unlike ``Image.alpha_composite`` this accepts destinations that hang off
    any edge of the canvas; the overhang is clipped.
    """
    sx0, sy0, sx1, sy1 = source if source is not None else (0, 0) + image.size
    dx, dy = dest
    if dx < 0:
        sx0, dx = sx0 - dx, 0
    if dy < 0:
        sy0, dy = sy0 - dy, 0
    sx1 = min(sx1, sx0 + canvas.width - dx)
    sy1 = min(sy1, sy0 + canvas.height - dy)
    if sx1 <= sx0 or sy1 <= sy0:
        return
    canvas.alpha_composite(
        image, (int(dx), int(dy)), (int(sx0), int(sy0), int(sx1), int(sy1))
    )


def tile_source(value: int) -> Tuple[bool, Box]:
    """Map a tile byte to ``(use_tileset_b, source_box)`` in the 16-column atlas."""
    index = value % TILESET_SPLIT
    sx = index % TILESET_COLUMNS * TILE_WIDTH
    sy = index // TILESET_COLUMNS * TILE_HEIGHT
    return value // TILESET_SPLIT >= 1, (sx, sy, sx + TILE_WIDTH, sy + TILE_HEIGHT)


def custom_object_placement(
    custom: CustomObject, image_width: int, row: int, column: int
) -> Optional[Tuple[Tuple[int, int], Box]]:
    """Destination and source box of a custom object's initial frame.

    The frame is centred on the cell, shifted by the configured offsets.
    Returns ``None`` when the image is narrower than one frame.
    """
    tw, th = custom.tile_width, custom.tile_height
    if tw <= 0 or th <= 0 or image_width < tw:
        return None
    frame = custom.init_frame
    sx = frame % (image_width // tw) * tw
    sy = int(math.floor(frame / (image_width / tw))) * th
    dx = column * TILE_WIDTH + TILE_WIDTH // 2 - tw // 2 + custom.offset_x
    dy = row * TILE_HEIGHT + TILE_HEIGHT // 2 - th // 2 + custom.offset_y
    return (dx, dy), (sx, sy, sx + tw, sy + th)


class ScreenCompositor:
    """Draws screens using a resolver and the world's ``World.ini``."""

    resolver: ResourceResolver
    ini: WorldIni

    def __init__(self, resolver: ResourceResolver, ini: Optional[WorldIni] = None):
        self.resolver = resolver
        self.ini = ini if ini is not None else WorldIni()

    def render(
        self,
        screen: Screen,
        remove_debug_objects: bool = True,
        remove_ghost: bool = True,
        with_coords: bool = False,
    ) -> Image.Image:
        """Render ``screen`` to a 600x240 RGBA image."""
        canvas = Image.new("RGBA", (SCREEN_WIDTH, SCREEN_HEIGHT), (0, 0, 0, 0))
        self._draw_gradient(canvas, screen)
        self._draw_tiles(canvas, screen)
        self._draw_objects(canvas, screen, remove_debug_objects, remove_ghost)
        if with_coords:
            self._draw_label(canvas, screen)
        return canvas

    def render_at(
        self,
        world: DecodedWorld,
        x: int,
        y: int,
        remove_debug_objects: bool = True,
        remove_ghost: bool = True,
        with_coords: bool = False,
    ) -> Optional[Image.Image]:
        """Render the screen at ``(x, y)``; ``None`` if the world has none there."""
        screen = world.get(x, y)
        if screen is None:
            logger.warning("There is no %d/%d screen", x, y)
            return None
        return self.render(screen, remove_debug_objects, remove_ghost, with_coords)

    def _draw_gradient(self, canvas: Image.Image, screen: Screen) -> None:
        gradient = self.resolver.load_image(
            self.resolver.gradient(screen.setting(Setting.GRADIENT))
        )
        if gradient is None:
            return
        if gradient.height != SCREEN_HEIGHT:
            gradient = gradient.resize(
                (gradient.width, SCREEN_HEIGHT), Image.Resampling.BILINEAR
            )
        for i in range(math.ceil(GRADIENT_SPAN / gradient.width)):
            if i * gradient.width >= SCREEN_WIDTH:
                break
            blit(canvas, gradient, (i * gradient.width, 0))

    def _draw_tiles(self, canvas: Image.Image, screen: Screen) -> None:
        tilesets = (
            self.resolver.load_image(
                self.resolver.tileset(screen.setting(Setting.TILESET_A))
            ),
            self.resolver.load_image(
                self.resolver.tileset(screen.setting(Setting.TILESET_B))
            ),
        )
        for layer in TILE_LAYERS:
            grid = screen.tile_grid(layer.index)
            rows, cols = np.nonzero(grid % TILESET_SPLIT)
            for row, col in zip(rows.tolist(), cols.tolist()):
                use_b, source = tile_source(int(grid[row, col]))
                tileset = tilesets[use_b]
                if tileset is None:
                    continue
                blit(canvas, tileset, (col * TILE_WIDTH, row * TILE_HEIGHT), source)

    def _draw_objects(
        self,
        canvas: Image.Image,
        screen: Screen,
        remove_debug_objects: bool,
        remove_ghost: bool,
    ) -> None:
        for layer in OBJECT_LAYERS:
            ids, banks = screen.object_grids(layer.index)
            rows, cols = np.nonzero(ids)
            for row, col in zip(rows.tolist(), cols.tolist()):
                object_id, bank = int(ids[row, col]), int(banks[row, col])
                if bank == CUSTOM_OBJECT_BANK:
                    self._draw_custom_object(canvas, object_id, row, col)
                    continue

                outcome = can_draw(bank, object_id, remove_ghost, remove_debug_objects)
                if not outcome.draw:
                    continue
                image = self.resolver.load_image(
                    self.resolver.object(outcome.bank, outcome.object_id)
                )
                if image is None:
                    continue
                blit(canvas, image, (col * TILE_WIDTH, row * TILE_HEIGHT))

    def _draw_custom_object(
        self, canvas: Image.Image, object_id: int, row: int, col: int
    ) -> None:
        custom = CustomObject.from_ini(self.ini, object_id)
        if custom is None:
            logger.warning(
                "Unable to locate information for Object ID %d in World Custom Objects",
                object_id,
            )
            return
        image = self.resolver.load_image(self.resolver.custom_object(custom.image))
        if image is None:
            return
        placement = custom_object_placement(custom, image.width, row, col)
        if placement is None:
            logger.warning(
                "Custom object %d: %s is narrower than one %dpx frame",
                object_id,
                custom.image,
                custom.tile_width,
            )
            return
        dest, source = placement
        blit(canvas, image, dest, source)

    def _draw_label(self, canvas: Image.Image, screen: Screen) -> None:
        draw = ImageDraw.Draw(canvas)
        font = ImageFont.load_default(size=LABEL_FONT_SIZE)
        draw.text(
            (2, 2),
            f"Screen Coords: X={screen.x} Y={screen.y}",
            font=font,
            fill=LABEL_FILL,
            stroke_width=2,
            stroke_fill=LABEL_OUTLINE,
        )
