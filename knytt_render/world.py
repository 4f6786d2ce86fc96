"""Assembling rendered screens into one world image."""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

from PIL import Image

from knytt_render.compositor import SCREEN_HEIGHT, SCREEN_WIDTH, ScreenCompositor
from knytt_render.config import RenderOptions
from knytt_render.layout import DecodedWorld, Screen
from knytt_render.types import Arrangement

logger = logging.getLogger(__name__)

Slot = Tuple[int, int]


def grid_slots(count: int, columns: int) -> List[Slot]:
    """Pixel origin of the ``i``-th screen in a row-major grid."""
    return [
        ((i % columns) * SCREEN_WIDTH, (i // columns) * SCREEN_HEIGHT)
        for i in range(count)
    ]


def grid_size(count: int, columns: int) -> Tuple[int, int]:
    # one spare pixel between columns and rows, as the game's map tool leaves
    rows = math.ceil(count / columns)
    return (
        columns * SCREEN_WIDTH + (columns - 1),
        rows * SCREEN_HEIGHT + (rows - 1),
    )


class WorldCompositor:
    """Renders every screen of a world onto a single mosaic.

    With :attr:`Arrangement.GRID` screens fill ``columns`` slots per row in
    the world's iteration order. With :attr:`Arrangement.COORDINATES` each
    screen lands at its position inside the world bounds.
    """

    compositor: ScreenCompositor
    options: RenderOptions

    def __init__(
        self,
        compositor: ScreenCompositor,
        options: Optional[RenderOptions] = None,
    ):
        self.compositor = compositor
        self.options = options or RenderOptions()
        if self.options.columns < 1:
            raise ValueError(f"columns must be positive, got {self.options.columns}")

    def layout(self, world: DecodedWorld) -> Tuple[Tuple[int, int], List[Slot]]:
        """Return ``(canvas_size, slots)`` with one slot per screen in order."""
        screens = list(world)
        if self.options.arrangement == Arrangement.COORDINATES:
            bounds = world.bounds
            size = (bounds.width * SCREEN_WIDTH, bounds.height * SCREEN_HEIGHT)
            slots = [
                (
                    (screen.x - bounds.left) * SCREEN_WIDTH,
                    (screen.y - bounds.top) * SCREEN_HEIGHT,
                )
                for screen in screens
            ]
            return size, slots
        columns = self.options.columns
        return grid_size(len(screens), columns), grid_slots(len(screens), columns)

    def _render_screen(self, screen: Screen) -> Image.Image:
        return self.compositor.render(
            screen,
            remove_debug_objects=self.options.remove_debug_objects,
            remove_ghost=self.options.remove_ghost,
            with_coords=self.options.with_coords,
        )

    def render(self, world: DecodedWorld) -> Image.Image:
        """Render the whole world; raises ``ValueError`` for an empty world."""
        screens = list(world)
        if not screens:
            raise ValueError("World has no screens to render")

        size, slots = self.layout(world)
        mosaic = Image.new("RGBA", size, (0, 0, 0, 0))
        logger.info("Rendering %d screens onto a %dx%d image", len(screens), *size)

        workers = self.options.workers
        if workers is not None and workers > 1:
            # slots are fixed before dispatch; completion order does not matter
            with ThreadPoolExecutor(max_workers=workers) as pool:
                renders: Dict[int, Image.Image] = dict(
                    enumerate(pool.map(self._render_screen, screens))
                )
            for index, slot in enumerate(slots):
                mosaic.alpha_composite(renders[index], slot)
        else:
            for screen, slot in zip(screens, slots):
                mosaic.alpha_composite(self._render_screen(screen), slot)
                logger.debug("Rendered screen %s at %s", screen, slot)

        return mosaic
