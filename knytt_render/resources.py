"""Locating and loading image resources.

Standard artwork comes from the game's shared ``Data`` folder; custom objects
come from the world's own directory::

    <data>/Gradients/Gradient{id}.png
    <data>/Tilesets/Tileset{id}.png
    <data>/Objects/Bank{bank}/Object{id}.png
    <world>/Custom Objects/{name}

Lookups return a :class:`Resolution` instead of logging or raising, so callers
decide whether a miss skips a draw or aborts. Every loaded image gets the
magenta colour key turned into transparency.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import numpy as np
import numpy.typing as npt
from PIL import Image, UnidentifiedImageError

from knytt_render.errors import ResourceMissingError
from knytt_render.types import ResourceCategory

logger = logging.getLogger(__name__)

TRANSPARENT_COLOR: Tuple[int, int, int] = (255, 0, 255)

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class Resolution:
    """Outcome of a lookup: the candidate path and whether it exists."""

    path: Path
    found: bool

    def require(self) -> Path:
        if not self.found:
            raise ResourceMissingError(f"Missing resource: {self.path}")
        return self.path

    def __bool__(self) -> bool:
        return self.found


def apply_color_key(
    image: Image.Image, key: Tuple[int, int, int] = TRANSPARENT_COLOR
) -> Image.Image:
    """Return an RGBA copy where pixels equal to ``key`` are fully transparent."""
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    arr: npt.NDArray[np.uint8] = np.array(image, dtype=np.uint8)
    mask = np.all(arr[..., :3] == np.array(key, dtype=np.uint8), axis=-1)
    arr[..., 3][mask] = 0
    return Image.fromarray(arr, mode="RGBA")


class ResourceResolver:
    """Maps logical resource names to files and caches decoded images.

    Attributes:
        data_root: Shared game ``Data`` folder.
        world_root: Extracted world directory (custom objects).
    """

    data_root: Path
    world_root: Optional[Path]
    _cache: Dict[Path, Optional[Image.Image]]
    _lock: threading.Lock

    def __init__(self, data_root: PathLike, world_root: Optional[PathLike] = None):
        self.data_root = Path(data_root)
        self.world_root = Path(world_root) if world_root is not None else None
        self._cache = {}
        self._lock = threading.Lock()

    def _lookup(self, root: Optional[Path], relative: str) -> Resolution:
        if root is None:
            return Resolution(Path(relative), False)
        path = root / relative
        return Resolution(path, path.is_file())

    def gradient(self, gradient_id: int) -> Resolution:
        return self._lookup(self.data_root, f"Gradients/Gradient{gradient_id}.png")

    def tileset(self, tileset_id: int) -> Resolution:
        return self._lookup(self.data_root, f"Tilesets/Tileset{tileset_id}.png")

    def object(self, bank: int, object_id: int) -> Resolution:
        return self._lookup(
            self.data_root, f"Objects/Bank{bank}/Object{object_id}.png"
        )

    def custom_object(self, name: str) -> Resolution:
        return self._lookup(self.world_root, f"Custom Objects/{name}")

    def resolve(self, category: ResourceCategory, *key: object) -> Resolution:
        """Generic entry point: ``resolve(ResourceCategory.OBJECT, bank, id)``."""
        if category == ResourceCategory.GRADIENT:
            return self.gradient(*key)  # type: ignore[arg-type]
        if category == ResourceCategory.TILESET:
            return self.tileset(*key)  # type: ignore[arg-type]
        if category == ResourceCategory.OBJECT:
            return self.object(*key)  # type: ignore[arg-type]
        if category == ResourceCategory.CUSTOM_OBJECT:
            return self.custom_object(*key)  # type: ignore[arg-type]
        raise ValueError(f"Unknown resource category: {category}")

    def load_image(self, resolution: Resolution) -> Optional[Image.Image]:
        """Decode a resolved image with the colour key applied.

        Returns ``None`` (and logs) when the file is missing or cannot be
        decoded. Results, including failures, are cached per path.
        """
        with self._lock:
            if resolution.path in self._cache:
                return self._cache[resolution.path]

        image: Optional[Image.Image] = None
        if not resolution.found:
            logger.warning("Missing resource %s", resolution.path)
        else:
            try:
                with Image.open(resolution.path) as raw:
                    image = apply_color_key(raw)
            except (OSError, UnidentifiedImageError) as exc:
                logger.warning("Unable to decode %s: %s", resolution.path, exc)

        with self._lock:
            self._cache.setdefault(resolution.path, image)
            return self._cache[resolution.path]

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
