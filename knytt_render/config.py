"""World configuration (``World.ini``) and render options.

``World.ini`` is a Windows-style ini file. Lookups behave like the Win32
profile API the game relies on: section and key names are case-insensitive,
absent values read as an empty string, and values wrapped in double quotes are
unquoted.
"""

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from knytt_render.errors import FormatError, NotFoundError
from knytt_render.types import Arrangement

logger = logging.getLogger(__name__)

INI_NAME = "World.ini"
WORLD_SECTION = "World"
CUSTOM_OBJECT_SECTION = "Custom Object {}"

DEFAULT_TILE_SIZE = 24
DEFAULT_COLUMNS = 6


def _decode_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("cp1252", errors="replace")


class WorldIni:
    """Read-only view of a ``World.ini`` file."""

    path: Optional[Path]
    _parser: configparser.ConfigParser
    _sections: Dict[str, str]

    def __init__(self, path: Optional[Union[str, "os.PathLike[str]"]] = None):
        self.path = Path(path) if path is not None else None
        self._parser = configparser.ConfigParser(
            interpolation=None, strict=False, allow_no_value=True
        )
        self._sections = {}
        if self.path is not None:
            if not self.path.is_file():
                raise NotFoundError(f"Could not find {INI_NAME} at {self.path}")
            self._load(_decode_text(self.path.read_bytes()), str(self.path))

    def _load(self, text: str, source: str) -> None:
        try:
            self._parser.read_string(text, source=source)
        except configparser.Error as exc:
            raise FormatError(f"Unreadable ini data in {source}: {exc}") from exc
        self._sections = {name.lower(): name for name in self._parser.sections()}

    @classmethod
    def from_string(cls, text: str) -> "WorldIni":
        ini = cls()
        ini._load(text, "<string>")
        return ini

    @classmethod
    def for_world(cls, world_dir: Union[str, "os.PathLike[str]"]) -> "WorldIni":
        """Open ``World.ini`` inside ``world_dir``; empty view when it is absent."""
        path = Path(world_dir) / INI_NAME
        if not path.is_file():
            logger.warning(
                "No %s in %s; metadata and custom objects unavailable",
                INI_NAME,
                world_dir,
            )
            return cls()
        return cls(path)

    def read_string(self, section: str, key: str) -> str:
        actual = self._sections.get(section.lower())
        if actual is None:
            return ""
        value = self._parser.get(actual, key, fallback=None)
        if value is None:
            return ""
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        return value

    def read_int(self, section: str, key: str) -> Optional[int]:
        value = self.read_string(section, key)
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("[%s] %s is not an integer: %r", section, key, value)
            return None


@dataclass(frozen=True)
class WorldMetadata:
    """Descriptive ``[World]`` entries."""

    name: str = ""
    author: str = ""
    description: str = ""
    size: str = ""

    @classmethod
    def from_ini(cls, ini: WorldIni) -> "WorldMetadata":
        return cls(
            name=ini.read_string(WORLD_SECTION, "Name"),
            author=ini.read_string(WORLD_SECTION, "Author"),
            description=ini.read_string(WORLD_SECTION, "Description"),
            size=ini.read_string(WORLD_SECTION, "Size"),
        )


@dataclass(frozen=True)
class CustomObject:
    """Image and geometry of a ``[Custom Object N]`` section.

    Attributes:
        image: File name under the world's ``Custom Objects`` folder.
        tile_width: Width of one animation frame.
        tile_height: Height of one animation frame.
        offset_x: Horizontal draw offset from the cell centre alignment.
        offset_y: Vertical draw offset.
        init_frame: Frame drawn for the static render (``Init AnimFrom``).
    """

    image: str
    tile_width: int = DEFAULT_TILE_SIZE
    tile_height: int = DEFAULT_TILE_SIZE
    offset_x: int = 0
    offset_y: int = 0
    init_frame: int = 0

    @classmethod
    def from_ini(cls, ini: WorldIni, object_id: int) -> Optional["CustomObject"]:
        section = CUSTOM_OBJECT_SECTION.format(object_id)
        image = ini.read_string(section, "Image")
        if not image:
            return None

        def read(key: str, default: int) -> int:
            value = ini.read_int(section, key)
            return default if value is None else value

        return cls(
            image=image,
            tile_width=read("Tile Width", DEFAULT_TILE_SIZE),
            tile_height=read("Tile Height", DEFAULT_TILE_SIZE),
            offset_x=read("Offset X", 0),
            offset_y=read("Offset Y", 0),
            init_frame=read("Init AnimFrom", 0),
        )


@dataclass(frozen=True)
class RenderOptions:
    """Knobs for rendering a whole world.

    Attributes:
        remove_debug_objects: Hide editor-only system and invisible objects.
        remove_ghost: Hide every ghost object (bank 12).
        with_coords: Label each screen with its coordinates.
        columns: Mosaic width in screens for the grid arrangement.
        arrangement: Sequential grid or placement by screen coordinates.
        workers: Thread count for screen rendering; ``None`` renders inline.
    """

    remove_debug_objects: bool = True
    remove_ghost: bool = True
    with_coords: bool = False
    columns: int = DEFAULT_COLUMNS
    arrangement: Arrangement = Arrangement.GRID
    workers: Optional[int] = None
