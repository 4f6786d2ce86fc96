"""Common type aliases and enumerations.

``Setting`` order matches the order of the settings bytes stored in every
screen payload, so ``int(Setting.GRADIENT)`` doubles as the byte index.
"""

from enum import IntEnum, StrEnum, auto
from typing import Tuple

ObjectBank = int
ObjectID = int

# Screen coordinate key (x, y)
ScreenKey = Tuple[int, int]


class Setting(IntEnum):
    """Per-screen settings, in payload order."""

    TILESET_A = 0
    TILESET_B = 1
    AMBIANCE_A = 2
    AMBIANCE_B = 3
    MUSIC = 4
    GRADIENT = 5


class LayerKind(StrEnum):
    """Payload layer categories."""

    TILE = auto()
    OBJECT = auto()


class Arrangement(StrEnum):
    """How rendered screens are placed on the world mosaic."""

    GRID = auto()
    COORDINATES = auto()


class ResourceCategory(StrEnum):
    """Logical resource families understood by the resolver."""

    GRADIENT = auto()
    TILESET = auto()
    OBJECT = auto()
    CUSTOM_OBJECT = auto()
