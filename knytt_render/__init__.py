"""Knytt Stories world archive decoding and map rendering.

The package is split along the pipeline:

* :mod:`knytt_render.archive` reads ``.knytt.bin`` containers.
* :mod:`knytt_render.layout` decodes ``Map.bin`` into :class:`Screen` records.
* :mod:`knytt_render.config` reads ``World.ini`` and holds render options.
* :mod:`knytt_render.resources` locates and loads artwork.
* :mod:`knytt_render.rules` decides which objects are drawn and how.
* :mod:`knytt_render.compositor` and :mod:`knytt_render.world` produce images.

See :mod:`knytt_render.cli` for the end-to-end command.
"""

from knytt_render.archive import ArchiveReader, pack_archive, parse_archive
from knytt_render.compositor import ScreenCompositor
from knytt_render.config import CustomObject, RenderOptions, WorldIni, WorldMetadata
from knytt_render.errors import (
    FormatError,
    KnyttError,
    NotFoundError,
    ResourceMissingError,
)
from knytt_render.layout import (
    DecodedWorld,
    Screen,
    WorldBounds,
    decode_layout,
    encode_layout,
    load_world,
    screen_id,
)
from knytt_render.resources import Resolution, ResourceResolver
from knytt_render.rules import RuleOutcome, can_draw
from knytt_render.types import Arrangement, Setting
from knytt_render.world import WorldCompositor

__all__ = [
    "ArchiveReader",
    "Arrangement",
    "CustomObject",
    "DecodedWorld",
    "FormatError",
    "KnyttError",
    "NotFoundError",
    "RenderOptions",
    "Resolution",
    "ResourceMissingError",
    "ResourceResolver",
    "RuleOutcome",
    "Screen",
    "ScreenCompositor",
    "Setting",
    "WorldBounds",
    "WorldCompositor",
    "WorldIni",
    "WorldMetadata",
    "can_draw",
    "decode_layout",
    "encode_layout",
    "load_world",
    "pack_archive",
    "parse_archive",
    "screen_id",
]
