"""Command line entry point: extract a world archive and render its map.

Usage::

    knytt-render "Some World.knytt.bin" out/ "C:/Knytt Stories/Data"
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from knytt_render.archive import ArchiveReader
from knytt_render.compositor import ScreenCompositor
from knytt_render.config import DEFAULT_COLUMNS, RenderOptions
from knytt_render.errors import KnyttError
from knytt_render.layout import load_world
from knytt_render.resources import ResourceResolver
from knytt_render.types import Arrangement
from knytt_render.world import WorldCompositor

logger = logging.getLogger("knytt_render")


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="knytt-render",
        description="Extract a compressed world archive and render its map to PNG.",
    )
    parser.add_argument("archive", type=Path, help="Path to the .knytt.bin archive.")
    parser.add_argument(
        "output", type=Path, help="Directory receiving the extracted world and render."
    )
    parser.add_argument(
        "data", type=Path, help="The game's Data folder (gradients, tilesets, objects)."
    )
    parser.add_argument(
        "--columns",
        type=positive_int,
        default=DEFAULT_COLUMNS,
        help="Screens per row in the grid arrangement (default: %(default)s).",
    )
    parser.add_argument(
        "--arrangement",
        choices=[a.value for a in Arrangement],
        default=Arrangement.GRID.value,
        help="Place screens in a grid or at their world coordinates.",
    )
    parser.add_argument(
        "--keep-debug-objects",
        action="store_true",
        help="Draw system and invisible objects.",
    )
    parser.add_argument(
        "--keep-ghosts",
        action="store_true",
        help="Draw ghost objects.",
    )
    parser.add_argument(
        "--coords",
        action="store_true",
        help="Label every screen with its coordinates.",
    )
    parser.add_argument(
        "--workers",
        type=positive_int,
        default=None,
        help="Render screens on this many threads.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def render_filename(root_name: str, now: Optional[datetime] = None) -> str:
    """``<root>_<YYYY-DD-M--HH-MM-SS>.png`` (the game tool's stamp order)."""
    now = now or datetime.now()
    return f"{root_name}_{now:%Y-%d}-{now.month}--{now:%H-%M-%S}.png"


def run(args: argparse.Namespace) -> Optional[Path]:
    """Extract, load and render. Returns the written image path."""
    reader = ArchiveReader(args.archive)
    root_name, file_count = reader.open()
    if file_count == 0:
        logger.error("Archive %s contains no files", args.archive)
        return None
    logger.info("Opened %s successfully.", root_name)
    reader.extract_all(args.output)
    logger.info("All files extracted.")

    world_dir = args.output / root_name
    world = load_world(world_dir)
    if world is None:
        logger.error("Unable to load a world layout from %s", world_dir)
        return None
    logger.info("Loaded: %s by %s", world.name, world.author)
    logger.info("%s", world.bounds)

    options = RenderOptions(
        remove_debug_objects=not args.keep_debug_objects,
        remove_ghost=not args.keep_ghosts,
        with_coords=args.coords,
        columns=args.columns,
        arrangement=Arrangement(args.arrangement),
        workers=args.workers,
    )
    compositor = ScreenCompositor(ResourceResolver(args.data, world_dir), world.ini)
    logger.info("Rendering world...")
    image = WorldCompositor(compositor, options).render(world)

    target = args.output / render_filename(root_name)
    image.save(target)
    logger.info("World render saved to %s", target)
    return target


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)
    try:
        target = run(args)
    except KnyttError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    except OSError as exc:
        logger.error("I/O error: %s", exc)
        return 1
    except ValueError as exc:
        logger.error("Render failed: %s", exc)
        return 1
    return 0 if target is not None else 1


if __name__ == "__main__":
    sys.exit(main())
