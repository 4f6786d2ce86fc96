"""Reader (and writer) for compressed world archives (``.knytt.bin``).

Layout of the container::

    "NF" <root name> NUL <u32 declared count>
    repeated until end of stream:
        "NF" <path> NUL <u32 size> <size bytes of content>

All integers are little endian. Paths inside the archive use backslashes and
are normalized to forward slashes while reading. The declared count is kept for
information only: entries are read until the stream is exhausted.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple, Union

from knytt_render.errors import FormatError, NotFoundError

logger = logging.getLogger(__name__)

MAGIC = b"NF"
ENCODING = "latin-1"

PathLike = Union[str, "os.PathLike[str]"]


def _read_cstring(data: bytes, pos: int, what: str) -> Tuple[str, int]:
    end = data.find(b"\x00", pos)
    if end < 0:
        raise FormatError(f"Unterminated {what} at offset {pos}")
    return data[pos:end].decode(ENCODING), end + 1


def _read_u32(data: bytes, pos: int, what: str) -> Tuple[int, int]:
    if pos + 4 > len(data):
        raise FormatError(f"Truncated {what} at offset {pos}")
    b0, b1, b2, b3 = data[pos : pos + 4]
    return b0 + b1 * 256 + b2 * 65536 + b3 * 16777216, pos + 4


def _write_u32(value: int) -> bytes:
    return bytes(
        [value & 0xFF, (value >> 8) & 0xFF, (value >> 16) & 0xFF, (value >> 24) & 0xFF]
    )


def parse_archive(data: bytes) -> Tuple[str, int, Dict[str, bytes]]:
    """Parse a whole archive held in memory.

    Returns:
        ``(root_name, declared_count, entries)`` where ``entries`` maps virtual
        path to content in archive order. A repeated path keeps its first slot
        and takes the last content.

    Raises:
        FormatError: Missing magic or any truncated field.
    """
    if data[:2] != MAGIC:
        raise FormatError("Not a compressed world archive: missing NF header")

    root_name, pos = _read_cstring(data, 2, "root name")
    declared_count, pos = _read_u32(data, pos, "file count")

    entries: Dict[str, bytes] = {}
    while pos < len(data):
        if pos + 2 > len(data):
            raise FormatError(f"Truncated entry marker at offset {pos}")
        pos += 2
        raw_path, pos = _read_cstring(data, pos, "entry path")
        path = raw_path.replace("\\", "/")
        size, pos = _read_u32(data, pos, f"size of {path!r}")
        if pos + size > len(data):
            raise FormatError(
                f"Entry {path!r} declares {size} bytes "
                f"but only {len(data) - pos} remain"
            )
        entries[path] = bytes(data[pos : pos + size])
        pos += size

    return root_name, declared_count, entries


def pack_archive(root_name: str, entries: Mapping[str, bytes]) -> bytes:
    """Build an archive from a path -> content mapping.

    Paths are written with backslashes, as the game does. The declared count is
    the number of entries.
    """
    out = bytearray(MAGIC)
    out += root_name.encode(ENCODING) + b"\x00"
    out += _write_u32(len(entries))
    for path, content in entries.items():
        out += MAGIC
        out += path.replace("/", "\\").encode(ENCODING) + b"\x00"
        out += _write_u32(len(content))
        out += content
    return bytes(out)


class ArchiveReader:
    """Virtual file table of one archive.

    Usage::

        reader = ArchiveReader("Some World.knytt.bin")
        root, count = reader.open()
        for name in reader.list_files(r"\\.png$"):
            reader.save_file(name, "out")
    """

    path: Path
    root_name: str
    declared_count: int
    _files: Dict[str, bytes]

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self.root_name = ""
        self.declared_count = 0
        self._files = {}

    def open(self) -> Tuple[str, int]:
        """Read and parse the archive.

        Returns:
            ``(root_name, file_count)`` with the number of parsed entries.

        Raises:
            NotFoundError: The archive file does not exist.
            FormatError: The data is not a valid archive.
        """
        if not self.path.is_file():
            raise NotFoundError(f"Unable to locate compressed world file: {self.path}")

        data = self.path.read_bytes()
        self.root_name, self.declared_count, self._files = parse_archive(data)
        if self.declared_count != len(self._files):
            logger.debug(
                "Archive %s declares %d files, parsed %d",
                self.path,
                self.declared_count,
                len(self._files),
            )
        return self.root_name, len(self._files)

    def list_files(self, pattern: Optional[str] = None) -> List[str]:
        """Return virtual paths, optionally filtered by a regular expression."""
        if not pattern:
            return list(self._files)
        regex = re.compile(pattern)
        return [name for name in self._files if regex.search(name)]

    def get_file(self, name: str) -> bytes:
        try:
            return self._files[name]
        except KeyError:
            raise NotFoundError(f"{name!r} is not in archive {self.path}") from None

    def get_file_size(self, name: str) -> int:
        return len(self.get_file(name))

    def save_file(self, name: str, output_root: PathLike = "") -> Path:
        """Write one entry to ``output_root/<root name>/<name>``.

        Intermediate directories are created. I/O failures propagate as
        ``OSError``.
        """
        content = self.get_file(name)
        base = Path(output_root) / self.root_name
        if not base.resolve().is_relative_to(Path(output_root).resolve()):
            raise FormatError(
                f"Root name {self.root_name!r} escapes the extraction directory"
            )
        target = base / name
        if not target.resolve().is_relative_to(base.resolve()):
            raise FormatError(f"Entry {name!r} escapes the extraction directory")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        return target

    def extract_all(self, output_root: PathLike = "") -> List[Path]:
        """Save every entry and return the written paths."""
        written: List[Path] = []
        for name in self._files:
            written.append(self.save_file(name, output_root))
            logger.info("Saving %s (%d bytes)", name, self.get_file_size(name))
        return written

    def __contains__(self, name: object) -> bool:
        return name in self._files

    def __len__(self) -> int:
        return len(self._files)
