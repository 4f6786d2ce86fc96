"""Exception taxonomy.

Every error raised on purpose by the package derives from :class:`KnyttError`
so callers (the CLI in particular) can report a failed stage without catching
unrelated exceptions. The concrete classes also inherit from the matching
builtin so ``except FileNotFoundError`` / ``except ValueError`` keep working.
"""


class KnyttError(Exception):
    """Base class for all package errors."""


class NotFoundError(KnyttError, FileNotFoundError):
    """An input file or a virtual archive entry does not exist."""


class FormatError(KnyttError, ValueError):
    """Binary data does not follow the expected layout."""


class ResourceMissingError(KnyttError, LookupError):
    """A gradient, tileset or object image could not be located."""
