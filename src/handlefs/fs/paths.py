"""Path canonicalization and path-string accessors.

Paths use ``\\`` as the only separator.  A rooted path starts with one
separator followed by the volume name (``\\sd\\logs\\today.txt``); a
server path starts with two (``\\\\server\\share``).  Everything here is
a pure string transformation: no driver calls, no registry access.
"""

from __future__ import annotations

from dataclasses import dataclass

from .exceptions import ArgumentError, PathError, PathErrorKind
from .types import CanonicalPath, PathCheckResult

# =============================================================================
# Constants
# =============================================================================

SEPARATOR = "\\"
SERVER_PREFIX = SEPARATOR * 2
ROOT = CanonicalPath(SEPARATOR)

# Separator-like and redirection characters, NUL and the C0 control range
INVALID_PATH_CHARS = frozenset('/"<>|:\x00' + "".join(chr(c) for c in range(1, 32)))

# Only allowed in search patterns
WILDCARD_CHARS = frozenset("?*")

MAX_PATH = 260
"""Desktop MAX_PATH, applied to server paths and anything not rooted."""


@dataclass(frozen=True)
class FileSystemLimits:
    """Length limits of the target file system.

    Each limit is exclusive: a volume name, file name or path whose
    length reaches the limit is rejected.
    """

    max_volume_name_length: int = 8
    """First segment of a rooted path (the volume / namespace name)."""

    max_filename_length: int = 256
    """Any single segment."""

    max_path_length: int = 258
    """Everything after the volume name of a rooted path."""

    max_unrooted_path_length: int = MAX_PATH
    """Whole string for server and relative paths."""

    trim_trailing_dots: bool = True
    """Strip trailing dots and spaces from ordinary segments (``a.. `` -> ``a``)."""


DEFAULT_LIMITS = FileSystemLimits()


# =============================================================================
# Validation helpers
# =============================================================================


def _require_value(path: str | None) -> str:
    if path is None or path == "":
        raise PathError(PathErrorKind.EMPTY, "Path is null or empty")
    return path


def check_invalid_path_chars(path: str) -> None:
    """Raise ``PathError`` if *path* contains a reserved or control character."""
    for ch in path:
        if ch in INVALID_PATH_CHARS:
            raise PathError(
                PathErrorKind.RESERVED_CHARACTER,
                f"Path contains reserved character {ch!r}: {path!r}",
            )


def _is_current_dir_segment(segment: str) -> bool:
    return segment.rstrip(" ") == "."


# =============================================================================
# Canonicalization
# =============================================================================


def normalize(
    path: str,
    *,
    pattern: bool = False,
    limits: FileSystemLimits = DEFAULT_LIMITS,
) -> CanonicalPath:
    """Resolve dot segments, collapse separators and validate every segment.

    This is the current-directory-free core of :func:`canonicalize`.  A
    relative input stays relative.  With ``pattern=True`` the wildcards
    ``?`` and ``*`` are accepted, but the input must be a single segment.

    Examples:
        normalize("\\\\sd\\\\a\\\\.\\\\b") -> "\\\\sd\\\\a\\\\b"
        normalize("\\\\sd\\\\a\\\\..\\\\b") -> "\\\\sd\\\\b"
        normalize("\\\\sd\\\\a\\\\") -> "\\\\sd\\\\a"
    """
    path = _require_value(path)
    check_invalid_path_chars(path)

    length = len(path)
    leading = length - len(path.lstrip(SEPARATOR))

    rooted = leading == 1
    server = leading == 2 and length > 2
    if leading > 2 or (leading == 2 and not server):
        raise PathError(PathErrorKind.MALFORMED_ROOT, f"Malformed root: {path!r}")

    if rooted:
        end = path.find(SEPARATOR, 1)
        volume_end = length if end == -1 else end
        if volume_end - 1 >= limits.max_volume_name_length:
            raise PathError(
                PathErrorKind.VOLUME_NAME_TOO_LONG,
                f"Volume name too long (max {limits.max_volume_name_length - 1}): {path!r}",
            )
        if length - volume_end >= limits.max_path_length:
            raise PathError(PathErrorKind.TOO_LONG, f"Path too long: {path[:32]!r}...")
    elif length >= limits.max_unrooted_path_length:
        raise PathError(PathErrorKind.TOO_LONG, f"Path too long: {path[:32]!r}...")

    parts = path.split(SEPARATOR)
    if pattern and len(parts) > 1:
        raise PathError(
            PathErrorKind.INVALID_SEGMENT,
            f"Search pattern cannot contain a separator: {path!r}",
        )

    segments: list[str] = []
    for part in parts:
        if not part:
            continue
        if len(part) >= limits.max_filename_length:
            raise PathError(
                PathErrorKind.TOO_LONG,
                f"File name too long (max {limits.max_filename_length - 1}): {part[:32]!r}...",
            )
        if not pattern and any(ch in WILDCARD_CHARS for ch in part):
            raise PathError(
                PathErrorKind.RESERVED_CHARACTER,
                f"Wildcards are only allowed in search patterns: {part!r}",
            )

        if not part.strip(". "):
            # Dots and/or spaces only
            if _is_current_dir_segment(part):
                continue
            if part == "..":
                if not segments:
                    raise PathError(
                        PathErrorKind.ASCEND_PAST_ROOT,
                        f"Path ascends above its root: {path!r}",
                    )
                segments.pop()
                continue
            raise PathError(PathErrorKind.INVALID_SEGMENT, f"Invalid segment {part!r} in {path!r}")

        segments.append(part.rstrip(". ") if limits.trim_trailing_dots else part)

    if server and not segments:
        raise PathError(PathErrorKind.MALFORMED_ROOT, "Server path must name a server")

    prefix = SEPARATOR if rooted else SERVER_PREFIX if server else ""
    return CanonicalPath(prefix + SEPARATOR.join(segments))


def canonicalize(
    raw: str,
    current_directory: str = ROOT,
    *,
    limits: FileSystemLimits = DEFAULT_LIMITS,
) -> CanonicalPath:
    """Turn *raw* into a canonical absolute path.

    Unrooted input is resolved against *current_directory* first.
    Raises ``PathError`` describing the first violation found.
    """
    raw = _require_value(raw)
    if not is_path_rooted(raw):
        raw = combine(current_directory, raw)
    return normalize(raw, limits=limits)


get_full_path = canonicalize


def check_path(
    raw: str,
    current_directory: str = ROOT,
    *,
    limits: FileSystemLimits = DEFAULT_LIMITS,
) -> PathCheckResult:
    """Non-raising form of :func:`canonicalize`."""
    try:
        path = canonicalize(raw, current_directory, limits=limits)
    except PathError as e:
        return PathCheckResult(success=False, message=str(e), kind=e.kind.value)
    return PathCheckResult(success=True, message="", path=path)


def combine(path1: str, path2: str) -> str:
    """Join two path strings with exactly one separator.

    An empty operand yields the other one; a rooted *path2* wins outright.
    """
    if path1 is None or path2 is None:
        raise ArgumentError("combine() operands cannot be None")
    check_invalid_path_chars(path1)
    check_invalid_path_chars(path2)

    if not path2:
        return path1
    if not path1:
        return path2
    if is_path_rooted(path2):
        return path2
    if path1.endswith(SEPARATOR):
        return path1 + path2
    return path1 + SEPARATOR + path2


# =============================================================================
# Accessors
# =============================================================================


def get_root_length(path: str) -> int:
    """Length of the root marker: 0, 1 (``\\``) or the whole ``\\\\server\\share``."""
    check_invalid_path_chars(path)

    length = len(path)
    i = 0
    if length >= 1 and path[0] == SEPARATOR:
        i = 1
        if length >= 2 and path[1] == SEPARATOR:
            i = 2
            remaining = 2
            while i < length:
                if path[i] == SEPARATOR:
                    remaining -= 1
                    if remaining == 0:
                        break
                i += 1
    return i


def get_path_root(path: str | None) -> str | None:
    if path is None:
        return None
    return path[: get_root_length(path)]


def is_path_rooted(path: str | None) -> bool:
    if path is None:
        return False
    check_invalid_path_chars(path)
    return path.startswith(SEPARATOR)


def get_directory_name(path: str | None) -> str | None:
    """Everything before the last separator, or None when *path* is a root.

    Examples:
        get_directory_name("\\\\sd\\\\a\\\\b.txt") -> "\\\\sd\\\\a"
        get_directory_name("\\\\sd") -> "\\\\"
        get_directory_name("\\\\") -> None
    """
    if path is None:
        return None
    check_invalid_path_chars(path)

    root = get_root_length(path)
    i = len(path)
    if i <= root:
        return None
    while i > root:
        i -= 1
        if path[i] == SEPARATOR:
            break
    return path[:i]


def get_file_name(path: str | None) -> str | None:
    if path is None:
        return None
    check_invalid_path_chars(path)
    return path[path.rfind(SEPARATOR) + 1 :]


def get_file_name_without_extension(path: str | None) -> str | None:
    name = get_file_name(path)
    if name is None:
        return None
    dot = name.rfind(".")
    return name if dot == -1 else name[:dot]


def get_extension(path: str | None) -> str | None:
    """Extension including the dot; empty for no extension or a terminal dot."""
    if path is None:
        return None
    check_invalid_path_chars(path)

    for i in range(len(path) - 1, -1, -1):
        ch = path[i]
        if ch == ".":
            return path[i:] if i != len(path) - 1 else ""
        if ch == SEPARATOR:
            break
    return ""


def has_extension(path: str | None) -> bool:
    return bool(get_extension(path))


def change_extension(path: str | None, extension: str | None) -> str | None:
    """Replace (or with ``None``, remove) the extension of the last segment."""
    if path is None:
        return None
    check_invalid_path_chars(path)

    result = path
    for i in range(len(path) - 1, -1, -1):
        ch = path[i]
        if ch == ".":
            result = path[:i]
            break
        if ch == SEPARATOR:
            break

    if extension is not None and path:
        if not extension.startswith("."):
            result += "."
        result += extension
    return result


def is_in_directory(path: str, directory: str, *, case_sensitive: bool = True) -> bool:
    """True if *path* is *directory* itself or lies somewhere below it."""
    if not case_sensitive:
        path = path.upper()
        directory = directory.upper()
    if path == directory:
        return True
    prefix = directory if directory.endswith(SEPARATOR) else directory + SEPARATOR
    return path.startswith(prefix)


def split_segments(path: str) -> list[str]:
    """Segments of a canonical path, without the root marker."""
    return [part for part in path.split(SEPARATOR) if part]


def get_volume_name(path: str) -> str | None:
    """First segment of a rooted canonical path, or None for the root itself."""
    segments = split_segments(path)
    return segments[0] if segments else None
