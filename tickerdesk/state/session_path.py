"""Typed dot-path addressing over a session's nested data tree.

A `DataPath` is validated when it is built, so a typo in a segment fails at
the call site instead of silently writing to a new branch. Reads and writes
never mutate their input: `set_path` copies the mappings along the path and
shares every untouched branch.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TypeAlias

from tickerdesk.constants import SESSION_NAMESPACES

SessionValue: TypeAlias = object
SessionTree: TypeAlias = Mapping[str, SessionValue]

_SEGMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class InvalidPathError(ValueError):
    """Raised when a dot-path cannot address session data."""


@dataclass(frozen=True)
class DataPath:
    """Validated path into session data, e.g. ``chat.messages``."""

    segments: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.segments:
            raise InvalidPathError("Path must contain at least one segment")
        for segment in self.segments:
            if not isinstance(segment, str) or not _SEGMENT_RE.match(segment):
                raise InvalidPathError(f"Invalid path segment: {segment!r}")

    @classmethod
    def parse(cls, raw: str, *, namespaces: Iterable[str] | None = None) -> "DataPath":
        """Build a path from its dotted form.

        Args:
            raw: Dotted path such as ``"news.articles"``
            namespaces: Allowed root segments (defaults to the session namespaces)

        Raises:
            InvalidPathError: On empty segments or an unknown root namespace
        """
        if not isinstance(raw, str) or not raw.strip():
            raise InvalidPathError("Path must be a non-empty string")
        path = cls(tuple(raw.strip().split(".")))
        allowed = tuple(namespaces) if namespaces is not None else SESSION_NAMESPACES
        if path.root not in allowed:
            raise InvalidPathError(f"Unknown namespace {path.root!r} (expected one of: {', '.join(allowed)})")
        return path

    @property
    def root(self) -> str:
        return self.segments[0]

    def __str__(self) -> str:
        return ".".join(self.segments)


PathLike: TypeAlias = DataPath | str


def as_path(path: PathLike) -> DataPath:
    """Coerce a dotted string into a validated `DataPath`."""
    if isinstance(path, DataPath):
        return path
    return DataPath.parse(path)


def get_path(tree: SessionTree, path: PathLike) -> SessionValue | None:
    """Read the value at `path`, or None when any segment is missing."""
    current: SessionValue = tree
    for segment in as_path(path).segments:
        if not isinstance(current, Mapping) or segment not in current:
            return None
        current = current[segment]
    return current


def has_path(tree: SessionTree, path: PathLike) -> bool:
    current: SessionValue = tree
    for segment in as_path(path).segments:
        if not isinstance(current, Mapping) or segment not in current:
            return False
        current = current[segment]
    return True


def set_path(tree: SessionTree, path: PathLike, value: SessionValue) -> dict[str, SessionValue]:
    """Return a copy of `tree` with `value` stored at `path`.

    Missing intermediates are created as empty mappings; an intermediate
    holding a non-mapping value is replaced by a mapping.
    """
    return _set_segments(tree, as_path(path).segments, value)


def _set_segments(node: SessionTree, segments: tuple[str, ...], value: SessionValue) -> dict[str, SessionValue]:
    head, rest = segments[0], segments[1:]
    updated = dict(node)
    if not rest:
        updated[head] = value
        return updated
    child = node.get(head)
    updated[head] = _set_segments(child if isinstance(child, Mapping) else {}, rest, value)
    return updated
