"""Source path expressions.

A path is a dotted walk into a raw record tree, with list positions given
either as a numeric segment or in brackets::

    title
    variants.0.price
    images[0].src

At every dict level a key equal to the whole remaining path wins over
walking it, so flat CSV headers such as ``images.0.src`` resolve too.
"""

from __future__ import annotations

import re

from sync_worker.adapters.base import RawValue


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()

_BRACKET_RE = re.compile(r"\[(\d+)\]")


class PathSyntaxError(ValueError):
    pass


def parse_path(path: str) -> list[str]:
    if not isinstance(path, str) or not path.strip():
        raise PathSyntaxError("path must be a non-empty string")

    expanded = _BRACKET_RE.sub(r".\1", path.strip())
    if "[" in expanded or "]" in expanded:
        raise PathSyntaxError(f"invalid index in path '{path}'")

    segments = expanded.split(".")
    if any(segment == "" for segment in segments):
        raise PathSyntaxError(f"empty segment in path '{path}'")
    return segments


def resolve_path(value: RawValue, path: str | list[str]) -> RawValue | _Missing:
    segments = parse_path(path) if isinstance(path, str) else path
    return _resolve(value, segments)


def _resolve(current: RawValue, segments: list[str]) -> RawValue | _Missing:
    if not segments:
        return current

    if isinstance(current, dict):
        if len(segments) > 1:
            joined = ".".join(segments)
            if joined in current:
                return current[joined]
        head = segments[0]
        if head not in current:
            return MISSING
        return _resolve(current[head], segments[1:])

    if isinstance(current, list):
        head = segments[0]
        if not head.isdigit():
            return MISSING
        index = int(head)
        if index >= len(current):
            return MISSING
        return _resolve(current[index], segments[1:])

    return MISSING
