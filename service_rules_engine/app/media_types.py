"""
Media type matching for rule type checks.
"""

import mimetypes
from typing import Iterable, Tuple, Union


def _split(media_type: str) -> Tuple[str, str]:
    essence = media_type.split(";", 1)[0].strip().lower()
    if "/" not in essence:
        return essence, ""
    main, sub = essence.split("/", 1)
    return main.strip(), sub.strip()


def _expand(pattern: str) -> str:
    """Turn ``json`` and ``+json`` shorthands into full patterns."""
    pattern = pattern.strip()
    if pattern.startswith("+"):
        return "*/*" + pattern
    if pattern and "/" not in pattern:
        return mimetypes.guess_type(f"file.{pattern}", strict=False)[0] or ""
    return pattern


def _subtype_matches(subtype: str, pattern: str) -> bool:
    if pattern in ("*", subtype):
        return True
    if pattern.startswith("*+"):
        return subtype.endswith(pattern[1:])
    return False


def media_type_matches(media_type: str, patterns: Union[str, Iterable[str]]) -> bool:
    """
    Check ``media_type`` against one or more patterns.

    Parameters are ignored and comparison is case-insensitive. ``*`` matches
    any type or subtype and ``*+json`` style patterns match structured syntax
    suffixes, e.g. ``application/*+json`` matches ``application/vnd.x+json``.
    Shorthands are expanded first: ``json`` means ``application/json`` and
    ``+json`` means ``*/*+json``.
    """
    if isinstance(patterns, str):
        patterns = [patterns]

    main, sub = _split(media_type)
    if not main:
        return False

    for pattern in patterns:
        pattern_main, pattern_sub = _split(_expand(pattern))
        if not pattern_main or pattern_main not in ("*", main):
            continue
        if _subtype_matches(sub, pattern_sub):
            return True
    return False
