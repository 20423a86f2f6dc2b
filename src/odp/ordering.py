"""Deterministic ordering keys.

Codes such as ``ON-2`` and ``ON-10`` must sort numerically, and folder names
case-insensitively, so every export of the same entity set lists sections in
the same order.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import TypeVar

_DIGITS_RE = re.compile(r"(\d+)")

T = TypeVar("T")


def natural_key(value: str) -> tuple[tuple[int, int | str], ...]:
    """Numeric-aware, case-insensitive sort key.

    Digit groups compare as integers and sort before text at the same
    position, so ``"ON-2" < "ON-10"`` and ``"a2" < "A10" < "ab"``.
    """
    parts: list[tuple[int, int | str]] = []
    for chunk in _DIGITS_RE.split(value or ""):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk.casefold()))
    return tuple(parts)


def folder_key(name: str) -> tuple[str, str]:
    """Case-insensitive key with the raw name as tiebreak."""
    return (name.casefold(), name)


def natural_sorted(items: Iterable[T], key: Callable[[T], str]) -> list[T]:
    return sorted(items, key=lambda item: (natural_key(key(item)), key(item)))
