"""External identifier derivation.

Format: ``{type}:{type-specific part}``

- ``on`` / ``or``: ``{drg}/{parent id}/{title}`` when refined,
  ``{drg}/{path}/{title}`` when placed in folders, else ``{drg}/{title}``
- ``oc``: ``{drg}/{title}``
- flat layouts (``derive_flat_id``): ``{type}:{drg}/{title}`` for every type
- ``document`` / ``wave``: ``{name}``
- ``data`` / ``service`` / ``stakeholder``: ``{parent id}/{name}`` or ``{name}``

Title, path segments and simple names are normalized (trimmed, lower-cased,
whitespace runs replaced by ``_``); the drg is lower-cased; hierarchical
names are kept as written. Derivation is deterministic so a reference token
written in a document can be turned into the same id as the entity it
points at.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

_WS_RE = re.compile(r"\s+")

_REQUIREMENT_TYPES = frozenset({"on", "or"})
_SIMPLE_TYPES = frozenset({"document", "wave"})
_HIERARCHICAL_TYPES = frozenset({"data", "service", "stakeholder"})


def normalize_segment(text: str) -> str:
    return _WS_RE.sub("_", text.strip().lower())


def derive_entity_id(
    entity_type: str,
    drg: str | None,
    title: str | None,
    *,
    path: Sequence[str] | None = None,
    parent_id: str | None = None,
) -> str:
    """Derive the external id of an ON, OR or OC.

    Raises:
        ValueError: missing drg/title, unknown type, or both parent and path.
    """
    kind = entity_type.lower()
    if kind not in _REQUIREMENT_TYPES and kind != "oc":
        raise ValueError(f"Unknown entity type: {entity_type!r}")
    if not drg:
        raise ValueError(f"Missing required field 'drg' for type '{kind}'")
    if not title or not title.strip():
        raise ValueError(f"Missing required field 'title' for type '{kind}'")
    title_part = normalize_segment(title)
    drg_part = drg.lower()
    if kind == "oc":
        return f"oc:{drg_part}/{title_part}"
    has_path = bool(path)
    if parent_id and has_path:
        raise ValueError(
            f"Business rule violation for type '{kind}': cannot have both 'parent' and 'path'"
        )
    if parent_id:
        return f"{kind}:{drg_part}/{parent_id}/{title_part}"
    if has_path:
        path_part = "/".join(normalize_segment(s) for s in path or ())
        return f"{kind}:{drg_part}/{path_part}/{title_part}"
    return f"{kind}:{drg_part}/{title_part}"


def derive_flat_id(
    entity_type: str,
    drg: str | None,
    title: str | None,
    *,
    path: Sequence[str] | None = None,
    parent_id: str | None = None,
) -> str:
    """``{type}:{drg}/{title}`` whatever the placement.

    For drafting groups that keep every entity at the top level, so a
    reference written as a path still lands on the flat id.
    """
    return derive_entity_id(entity_type, drg, title)


def derive_simple_id(kind: str, name: str | None, *, parent_id: str | None = None) -> str:
    """Derive ids for documents, waves and setup categories."""
    if kind not in _SIMPLE_TYPES and kind not in _HIERARCHICAL_TYPES:
        raise ValueError(f"Unknown entity type: {kind!r}")
    if not name:
        raise ValueError(f"Missing required field 'name' for type '{kind}'")
    if kind in _SIMPLE_TYPES:
        return f"{kind}:{normalize_segment(name)}"
    if parent_id:
        return f"{kind}:{parent_id}/{name}"
    return f"{kind}:{name}"
