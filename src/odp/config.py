"""Pipeline configuration.

One frozen ``PipelineConfig`` is threaded through import and export runs.
It can be built in code or loaded from a JSON file::

    {
      "_comment": "keys starting with _ are ignored",
      "paragraph_spacers": false,
      "native_heading_depth": 6,
      "strict_unique_ids": true
    }

Unknown keys are ignored so configuration files can be shared with other
tools; invalid values raise ``ValueError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import orjson

from odp.dialects.fields import PLACEHOLDERS

log = logging.getLogger("odp.config")

MAX_HEADING_LEVEL = 9


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    paragraph_spacers: bool = True          # blank paragraph between rendered paragraphs
    native_heading_depth: int = 6           # deeper headings use explicit outline numbering
    max_heading_depth: int = MAX_HEADING_LEVEL
    needs_requirements_title: str = "Operational Needs and Requirements"
    changes_title: str = "Operational Changes"
    placeholders: frozenset[str] = PLACEHOLDERS
    strict_unique_ids: bool = False         # False: duplicates dropped with a warning

    def __post_init__(self) -> None:
        if not 1 <= self.max_heading_depth <= MAX_HEADING_LEVEL:
            raise ValueError(
                f"max_heading_depth must be in 1..{MAX_HEADING_LEVEL}, got {self.max_heading_depth}"
            )
        if not 1 <= self.native_heading_depth <= self.max_heading_depth:
            raise ValueError(
                f"native_heading_depth must be in 1..{self.max_heading_depth}, "
                f"got {self.native_heading_depth}"
            )
        if not self.needs_requirements_title.strip() or not self.changes_title.strip():
            raise ValueError("Section titles must be non-empty")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineConfig:
        """Build from a plain dict; ``_``-prefixed and unknown keys are dropped."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key.startswith("_"):
                continue
            if key not in known:
                log.debug("Ignoring unknown config key %r", key)
                continue
            kwargs[key] = value
        if "placeholders" in kwargs:
            kwargs["placeholders"] = frozenset(str(p).strip().lower() for p in kwargs["placeholders"])
        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: Path) -> PipelineConfig:
        payload = orjson.loads(path.read_bytes())
        if not isinstance(payload, dict):
            raise ValueError(f"Config payload must be a JSON object: {path}")
        return cls.from_dict(payload)
