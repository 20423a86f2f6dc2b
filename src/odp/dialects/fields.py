"""Field-level helpers shared by the dialects.

Documents from every drafting group spell their fields slightly differently
(``Statement:`` paragraphs, two-column label tables, ``**ON #:**`` markers),
but the low-level chores are the same: turn a table into a label -> value
map, split a run of paragraphs at field markers, decide whether a value is a
template placeholder, and map free-text stakeholder names to category ids.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from odp.types import AnnotatedReference, EntityType, Table, ValidationIssue

log = logging.getLogger("odp.dialects.fields")

# ---------------------------------------------------------------------------
# Text cleanup
# ---------------------------------------------------------------------------

_BOLD_RE = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC_RE = re.compile(r"\*([^*]+)\*")
_UNDERLINE_RE = re.compile(r"__([^_]+)__")
_LIST_PREFIX_RE = re.compile(r"^(?:[.*]{1,5}|[-•])\s+", re.MULTILINE)

PLACEHOLDERS: frozenset[str] = frozenset({
    "click or tap here to enter text.",
    "click or tap here to enter text",
    "tbd",
    "n/a",
    "",
})


def plain_text(text: str | None) -> str:
    """Strip inline markup and list markers from marked-up text."""
    if not text:
        return ""
    out = _BOLD_RE.sub(r"\1", text)
    out = _ITALIC_RE.sub(r"\1", out)
    out = _UNDERLINE_RE.sub(r"\1", out)
    out = _LIST_PREFIX_RE.sub("", out)
    return out.strip()


def is_placeholder(value: str | None, placeholders: Iterable[str] = PLACEHOLDERS) -> bool:
    """True for empty values and template filler text."""
    if value is None:
        return True
    return plain_text(value).strip().lower() in set(placeholders)


def clean_value(value: str | None) -> str | None:
    """Trimmed value, or None for placeholders."""
    if is_placeholder(value):
        return None
    return value.strip() if value else None


def normalize_label(label: str) -> str:
    """``**Need Statement:**`` -> ``need statement``."""
    return plain_text(label).rstrip(":").strip().lower()


def missing_field(
    entity_type: EntityType, field_name: str, heading: str, path: Sequence[str] = (),
) -> ValidationIssue:
    """Error issue for an entity dropped because a required field is empty."""
    message = f"Skipping {entity_type} without {field_name} field in section {heading!r}"
    log.error(message)
    return ValidationIssue(
        "error", "missing_field", message,
        entity_type=entity_type, title=heading.strip() or None, path=tuple(path),
    )


def compose_sections(base: str | None, *sections: tuple[str, str | None]) -> str | None:
    """Append labelled sections (``**Label:**`` + body) to a marked-up text.

    Empty or placeholder bodies are skipped; returns None when nothing is left.
    """
    parts: list[str] = []
    if base and not is_placeholder(base):
        parts.append(base.strip())
    for label, body in sections:
        if body and not is_placeholder(body):
            parts.append(f"**{label}**\n\n{body.strip()}")
    return "\n\n".join(parts) if parts else None


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def field_map(tables: Sequence[Table], *, normalize: bool = True) -> dict[str, str]:
    """Label -> value map over 2-column (label, value) and 4-column
    (label, value, label, value) tables. First occurrence of a label wins."""
    fields: dict[str, str] = {}
    for table in tables:
        for row in table.rows:
            cells = [c.text for c in row]
            pairs: list[tuple[str, str]] = []
            if len(cells) >= 4:
                pairs = [(cells[0], cells[1]), (cells[2], cells[3])]
            elif len(cells) >= 2:
                pairs = [(cells[0], cells[1])]
            for label, value in pairs:
                key = normalize_label(label) if normalize else plain_text(label)
                if key and key not in fields:
                    fields[key] = value
    return fields


# ---------------------------------------------------------------------------
# Marker scanning
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class MarkerScanner:
    """Split a sequence of paragraphs into fields introduced by markers.

    ``markers`` maps a paragraph prefix (matched case-insensitively) to a
    field name; text after the marker on the same paragraph starts the field
    and following paragraphs continue it (joined with a blank line) until the
    next marker or a terminator prefix.
    """
    markers: dict[str, str]
    terminators: tuple[str, ...] = ()
    _ordered: list[tuple[str, str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        # Longest prefix first so "Flow examples:" beats "Flow".
        self._ordered = sorted(
            ((k.lower(), v) for k, v in self.markers.items()),
            key=lambda kv: -len(kv[0]),
        )

    def match(self, paragraph: str) -> tuple[str, str] | None:
        """Return (field, remainder) when the paragraph starts with a marker."""
        text = paragraph.strip()
        lowered = plain_text(text).lower() if text.startswith("*") else text.lower()
        source = plain_text(text) if text.startswith("*") else text
        for prefix, name in self._ordered:
            if lowered.startswith(prefix):
                rest = source[len(prefix):].lstrip(" :").strip()
                return name, rest
        return None

    def scan_parts(self, paragraphs: Iterable[str]) -> dict[str, list[str]]:
        """Paragraphs per field, in document order."""
        fields: dict[str, list[str]] = {}
        current: str | None = None
        for paragraph in paragraphs:
            if not paragraph or not paragraph.strip():
                continue
            hit = self.match(paragraph)
            if hit is not None:
                current, rest = hit
                fields.setdefault(current, [])
                if rest:
                    fields[current].append(rest)
                continue
            if any(paragraph.strip().lower().startswith(t.lower()) for t in self.terminators):
                current = None
                continue
            if current is not None:
                fields[current].append(paragraph.strip())
        return fields

    def scan(self, paragraphs: Iterable[str]) -> dict[str, str]:
        """Field text with continuation paragraphs joined by a blank line."""
        return {k: "\n\n".join(v) for k, v in self.scan_parts(paragraphs).items() if v}


# ---------------------------------------------------------------------------
# Stakeholders
# ---------------------------------------------------------------------------

STAKEHOLDER_SYNONYMS: dict[str, str] = {
    # NM and sub-teams
    "nm": "stakeholder:network/nm",
    "network manager": "stakeholder:network/nm",
    "nmoc": "stakeholder:network/nm/nmoc",
    "nmoc operations": "stakeholder:network/nm/nmoc",
    "network manager operation centre": "stakeholder:network/nm/nmoc",
    "network manager operations centre": "stakeholder:network/nm/nmoc",
    "nm rad team": "stakeholder:network/nm/nm_rad_team",
    "nm rad": "stakeholder:network/nm/nm_rad_team",
    "nmad": "stakeholder:network/nm/nmad",
    "nm airspace data team": "stakeholder:network/nm/nmad",
    "nm airspace design team": "stakeholder:network/nm/nmad",
    "nm tcf team": "stakeholder:network/nm/tcf",
    "nm tcf": "stakeholder:network/nm/tcf",
    "tcf analysts": "stakeholder:network/nm/tcf",
    "tcf monitoring team": "stakeholder:network/nm/tcf",
    "apt unit": "stakeholder:network/nm/apt_unit",
    "airport domain": "stakeholder:network/nm/airport_domain",
    "woc": "stakeholder:network/nm/woc",
    # ANSP and coordinators
    "ansp": "stakeholder:network/ansp",
    "ansps": "stakeholder:network/ansp",
    "air navigation service provider": "stakeholder:network/ansp",
    "air navigation service providers": "stakeholder:network/ansp",
    "fab": "stakeholder:network/ansp",
    "nec": "stakeholder:network/ansp/nec",
    "national env coordinator": "stakeholder:network/ansp/nec",
    "national env coordination": "stakeholder:network/ansp/nec",
    "lec": "stakeholder:network/ansp/lec",
    "local env coordinator": "stakeholder:network/ansp/lec",
    "nrc": "stakeholder:network/ansp/nrc",
    "national rad coordinator": "stakeholder:network/ansp/nrc",
    "national rad coordination": "stakeholder:network/ansp/nrc",
    "fmp": "stakeholder:network/ansp/fmp",
    "fmps": "stakeholder:network/ansp/fmp",
    "flow management position": "stakeholder:network/ansp/fmp",
    "amc": "stakeholder:network/ansp/amc",
    "airspace management cell": "stakeholder:network/ansp/amc",
    "atc unit": "stakeholder:network/ansp/atc_unit",
    "ats unit": "stakeholder:network/ansp/ats_unit",
    "twr": "stakeholder:network/ansp/twr",
    "twrs": "stakeholder:network/ansp/twr",
    # External organizations
    "icao": "stakeholder:network/icao",
    "icao eanpg": "stakeholder:network/icao/eanpg",
    "scpg": "stakeholder:network/scpg",
    "ssr code planning group": "stakeholder:network/scpg",
    "ccams users": "stakeholder:network/ccams_users",
    "ccams operators": "stakeholder:network/ccams_users",
    "easa": "stakeholder:network/easa",
    "eaccc": "stakeholder:network/eaccc",
    # Other stakeholders
    "airport operator": "stakeholder:network/airport_operator",
    "airport operators": "stakeholder:network/airport_operator",
    "aerodrome": "stakeholder:network/airport_operator",
    "airspace user": "stakeholder:network/airspace_user",
    "airspace users": "stakeholder:network/airspace_user",
    "au": "stakeholder:network/airspace_user",
    "ao": "stakeholder:network/airspace_user/ao",
    "aos": "stakeholder:network/airspace_user/ao",
    "aircraft operator": "stakeholder:network/airspace_user/ao",
    "cfsp": "stakeholder:network/airspace_user/cfsp",
    "national authority": "stakeholder:network/national_authority",
    "state": "stakeholder:network/national_authority",
    "states": "stakeholder:network/national_authority",
    "military": "stakeholder:network/military",
    "system integrator": "stakeholder:network/system_integrator",
    "ground handling agent": "stakeholder:network/ground_handling_agent",
    "third party supplier": "stakeholder:network/third_party_supplier",
    "surveillance data provider": "stakeholder:network/surveillance_data_provider",
}

_QUALIFIER_RE = re.compile(r"\s*\([^)]*\)\s*")
_BULLET_RE = re.compile(r"^[\s*\-•]+")


@dataclass(frozen=True, slots=True)
class StakeholderResolution:
    resolved: tuple[AnnotatedReference, ...]
    unresolved: tuple[str, ...]

    @property
    def unresolved_text(self) -> str | None:
        return "\n".join(self.unresolved) if self.unresolved else None


def resolve_stakeholders(
    text: str | None,
    *,
    split_pattern: str = r"\n",
    strip_qualifiers: bool = False,
    synonyms: dict[str, str] | None = None,
    ignore: Iterable[str] = (),
) -> StakeholderResolution:
    """Map free-text stakeholder names to category references.

    Args:
        text: Raw field value (bullet list or delimited free text).
        split_pattern: Regex separating individual names.
        strip_qualifiers: Drop parenthesized qualifiers, ``NMOC (end user)``
            -> ``NMOC``. When False the full text is tried first and the
            unqualified form second.
        synonyms: Lookup table keyed by lower-cased name.
        ignore: Lower-cased names that are dropped silently.

    Returns:
        De-duplicated resolved references (first occurrence order) plus the
        names that could not be resolved.
    """
    table = synonyms if synonyms is not None else STAKEHOLDER_SYNONYMS
    ignored = {i.lower() for i in ignore}
    resolved: list[AnnotatedReference] = []
    seen: set[str] = set()
    unresolved: list[str] = []
    if not text or is_placeholder(text):
        return StakeholderResolution((), ())
    for raw in re.split(split_pattern, text, flags=re.IGNORECASE):
        part = _BULLET_RE.sub("", plain_text(raw)).strip()
        if strip_qualifiers:
            part = _QUALIFIER_RE.sub(" ", part).strip()
        if not part:
            continue
        key = part.lower()
        if key in ignored:
            continue
        external_id = table.get(key) or table.get(_QUALIFIER_RE.sub(" ", key).strip())
        if external_id is None:
            unresolved.append(part)
        elif external_id not in seen:
            seen.add(external_id)
            resolved.append(AnnotatedReference(external_id))
    return StakeholderResolution(tuple(resolved), tuple(unresolved))
