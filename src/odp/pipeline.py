"""Import / export entry points.

Import::

    raw sections ──walk_sections(dialect)──> entities + issues
                 ──clear placeholders──> normalize_entities(policy, derive_id)
                 ──validate──> ImportResult

Spreadsheet dialects take named sheets of rows instead of sections
(``import_rows``). Documents in the standard layout (what export writes)
re-import with ``standard=True`` whatever the drafting group's own dialect is.
Export hands an entity set to ``DocumentSynthesizer``.

Usage::

    result = import_document(load_json(path), drg="NM_B2B")
    doc = export_document(result.entities, drg="NM_B2B")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Any

from odp.config import PipelineConfig
from odp.dialects import Dialect, DialectRegistry, build_default_registry, make_standard_dialect
from odp.dialects.fields import is_placeholder
from odp.hierarchy import HierarchyResolver, ReferenceReport
from odp.rich_text import delta_plain_text
from odp.synthesizer import DocumentSynthesizer, SynthesizedDocument
from odp.types import (
    RICH_TEXT_FIELDS,
    DocumentNode,
    Entity,
    ImportResult,
    ValidationIssue,
    document_node_from_dict,
    entity_to_dict,
    reference_document_to_dict,
    validation_issue_to_dict,
)
from odp.walker import initial_context, walk_sections

log = logging.getLogger("odp.pipeline")


def _sections(raw: Any) -> list[DocumentNode]:
    """Accept ``{"sections": [...]}``, a list of node dicts, or DocumentNodes."""
    items = raw.get("sections", []) if isinstance(raw, dict) else raw
    return [n if isinstance(n, DocumentNode) else document_node_from_dict(n) for n in items or ()]


def _sheets(raw: Any, dialect: Dialect) -> dict[str, list[dict[str, Any]]]:
    """Rows per sheet the dialect reads, matched case-insensitively.

    Accepts ``{"sheets": {name: rows}}``, ``{"sheets": [{"name": ..., "rows":
    [...]}]}`` or a bare row list (taken as the dialect's first sheet).

    A missing sheet reads as empty; when none of them is present the
    workbook is for another drafting group.

    Raises:
        ValueError: none of the sheets the dialect reads is present.
    """
    if not isinstance(raw, dict):
        return {dialect.sheets[0]: list(raw or ())}
    found = raw.get("sheets") or {}
    if isinstance(found, list):
        found = {s.get("name", ""): s.get("rows", []) for s in found if isinstance(s, dict)}
    by_name = {str(name).strip().lower(): rows for name, rows in found.items()}
    missing = [s for s in dialect.sheets if s.lower() not in by_name]
    if len(missing) == len(dialect.sheets):
        wanted = ", ".join(repr(s) for s in dialect.sheets)
        available = ", ".join(sorted(map(str, found))) or "none"
        raise ValueError(f"Sheet {wanted} not found (available: {available})")
    for sheet in missing:
        log.warning("Sheet %r not found; read as empty", sheet)
    return {s: list(by_name.get(s.lower()) or ()) for s in dialect.sheets}


def clear_placeholders(entity: Entity, placeholders: Iterable[str]) -> Entity:
    """Drop rich-text fields whose visible text is template filler."""
    marks = frozenset(placeholders)
    cleared = {
        name: None
        for name in RICH_TEXT_FIELDS
        if getattr(entity, name) is not None and is_placeholder(delta_plain_text(getattr(entity, name)), marks)
    }
    return replace(entity, **cleared) if cleared else entity


def _finish(
    entities: Sequence[Entity],
    issues: Sequence[ValidationIssue],
    dialect: Dialect,
    folder: str | None,
    config: PipelineConfig,
) -> ImportResult:
    cleaned = [clear_placeholders(e, config.placeholders) for e in entities]
    normalized = HierarchyResolver(cleaned).normalize_entities(
        dialect.policy_for(folder), dialect.derive_external_id,
    )
    report = HierarchyResolver(normalized).validate(documents=dialect.reference_documents)
    result = ImportResult(
        needs=tuple(e for e in normalized if e.type == "ON"),
        requirements=tuple(e for e in normalized if e.type == "OR"),
        changes=tuple(e for e in normalized if e.type == "OC"),
        documents=dialect.reference_documents,
        issues=tuple(issues) + report.issues,
        reference_report=report,
    )
    log.info(
        "Imported %d needs, %d requirements, %d changes with %s (%d error(s), %d warning(s))",
        len(result.needs), len(result.requirements), len(result.changes), dialect.name,
        len(result.errors), len(result.warnings),
    )
    return result


def import_document(
    raw: Any,
    *,
    drg: str,
    folder: str | None = None,
    registry: DialectRegistry | None = None,
    config: PipelineConfig | None = None,
    standard: bool = False,
) -> ImportResult:
    """Import a raw section tree with the dialect registered for ``drg``/``folder``.

    ``standard`` reads the layout ``export_document`` writes instead.

    Raises:
        DialectNotFoundError: no dialect for the key.
        ValueError: the dialect reads spreadsheet rows, not sections.
    """
    config = config or PipelineConfig()
    if standard:
        dialect = make_standard_dialect(drg)
    else:
        dialect = (registry or build_default_registry()).get(drg, folder)
    if dialect.reads_rows:
        raise ValueError(f"Dialect {dialect.name!r} reads spreadsheet rows; use import_rows")
    outcome = walk_sections(_sections(raw), dialect, drg=drg, folder=folder, config=config)
    return _finish(outcome.entities, outcome.issues, dialect, folder, config)


def import_rows(
    raw: Any,
    *,
    drg: str = "RRT",
    registry: DialectRegistry | None = None,
    config: PipelineConfig | None = None,
) -> ImportResult:
    """Import spreadsheet rows with the dialect registered for ``drg``.

    Raises:
        DialectNotFoundError: no dialect for ``drg``.
        ValueError: the dialect reads section trees, or a sheet is missing.
    """
    config = config or PipelineConfig()
    dialect = (registry or build_default_registry()).get(drg)
    if dialect.extract_rows is None:
        raise ValueError(f"Dialect {dialect.name!r} does not read spreadsheet rows")
    outcome = dialect.extract_rows(_sheets(raw, dialect), initial_context(dialect, drg=drg))
    return _finish(outcome.entities, outcome.issues, dialect, None, config)


def export_document(
    entities: Iterable[Entity],
    *,
    drg: str,
    folder: str | None = None,
    config: PipelineConfig | None = None,
) -> SynthesizedDocument:
    return DocumentSynthesizer(config).synthesize(entities, drg=drg, folder=folder)


def _report_to_dict(report: ReferenceReport | None) -> dict[str, Any]:
    if report is None:
        return {}
    return {
        kind: {"total": t.total, "resolved": t.resolved, "unresolved": t.unresolved}
        for kind, t in report.tallies.items()
        if t.total
    }


def import_result_to_dict(result: ImportResult) -> dict[str, Any]:
    return {
        "needs": [entity_to_dict(e) for e in result.needs],
        "requirements": [entity_to_dict(e) for e in result.requirements],
        "changes": [entity_to_dict(e) for e in result.changes],
        "documents": [reference_document_to_dict(d) for d in result.documents],
        "issues": [validation_issue_to_dict(i) for i in result.issues],
        "references": _report_to_dict(result.reference_report),
    }
