"""Tests for the odp_import / odp_export command-line scripts."""
from __future__ import annotations

import importlib.util
from pathlib import Path
from types import ModuleType

import orjson

from odp.types import document_node_to_dict
from test_dialects import RRT_ROWS, nm_b2b_sections


def _load_script(name: str) -> ModuleType:
    root = Path(__file__).resolve().parents[1]
    spec = importlib.util.spec_from_file_location(name, root / "scripts" / f"{name}.py")
    assert spec is not None
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


def _write(path: Path, payload: object) -> Path:
    path.write_bytes(orjson.dumps(payload))
    return path


def test_import_then_export_tree(tmp_path: Path) -> None:
    importer = _load_script("odp_import")
    exporter = _load_script("odp_export")
    raw = _write(tmp_path / "raw.json", {"sections": [document_node_to_dict(n) for n in nm_b2b_sections()]})
    imported = tmp_path / "out" / "entities.json"

    assert importer.main(["--input", str(raw), "--drg", "NM_B2B", "--output", str(imported)]) == 0
    data = orjson.loads(imported.read_bytes())
    assert [n["title"] for n in data["needs"]] == ["Filing"]
    assert data["requirements"][0]["implementedONs"] == [data["needs"][0]["externalId"]]

    exported = tmp_path / "doc.json"
    assert exporter.main(["--input", str(imported), "--drg", "NM_B2B", "--output", str(exported)]) == 0
    doc = orjson.loads(exported.read_bytes())
    assert doc["title"] == "NM B2B Operational Needs, Requirements and Changes"
    assert doc["headings"][0]["text"] == "Operational Needs and Requirements"


def test_reimport_exported_document_with_standard_flag(tmp_path: Path) -> None:
    importer = _load_script("odp_import")
    exporter = _load_script("odp_export")
    raw = _write(tmp_path / "raw.json", {"sections": [document_node_to_dict(n) for n in nm_b2b_sections()]})
    imported = tmp_path / "entities.json"
    exported = tmp_path / "doc.json"
    again = tmp_path / "again.json"
    assert importer.main(["--input", str(raw), "--drg", "NM_B2B", "--output", str(imported)]) == 0
    assert exporter.main(["--input", str(imported), "--drg", "NM_B2B", "--output", str(exported)]) == 0

    args = ["--input", str(exported), "--drg", "NM_B2B", "--standard", "--output", str(again)]
    assert importer.main(args) == 0
    first, second = orjson.loads(imported.read_bytes()), orjson.loads(again.read_bytes())
    assert [n["externalId"] for n in second["needs"]] == [n["externalId"] for n in first["needs"]]
    assert second["requirements"][0]["implementedONs"] == first["requirements"][0]["implementedONs"]


def test_import_rows_dialect(tmp_path: Path) -> None:
    importer = _load_script("odp_import")
    raw = _write(tmp_path / "rr.json", {"sheets": {"NM-RR": RRT_ROWS}})
    out = tmp_path / "rr_out.json"
    assert importer.main(["--input", str(raw), "--drg", "RRT", "--output", str(out)]) == 0
    assert len(orjson.loads(out.read_bytes())["changes"]) == 1


def test_import_unknown_dialect_fails(tmp_path: Path) -> None:
    importer = _load_script("odp_import")
    raw = _write(tmp_path / "raw.json", {"sections": []})
    assert importer.main(["--input", str(raw), "--drg", "IDL", "--folder", "nowhere"]) == 1


def test_import_missing_input_fails(tmp_path: Path) -> None:
    importer = _load_script("odp_import")
    assert importer.main(["--input", str(tmp_path / "absent.json"), "--drg", "NM_B2B"]) == 1


def test_export_template_to_stdout(tmp_path: Path, capsys) -> None:
    exporter = _load_script("odp_export")
    entities = _write(tmp_path / "entities.json", [
        {"type": "ON", "externalId": "on:flow/n", "title": "Need", "drg": "FLOW"},
        {"type": "OR", "externalId": "or:flow/r", "title": "Req", "drg": "FLOW",
         "implementedONs": ["on:flow/n"]},
    ])
    assert exporter.main(["--input", str(entities), "--drg", "FLOW", "--format", "template"]) == 0
    payload = orjson.loads(capsys.readouterr().out)
    need = payload["operationalNeeds"][0]["items"][0]
    assert need["implementingORs"] == [{"id": "or:flow/r", "title": "Req"}]


def test_export_bad_record_fails(tmp_path: Path) -> None:
    exporter = _load_script("odp_export")
    entities = _write(tmp_path / "entities.json", [{"type": "ON", "title": "No id"}])
    assert exporter.main(["--input", str(entities), "--drg", "FLOW"]) == 1
