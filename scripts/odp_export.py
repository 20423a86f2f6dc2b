#!/usr/bin/env python3
"""Export entities as a standard-layout document tree or templating data.

Input is either an import result (``needs`` / ``requirements`` / ``changes``)
or a bare list of entity records.

Usage:
    python3 scripts/odp_export.py --input entities.json --drg NM_B2B --output doc.json
    python3 scripts/odp_export.py --input entities.json --drg IDL --folder iDLADMM
    python3 scripts/odp_export.py --input entities.json --drg FLOW --format template
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import orjson

from odp.aggregator import build_templating_data
from odp.config import PipelineConfig
from odp.io_utils import load_json, save_json
from odp.pipeline import export_document
from odp.synthesizer import document_title, synthesized_to_dict
from odp.types import Entity, entity_from_dict

log = logging.getLogger("odp.export")


def load_entities(raw: Any) -> list[Entity]:
    if isinstance(raw, dict):
        records = [*raw.get("needs", ()), *raw.get("requirements", ()), *raw.get("changes", ())]
    else:
        records = list(raw)
    return [entity_from_dict(r) for r in records]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export operational entities.")
    parser.add_argument("--input", required=True, type=Path, help="Entities JSON")
    parser.add_argument("--drg", required=True, help="Drafting group key")
    parser.add_argument("--folder", default=None, help="Folder qualifier shown in the title")
    parser.add_argument(
        "--format", choices=("tree", "template"), default="tree",
        help="Document tree (default) or templating data",
    )
    parser.add_argument("--output", default=None, type=Path, help="Output path (default: stdout)")
    parser.add_argument("--config", default=None, type=Path, help="Pipeline config JSON")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    try:
        config = PipelineConfig.from_json(args.config) if args.config else PipelineConfig()
        entities = load_entities(load_json(args.input))
    except (KeyError, ValueError, OSError) as exc:
        log.error("Export failed: %s", exc)
        return 1

    if args.format == "template":
        payload = build_templating_data(entities, title=document_title(args.drg, args.folder))
    else:
        doc = export_document(entities, drg=args.drg, folder=args.folder, config=config)
        payload = synthesized_to_dict(doc)

    if args.output:
        save_json(payload, args.output)
        log.info("Wrote %s export of %d entities to %s", args.format, len(entities), args.output)
    else:
        sys.stdout.buffer.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))
        sys.stdout.buffer.write(b"\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
