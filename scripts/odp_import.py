#!/usr/bin/env python3
"""Import ONs / ORs / OCs from an extracted drafting-group document.

Reads the raw section tree produced by the document extractor (or the
spreadsheet rows for row-based dialects such as RRT), runs the dialect
registered for the DRG / folder, and writes the normalized entities,
reference documents, issues and reference-resolution tallies as JSON.

Usage:
    python3 scripts/odp_import.py --input raw.json --drg NM_B2B --output out.json
    python3 scripts/odp_import.py --input idl.json --drg IDL --folder iDLADMM
    python3 scripts/odp_import.py --input rr.json --drg RRT --config cfg.json -v
    python3 scripts/odp_import.py --input exported.json --drg 4DT --standard
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import orjson

from odp.config import PipelineConfig
from odp.dialects import DialectNotFoundError, build_default_registry
from odp.io_utils import load_json, save_json
from odp.pipeline import import_document, import_result_to_dict, import_rows

log = logging.getLogger("odp.import")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import operational entities from an extracted document.",
    )
    parser.add_argument("--input", required=True, type=Path, help="Raw extractor JSON")
    parser.add_argument("--drg", required=True, help="Drafting group key (e.g. NM_B2B, IDL, RRT)")
    parser.add_argument("--folder", default=None, help="Folder qualifier for folder-scoped dialects")
    parser.add_argument("--output", default=None, type=Path, help="Output path (default: stdout)")
    parser.add_argument("--config", default=None, type=Path, help="Pipeline config JSON")
    parser.add_argument(
        "--standard", action="store_true",
        help="Read the layout odp_export writes instead of the DRG's own dialect",
    )
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
        raw = load_json(args.input)
        registry = build_default_registry()
        if args.standard:
            result = import_document(raw, drg=args.drg, folder=args.folder, config=config, standard=True)
        elif registry.get(args.drg, args.folder).reads_rows:
            result = import_rows(raw, drg=args.drg, registry=registry, config=config)
        else:
            result = import_document(
                raw, drg=args.drg, folder=args.folder, registry=registry, config=config,
            )
    except (DialectNotFoundError, ValueError, OSError) as exc:
        log.error("Import failed: %s", exc)
        return 1

    payload = import_result_to_dict(result)
    if args.output:
        save_json(payload, args.output)
        log.info("Wrote %d entities to %s", len(result.entities), args.output)
    else:
        sys.stdout.buffer.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))
        sys.stdout.buffer.write(b"\n")
    if result.errors:
        log.warning("%d entities dropped (see issues)", len(result.errors))
    return 0


if __name__ == "__main__":
    sys.exit(main())
