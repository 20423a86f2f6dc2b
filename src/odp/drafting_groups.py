"""Drafting group (DRG) identifiers and display names.

The declaration order of ``DRAFTING_GROUPS`` is the order groups appear in
exported templating data.
"""

from __future__ import annotations

DRAFTING_GROUPS: dict[str, str] = {
    "4DT": "4D-Trajectory",
    "AIRPORT": "Airport",
    "ASM_ATFCM": "ASM / ATFCM Integration",
    "CRISIS_FAAS": "Crisis and FAAS",
    "FLOW": "Flow",
    "IDL": "iDL",
    "NM_B2B": "NM B2B",
    "NMUI": "NMUI",
    "PERF": "Performance",
    "RRT": "Rerouting",
    "TCF": "TCF",
}

UNASSIGNED = "UNASSIGNED"


def is_valid_drg(key: str) -> bool:
    return key in DRAFTING_GROUPS


def drg_display(key: str | None) -> str:
    """Display name for a DRG key; unknown keys are returned unchanged."""
    if not key:
        return UNASSIGNED
    return DRAFTING_GROUPS.get(key, key)
