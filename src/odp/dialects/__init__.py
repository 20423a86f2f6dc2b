"""Import dialects: one strategy per drafting-group document layout."""

from odp.dialects.base import (
    Dialect,
    DialectNotFoundError,
    DialectRegistry,
    ReferencePolicy,
)
from odp.dialects.airport import AIRPORT_DIALECT
from odp.dialects.asm_atfcm import ASM_ATFCM_DIALECT
from odp.dialects.flow import CRISIS_FAAS_DIALECT, FLOW_DIALECT, make_flow_dialect
from odp.dialects.four_dt import FOUR_DT_DIALECT
from odp.dialects.idl_sections import IDL_SECTIONS_DIALECT
from odp.dialects.idl_tables import IDL_TABLES_DIALECT
from odp.dialects.nm_b2b import NM_B2B_DIALECT
from odp.dialects.rerouting import REROUTING_DIALECT
from odp.dialects.standard import STANDARD_DRGS, make_standard_dialect


def build_default_registry() -> DialectRegistry:
    """Registry with every built-in dialect under its DRG / folder keys."""
    registry = DialectRegistry()
    for dialect in (
        NM_B2B_DIALECT,
        IDL_SECTIONS_DIALECT,
        IDL_TABLES_DIALECT,
        FLOW_DIALECT,
        CRISIS_FAAS_DIALECT,
        REROUTING_DIALECT,
        FOUR_DT_DIALECT,
        ASM_ATFCM_DIALECT,
        AIRPORT_DIALECT,
    ):
        registry.register(dialect)
    for drg in STANDARD_DRGS:
        registry.register(make_standard_dialect(drg))
    return registry


__all__ = [
    "AIRPORT_DIALECT",
    "ASM_ATFCM_DIALECT",
    "CRISIS_FAAS_DIALECT",
    "Dialect",
    "DialectNotFoundError",
    "DialectRegistry",
    "FLOW_DIALECT",
    "FOUR_DT_DIALECT",
    "IDL_SECTIONS_DIALECT",
    "IDL_TABLES_DIALECT",
    "NM_B2B_DIALECT",
    "REROUTING_DIALECT",
    "ReferencePolicy",
    "STANDARD_DRGS",
    "build_default_registry",
    "make_flow_dialect",
    "make_standard_dialect",
]
