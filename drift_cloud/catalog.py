"""Static registry of the local tables replicated to the cloud.

Adding a table is a change to ``TABLE_CATALOG``; the catalog is validated once
at import so drift between definitions and the row shape fails early.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from drift_cloud.exceptions import CatalogError
from drift_cloud.models import SourceDatabase, TableDefinition

if TYPE_CHECKING:
    from collections.abc import Iterable

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

_PRIMARY = SourceDatabase.PRIMARY
_CAUSAL = SourceDatabase.CAUSAL

TABLE_CATALOG: tuple[TableDefinition, ...] = (
    # Scan & files
    TableDefinition("scan_history", _PRIMARY),
    TableDefinition("file_metadata", _PRIMARY),
    TableDefinition("functions", _PRIMARY),
    # Analysis & patterns
    TableDefinition(
        "call_edges", _PRIMARY, ("project_id", "caller_id", "callee_id", "call_site_line")
    ),
    TableDefinition(
        "data_access", _PRIMARY, ("project_id", "function_id", "table_name", "operation", "line")
    ),
    TableDefinition("detections", _PRIMARY),
    TableDefinition("boundaries", _PRIMARY),
    TableDefinition("pattern_confidence", _PRIMARY),
    TableDefinition("outliers", _PRIMARY),
    TableDefinition("conventions", _PRIMARY),
    # Graph intelligence
    TableDefinition("taint_flows", _PRIMARY),
    TableDefinition("error_gaps", _PRIMARY),
    TableDefinition("impact_scores", _PRIMARY),
    TableDefinition(
        "test_coverage", _PRIMARY, ("project_id", "test_function_id", "source_function_id")
    ),
    TableDefinition("test_quality", _PRIMARY),
    # Structural intelligence
    TableDefinition("coupling_metrics", _PRIMARY),
    TableDefinition("coupling_cycles", _PRIMARY),
    TableDefinition("constraints", _PRIMARY),
    TableDefinition("constraint_verifications", _PRIMARY),
    TableDefinition("contracts", _PRIMARY),
    TableDefinition("contract_mismatches", _PRIMARY),
    TableDefinition("constants", _PRIMARY),
    TableDefinition("secrets", _PRIMARY),
    TableDefinition("env_variables", _PRIMARY),
    TableDefinition("wrappers", _PRIMARY),
    TableDefinition("dna_genes", _PRIMARY),
    TableDefinition("dna_mutations", _PRIMARY),
    TableDefinition("crypto_findings", _PRIMARY),
    TableDefinition("owasp_findings", _PRIMARY),
    TableDefinition("decomposition_decisions", _PRIMARY),
    # Enforcement
    TableDefinition("violations", _PRIMARY),
    TableDefinition("gate_results", _PRIMARY),
    TableDefinition("audit_snapshots", _PRIMARY),
    TableDefinition("health_trends", _PRIMARY),
    TableDefinition("feedback", _PRIMARY),
    TableDefinition("policy_results", _PRIMARY),
    TableDefinition("degradation_alerts", _PRIMARY),
    # Bridge
    TableDefinition("bridge_memories", _CAUSAL),
    TableDefinition("bridge_grounding_results", _CAUSAL),
    TableDefinition("bridge_grounding_snapshots", _CAUSAL),
    TableDefinition("bridge_event_log", _CAUSAL),
    TableDefinition("bridge_metrics", _CAUSAL),
)


def is_identifier(name: str) -> bool:
    """Return True when name is a plain lowercase SQL identifier."""
    return bool(_IDENTIFIER.match(name))


def validate_catalog(definitions: Iterable[TableDefinition]) -> None:
    """Reject duplicate tables and empty, duplicate or malformed conflict columns."""
    problems: list[str] = []
    seen: set[str] = set()
    for definition in definitions:
        name = definition.local_table
        if not is_identifier(name):
            problems.append(f"invalid table name {name!r}")
        if name in seen:
            problems.append(f"duplicate table {name!r}")
        seen.add(name)

        columns = definition.conflict_columns
        if not columns:
            problems.append(f"{name}: conflict columns must not be empty")
        if len(set(columns)) != len(columns):
            problems.append(f"{name}: duplicate conflict columns")
        for column in columns:
            if not is_identifier(column):
                problems.append(f"{name}: invalid conflict column {column!r}")

    if problems:
        raise CatalogError("Invalid table catalog: " + "; ".join(problems))


def get_table_definition(local_table: str) -> TableDefinition | None:
    """Look up a catalog entry by local table name."""
    return _BY_NAME.get(local_table)


def tables_for_database(database: SourceDatabase) -> list[TableDefinition]:
    """Return catalog entries read from one database, in catalog order."""
    return [d for d in TABLE_CATALOG if d.source_database == database]


validate_catalog(TABLE_CATALOG)
_BY_NAME: dict[str, TableDefinition] = {d.local_table: d for d in TABLE_CATALOG}
