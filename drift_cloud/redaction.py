"""Field-level redaction applied to every row before it leaves the machine.

Absolute paths are made relative to the project root, secret values are
replaced by a fixed marker, source text is dropped, and binary hashes are hex
encoded.  Tables without a rule set pass through untouched.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from drift_cloud.catalog import is_identifier
from drift_cloud.exceptions import CatalogError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from drift_cloud.models import Row, RowValue

REDACTED_MARKER = "[REDACTED]"
_SEPARATORS = "/\\"


class RedactionKind(StrEnum):
    PATH = "path"
    ROOT_PATH = "root_path"
    SECRET = "secret"
    CODE = "code"
    BLOB_HEX = "blob_hex"


_P = RedactionKind.PATH

REDACTION_RULES: dict[str, dict[str, RedactionKind]] = {
    "scan_history": {"root_path": RedactionKind.ROOT_PATH},
    "file_metadata": {"path": _P, "content_hash": RedactionKind.BLOB_HEX},
    "functions": {
        "file": _P,
        "body_hash": RedactionKind.BLOB_HEX,
        "signature_hash": RedactionKind.BLOB_HEX,
    },
    "detections": {"file": _P, "matched_text": RedactionKind.CODE},
    "boundaries": {"file": _P},
    "outliers": {"file": _P},
    "taint_flows": {"source_file": _P, "sink_file": _P},
    "error_gaps": {"file": _P},
    "contracts": {"source_file": _P},
    "constants": {"file": _P},
    "secrets": {"file": _P, "redacted_value": RedactionKind.SECRET},
    "env_variables": {"file": _P},
    "wrappers": {"file": _P},
    "dna_mutations": {"file": _P, "code": RedactionKind.CODE},
    "crypto_findings": {"file": _P, "code": RedactionKind.CODE},
    "owasp_findings": {"file": _P},
    "violations": {"file": _P},
    # cortex.db
    "memory_files": {"file_path": _P},
    "memory_functions": {"file_path": _P},
}


def validate_redaction_rules(rules: Mapping[str, Mapping[str, RedactionKind]]) -> None:
    """Reject empty rule sets, malformed names and unknown kinds."""
    problems: list[str] = []
    for table, fields in rules.items():
        if not is_identifier(table):
            problems.append(f"invalid table name {table!r}")
        if not fields:
            problems.append(f"{table}: empty rule set")
        for field_name, kind in fields.items():
            if not is_identifier(field_name):
                problems.append(f"{table}: invalid field name {field_name!r}")
            if not isinstance(kind, RedactionKind):
                problems.append(f"{table}.{field_name}: unknown redaction kind {kind!r}")

    if problems:
        raise CatalogError("Invalid redaction rules: " + "; ".join(problems))


def _trim_root(root: str) -> str:
    trimmed = root.rstrip(_SEPARATORS)
    # A filesystem root such as "/" keeps its separator.
    return trimmed or root[:1]


def redact_path(path: str, root: str) -> str:
    """Make ``path`` relative to ``root``; paths outside the root are returned as-is."""
    if not path or not root:
        return path
    prefix = _trim_root(root)
    if not path.startswith(prefix):
        return path
    remainder = path[len(prefix) :]
    if remainder and remainder[0] not in _SEPARATORS and prefix[-1] not in _SEPARATORS:
        # "/root/application" is not under "/root/app"
        return path
    return remainder.lstrip(_SEPARATORS)


def redact_root_path(path: str, root: str) -> str:
    """Like ``redact_path``, but the root itself (with or without separator) becomes ``""``."""
    if not path or not root:
        return path
    if path.rstrip(_SEPARATORS) == root.rstrip(_SEPARATORS):
        return ""
    return redact_path(path, root)


def _redact_value(kind: RedactionKind, value: RowValue, root: str) -> RowValue:
    if kind is RedactionKind.CODE:
        return None
    if value is None:
        return None
    if kind is RedactionKind.SECRET:
        return REDACTED_MARKER
    if kind is RedactionKind.BLOB_HEX:
        if isinstance(value, bytes | bytearray | memoryview):
            return bytes(value).hex()
        return value
    if not isinstance(value, str):
        return value
    if kind is RedactionKind.ROOT_PATH:
        return redact_root_path(value, root)
    return redact_path(value, root)


def redact_row(table: str, row: Row, root: str) -> dict[str, RowValue]:
    """Apply the table's rules to the fields present in ``row``; copy everything else."""
    redacted = dict(row)
    rules = REDACTION_RULES.get(table)
    if not rules:
        return redacted
    for field_name, kind in rules.items():
        if field_name in redacted:
            redacted[field_name] = _redact_value(kind, redacted[field_name], root)
    return redacted


def redact_batch(table: str, rows: Iterable[Row], root: str) -> list[dict[str, RowValue]]:
    """Redact every row of a table."""
    return [redact_row(table, row, root) for row in rows]


def table_needs_redaction(table: str) -> bool:
    return table in REDACTION_RULES


def get_redacted_tables() -> list[str]:
    """Tables carrying at least one redaction rule, for audits."""
    tables = sorted(table for table, fields in REDACTION_RULES.items() if fields)
    if len(tables) != len(REDACTION_RULES):
        raise CatalogError("Every redaction config entry must carry at least one rule")
    return tables


validate_redaction_rules(REDACTION_RULES)
