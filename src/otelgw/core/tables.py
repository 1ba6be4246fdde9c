"""OTEL KQL table definitions.

Each definition is one `.kql` file whose base name is the table name and
whose text is a `.create-merge table` command. The text is applied to the
database exactly as stored in the file.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

BUILTIN_TABLES_DIR = Path(__file__).resolve().parent / "kql"

_DECLARED_TABLE = re.compile(
    r"^\ufeff?\s*\.create(?:-merge)?\s+table\s+\[?'?([A-Za-z_][A-Za-z0-9_]*)'?\]?",
    re.IGNORECASE | re.MULTILINE,
)
_COLUMNS = re.compile(r"\(\s*(.*?)\s*\)", re.DOTALL)

# Column layout the OTEL Collector's Kusto exporter writes.
OTEL_TABLE_COLUMNS: dict[str, list[tuple[str, str]]] = {
    "OTELLogs": [
        ("Timestamp", "datetime"),
        ("ObservedTimestamp", "datetime"),
        ("TraceID", "string"),
        ("SpanID", "string"),
        ("SeverityText", "string"),
        ("SeverityNumber", "int"),
        ("Body", "string"),
        ("ResourceAttributes", "dynamic"),
        ("LogsAttributes", "dynamic"),
    ],
    "OTELMetrics": [
        ("Timestamp", "datetime"),
        ("MetricName", "string"),
        ("MetricType", "string"),
        ("MetricUnit", "string"),
        ("MetricDescription", "string"),
        ("MetricValue", "real"),
        ("Host", "string"),
        ("ResourceAttributes", "dynamic"),
        ("MetricAttributes", "dynamic"),
    ],
    "OTELTraces": [
        ("TraceID", "string"),
        ("SpanID", "string"),
        ("ParentID", "string"),
        ("SpanName", "string"),
        ("SpanStatus", "string"),
        ("SpanKind", "string"),
        ("StartTime", "datetime"),
        ("EndTime", "datetime"),
        ("ResourceAttributes", "dynamic"),
        ("TraceAttributes", "dynamic"),
        ("Events", "dynamic"),
        ("Links", "dynamic"),
    ],
}

OTEL_TABLE_NAMES = tuple(OTEL_TABLE_COLUMNS)


@dataclass(frozen=True)
class TableDefinition:
    """
    A KQL table and the schema command that creates it.

    Attributes:
        name: Table name, equal to the definition file's base name.
        text: File content, unmodified.
        path: Source file, when loaded from disk.
    """

    name: str
    text: str
    path: Path | None = None

    @property
    def columns(self) -> list[tuple[str, str]]:
        return parse_columns(self.text)


def declared_table_name(text: str) -> str | None:
    """Return the table named by the first `.create[-merge] table` command."""
    match = _DECLARED_TABLE.search(text)
    return match.group(1) if match else None


def parse_columns(text: str) -> list[tuple[str, str]]:
    """Return (column, type) pairs from a `.create-merge table` command."""
    match = _COLUMNS.search(text)
    if not match:
        return []
    columns: list[tuple[str, str]] = []
    for part in match.group(1).split(","):
        if ":" not in part:
            continue
        name, col_type = part.split(":", 1)
        columns.append((name.strip(), col_type.strip()))
    return columns


def load_table_definition(path: Path) -> TableDefinition:
    """
    Load one table definition file.

    Raises:
        ValueError: If the file does not declare a table, or declares a
                    table whose name differs from the file's base name.
    """
    path = Path(path)
    # Bytes are decoded as-is so line endings reach the executor unchanged.
    text = path.read_bytes().decode("utf-8")
    declared = declared_table_name(text)
    if declared is None:
        raise ValueError(f"{path.name}: no `.create-merge table` command found.")
    if declared != path.stem:
        raise ValueError(
            f"{path.name}: declares table '{declared}' but the file name "
            f"requires '{path.stem}'."
        )
    return TableDefinition(name=path.stem, text=text, path=path)


def load_table_definitions(directory: Path | None = None) -> list[TableDefinition]:
    """Load every `*.kql` file in a directory (the built-in set by default), sorted by name."""
    directory = Path(directory) if directory is not None else BUILTIN_TABLES_DIR
    if not directory.is_dir():
        raise ValueError(f"Table definition directory not found: {directory}")
    return [load_table_definition(p) for p in sorted(directory.glob("*.kql"))]
