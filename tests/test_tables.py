from pathlib import Path

import pytest

from otelgw.core.tables import (
    BUILTIN_TABLES_DIR,
    OTEL_TABLE_COLUMNS,
    OTEL_TABLE_NAMES,
    declared_table_name,
    load_table_definition,
    load_table_definitions,
    parse_columns,
)


def test_builtin_definitions_match_exporter_columns():
    definitions = load_table_definitions()

    assert [d.name for d in definitions] == sorted(OTEL_TABLE_NAMES)
    for definition in definitions:
        assert definition.columns == OTEL_TABLE_COLUMNS[definition.name]
        assert definition.text.lstrip().startswith(".create-merge table")


def test_builtin_directory_ships_with_package():
    assert BUILTIN_TABLES_DIR.is_dir()
    assert {p.stem for p in BUILTIN_TABLES_DIR.glob("*.kql")} == set(OTEL_TABLE_NAMES)


def test_definition_text_keeps_file_bytes(tmp_path: Path):
    raw = b".create-merge table Custom (\r\n  A:string,\r\n  B:long\r\n)\r\n"
    (tmp_path / "Custom.kql").write_bytes(raw)

    definition = load_table_definition(tmp_path / "Custom.kql")

    assert definition.text.encode("utf-8") == raw
    assert definition.columns == [("A", "string"), ("B", "long")]


def test_definition_with_byte_order_mark_is_accepted(tmp_path: Path):
    raw = b"\xef\xbb\xbf.create-merge table OTELLogs (A:string)\r\n"
    (tmp_path / "OTELLogs.kql").write_bytes(raw)

    definition = load_table_definition(tmp_path / "OTELLogs.kql")

    assert definition.name == "OTELLogs"
    assert definition.text.encode("utf-8") == raw


def test_table_name_must_match_file_name(tmp_path: Path):
    path = tmp_path / "OTELLogs.kql"
    path.write_text(".create-merge table OTELTraces (A:string)\n", encoding="utf-8")

    with pytest.raises(ValueError, match="declares table 'OTELTraces'"):
        load_table_definition(path)


def test_file_without_table_command_is_rejected(tmp_path: Path):
    path = tmp_path / "Empty.kql"
    path.write_text("// nothing here\n", encoding="utf-8")

    with pytest.raises(ValueError, match="no `.create-merge table`"):
        load_table_definition(path)


def test_missing_directory_is_rejected(tmp_path: Path):
    with pytest.raises(ValueError, match="not found"):
        load_table_definitions(tmp_path / "nope")


@pytest.mark.parametrize(
    "text,expected",
    [
        (".create-merge table OTELLogs (A:string)", "OTELLogs"),
        ("  .create table ['Quoted'] (A:string)", "Quoted"),
        ("// comment\n.create-merge table Second (A:int)", "Second"),
        ("print 1", None),
    ],
)
def test_declared_table_name(text: str, expected):
    assert declared_table_name(text) == expected


def test_parse_columns_ignores_malformed_parts():
    assert parse_columns(".create-merge table T (A:string, broken, B : int)") == [
        ("A", "string"),
        ("B", "int"),
    ]
