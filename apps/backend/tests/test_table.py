import csv
import io

from botforge.bot.columns import (
    COLUMN_COUNT,
    COLUMNS,
    HEADER,
    Column,
    column_for_field,
    escape_field,
    join_row,
    split_records,
)
from botforge.bot.table import Table


def test_header_has_the_26_canonical_columns() -> None:
    assert COLUMN_COUNT == 26
    assert COLUMNS[0] == "Node Number"
    assert COLUMNS[6] == "NLU Disabled?"
    assert COLUMNS[19] == "What Next?"
    assert COLUMNS[25] == "CSS Classname"
    assert HEADER.count(",") == 25


def test_escape_field_quotes_only_when_needed() -> None:
    assert escape_field("plain") == "plain"
    assert escape_field("a,b") == '"a,b"'
    assert escape_field('say "hi"') == '"say ""hi"""'
    assert escape_field("line\nbreak") == '"line\nbreak"'
    assert escape_field(None) == ""


def test_join_row_pads_to_full_width() -> None:
    row = join_row(["1", "D", "Start"])
    assert row.count(",") == 25
    assert row.startswith("1,D,Start,")


def test_split_records_keeps_quoted_line_breaks() -> None:
    text = HEADER + '\n1,D,"Hi\nthere"\n2,A,x'
    records = split_records(text)
    assert len(records) == 3
    assert records[1] == '1,D,"Hi\nthere"'


def test_table_round_trips_byte_for_byte() -> None:
    text = HEADER + '\n10,D,"Hello, ""you""",,\n20,A,Store\n\n30,D,"multi\nline"\n'
    table = Table.parse(text)
    assert table.render() == text
    assert [row.num for row in table.data_rows] == [10, 20, 30]
    assert table.trailing_newline is True


def test_splice_replaces_only_named_rows() -> None:
    text = "\n".join([HEADER, join_row(["1", "D", "One"]), join_row(["2", "D", "Two"]), join_row(["3", "D", "Three"])])
    table = Table.parse(text)
    fixed = join_row(["2", "D", "Two fixed"])

    spliced, replaced = table.splice({2: fixed})

    assert replaced == 1
    lines = spliced.render().split("\n")
    assert lines[1] == table.rows[0].raw
    assert lines[2] == fixed
    assert lines[3] == table.rows[2].raw


def test_neighbors_skip_broken_rows() -> None:
    text = "\n".join([HEADER] + [join_row([str(n), "D", f"N{n}"]) for n in (1, 2, 3, 4, 5)])
    table = Table.parse(text)
    positions = table.neighbors({2, 3})
    assert [table.rows[p].num for p in positions] == [1, 4]


def test_rendered_rows_parse_back_to_26_columns() -> None:
    row = join_row(["5", "D", "Menu", "", "", "", "", "", 'He said "pick, one"'])
    parsed = next(csv.reader(io.StringIO(row)))
    assert len(parsed) == COLUMN_COUNT
    assert parsed[Column.MESSAGE] == 'He said "pick, one"'


def test_column_for_field_accepts_every_naming_style() -> None:
    assert column_for_field("nluDisabled") is Column.NLU_DISABLED
    assert column_for_field("NLU Disabled?") is Column.NLU_DISABLED
    assert column_for_field("nlu_disabled") is Column.NLU_DISABLED
    assert column_for_field("Decision Variable") is Column.DEC_VAR
    assert column_for_field("decVar") is Column.DEC_VAR
    assert column_for_field("What Next?") is Column.WHAT_NEXT
    assert column_for_field("nonsense") is None
    assert column_for_field(None) is None


def test_crlf_endings_survive_splice_and_row_rewrites() -> None:
    rows = [join_row([str(n), "D", f"Ask {n}"]) for n in (200, 201, 202)]
    text = "\r\n".join([HEADER, *rows]) + "\r\n"
    table = Table.parse(text)

    spliced, replaced = table.splice({201: join_row(["201", "D", "Ask again"])})
    rewritten = table.with_row(2, ["202", "D", "Ask later"])

    assert replaced == 1
    for result in (spliced.render(), rewritten.render()):
        assert result.count("\r\n") == 4
        assert "\n" not in result.replace("\r\n", "")
    assert spliced.rows[1].fields[Column.NAME] == "Ask again"


def test_splice_ignores_fix_identical_to_crlf_row() -> None:
    row = join_row(["200", "D", "Ask"])
    table = Table.parse(f"{HEADER}\r\n{row}\r\n")
    _, replaced = table.splice({200: row})
    assert replaced == 0
