"""Canonical column layout of the bot table and the escaping rules for it."""

from __future__ import annotations

import csv
import io
import re
from enum import IntEnum
from typing import Any, Iterable

COLUMNS: tuple[str, ...] = (
    "Node Number",
    "Node Type",
    "Node Name",
    "Intent",
    "Entity Type",
    "Entity",
    "NLU Disabled?",
    "Next Nodes",
    "Message",
    "Rich Asset Type",
    "Rich Asset Content",
    "Answer Required?",
    "Behaviors",
    "Command",
    "Description",
    "Output",
    "Node Input",
    "Parameter Input",
    "Decision Variable",
    "What Next?",
    "Node Tags",
    "Skill Tag",
    "Variable",
    "Platform Flag",
    "Flows",
    "CSS Classname",
)

COLUMN_COUNT = len(COLUMNS)
HEADER = ",".join(COLUMNS)


class Column(IntEnum):
    NUM = 0
    TYPE = 1
    NAME = 2
    INTENT = 3
    ENTITY_TYPE = 4
    ENTITY = 5
    NLU_DISABLED = 6
    NEXT_NODES = 7
    MESSAGE = 8
    RICH_TYPE = 9
    RICH_CONTENT = 10
    ANS_REQ = 11
    BEHAVIORS = 12
    COMMAND = 13
    DESCRIPTION = 14
    OUTPUT = 15
    NODE_INPUT = 16
    PARAM_INPUT = 17
    DEC_VAR = 18
    WHAT_NEXT = 19
    NODE_TAGS = 20
    SKILL_TAG = 21
    VARIABLE = 22
    PLATFORM_FLAG = 23
    FLOWS = 24
    CSS_CLASS = 25


# Short input names, in column order.
FIELD_KEYS: tuple[str, ...] = (
    "num",
    "type",
    "name",
    "intent",
    "entityType",
    "entity",
    "nluDisabled",
    "nextNodes",
    "message",
    "richType",
    "richContent",
    "ansReq",
    "behaviors",
    "command",
    "description",
    "output",
    "nodeInput",
    "paramInput",
    "decVar",
    "whatNext",
    "nodeTags",
    "skillTag",
    "variable",
    "platformFlag",
    "flows",
    "cssClass",
)

_SPECIAL_CHARS = (",", '"', "\n", "\r")
_ROW_START_RE = re.compile(r'^\s*"?-?\d+"?\s*,')


def _lookup_key(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


_FIELD_LOOKUP: dict[str, Column] = {}
for _col in Column:
    _FIELD_LOOKUP[_lookup_key(COLUMNS[_col])] = _col
    _FIELD_LOOKUP[_lookup_key(FIELD_KEYS[_col])] = _col
    _FIELD_LOOKUP[_lookup_key(_col.name)] = _col
_FIELD_LOOKUP.update(
    {
        "nodenum": Column.NUM,
        "decisionvariable": Column.DEC_VAR,
        "dirfield": Column.DEC_VAR,
        "parameterinput": Column.PARAM_INPUT,
        "answerrequired": Column.ANS_REQ,
        "richasset": Column.RICH_CONTENT,
        "richassettype": Column.RICH_TYPE,
        "richassetcontent": Column.RICH_CONTENT,
        "cssclassname": Column.CSS_CLASS,
    }
)


def column_for_field(name: str | None) -> Column | None:
    """Resolve a header name, short key or snake_case name to its column."""
    if not name:
        return None
    return _FIELD_LOOKUP.get(_lookup_key(name))


def escape_field(value: Any) -> str:
    text = "" if value is None else str(value)
    if any(ch in text for ch in _SPECIAL_CHARS):
        return '"' + text.replace('"', '""') + '"'
    return text


def join_row(values: Iterable[Any]) -> str:
    """Render one record with exactly COLUMN_COUNT columns."""
    cells = list(values)
    if len(cells) > COLUMN_COUNT:
        raise ValueError(f"row has {len(cells)} columns, expected at most {COLUMN_COUNT}")
    cells.extend([""] * (COLUMN_COUNT - len(cells)))
    return ",".join(escape_field(cell) for cell in cells)


def split_records(text: str) -> list[str]:
    """Split table text into raw records.

    Line breaks inside quoted fields stay part of their record, and every
    record keeps its exact source text so unchanged rows can be written back
    byte for byte.
    """
    records: list[str] = []
    start = 0
    in_quotes = False
    for index, ch in enumerate(text):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "\n" and not in_quotes:
            records.append(text[start:index])
            start = index + 1
    records.append(text[start:])
    return records


def has_open_quote(text: str) -> bool:
    return text.count('"') % 2 == 1


def parse_record(raw: str) -> list[str]:
    line = raw[:-1] if raw.endswith("\r") else raw
    if not line.strip():
        return []
    rows = list(csv.reader(io.StringIO(line, newline="")))
    # a stray carriage return outside quotes starts a second csv record; keep the first
    return rows[0] if rows else []


def leading_num(fields: list[str]) -> int | None:
    if not fields:
        return None
    try:
        return int(fields[0].strip())
    except ValueError:
        return None


def looks_like_row(raw: str) -> bool:
    return bool(_ROW_START_RE.match(raw))
