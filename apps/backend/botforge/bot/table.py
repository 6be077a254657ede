from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from botforge.bot.columns import (
    COLUMN_COUNT,
    join_row,
    leading_num,
    parse_record,
    split_records,
)

logger = logging.getLogger(__name__)


def _keep_line_ending(text: str, original: str) -> str:
    # CRLF artifacts keep the carriage return on every row
    if original.endswith("\r") and not text.endswith("\r"):
        return text + "\r"
    return text


@dataclass(slots=True)
class Row:
    raw: str
    fields: list[str]
    num: int | None

    @classmethod
    def parse(cls, raw: str) -> "Row":
        fields = parse_record(raw)
        return cls(raw=raw, fields=fields, num=leading_num(fields))

    @property
    def is_blank(self) -> bool:
        return not self.raw.strip()

    def padded(self) -> list[str]:
        return self.fields + [""] * (COLUMN_COUNT - len(self.fields))

    def get(self, index: int) -> str:
        return self.fields[index] if index < len(self.fields) else ""


@dataclass(slots=True)
class Table:
    """An artifact split into its header and ordered data rows.

    `render()` reproduces the parsed text exactly; rows only change when they
    are replaced through `splice()` or `with_row()`.
    """

    header: str
    rows: list[Row] = field(default_factory=list)
    trailing_newline: bool = False

    @classmethod
    def parse(cls, text: str) -> "Table":
        if not text:
            return cls(header="")
        records = split_records(text)
        trailing = records[-1] == "" and len(records) > 1
        if trailing:
            records = records[:-1]
        header, *body = records
        return cls(header=header, rows=[Row.parse(raw) for raw in body], trailing_newline=trailing)

    def render(self) -> str:
        text = "\n".join([self.header, *(row.raw for row in self.rows)])
        return text + "\n" if self.trailing_newline else text

    @property
    def data_rows(self) -> list[Row]:
        return [row for row in self.rows if not row.is_blank]

    def positions(self) -> dict[int, list[int]]:
        index: dict[int, list[int]] = {}
        for position, row in enumerate(self.rows):
            if row.num is not None:
                index.setdefault(row.num, []).append(position)
        return index

    def neighbors(self, nums: Iterable[int]) -> list[int]:
        """Positions of the data rows directly before and after each given num."""
        wanted = set(nums)
        data = [p for p, row in enumerate(self.rows) if not row.is_blank]
        found: list[int] = []
        for i, position in enumerate(data):
            if self.rows[position].num not in wanted:
                continue
            for j in (i - 1, i + 1):
                if 0 <= j < len(data):
                    candidate = data[j]
                    if self.rows[candidate].num not in wanted and candidate not in found:
                        found.append(candidate)
        return sorted(found)

    def with_row(self, position: int, fields: Iterable[str]) -> "Table":
        rows = list(self.rows)
        rows[position] = Row.parse(_keep_line_ending(join_row(fields), rows[position].raw))
        return Table(header=self.header, rows=rows, trailing_newline=self.trailing_newline)

    def splice(self, fixes: Mapping[int, str]) -> tuple["Table", int]:
        """Replace rows whose num is in `fixes`, copying every other row through."""
        rows: list[Row] = []
        replaced = 0
        for row in self.rows:
            fixed = fixes.get(row.num) if row.num is not None else None
            if fixed is not None:
                fixed = _keep_line_ending(fixed, row.raw)
            if fixed is None or fixed == row.raw:
                rows.append(row)
                continue
            rows.append(Row.parse(fixed))
            replaced += 1
        logger.debug("spliced %d row(s) into %d", replaced, len(rows))
        return Table(header=self.header, rows=rows, trailing_newline=self.trailing_newline), replaced
