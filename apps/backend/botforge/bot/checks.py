"""Local structural checks.

Advisory only: the external validator is the authority. These catch the
common generation mistakes early so callers can show them next to the
artifact.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from botforge.bot.columns import COLUMN_COUNT
from botforge.bot.nodes import NodeRecord, has_fallback
from botforge.bot.table import Table


@dataclass(frozen=True, slots=True)
class StructuralWarning:
    node_num: Optional[int]
    message: str

    def format(self) -> str:
        node = "?" if self.node_num is None else str(self.node_num)
        return f"node {node}: {self.message}"


def check_table(table: Table) -> list[StructuralWarning]:
    warnings: list[StructuralWarning] = []
    nodes: list[NodeRecord] = []

    for row in table.data_rows:
        if row.num is None:
            warnings.append(StructuralWarning(None, f"row does not start with a node number: {row.raw[:40]!r}"))
            continue
        if len(row.fields) != COLUMN_COUNT:
            warnings.append(StructuralWarning(row.num, f"has {len(row.fields)} columns, expected {COLUMN_COUNT}"))
        try:
            nodes.append(NodeRecord.from_fields(row.fields))
        except PydanticValidationError as exc:
            warnings.append(StructuralWarning(row.num, f"cannot be parsed ({exc.error_count()} problem(s))"))

    counts = Counter(row.num for row in table.data_rows if row.num is not None)
    for num, count in sorted(counts.items()):
        if count > 1:
            warnings.append(StructuralWarning(num, f"appears {count} times"))

    known = set(counts)
    for node in nodes:
        for target in node.destinations():
            if target not in known:
                warnings.append(StructuralWarning(node.num, f"routes to missing node {target}"))
        if node.is_action and not has_fallback(node.what_next):
            warnings.append(StructuralWarning(node.num, "action has no error branch in What Next"))
        if node.is_decision and node.nlu_disabled and node.out_degree() > 1:
            warnings.append(
                StructuralWarning(node.num, f"NLU disabled with {node.out_degree()} destinations")
            )
    return warnings


def check_artifact(artifact: str) -> list[StructuralWarning]:
    return check_table(Table.parse(artifact))
