"""Node records -> canonical table text.

Before columns are mapped every record goes through `Serializer.normalize`,
which fixes the field-consistency mistakes generated graphs commonly carry
instead of rejecting them. Serialization never raises: records that cannot
be parsed are skipped and reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from pydantic import ValidationError as PydanticValidationError

from botforge.bot.columns import HEADER, join_row
from botforge.bot.commands import CommandTable, load_command_table
from botforge.bot.nodes import (
    ACTION_ONLY,
    DECISION_ONLY,
    ERROR_NODE,
    FALSE_FLAGS,
    Branch,
    NodeKind,
    NodeRecord,
    has_fallback,
)

logger = logging.getLogger(__name__)

_EMPTY: dict[str, Any] = {
    "command": "",
    "decision_variable": "",
    "what_next": [],
    "param_input": {},
    "output": "",
    "message": "",
    "rich_asset": None,
    "next_nodes": None,
    "answer_required": False,
    "nlu_disabled": False,
}


@dataclass(slots=True)
class SerializationResult:
    table: str
    corrections: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    nodes: list[NodeRecord] = field(default_factory=list)

    @property
    def corrections_applied(self) -> int:
        return len(self.corrections)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors()[:3]:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "record"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


# Raw input keys for each kind-specific attribute.
_RAW_KEYS: dict[str, tuple[str, ...]] = {
    "command": ("command",),
    "decision_variable": ("decVar", "decision_variable", "decisionVariable"),
    "what_next": ("whatNext", "what_next"),
    "param_input": ("paramInput", "param_input"),
    "output": ("output",),
    "message": ("message",),
    "rich_asset": ("richAsset", "rich_asset", "richType", "rich_type", "richContent", "rich_content"),
    "next_nodes": ("nextNodes", "next_nodes"),
    "answer_required": ("ansReq", "answer_required", "answerRequired"),
    "nlu_disabled": ("nluDisabled", "nlu_disabled"),
}
_FLAGS = ("answer_required", "nlu_disabled")


def _raw_kind(raw: dict[str, Any]) -> NodeKind | None:
    value = next((raw[k] for k in ("type", "kind", "nodeType") if k in raw), None)
    if isinstance(value, NodeKind):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip().upper()
    if text in ("D", "DECISION"):
        return NodeKind.DECISION
    if text in ("A", "ACTION"):
        return NodeKind.ACTION
    return None


def _is_set(name: str, value: Any) -> bool:
    if value is None:
        return False
    if name in _FLAGS:
        return str(value).strip().lower() not in FALSE_FLAGS
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return bool(value)
    return True


def _strip_foreign(raw: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Drop raw keys that belong to the other node kind, before they are validated."""
    kind = _raw_kind(raw)
    if kind is None:
        return raw, []
    foreign = ACTION_ONLY if kind is NodeKind.DECISION else DECISION_ONLY
    cleaned = dict(raw)
    stripped: list[str] = []
    for name in foreign:
        present = [key for key in _RAW_KEYS[name] if key in cleaned]
        if any(_is_set(name, cleaned[key]) for key in present):
            stripped.append(name)
        for key in present:
            del cleaned[key]
    return cleaned, stripped


class Serializer:
    def __init__(self, command_table: CommandTable | None = None) -> None:
        self.command_table = command_table if command_table is not None else load_command_table()

    def normalize(
        self, node: NodeRecord, stripped: Iterable[str] = ()
    ) -> tuple[NodeRecord, list[str]]:
        """Fix field consistency; `stripped` names foreign fields already dropped from the raw input."""
        notes: list[str] = []
        update: dict[str, Any] = {}

        dropped = set(stripped)
        foreign = ACTION_ONLY if node.is_decision else DECISION_ONLY
        stray = [
            name
            for name in foreign
            if name in dropped or getattr(node, name) not in (None, "", [], {}, False)
        ]
        if stray:
            update.update({name: _EMPTY[name] for name in stray})
            kind = "decision" if node.is_decision else "action"
            notes.append(f"stripped {', '.join(stray)} from {kind} node")

        if node.is_action:
            expected = self.command_table.expected_for(node.command, node.output)
            if expected is not None and node.decision_variable != expected:
                update["decision_variable"] = expected
                notes.append(
                    f"decision variable {node.decision_variable!r} -> {expected!r} "
                    f"for command {node.command}"
                )
            if not has_fallback(node.what_next):
                update["what_next"] = [*node.what_next, Branch(value="error", target=ERROR_NODE)]
                notes.append(f"appended error~{ERROR_NODE} to what next")

        if update:
            node = node.model_copy(update=update)
        return node, notes

    def _coerce(
        self, raw: Any, position: int, skipped: list[str]
    ) -> tuple[NodeRecord | None, list[str]]:
        if isinstance(raw, NodeRecord):
            return raw, []
        if not isinstance(raw, dict):
            reason = f"record {position}: expected an object, got {type(raw).__name__}"
            logger.warning("Skipping %s", reason)
            skipped.append(reason)
            return None, []
        raw, stripped = _strip_foreign(raw)
        try:
            return NodeRecord.model_validate(raw), stripped
        except PydanticValidationError as exc:
            label = raw.get("num", position)
            reason = f"record {label}: {_describe(exc)}"
            logger.warning("Skipping malformed %s", reason)
            skipped.append(reason)
            return None, []

    def serialize(self, nodes: Iterable[Any]) -> SerializationResult:
        lines = [HEADER]
        result = SerializationResult(table="")
        for position, raw in enumerate(nodes):
            node, stripped = self._coerce(raw, position, result.skipped)
            if node is None:
                continue
            node, notes = self.normalize(node, stripped)
            for note in notes:
                logger.info("Corrected node %s: %s", node.num, note)
                result.corrections.append(f"node {node.num}: {note}")
            lines.append(join_row(node.to_fields()))
            result.nodes.append(node)
        result.table = "\n".join(lines)
        if result.corrections or result.skipped:
            logger.info(
                "Serialized %d node(s) with %d correction(s), %d skipped",
                len(result.nodes),
                result.corrections_applied,
                len(result.skipped),
            )
        return result


def serialize(nodes: Iterable[Any], command_table: CommandTable | None = None) -> SerializationResult:
    return Serializer(command_table).serialize(nodes)
