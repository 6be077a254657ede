"""Normalization of validator error payloads.

The validator has reported errors in several shapes over time. All of them
are folded into `ValidationError` here so the repair engine only ever sees
one type:

- `{"node_num": 12, "err_msgs": [["routing", "nluDisabled", "msg"], ...]}`
- `{"node_num": 12, "err_msgs": [{"field_name": ..., "error_description": ..., "field_entry": ...}]}`
- `[12, [["routing", "nluDisabled", "msg"], ...]]`
- `{"node_num": 12, "field_name": ..., "error_description": ...}`
- `"Node 12: msg"` or any other free string (node unknown)

A string that is itself JSON is decoded first; a dict holding an `errors`
list is unwrapped. Anything else is stringified rather than dropped.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from botforge.bot.columns import column_for_field

DEFAULT_CATEGORY = "validation"

_NODE_PREFIX_RE = re.compile(r"^\s*node\s*#?\s*(-?\d+)\s*[:\-]\s*(.*)$", re.IGNORECASE | re.DOTALL)
_FORMATTED_RE = re.compile(r"^\[([^/\]]*)/([^\]]*)\]\s*(.*)$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class ValidationError:
    node_num: Optional[int]
    category: str
    field: Optional[str]
    message: str
    entry: Optional[str] = None

    def format(self) -> str:
        node = "?" if self.node_num is None else str(self.node_num)
        return f"node {node}: [{self.category}/{self.field or '-'}] {self.message}"

    def signature(self) -> str:
        """Node-independent key used to recognise the same error across iterations."""
        desc = self.message.lower()
        desc = re.sub(r"node \d+", "node X", desc)
        desc = re.sub(r"row \d+", "row X", desc)
        desc = re.sub(r"\d+", "N", desc)
        return f"{(self.field or 'unknown').lower()}:{desc.strip()}"


def _node(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        match = re.search(r"-?\d+", value)
        if match:
            return int(match.group(0))
    return None


def _is_node_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and re.fullmatch(r"\s*-?\d+\s*", value) is not None


def _is_triple(messages: Any) -> bool:
    return (
        isinstance(messages, (list, tuple))
        and len(messages) == 3
        and not any(isinstance(m, (list, tuple, dict)) for m in messages)
    )


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _from_message(node: Optional[int], msg: Any) -> ValidationError:
    if isinstance(msg, (list, tuple)):
        parts = [_text(p) for p in msg]
        if len(parts) >= 3:
            category, field_name, message = parts[0], parts[1], " ".join(p for p in parts[2:] if p)
        elif len(parts) == 2:
            category, field_name, message = DEFAULT_CATEGORY, parts[0], parts[1]
        else:
            category, field_name, message = DEFAULT_CATEGORY, None, parts[0] if parts else None
        return ValidationError(node, category or DEFAULT_CATEGORY, field_name, message or "unspecified error")
    if isinstance(msg, dict):
        return ValidationError(
            node_num=_node(msg.get("node_num")) if node is None else node,
            category=_text(msg.get("category") or msg.get("error_type")) or DEFAULT_CATEGORY,
            field=_text(msg.get("field_name") or msg.get("field")),
            message=_text(msg.get("error_description") or msg.get("message") or msg.get("error"))
            or "unspecified error",
            entry=_text(msg.get("field_entry")),
        )
    return ValidationError(node, DEFAULT_CATEGORY, None, _text(msg) or "unspecified error")


def _from_string(text: str) -> list[ValidationError]:
    stripped = text.strip()
    if not stripped:
        return []
    if stripped[0] in "[{":
        try:
            return parse_validation_errors(json.loads(stripped))
        except json.JSONDecodeError:
            pass
    match = _NODE_PREFIX_RE.match(stripped)
    if not match:
        return [ValidationError(None, DEFAULT_CATEGORY, None, stripped)]
    node = int(match.group(1))
    rest = match.group(2).strip()
    formatted = _FORMATTED_RE.match(rest)
    if formatted:
        field_name = formatted.group(2).strip()
        return [
            ValidationError(
                node,
                formatted.group(1).strip() or DEFAULT_CATEGORY,
                None if field_name in ("", "-") else field_name,
                formatted.group(3).strip(),
            )
        ]
    return [ValidationError(node, DEFAULT_CATEGORY, None, rest or stripped)]


def _from_dict(item: dict[str, Any]) -> list[ValidationError]:
    if isinstance(item.get("errors"), list):
        return parse_validation_errors(item["errors"])
    node = _node(item.get("node_num", item.get("nodeNum", item.get("node"))))
    messages = item.get("err_msgs")
    if messages is None:
        return [_from_message(node, item)]
    if isinstance(messages, (str, dict)):
        messages = [messages]
    if _is_triple(messages) and column_for_field(_text(messages[1])) is not None:
        messages = [messages]
    if not messages:
        return [_from_message(node, item)]
    return [_from_message(node, msg) for msg in messages]


def _from_sequence(item: Iterable[Any]) -> list[ValidationError]:
    seq = list(item)
    if len(seq) == 2 and _is_node_id(seq[0]) and isinstance(seq[1], (list, tuple)):
        node = _node(seq[0])
        messages = [seq[1]] if _is_triple(seq[1]) else seq[1]
        return [_from_message(node, msg) for msg in messages]
    return parse_validation_errors(seq)


def parse_validation_errors(raw: Any) -> list[ValidationError]:
    """Normalize any known validator error payload into a flat list."""
    if raw is None:
        return []
    if isinstance(raw, ValidationError):
        return [raw]
    if isinstance(raw, str):
        return _from_string(raw)
    if isinstance(raw, dict):
        return _from_dict(raw)
    if isinstance(raw, (list, tuple)):
        if len(raw) == 2 and _is_node_id(raw[0]) and isinstance(raw[1], (list, tuple)):
            return _from_sequence(raw)
        errors: list[ValidationError] = []
        for item in raw:
            if isinstance(item, ValidationError):
                errors.append(item)
            elif isinstance(item, str):
                errors.extend(_from_string(item))
            elif isinstance(item, dict):
                errors.extend(_from_dict(item))
            elif isinstance(item, (list, tuple)):
                errors.extend(_from_sequence(item))
            elif item is not None:
                errors.append(ValidationError(None, DEFAULT_CATEGORY, None, str(item)))
        return errors
    return [ValidationError(None, DEFAULT_CATEGORY, None, str(raw))]


def broken_nodes(errors: Iterable[ValidationError]) -> set[int]:
    return {e.node_num for e in errors if e.node_num is not None}
