"""Deterministic fixes for validator errors whose remedy is mechanical.

These run before any generation call. A rule only claims an error when it
actually changed the row; everything else is left for the model.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Callable, Optional

from botforge.bot.columns import COLUMN_COUNT, Column, column_for_field
from botforge.bot.commands import CommandTable
from botforge.bot.nodes import ERROR_NODE, FALLBACK_VALUES
from botforge.bot.table import Table
from botforge.bot.validation import ValidationError

logger = logging.getLogger(__name__)

Rule = Callable[[list[str], ValidationError, CommandTable], Optional[str]]

_PICKERS = {"datepicker", "timepicker", "file_upload"}
_UNQUOTED_VAR_RE = re.compile(r":(\s*)\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _column(error: ValidationError) -> Optional[Column]:
    return column_for_field(error.field)


def _text(error: ValidationError) -> str:
    return f"{error.field or ''} {error.message}".lower()


def fix_nlu_single_child(fields: list[str], error: ValidationError, table: CommandTable) -> Optional[str]:
    text = _text(error)
    if "one child" not in text:
        return None
    if _column(error) is not Column.NLU_DISABLED and "nlu" not in text:
        return None
    if fields[Column.NLU_DISABLED].strip() != "1":
        return None
    fields[Column.NLU_DISABLED] = ""
    return "cleared NLU Disabled"


def fix_decision_variable(fields: list[str], error: ValidationError, table: CommandTable) -> Optional[str]:
    text = _text(error)
    if _column(error) is not Column.DEC_VAR and "decision variable" not in text and "dir_field" not in text:
        return None
    expected = table.expected_for(fields[Column.COMMAND], fields[Column.OUTPUT])
    if expected is None or fields[Column.DEC_VAR] == expected:
        return None
    old = fields[Column.DEC_VAR]
    fields[Column.DEC_VAR] = expected
    return f"decision variable {old!r} -> {expected!r}"


def fix_missing_error_branch(fields: list[str], error: ValidationError, table: CommandTable) -> Optional[str]:
    text = _text(error)
    if _column(error) is not Column.WHAT_NEXT and "what next" not in text:
        return None
    if "error" not in error.message.lower() and "fallback" not in error.message.lower():
        return None
    if fields[Column.TYPE].strip().upper() != "A":
        return None
    current = fields[Column.WHAT_NEXT].strip()
    values = {part.rpartition("~")[0].strip().lower() for part in current.split("|") if part}
    if values & FALLBACK_VALUES:
        return None
    fields[Column.WHAT_NEXT] = f"{current}|error~{ERROR_NODE}" if current else f"error~{ERROR_NODE}"
    return f"appended error~{ERROR_NODE} to What Next"


def fix_button_type(fields: list[str], error: ValidationError, table: CommandTable) -> Optional[str]:
    if _column(error) not in (Column.RICH_TYPE, Column.RICH_CONTENT) and "button" not in _text(error):
        return None
    rich_type = fields[Column.RICH_TYPE].strip().lower()
    content = fields[Column.RICH_CONTENT].strip()
    if not content:
        return None
    is_json = content.startswith("{")
    if rich_type == "buttons" and not is_json:
        fields[Column.RICH_TYPE] = "button"
        return "rich asset type buttons -> button for pipe content"
    if rich_type == "button" and is_json:
        fields[Column.RICH_TYPE] = "buttons"
        return "rich asset type button -> buttons for JSON content"
    return None


def fix_picker_answer_required(fields: list[str], error: ValidationError, table: CommandTable) -> Optional[str]:
    if _column(error) is not Column.ANS_REQ and "ans_req" not in _text(error):
        return None
    if fields[Column.RICH_TYPE].strip().lower() not in _PICKERS or fields[Column.ANS_REQ].strip() == "1":
        return None
    fields[Column.ANS_REQ] = "1"
    return "set Answer Required to 1"


def fix_variable_case(fields: list[str], error: ValidationError, table: CommandTable) -> Optional[str]:
    if "capital" not in _text(error):
        return None
    current = fields[Column.VARIABLE].strip()
    fixed = re.sub(r"[\s-]+", "_", current.upper())
    if not current or fixed == current:
        return None
    fields[Column.VARIABLE] = fixed
    return f"variable {current!r} -> {fixed!r}"


def fix_parameter_json(fields: list[str], error: ValidationError, table: CommandTable) -> Optional[str]:
    text = _text(error)
    if _column(error) is not Column.PARAM_INPUT or not ("json" in text or "expecting" in text):
        return None
    original = fields[Column.PARAM_INPUT].strip()
    if not original:
        return None
    candidate = original
    while candidate.count("}") > candidate.count("{"):
        head, _, tail = candidate.rpartition("}")
        candidate = head + tail
    candidate = _UNQUOTED_VAR_RE.sub(r':\1"{\2}"', candidate)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    if isinstance(parsed, list):
        if not parsed or not isinstance(parsed[0], dict):
            return None
        parsed = {"set": parsed[0]}
    if not isinstance(parsed, dict):
        return None
    fixed = json.dumps(parsed, separators=(",", ":"), ensure_ascii=False)
    if fixed == original:
        return None
    fields[Column.PARAM_INPUT] = fixed
    return "repaired Parameter Input JSON"


RULES: tuple[Rule, ...] = (
    fix_nlu_single_child,
    fix_decision_variable,
    fix_missing_error_branch,
    fix_button_type,
    fix_picker_answer_required,
    fix_variable_case,
    fix_parameter_json,
)


def apply_programmatic_fixes(
    table: Table,
    errors: list[ValidationError],
    commands: CommandTable,
) -> tuple[Table, list[str], list[ValidationError]]:
    """Apply every matching rule; returns the new table, fix notes and unresolved errors."""
    positions = table.positions()
    fixes: list[str] = []
    remaining: list[ValidationError] = []
    for error in errors:
        spots = positions.get(error.node_num, []) if error.node_num is not None else []
        note = None
        for position in spots:
            row = table.rows[position]
            if len(row.fields) > COLUMN_COUNT:
                continue
            fields = row.padded()
            for rule in RULES:
                note = rule(fields, error, commands)
                if note:
                    break
            if note:
                table = table.with_row(position, fields)
                break
        if note:
            logger.info("Programmatic fix on node %s: %s", error.node_num, note)
            fixes.append(f"node {error.node_num}: {note}")
        else:
            remaining.append(error)
    return table, fixes, remaining
