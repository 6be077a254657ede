from __future__ import annotations

import json
import re
from typing import Any

from botforge.bot.columns import COLUMNS, HEADER, has_open_quote, looks_like_row, split_records

_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\r?\n(.*?)```", re.DOTALL)
_TABLE_KEYS = ("csv", "artifact", "table")


class ExtractionError(ValueError):
    """The response holds nothing in the expected shape."""

    truncated = False


class TruncatedResponseError(ExtractionError):
    """The response looks cut off mid-structure (unbalanced brackets, open fence or quote)."""

    truncated = True


def looks_truncated(text: str) -> bool:
    if text.count("{") > text.count("}") or text.count("[") > text.count("]"):
        return True
    return text.count("```") % 2 == 1


def _fail(text: str, what: str) -> ExtractionError:
    if looks_truncated(text):
        return TruncatedResponseError(f"response appears truncated while looking for {what}")
    return ExtractionError(f"no {what} found in response")


def _try_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def _fenced_blocks(text: str) -> list[str]:
    return [m.group(1).strip() for m in _FENCE_RE.finditer(text)]


def _brace_span(text: str) -> str | None:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json(text: str) -> Any:
    """Pull a JSON value out of free-form model output."""
    stripped = (text or "").strip()
    if not stripped:
        raise ExtractionError("empty response")

    parsed = _try_json(stripped)
    if parsed is not None:
        return parsed

    for block in _fenced_blocks(stripped):
        parsed = _try_json(block)
        if parsed is not None:
            return parsed

    span = _brace_span(stripped)
    if span is not None:
        parsed = _try_json(span)
        if parsed is not None:
            return parsed

    raise _fail(stripped, "JSON object")


def _find_header(text: str, header: str) -> int:
    index = text.find(header)
    if index != -1:
        return index
    # tolerate a header whose tail was reworded; the first two columns are distinctive
    prefix = f"{COLUMNS[0]},{COLUMNS[1]}"
    match = re.search(re.escape(prefix), text, re.IGNORECASE)
    return match.start() if match else -1


def _scan_table(text: str, header: str) -> str | None:
    start = _find_header(text, header)
    if start == -1:
        return None
    records = split_records(text[start:])
    kept = [records[0].rstrip("\r")]
    for raw in records[1:]:
        if not raw.strip():
            continue
        if not looks_like_row(raw):
            break
        kept.append(raw.rstrip("\r"))
    table = "\n".join(kept)
    if has_open_quote(table):
        raise TruncatedResponseError("table ends inside a quoted field")
    return table


def _table_from_json(value: Any, header: str) -> str | None:
    if isinstance(value, str):
        return _scan_table(value, header)
    if isinstance(value, dict):
        for key in _TABLE_KEYS:
            if isinstance(value.get(key), str):
                return _scan_table(value[key], header)
    return None


def extract_table(text: str, header: str = HEADER) -> str:
    """Pull a header-led table out of free-form model output.

    Tries, in order: the whole response as JSON, fenced blocks, the outermost
    brace span, then a plain scan for the header line. Rows are taken until
    the content stops looking like table rows.
    """
    stripped = (text or "").strip()
    if not stripped:
        raise ExtractionError("empty response")

    table = _table_from_json(_try_json(stripped), header)
    if table:
        return table

    for block in _fenced_blocks(stripped):
        table = _table_from_json(_try_json(block), header) or _scan_table(block, header)
        if table:
            return table

    span = _brace_span(stripped)
    if span is not None:
        table = _table_from_json(_try_json(span), header)
        if table:
            return table

    table = _scan_table(stripped, header)
    if table:
        return table

    raise _fail(stripped, "table")
