from __future__ import annotations

from botforge.bot.columns import COLUMN_COUNT, HEADER

REPAIR_SYSTEM = (
    "You fix rows of a chatbot flow table. The table is comma separated with exactly "
    f"{COLUMN_COUNT} columns; quote any value containing a comma, quote or line break and "
    "double inner quotes. Never change a row's Node Number. Return only CSV."
)

FLOW_SYSTEM = (
    "You design one flow of a chatbot as a list of nodes. Respond with a single JSON object "
    '{"nodes": [...]} and nothing else. Decision nodes (type "D") talk to the user; action '
    'nodes (type "A") run a command and route on its decision variable through whatNext '
    '("value~node|value~node") which always ends with an error case.'
)


def format_error_lines(lines: list[str]) -> str:
    return "\n".join(lines) if lines else "(no node-specific errors)"


def row_repair_prompt(errors: list[str], broken_rows: list[str], context_rows: list[str]) -> str:
    sections = [
        "Validation errors:",
        format_error_lines(errors),
        "",
        "Rows to fix:",
        HEADER,
        *broken_rows,
    ]
    if context_rows:
        sections += [
            "",
            "READ-ONLY context rows (neighbours of the rows to fix; do not modify or return them):",
            HEADER,
            *context_rows,
        ]
    sections += [
        "",
        "Return the header row followed by the corrected versions of the rows under "
        "\"Rows to fix\" only, in the same order, each with exactly "
        f"{COLUMN_COUNT} columns.",
    ]
    return "\n".join(sections)


def whole_repair_prompt(errors: list[str], table: str) -> str:
    return "\n".join(
        [
            "Validation errors:",
            format_error_lines(errors),
            "",
            "Full table:",
            table,
            "",
            "Return the header row followed by corrected versions of the rows named in the "
            "errors. Rows you return for any other node will be ignored.",
        ]
    )


def flow_prompt(
    name: str,
    description: str,
    first_node: int,
    last_node: int,
    project: str = "",
) -> str:
    lines = [f"Flow: {name}"]
    if description:
        lines.append(f"Purpose: {description}")
    if project:
        lines.append(f"Bot: {project}")
    lines += [
        f"Use node numbers from {first_node} to {last_node} only, starting at {first_node}.",
        "Route failures to node 99990, agent handoff to 999 and the end of chat to 666.",
    ]
    return "\n".join(lines)
