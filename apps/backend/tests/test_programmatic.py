from botforge.bot.columns import HEADER, Column, join_row
from botforge.bot.commands import load_command_table
from botforge.bot.table import Table
from botforge.bot.validation import ValidationError
from botforge.repair.programmatic import apply_programmatic_fixes

COMMANDS = load_command_table()


def _table(*rows: list[str]) -> Table:
    return Table.parse("\n".join([HEADER, *(join_row(r) for r in rows)]))


def _row(num: int, kind: str, **cells: str) -> list[str]:
    fields = [""] * 26
    fields[Column.NUM] = str(num)
    fields[Column.TYPE] = kind
    fields[Column.NAME] = f"Node {num}"
    for name, value in cells.items():
        fields[Column[name.upper()]] = value
    return fields


def _fix_one(row: list[str], error: ValidationError) -> tuple[list[str], list[str], list[ValidationError]]:
    table, fixes, remaining = apply_programmatic_fixes(_table(row), [error], COMMANDS)
    return table.rows[0].padded(), fixes, remaining


def test_decision_variable_follows_command_table() -> None:
    row = _row(410, "A", command="SysMultiMatchRouting", output="route_to", dec_var="wrong",
               what_next="a~420|error~99990")
    fields, fixes, remaining = _fix_one(
        row, ValidationError(410, "syntax", "Decision Variable", "proposed dir_field not in payload")
    )
    assert fields[Column.DEC_VAR] == "route_to"
    assert fixes == ["node 410: decision variable 'wrong' -> 'route_to'"]
    assert remaining == []


def test_missing_error_branch_is_appended() -> None:
    row = _row(320, "A", command="SysAssignVariable", dec_var="success", what_next="true~321")
    fields, fixes, _ = _fix_one(row, ValidationError(320, "routing", "What Next?", "missing error path"))
    assert fields[Column.WHAT_NEXT] == "true~321|error~99990"
    assert len(fixes) == 1


def test_button_type_matches_content_shape() -> None:
    row = _row(210, "D", rich_type="buttons", rich_content="Yes~300|No~301")
    fields, _, _ = _fix_one(row, ValidationError(210, "syntax", "Rich Asset Type", "invalid rich asset"))
    assert fields[Column.RICH_TYPE] == "button"


def test_picker_requires_an_answer() -> None:
    row = _row(220, "D", rich_type="datepicker", rich_content='{"type":"static"}')
    fields, _, _ = _fix_one(row, ValidationError(220, "syntax", "Answer Required?", "must be 1 for pickers"))
    assert fields[Column.ANS_REQ] == "1"


def test_variable_is_upper_cased() -> None:
    row = _row(230, "D", variable="user name")
    fields, fixes, _ = _fix_one(row, ValidationError(230, "syntax", "Variable", "must be capitalized"))
    assert fields[Column.VARIABLE] == "USER_NAME"
    assert fixes == ["node 230: variable 'user name' -> 'USER_NAME'"]


def test_parameter_input_json_is_repaired() -> None:
    row = _row(240, "A", command="SysAssignVariable", param_input='{"set":{"NAME":{USER}}}}')
    fields, _, remaining = _fix_one(
        row, ValidationError(240, "syntax", "Parameter Input", "Expecting property name")
    )
    assert fields[Column.PARAM_INPUT] == '{"set":{"NAME":"{USER}"}}'
    assert remaining == []


def test_unmatched_errors_are_left_for_the_model() -> None:
    row = _row(250, "A", command="Mystery")
    error = ValidationError(250, "syntax", "Command", "unknown command")
    table, fixes, remaining = apply_programmatic_fixes(_table(row), [error], COMMANDS)
    assert fixes == []
    assert remaining == [error]
    assert table.render() == _table(row).render()


def test_rule_that_changes_nothing_does_not_claim_the_error() -> None:
    row = _row(260, "D", nlu_disabled="", next_nodes="261")
    error = ValidationError(260, "routing", "nluDisabled", "node can only have one child")
    _, fixes, remaining = _fix_one(row, error)
    assert fixes == []
    assert remaining == [error]
