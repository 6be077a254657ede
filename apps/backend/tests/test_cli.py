import json

import pytest

from botforge.bot.columns import HEADER
from botforge.cli import main

from fakes import build_artifact


def test_serialize_writes_table(tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
    nodes = tmp_path / "nodes.json"
    nodes.write_text(
        json.dumps({"nodes": [{"num": 320, "type": "A", "name": "Save", "command": "SysAssignVariable",
                               "decVar": "success", "whatNext": "true~321"}]}),
        encoding="utf-8",
    )
    out = tmp_path / "bot.csv"

    assert main(["serialize", str(nodes), "-o", str(out)]) == 0

    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0] == HEADER
    assert lines[1].endswith("true~321|error~99990,,,,,,")
    assert "fixed node 320" in capsys.readouterr().err


def test_check_exit_code_reflects_warnings(tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
    artifact = tmp_path / "bot.csv"
    artifact.write_text(build_artifact(4), encoding="utf-8")

    assert main(["check", str(artifact)]) == 1
    assert "routes to missing node 204" in capsys.readouterr().out


def test_unknown_subcommand_exits() -> None:
    with pytest.raises(SystemExit):
        main(["frobnicate"])
