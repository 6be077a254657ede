from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from botforge.bot.checks import check_artifact
from botforge.bot.commands import load_command_table
from botforge.bot.serializer import Serializer
from botforge.config import load_settings
from botforge.context import build_context
from botforge.services.errors import ServiceError


def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _write(text: str, path: str | None) -> None:
    if path:
        Path(path).write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text if text.endswith("\n") else text + "\n")


def _load_nodes(text: str) -> list[Any]:
    data = json.loads(text)
    if isinstance(data, dict):
        data = data.get("nodes", [])
    if not isinstance(data, list):
        raise ValueError("expected a JSON list of nodes or an object with a 'nodes' list")
    return data


def cmd_serialize(args: argparse.Namespace) -> int:
    table = load_command_table(args.command_table or load_settings().command_table_path)
    result = Serializer(table).serialize(_load_nodes(_read(args.nodes)))
    _write(result.table, args.output)
    for line in result.corrections:
        print(f"fixed {line}", file=sys.stderr)
    for line in result.skipped:
        print(f"skipped {line}", file=sys.stderr)
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    warnings = check_artifact(_read(args.artifact))
    for warning in warnings:
        print(warning.format())
    print(f"{len(warnings)} warning(s)", file=sys.stderr)
    return 1 if warnings else 0


def cmd_repair(args: argparse.Namespace) -> int:
    artifact = _read(args.artifact)
    errors = json.loads(_read(args.errors))
    ctx = build_context()
    try:
        result = asyncio.run(ctx.repair_engine().repair(artifact, errors))
    except ServiceError as exc:
        print(json.dumps(exc.payload()), file=sys.stderr)
        return 2
    _write(result.artifact, args.output)
    print(
        f"{result.mode} repair: {result.rows_replaced} replaced, {result.rows_preserved} preserved",
        file=sys.stderr,
    )
    for line in result.still_broken:
        print(f"still broken {line}", file=sys.stderr)
    return 0 if not result.still_broken else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="botforge", description="Build and repair bot flow tables.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serialize", help="Serialize a JSON node list to the bot table")
    p.add_argument("nodes", help="Path to a JSON file of nodes, or - for stdin")
    p.add_argument("--output", "-o", default=None, help="Write the table here instead of stdout")
    p.add_argument("--command-table", default=None, help="Extra command table JSON")
    p.set_defaults(func=cmd_serialize)

    p = sub.add_parser("check", help="Run local structural checks on a table")
    p.add_argument("artifact", help="Path to the table, or - for stdin")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("repair", help="Repair a table against validator errors")
    p.add_argument("artifact", help="Path to the table")
    p.add_argument("errors", help="Path to the validator error JSON")
    p.add_argument("--output", "-o", default=None, help="Write the repaired table here")
    p.set_defaults(func=cmd_repair)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
