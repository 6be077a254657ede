from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

# Table value meaning "the decision variable equals the node's own output".
OUTPUT_SENTINEL = "@output"

BUNDLED_TABLE = Path(__file__).with_name("command_table.json")


@dataclass(slots=True)
class CommandTable:
    """Lookup of command -> the decision variable the platform expects for it."""

    expected: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.expected = {k.strip().lower(): v for k, v in self.expected.items()}

    def __contains__(self, command: str) -> bool:
        return command.strip().lower() in self.expected

    def __len__(self) -> int:
        return len(self.expected)

    def expected_for(self, command: str, output: str = "") -> str | None:
        value = self.expected.get(command.strip().lower())
        if value is None:
            return None
        if value == OUTPUT_SENTINEL:
            return output.strip() or None
        return value

    def merged(self, extra: Mapping[str, str]) -> "CommandTable":
        combined = dict(self.expected)
        combined.update({k.strip().lower(): v for k, v in extra.items()})
        return CommandTable(combined)


def _read(path: Path) -> dict[str, str]:
    data = json.loads(path.read_text(encoding="utf-8"))
    commands = data.get("commands", data) if isinstance(data, dict) else None
    if not isinstance(commands, dict):
        raise ValueError(f"{path} must hold a JSON object of command -> decision variable")
    return {str(k): str(v) for k, v in commands.items()}


def load_command_table(extra_path: str | Path | None = None) -> CommandTable:
    table = CommandTable(_read(BUNDLED_TABLE))
    if extra_path:
        extra = _read(Path(extra_path))
        logger.info("Loaded %d command(s) from %s", len(extra), extra_path)
        table = table.merged(extra)
    return table
