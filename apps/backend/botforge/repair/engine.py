"""Row-level repair of a rejected artifact.

Only rows named by validation errors may change. Deterministic fixes run
first; what is left goes to the generation service, either as a minimal
sub-table (broken rows plus read-only neighbours) or, when damage is
widespread, as the full table. Either way the answer is spliced back over
the original row order, so every other row is copied through verbatim.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from botforge.agent import prompts
from botforge.agent.extraction import ExtractionError, extract_table
from botforge.agent.orchestrator import RequestOrchestrator
from botforge.bot.columns import COLUMN_COUNT, join_row
from botforge.bot.commands import CommandTable, load_command_table
from botforge.bot.table import Table
from botforge.bot.validation import parse_validation_errors
from botforge.repair.programmatic import apply_programmatic_fixes

logger = logging.getLogger(__name__)

RepairMode = Literal["none", "programmatic", "row", "whole"]


@dataclass(slots=True)
class RepairSession:
    original_artifact: str
    broken_row_ids: set[int]
    context_row_ids: set[int] = field(default_factory=set)
    iteration: int = 1
    mode: RepairMode = "row"


@dataclass(slots=True)
class RepairResult:
    artifact: str
    fixes_applied: list[str] = field(default_factory=list)
    still_broken: list[str] = field(default_factory=list)
    rows_replaced: int = 0
    rows_preserved: int = 0
    mode: RepairMode = "none"
    truncated: bool = False


class RepairEngine:
    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        *,
        row_mode_threshold: float = 0.5,
        command_table: CommandTable | None = None,
        programmatic: bool = True,
        attempt_budget: int | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.row_mode_threshold = row_mode_threshold
        self.command_table = command_table if command_table is not None else load_command_table()
        self.programmatic = programmatic
        self.attempt_budget = attempt_budget

    def choose_mode(self, broken: int, total: int) -> RepairMode:
        if total and broken <= self.row_mode_threshold * total:
            return "row"
        return "whole"

    def _fix_map(self, text: str, allowed: set[int]) -> dict[int, str]:
        fixes: dict[int, str] = {}
        for row in Table.parse(text).rows:
            if row.num is None:
                continue
            if row.num not in allowed:
                logger.debug("Ignoring returned row for node %s outside the broken set", row.num)
                continue
            if len(row.fields) != COLUMN_COUNT:
                logger.warning(
                    "Rejecting returned row for node %s with %d columns, expected %d",
                    row.num,
                    len(row.fields),
                    COLUMN_COUNT,
                )
                continue
            fixes[row.num] = join_row(row.fields)
        return fixes

    async def repair(self, artifact: str, errors: Any, *, iteration: int = 1) -> RepairResult:
        parsed = parse_validation_errors(errors)
        table = Table.parse(artifact)
        total = len(table.data_rows)
        if not parsed:
            return RepairResult(artifact=artifact, rows_preserved=total)

        positions = table.positions()
        unknown = [e for e in parsed if e.node_num is not None and e.node_num not in positions]
        actionable = [e for e in parsed if e.node_num is None or e.node_num in positions]
        for error in unknown:
            logger.warning("Validation error names node %s which is not in the artifact", error.node_num)

        fixes: list[str] = []
        working = table
        remaining = actionable
        if self.programmatic:
            working, fixes, remaining = apply_programmatic_fixes(table, actionable, self.command_table)

        broken = {e.node_num for e in remaining if e.node_num is not None}
        if not broken:
            return self._finish(
                table,
                working,
                fixes,
                [e.format() for e in unknown + remaining],
                "programmatic" if fixes else "none",
            )

        mode = self.choose_mode(len(broken), total)
        context = {working.rows[p].num for p in working.neighbors(broken)}
        session = RepairSession(
            original_artifact=artifact,
            broken_row_ids=broken,
            context_row_ids={n for n in context if n is not None},
            iteration=iteration,
            mode=mode,
        )
        logger.info(
            "Repair iteration %d: %d broken row(s) of %d, %s mode",
            iteration,
            len(broken),
            total,
            mode,
        )

        error_lines = [e.format() for e in remaining]
        prompt = self._prompt(working, session, error_lines)
        response = await self.orchestrator.call_or_raise(
            prompt, prompts.REPAIR_SYSTEM, self.attempt_budget
        )

        try:
            fixed_text = extract_table(response.text)
        except ExtractionError as exc:
            logger.warning("Repair response unusable (%s); returning the original artifact", exc)
            return RepairResult(
                artifact=artifact,
                still_broken=[e.format() for e in parsed],
                rows_preserved=total,
                mode=mode,
                truncated=exc.truncated or response.truncated,
            )

        fix_map = self._fix_map(fixed_text, broken)
        changed = {
            num
            for num, text in fix_map.items()
            if any(working.rows[p].raw.rstrip("\r") != text for p in positions[num])
        }
        spliced, _ = working.splice({num: fix_map[num] for num in changed})
        fixes.extend(f"node {num}: replaced row" for num in sorted(changed))
        unresolved = [e for e in remaining if e.node_num is None or e.node_num not in changed]
        return self._finish(
            table, spliced, fixes, [e.format() for e in unknown + unresolved], mode
        )

    def _prompt(self, table: Table, session: RepairSession, error_lines: list[str]) -> str:
        if session.mode == "whole":
            return prompts.whole_repair_prompt(error_lines, table.render())
        broken_rows = [row.raw for row in table.rows if row.num in session.broken_row_ids]
        context_rows = [table.rows[p].raw for p in table.neighbors(session.broken_row_ids)]
        return prompts.row_repair_prompt(error_lines, broken_rows, context_rows)

    def _finish(
        self,
        original: Table,
        repaired: Table,
        fixes: list[str],
        still_broken: list[str],
        mode: RepairMode,
    ) -> RepairResult:
        replaced = sum(1 for before, after in zip(original.rows, repaired.rows) if before.raw != after.raw)
        preserved = len(original.data_rows) - replaced
        logger.info("Repair finished: %d row(s) replaced, %d preserved", replaced, preserved)
        return RepairResult(
            artifact=repaired.render(),
            fixes_applied=fixes,
            still_broken=still_broken,
            rows_replaced=replaced,
            rows_preserved=preserved,
            mode=mode,
        )
