"""Validate -> repair loop as a LangGraph state machine.

The loop ends when the validator accepts the artifact, when the iteration
budget is spent, or when the same set of errors survives `STUCK_LIMIT`
consecutive repairs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from botforge.bot.checks import check_artifact
from botforge.pipeline.state import MAX_REFINE_ITERATIONS, STUCK_LIMIT, RefineState
from botforge.repair.engine import RepairEngine
from botforge.services.validator import ValidationClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RefineResult:
    artifact: str
    valid: bool
    iterations: int
    max_iterations_reached: bool = False
    stuck: bool = False
    fixes_applied: list[str] = field(default_factory=list)
    remaining_errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    version_id: Optional[str] = None


def _deps(config: RunnableConfig) -> dict[str, Any]:
    return (config or {}).get("configurable") or {}


def prepare(state: RefineState) -> dict:
    warnings = [w.format() for w in check_artifact(state.get("artifact", ""))]
    if warnings:
        logger.info("Structural check found %d warning(s) before validation", len(warnings))
    return {"warnings": warnings, "iteration": 0, "stuck_count": 0, "last_signatures": None}


async def validate(state: RefineState, config: RunnableConfig) -> dict:
    validator: ValidationClient = _deps(config)["validator"]
    result = await validator.validate(
        state.get("artifact", ""), state.get("bot_id", ""), token=state.get("token")
    )
    signatures = sorted({e.signature() for e in result.errors})
    stuck = state.get("stuck_count", 0)
    previous = state.get("last_signatures")
    if not result.valid and previous is not None and signatures == previous:
        stuck += 1
        logger.warning("Same %d error(s) after repair (stuck %d/%d)", len(signatures), stuck, STUCK_LIMIT)
    else:
        stuck = 0
    return {
        "valid": result.valid,
        "errors": result.errors,
        "version_id": result.version_id,
        "last_signatures": signatures,
        "stuck_count": stuck,
    }


async def repair(state: RefineState, config: RunnableConfig) -> dict:
    engine: RepairEngine = _deps(config)["engine"]
    iteration = state.get("iteration", 0) + 1
    result = await engine.repair(state.get("artifact", ""), state.get("errors", []), iteration=iteration)
    return {
        "artifact": result.artifact,
        "iteration": iteration,
        "fixes_applied": result.fixes_applied,
        "still_broken": result.still_broken,
    }


def _route_after_validate(state: RefineState) -> str:
    if state.get("valid"):
        return "DONE"
    if state.get("iteration", 0) >= state.get("max_iterations", MAX_REFINE_ITERATIONS):
        return "DONE"
    if state.get("stuck_count", 0) >= STUCK_LIMIT:
        return "DONE"
    return "repair"


builder = StateGraph(RefineState)
builder.add_node("prepare", prepare)
builder.add_node("validate", validate)
builder.add_node("repair", repair)
builder.add_edge(START, "prepare")
builder.add_edge("prepare", "validate")
builder.add_edge("repair", "validate")
builder.add_conditional_edges(
    "validate",
    _route_after_validate,
    {
        "repair": "repair",
        "DONE": END,
    },
)

graph = builder.compile()


async def refine(
    artifact: str,
    bot_id: str,
    *,
    validator: ValidationClient,
    engine: RepairEngine,
    token: str | None = None,
    max_iterations: int = MAX_REFINE_ITERATIONS,
) -> RefineResult:
    max_iterations = max(1, max_iterations)
    initial: RefineState = {
        "artifact": artifact,
        "bot_id": bot_id,
        "token": token,
        "max_iterations": max_iterations,
        "fixes_applied": [],
    }
    final = await graph.ainvoke(
        initial,
        config={
            "configurable": {"validator": validator, "engine": engine},
            "recursion_limit": max_iterations * 2 + 10,
        },
    )
    valid = bool(final.get("valid"))
    iterations = final.get("iteration", 0)
    stuck = not valid and final.get("stuck_count", 0) >= STUCK_LIMIT
    result = RefineResult(
        artifact=final.get("artifact", artifact),
        valid=valid,
        iterations=iterations,
        max_iterations_reached=not valid and not stuck and iterations >= max_iterations,
        stuck=stuck,
        fixes_applied=list(final.get("fixes_applied", [])),
        remaining_errors=[] if valid else [e.format() for e in final.get("errors", [])],
        warnings=list(final.get("warnings", [])),
        version_id=final.get("version_id"),
    )
    logger.info(
        "Refine finished: valid=%s iterations=%d stuck=%s", result.valid, result.iterations, result.stuck
    )
    return result
