from __future__ import annotations

import logging
from typing import Any, Sequence

from botforge.bot.checks import check_artifact
from botforge.bot.flows import ComposedBot, PlannedFlow
from botforge.bot.serializer import SerializationResult
from botforge.context import AppContext
from botforge.pipeline.graph import RefineResult, refine
from botforge.repair.engine import RepairResult
from botforge.services.errors import InvalidArtifactError

logger = logging.getLogger(__name__)


def generate_artifact(ctx: AppContext, nodes: Sequence[Any]) -> tuple[SerializationResult, list[str]]:
    result = ctx.serializer().serialize(nodes)
    warnings = [w.format() for w in check_artifact(result.table)]
    return result, warnings


def _require_table(artifact: str) -> None:
    if not artifact or not artifact.strip():
        raise InvalidArtifactError("artifact is empty")


async def repair_artifact(ctx: AppContext, artifact: str, errors: Any) -> RepairResult:
    _require_table(artifact)
    return await ctx.repair_engine().repair(artifact, errors)


async def refine_artifact(
    ctx: AppContext,
    artifact: str,
    bot_id: str,
    *,
    token: str | None = None,
    max_iterations: int | None = None,
) -> RefineResult:
    _require_table(artifact)
    return await refine(
        artifact,
        bot_id,
        validator=ctx.validator,
        engine=ctx.repair_engine(),
        token=token,
        max_iterations=max_iterations or ctx.settings.max_refine_iterations,
    )


async def compose_artifact(
    ctx: AppContext,
    flows: Sequence[PlannedFlow],
    project: str = "",
) -> tuple[ComposedBot, SerializationResult]:
    if not flows:
        raise InvalidArtifactError("at least one flow is required")
    composed = await ctx.composer().compose(flows, project)
    serialized = ctx.serializer().serialize(composed.nodes)
    logger.info(
        "Composed %d node(s) from %d flow(s); %d flow(s) failed",
        len(composed.nodes),
        len(flows),
        len(composed.flow_errors),
    )
    return composed, serialized
