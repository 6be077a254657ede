import logging

from fastapi import APIRouter, Depends, Request

from botforge.bot.flows import PlannedFlow
from botforge.context import AppContext
from botforge.schemas.artifacts import (
    ComposeRequest,
    ComposeResponse,
    GenerateRequest,
    GenerateResponse,
    InvalidateRequest,
    InvalidateResponse,
    RefineRequest,
    RefineResponse,
    RepairRequest,
    RepairResponse,
)
from botforge.services import generation as generation_service

logger = logging.getLogger(__name__)

artifacts_router = APIRouter(tags=["artifacts"])


def get_context(request: Request) -> AppContext:
    return request.app.state.context


@artifacts_router.post("/generate", response_model=GenerateResponse)
async def generate(payload: GenerateRequest, ctx: AppContext = Depends(get_context)):
    result, warnings = generation_service.generate_artifact(ctx, payload.nodes)
    return GenerateResponse(
        artifact=result.table,
        fixes_applied=result.corrections,
        skipped=result.skipped,
        warnings=warnings,
    )


@artifacts_router.post("/repair", response_model=RepairResponse)
async def repair(payload: RepairRequest, ctx: AppContext = Depends(get_context)):
    result = await generation_service.repair_artifact(ctx, payload.artifact, payload.errors)
    return RepairResponse(
        artifact=result.artifact,
        fixes_applied=result.fixes_applied,
        still_broken=result.still_broken,
        rows_replaced=result.rows_replaced,
        rows_preserved=result.rows_preserved,
        mode=result.mode,
    )


@artifacts_router.post("/refine", response_model=RefineResponse)
async def refine(payload: RefineRequest, ctx: AppContext = Depends(get_context)):
    result = await generation_service.refine_artifact(
        ctx,
        payload.artifact,
        payload.bot_id,
        token=payload.token,
        max_iterations=payload.max_iterations,
    )
    return RefineResponse(
        artifact=result.artifact,
        fixes_applied=result.fixes_applied,
        still_broken=result.remaining_errors,
        valid=result.valid,
        iterations=result.iterations,
        max_iterations_reached=result.max_iterations_reached,
        stuck=result.stuck,
        warnings=result.warnings,
        version_id=result.version_id,
    )


@artifacts_router.post("/compose", response_model=ComposeResponse)
async def compose(payload: ComposeRequest, ctx: AppContext = Depends(get_context)):
    flows = [PlannedFlow(f.name, f.description, f.start_node) for f in payload.flows]
    composed, serialized = await generation_service.compose_artifact(ctx, flows, payload.project)
    return ComposeResponse(
        artifact=serialized.table,
        fixes_applied=serialized.corrections,
        skipped=serialized.skipped,
        flow_errors=composed.flow_errors,
    )


@artifacts_router.post("/cache/invalidate", response_model=InvalidateResponse)
async def invalidate_cache(payload: InvalidateRequest, ctx: AppContext = Depends(get_context)):
    return InvalidateResponse(invalidated=ctx.cache.invalidate(payload.key))
