"""Flow planning and composition.

A bot is split into flows that each own a contiguous range of node numbers:
a flow owns everything from its start node up to the next flow's start, and
the last flow runs up to the error node. Numbers below the first flow
(startup nodes), negative numbers and the error range are system nodes that
belong to no flow.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from botforge.agent import prompts
from botforge.agent.extraction import ExtractionError, extract_json
from botforge.agent.orchestrator import RequestOrchestrator
from botforge.bot.nodes import ERROR_NODE, NodeRecord
from botforge.services.errors import AuthenticationError, ExtractionFailedError, RateLimitExceededError, ServiceError

logger = logging.getLogger(__name__)

FIRST_FLOW_NODE = 300
FLOW_STEP = 100

SYSTEM_NODE_TEMPLATES: tuple[dict[str, Any], ...] = (
    {
        "num": -500,
        "type": "A",
        "name": "HandleBotError",
        "command": "HandleBotError",
        "description": "Catches exceptions",
        "output": "error_type",
        "paramInput": {"save_error_to": "PLATFORM_ERROR"},
        "decVar": "error_type",
        "whatNext": "bot_error~99990|bot_timeout~99990|other~99990",
        "variable": "PLATFORM_ERROR",
    },
    {
        "num": 666,
        "type": "D",
        "name": "EndChat",
        "message": "Thank you for using our service. Goodbye!",
    },
    {
        "num": 999,
        "type": "D",
        "name": "Agent Transfer",
        "behaviors": "xfer_to_agent",
    },
    {
        "num": ERROR_NODE,
        "type": "D",
        "name": "Error Message",
        "message": "Oops! Something went wrong. Let me help you get back on track.",
        "richType": "button",
        "richContent": "Start Over~1|Talk to Agent~999",
        "ansReq": "1",
        "behaviors": "disable_input",
    },
)


@dataclass(slots=True)
class PlannedFlow:
    name: str
    description: str = ""
    start_node: Optional[int] = None


@dataclass(slots=True)
class ComposedBot:
    nodes: list[NodeRecord] = field(default_factory=list)
    flow_errors: dict[str, str] = field(default_factory=dict)


def system_nodes() -> list[NodeRecord]:
    return [NodeRecord.model_validate(t) for t in SYSTEM_NODE_TEMPLATES]


def assign_start_nodes(
    flows: Sequence[PlannedFlow],
    *,
    first: int = FIRST_FLOW_NODE,
    step: int = FLOW_STEP,
) -> list[PlannedFlow]:
    return [replace(flow, start_node=first + i * step) for i, flow in enumerate(flows)]


def is_system_node(num: int) -> bool:
    return num < 0 or num >= ERROR_NODE


def flow_range(flow: PlannedFlow, flows: Sequence[PlannedFlow]) -> range:
    if flow.start_node is None:
        raise ValueError(f"flow {flow.name!r} has no start node")
    later = sorted(f.start_node for f in flows if f.start_node is not None and f.start_node > flow.start_node)
    end = later[0] if later else ERROR_NODE
    return range(flow.start_node, end)


def owning_flow(num: int, flows: Sequence[PlannedFlow]) -> Optional[PlannedFlow]:
    if is_system_node(num):
        return None
    best: Optional[PlannedFlow] = None
    for flow in flows:
        if flow.start_node is None or flow.start_node > num:
            continue
        if best is None or flow.start_node > best.start_node:
            best = flow
    return best


def group_by_flow(
    nodes: Iterable[NodeRecord],
    flows: Sequence[PlannedFlow],
) -> dict[Optional[str], list[NodeRecord]]:
    """Bucket nodes by owning flow name; system and startup nodes land under None."""
    groups: dict[Optional[str], list[NodeRecord]] = {flow.name: [] for flow in flows}
    groups[None] = []
    for node in nodes:
        flow = owning_flow(node.num, flows)
        groups[flow.name if flow else None].append(node)
    return groups


def merge_nodes(*batches: Iterable[NodeRecord]) -> list[NodeRecord]:
    seen: dict[int, NodeRecord] = {}
    for batch in batches:
        for node in batch:
            if node.num in seen:
                logger.debug("Dropping duplicate node %s", node.num)
                continue
            seen[node.num] = node
    return [seen[num] for num in sorted(seen)]


class FlowComposer:
    def __init__(self, orchestrator: RequestOrchestrator, *, concurrency: int = 2) -> None:
        self.orchestrator = orchestrator
        self.concurrency = max(1, concurrency)

    async def generate_flow(
        self,
        flow: PlannedFlow,
        flows: Sequence[PlannedFlow],
        project: str = "",
    ) -> list[NodeRecord]:
        owned = flow_range(flow, flows)
        prompt = prompts.flow_prompt(flow.name, flow.description, owned.start, owned.stop - 1, project)
        response = await self.orchestrator.call_or_raise(prompt, prompts.FLOW_SYSTEM)
        try:
            data = extract_json(response.text)
        except ExtractionError as exc:
            raise ExtractionFailedError(
                f"flow {flow.name!r}: {exc}", truncated=exc.truncated or response.truncated
            ) from exc

        raw_nodes = data.get("nodes", []) if isinstance(data, dict) else data
        if not isinstance(raw_nodes, list):
            raise ExtractionFailedError(f"flow {flow.name!r}: response has no node list")

        nodes: list[NodeRecord] = []
        for raw in raw_nodes:
            try:
                node = NodeRecord.model_validate(raw)
            except PydanticValidationError as exc:
                logger.warning("Flow %s: skipping malformed node (%d problem(s))", flow.name, exc.error_count())
                continue
            if node.num not in owned:
                logger.warning("Flow %s: dropping node %s outside %s-%s", flow.name, node.num, owned.start, owned.stop - 1)
                continue
            if not node.flows:
                node = node.model_copy(update={"flows": flow.name})
            nodes.append(node)
        logger.info("Flow %s generated %d node(s)", flow.name, len(nodes))
        return nodes

    async def compose(self, flows: Sequence[PlannedFlow], project: str = "") -> ComposedBot:
        planned = list(flows)
        if any(f.start_node is None for f in planned):
            planned = assign_start_nodes(planned)

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(flow: PlannedFlow) -> list[NodeRecord]:
            async with semaphore:
                return await self.generate_flow(flow, planned, project)

        results = await asyncio.gather(*(run(f) for f in planned), return_exceptions=True)

        composed = ComposedBot()
        generated: list[NodeRecord] = []
        for flow, result in zip(planned, results):
            if isinstance(result, (RateLimitExceededError, AuthenticationError)):
                raise result
            if isinstance(result, ServiceError):
                logger.warning("Flow %s failed: %s", flow.name, result.message)
                composed.flow_errors[flow.name] = result.message
                continue
            if isinstance(result, BaseException):
                raise result
            generated.extend(result)

        composed.nodes = merge_nodes(generated, system_nodes())
        return composed
