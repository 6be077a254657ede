from __future__ import annotations

from dataclasses import dataclass, field

from botforge.agent.orchestrator import RequestOrchestrator
from botforge.bot.commands import CommandTable, load_command_table
from botforge.bot.flows import FlowComposer
from botforge.bot.serializer import Serializer
from botforge.cache import ReadThroughCache
from botforge.config import Settings, load_settings
from botforge.repair.engine import RepairEngine
from botforge.services.validator import ValidationClient

COMMAND_TABLE_KEY = "command_table"


@dataclass(slots=True)
class AppContext:
    """Everything a request needs, built once per process."""

    settings: Settings
    orchestrator: RequestOrchestrator
    validator: ValidationClient
    cache: ReadThroughCache = field(default_factory=ReadThroughCache)

    def command_table(self) -> CommandTable:
        return self.cache.get_or_load(
            COMMAND_TABLE_KEY,
            lambda: load_command_table(self.settings.command_table_path),
        )

    def serializer(self) -> Serializer:
        return Serializer(self.command_table())

    def repair_engine(self) -> RepairEngine:
        return RepairEngine(
            self.orchestrator,
            row_mode_threshold=self.settings.row_mode_threshold,
            command_table=self.command_table(),
        )

    def composer(self) -> FlowComposer:
        return FlowComposer(self.orchestrator, concurrency=self.settings.flow_concurrency)


def build_context(settings: Settings | None = None) -> AppContext:
    settings = settings or load_settings()
    orchestrator = RequestOrchestrator(
        settings.tiers,
        default_attempts=settings.max_attempts,
        temperature=settings.temperature,
    )
    validator = ValidationClient(
        settings.validator_url,
        settings.validator_token,
        timeout=settings.validator_timeout,
    )
    return AppContext(settings=settings, orchestrator=orchestrator, validator=validator)
