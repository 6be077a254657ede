from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from botforge.agent.orchestrator import Tier

logger = logging.getLogger(__name__)

DEFAULT_TIERS = "gpt-4o:16000:180,gpt-4o-mini:8000:90,gpt-4o-mini:4000:45"
DEFAULT_VALIDATOR_URL = "http://localhost:8787/api/botmanager"


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid int for %s=%r; using default %s", name, raw, default)
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid float for %s=%r; using default %s", name, raw, default)
        return default


def parse_tiers(value: str) -> list[Tier]:
    """Parse `model:max_tokens:timeout` entries separated by commas."""
    tiers: list[Tier] = []
    for chunk in value.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        model, _, rest = chunk.partition(":")
        tokens, _, timeout = rest.partition(":")
        if not model or not tokens or not timeout:
            raise ValueError(f"tier {chunk!r} must look like model:max_tokens:timeout")
        tiers.append(Tier(model=model.strip(), max_tokens=int(tokens), timeout_seconds=float(timeout)))
    if not tiers:
        raise ValueError("at least one model tier is required")
    return tiers


@dataclass(frozen=True, slots=True)
class Settings:
    tiers: list[Tier] = field(default_factory=lambda: parse_tiers(DEFAULT_TIERS))
    max_attempts: int = 3
    temperature: float = 0.2
    row_mode_threshold: float = 0.5
    max_refine_iterations: int = 5
    flow_concurrency: int = 2
    validator_url: str = DEFAULT_VALIDATOR_URL
    validator_token: str | None = None
    validator_timeout: float = 60.0
    command_table_path: str | None = None


def load_settings() -> Settings:
    raw_tiers = os.getenv("BOTFORGE_MODEL_TIERS") or DEFAULT_TIERS
    try:
        tiers = parse_tiers(raw_tiers)
    except ValueError:
        logger.warning("Invalid BOTFORGE_MODEL_TIERS=%r; using defaults", raw_tiers)
        tiers = parse_tiers(DEFAULT_TIERS)
    return Settings(
        tiers=tiers,
        max_attempts=max(1, _get_int_env("BOTFORGE_MAX_ATTEMPTS", 3)),
        temperature=_get_float_env("BOTFORGE_TEMPERATURE", 0.2),
        row_mode_threshold=_get_float_env("BOTFORGE_ROW_MODE_THRESHOLD", 0.5),
        max_refine_iterations=max(1, _get_int_env("BOTFORGE_MAX_REFINE_ITERATIONS", 5)),
        flow_concurrency=max(1, _get_int_env("BOTFORGE_FLOW_CONCURRENCY", 2)),
        validator_url=os.getenv("BOTFORGE_VALIDATOR_URL") or DEFAULT_VALIDATOR_URL,
        validator_token=os.getenv("BOTFORGE_VALIDATOR_TOKEN") or None,
        validator_timeout=_get_float_env("BOTFORGE_VALIDATOR_TIMEOUT", 60.0),
        command_table_path=os.getenv("BOTFORGE_COMMAND_TABLE_PATH") or None,
    )
