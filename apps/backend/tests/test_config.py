import pytest

from botforge.agent.orchestrator import Tier
from botforge.cache import ReadThroughCache
from botforge.config import DEFAULT_TIERS, load_settings, parse_tiers


def test_parse_tiers_keeps_declared_order() -> None:
    assert parse_tiers("big:16000:180, small:4000:45") == [Tier("big", 16000, 180.0), Tier("small", 4000, 45.0)]
    with pytest.raises(ValueError):
        parse_tiers("big:16000")


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOTFORGE_MODEL_TIERS", "only:100:5")
    monkeypatch.setenv("BOTFORGE_MAX_REFINE_ITERATIONS", "7")
    monkeypatch.setenv("BOTFORGE_ROW_MODE_THRESHOLD", "0.25")
    monkeypatch.setenv("BOTFORGE_FLOW_CONCURRENCY", "not-a-number")

    settings = load_settings()

    assert settings.tiers == [Tier("only", 100, 5.0)]
    assert settings.max_refine_iterations == 7
    assert settings.row_mode_threshold == 0.25
    assert settings.flow_concurrency == 2


def test_bad_tiers_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOTFORGE_MODEL_TIERS", "nonsense")
    assert load_settings().tiers == parse_tiers(DEFAULT_TIERS)


def test_read_through_cache_loads_once() -> None:
    cache = ReadThroughCache()
    calls = []

    def loader() -> str:
        calls.append(1)
        return "value"

    assert cache.get_or_load("k", loader) == "value"
    assert cache.get_or_load("k", loader) == "value"
    assert len(calls) == 1
    assert cache.invalidate("missing") == []
    assert cache.invalidate("k") == ["k"]
    assert "k" not in cache
