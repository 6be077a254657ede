from fastapi.testclient import TestClient

from botforge.config import Settings
from botforge.context import AppContext
from botforge.main import app
from botforge.routes.artifacts import get_context
from botforge.services.errors import RateLimitExceededError
from botforge.services.validator import ValidationResult

from fakes import FakeOrchestrator, build_artifact


class AlwaysValid:
    async def validate(self, artifact: str, bot_id: str, *, token: str | None = None) -> ValidationResult:
        return ValidationResult(valid=True, version_id="v7")


def _client(orchestrator: FakeOrchestrator | None = None) -> tuple[TestClient, AppContext]:
    ctx = AppContext(
        settings=Settings(),
        orchestrator=orchestrator or FakeOrchestrator(),
        validator=AlwaysValid(),
    )
    app.dependency_overrides[get_context] = lambda: ctx
    return TestClient(app), ctx


def teardown_function() -> None:
    app.dependency_overrides.clear()


def test_health() -> None:
    client, _ = _client()
    assert client.get("/").json() == {"status": "ok"}


def test_generate_returns_table_and_corrections() -> None:
    client, _ = _client()
    response = client.post(
        "/generate",
        json={"nodes": [{"num": 105, "type": "D", "name": "Menu", "command": "X"}, {"name": "broken"}]},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["artifact"].splitlines()[1].startswith("105,D,Menu,")
    assert len(body["fixesApplied"]) == 1
    assert len(body["skipped"]) == 1


def test_repair_without_model_call() -> None:
    client, _ = _client()
    artifact = build_artifact(300, nlu_node=340)
    response = client.post(
        "/repair",
        json={
            "artifact": artifact,
            "errors": [{"node_num": 340, "err_msgs": [["routing", "nluDisabled", "node can only have one child"]]}],
        },
    )
    body = response.json()
    assert response.status_code == 200
    assert body["rowsReplaced"] == 1
    assert body["rowsPreserved"] == 299
    assert body["stillBroken"] == []
    assert body["mode"] == "programmatic"


def test_rate_limit_surfaces_with_retry_after() -> None:
    client, _ = _client(FakeOrchestrator(RateLimitExceededError(retry_after_seconds=42)))
    response = client.post(
        "/repair",
        json={"artifact": build_artifact(10), "errors": [{"node_num": 201, "err_msgs": [["syntax", "Command", "unknown command"]]}]},
    )
    assert response.status_code == 429
    assert response.headers["retry-after"] == "42"
    assert response.json()["rateLimited"] is True
    assert response.json()["retryAfterSeconds"] == 42


def test_empty_artifact_is_rejected() -> None:
    client, _ = _client()
    response = client.post("/repair", json={"artifact": "  ", "errors": []})
    assert response.status_code == 400


def test_refine_reports_validator_outcome() -> None:
    client, _ = _client()
    response = client.post("/refine", json={"artifact": build_artifact(4), "botId": "bot-1"})
    body = response.json()
    assert response.status_code == 200
    assert body["valid"] is True
    assert body["iterations"] == 0
    assert body["versionId"] == "v7"


def test_cache_invalidation_reports_dropped_keys() -> None:
    client, ctx = _client()
    ctx.command_table()
    response = client.post("/cache/invalidate", json={})
    assert response.json() == {"invalidated": ["command_table"]}
    assert "command_table" not in ctx.cache
