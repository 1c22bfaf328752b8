"""Runs API over a temporary vault and a scripted provider."""

import pytest
from fastapi.testclient import TestClient

from conftest import (
    FakeProvider,
    calls_turn,
    text_turn,
    tool_call,
)
from notewright.agent.context import RunContext
from notewright.api.app import (
    RunRecord,
    app,
    get_provider,
    get_store,
    runs,
)
from notewright.api.models import RunStatus
from notewright.config import settings


@pytest.fixture
def client(vault, provider):
    app.dependency_overrides[get_store] = lambda: vault
    app.dependency_overrides[get_provider] = lambda: provider
    runs.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
    runs.clear()


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_run_completes_in_the_background(client, vault, provider) -> None:
    """Background tasks finish before the test client returns, so the run is already done."""
    (vault.root / "talk.txt").write_text("transcript")
    provider.responses.extend(
        [
            calls_turn(tool_call("write", path="summary.md", content="# Summary")),
            text_turn(),
        ]
    )

    response = client.post("/runs", json={"instruction": "Summarise", "attachments": ["talk.txt"]})
    assert response.status_code == 202
    run_id = response.json()["run_id"]

    assert client.get("/runs").json() == [run_id]
    detail = client.get(f"/runs/{run_id}").json()
    assert detail["status"] == "completed"
    assert detail["steps"][-1]["label"] == "Done"
    assert [result["name"] for result in detail["results"]] == ["write"]
    assert (vault.root / "summary.md").read_text() == "# Summary"
    assert provider.uploads[0][2] == "talk.txt"


def test_run_failure_is_recorded(client, provider, monkeypatch) -> None:
    monkeypatch.setattr(settings, "MAX_RETRIES", 1)
    provider.responses.extend([RuntimeError("boom")] * 10)
    response = client.post("/runs", json={"instruction": "Go", "max_turns": 1})

    detail = client.get(f"/runs/{response.json()['run_id']}").json()
    assert detail["status"] == "failed"
    assert "boom" in detail["error"]


def test_missing_attachment_is_404(client) -> None:
    response = client.post("/runs", json={"attachments": ["nope.mp3"]})
    assert response.status_code == 404
    assert runs == {}


def test_empty_request_is_400(client) -> None:
    assert client.post("/runs", json={"instruction": "  "}).status_code == 400


def test_unknown_run_is_404(client) -> None:
    assert client.get("/runs/unknown").status_code == 404
    assert client.post("/runs/unknown/cancel").status_code == 404


def test_cancel(client, vault, provider) -> None:
    record = RunRecord(run_id="r1", ctx=RunContext(store=vault, provider=provider))
    runs["r1"] = record

    response = client.post("/runs/r1/cancel")

    assert response.status_code == 200
    assert record.ctx.token.cancelled

    record.status = RunStatus.CANCELLED
    assert client.post("/runs/r1/cancel").status_code == 409


class ExplodingListProvider(FakeProvider):
    async def list_uploaded_files(self):
        raise ValueError("unexpected listing payload")
        yield  # pragma: no cover


def test_unexpected_errors_still_finish_the_run(client, vault) -> None:
    (vault.root / "talk.txt").write_text("transcript")
    app.dependency_overrides[get_provider] = lambda: ExplodingListProvider()

    response = client.post("/runs", json={"attachments": ["talk.txt"]})

    detail = client.get(f"/runs/{response.json()['run_id']}").json()
    assert detail["status"] == "failed"
    assert "unexpected listing payload" in detail["error"]
    assert detail["steps"][-1]["label"] == "Failed"
    assert detail["steps"][-1]["status"] == "error"
