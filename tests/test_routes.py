"""Tests for the HTTP surface."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from article_agent.deps import (
    get_article_store,
    get_exporter,
    get_orchestrator,
    get_stats_aggregator,
    get_topic_loader,
)
from article_agent.main import app
from article_agent.schemas.article import Article, ArticleContent
from article_agent.schemas.run import RunRecord, RunStatus, StageName, StageRecord, StageStatus
from article_agent.services.stats import StatsAggregator

from conftest import TOPIC_ID, TOPIC_VERSION

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def client(orchestrator, article_store, exporter, topic_loader, run_store):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_article_store] = lambda: article_store
    app.dependency_overrides[get_exporter] = lambda: exporter
    app.dependency_overrides[get_topic_loader] = lambda: topic_loader
    app.dependency_overrides[get_stats_aggregator] = lambda: StatsAggregator(run_store, window_days=0)
    yield TestClient(app)
    app.dependency_overrides.clear()


def save_run(run_store, run_id, status, stage_statuses):
    run_store.save(
        RunRecord(
            id=run_id,
            topic_id=TOPIC_ID,
            topic_version=TOPIC_VERSION,
            status=status,
            stages=[StageRecord(name=n, status=s) for n, s in zip(list(StageName), stage_statuses)],
            created_at=NOW,
            updated_at=NOW,
            completed_at=NOW if status == RunStatus.COMPLETED else None,
        )
    )


def save_article(article_store):
    content = ArticleContent(title="AI Basics", content="# AI Basics\n\nHello.\n", created_at=NOW)
    article_store.save(
        Article(
            id="art-1",
            topic_id=TOPIC_ID,
            topic_version=TOPIC_VERSION,
            status="published",
            title="AI Basics",
            draft=content,
            content=content,
            created_at=NOW,
        )
    )


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_generate_returns_run_id(client, run_store):
    response = client.post("/articles/generate", json={"topic_id": TOPIC_ID, "version": TOPIC_VERSION})

    assert response.status_code == 202
    run_id = response.json()["run_id"]
    assert run_store.get(run_id).topic_id == TOPIC_ID


def test_generate_unpinned_version_is_400(client):
    response = client.post("/articles/generate", json={"topic_id": TOPIC_ID, "version": "latest"})

    assert response.status_code == 400
    assert "latest" in response.json()["detail"]


def test_generate_rejects_path_like_topic_id(client, run_store):
    response = client.post("/articles/generate", json={"topic_id": "../../etc", "version": TOPIC_VERSION})

    assert response.status_code == 422
    assert run_store.count() == 0


def test_run_status(client, run_store):
    save_run(
        run_store,
        "run-1",
        RunStatus.RUNNING,
        [StageStatus.COMPLETED, StageStatus.COMPLETED, StageStatus.RUNNING, StageStatus.PENDING, StageStatus.PENDING],
    )

    response = client.get("/articles/runs/run-1/status")

    assert response.status_code == 200
    assert response.json() == {"run_id": "run-1", "status": "running", "current_stage": "draft", "progress": 40}


def test_unknown_run_is_404(client):
    assert client.get("/articles/runs/missing").status_code == 404
    assert client.get("/articles/runs/missing/status").status_code == 404
    assert client.post("/articles/runs/missing/cancel").status_code == 404


def test_cancel_terminal_run_is_409(client, run_store):
    save_run(run_store, "done", RunStatus.COMPLETED, [StageStatus.COMPLETED] * 5)

    response = client.post("/articles/runs/done/cancel")

    assert response.status_code == 409


def test_list_runs_with_filter(client, run_store):
    save_run(run_store, "done", RunStatus.COMPLETED, [StageStatus.COMPLETED] * 5)
    save_run(run_store, "live", RunStatus.RUNNING, [StageStatus.RUNNING] + [StageStatus.PENDING] * 4)

    response = client.get("/articles/runs", params={"status": "completed"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert [r["id"] for r in body["runs"]] == ["done"]


def test_regenerate_errors(client, article_store):
    save_article(article_store)

    assert client.post("/articles/art-1/regenerate", json={"stages": ["publish"]}).status_code == 400
    assert client.post("/articles/missing/regenerate", json={"stages": ["refine"]}).status_code == 404


def test_get_and_export_article(client, article_store):
    save_article(article_store)

    assert client.get("/articles/art-1").json()["title"] == "AI Basics"
    assert [a["id"] for a in client.get("/articles").json()] == ["art-1"]

    response = client.get("/articles/art-1/export/md")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/markdown")
    assert "# AI Basics" in response.text

    assert client.get("/articles/art-1/export/pdf").status_code == 422


def test_topic_routes(client, write_topic):
    write_topic(version="1.1.0")

    listing = client.get("/topics").json()
    assert listing["total"] == 2

    topic = client.get(f"/topics/{TOPIC_ID}", params={"version": "1.1.0"}).json()
    assert topic["version"] == "1.1.0"

    versions = client.get(f"/topics/{TOPIC_ID}/versions").json()
    assert versions["versions"] == ["1.1.0", "1.0.0"]

    assert client.get(f"/topics/{TOPIC_ID}", params={"version": "1.x"}).status_code == 400
    assert client.post("/topics/cache/clear").json() == {"cleared": 1}


def test_generation_stats(client, run_store):
    save_run(run_store, "done", RunStatus.COMPLETED, [StageStatus.COMPLETED] * 5)

    response = client.get("/stats/generation")

    assert response.status_code == 200
    assert response.json()["successful_runs"] == 1
