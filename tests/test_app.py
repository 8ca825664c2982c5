"""
Tests for the REST API.

The app is started through its lifespan against a temporary SQLite graph.
"""

import asyncio
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

import app as app_module
from askgraph.core.graph_store.sqlite_store import SQLiteGraphStore
from askgraph.models.node import Block, Page


async def _load_graph(db_path: str) -> None:
    stamp = datetime(2024, 1, 1, 9, 0)
    store = SQLiteGraphStore(db_path=db_path)
    await store.initialize()
    try:
        await store.add_page(Page(uid="pg-ledger", title="Ledger", created=stamp, modified=stamp))
        await store.add_page(Page(uid="pg-finance", title="finance", created=stamp, modified=stamp))
        await store.add_block(
            Block(
                uid="blk-fin-001",
                content="Quarterly [[finance]] review",
                parent_uid="pg-ledger",
                page_uid="pg-ledger",
                refs=["pg-finance"],
                created=stamp,
                modified=stamp,
            )
        )
    finally:
        await store.close()


@pytest.fixture
def app_env(tmp_path, monkeypatch):
    """Environment pointing the app at a small temporary graph."""
    db_path = str(tmp_path / "graph.db")
    asyncio.run(_load_graph(db_path))

    monkeypatch.setenv("ASKGRAPH_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("ASKGRAPH_GRAPH_DB_PATH", db_path)
    monkeypatch.setenv("ASKGRAPH_LLM_PROVIDER", "none")
    monkeypatch.setenv("ASKGRAPH_TOKENIZER_PROVIDER", "approximate")
    monkeypatch.setenv("ASKGRAPH_LOG_TO_FILE", "false")
    monkeypatch.setenv("ASKGRAPH_SEARCH_NL_FALLBACK", "false")
    yield
    app_module.sessions.clear()


@pytest.fixture
def client(app_env):
    with TestClient(app_module.app) as test_client:
        yield test_client


@pytest.fixture
def small_client(app_env, monkeypatch):
    """Client whose server keeps at most two named sessions."""
    monkeypatch.setenv("ASKGRAPH_SEARCH_MAX_CONVERSATIONS", "2")
    with TestClient(app_module.app) as test_client:
        yield test_client


@pytest.mark.integration
class TestApi:
    """Tests for the HTTP endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["graph_store"] == "sqlite"
        assert body["llm"] == "none"

    def test_query_publishes_into_session(self, client):
        response = client.post("/query", json={"request": "ref:finance", "session_id": "s1"})

        assert response.status_code == 200
        body = response.json()
        assert body["session_id"] == "s1"
        assert [r["uid"] for r in body["results"]["results"]] == ["blk-fin-001"]

        current = client.get("/sessions/s1/results").json()
        assert current["id"] == body["results"]["id"]

    def test_summary_only(self, client):
        response = client.post(
            "/query", json={"request": "ref:finance", "session_id": "s2", "summary_only": True}
        )

        body = response.json()
        assert body["results"] is None
        assert body["summary"]["total"] == 1
        assert body["summary"]["counts_by_kind"] == {"block": 1}

    def test_private_mode(self, client):
        response = client.post(
            "/query", json={"request": "ref:finance", "access_mode": "private"}
        )

        [result] = response.json()["results"]["results"]
        assert result["content"] is None

    def test_unknown_session(self, client):
        assert client.get("/sessions/missing/results").status_code == 404
        assert client.get("/sessions/missing/summary").status_code == 404

    def test_clear_results(self, client):
        client.post("/query", json={"request": "ref:finance", "session_id": "s3"})

        response = client.delete("/sessions/s3/results")

        assert response.status_code == 200
        assert client.get("/sessions/s3/results").json() is None

    def test_parse_error_is_bad_request(self, client):
        response = client.post("/query", json={"request": "(budget + finance"})

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["position"] == 0
        assert detail["token"] == "("

    def test_plan_error_is_unprocessable(self, client):
        response = client.post("/query", json={"request": "INTERSECTION(@results, audit)"})
        assert response.status_code == 422

    def test_empty_request_rejected(self, client):
        assert client.post("/query", json={"request": ""}).status_code == 422

    def test_summary_only_describes_returned_set(self, client):
        """Test an empty run is summarized as empty even when the session has results."""
        client.post("/query", json={"request": "ref:finance", "session_id": "s4"})

        response = client.post(
            "/query",
            json={
                "request": "zzzqqq",
                "session_id": "s4",
                "summary_only": True,
                "expansion_mode": "ask_user",
            },
        )

        assert response.json()["summary"]["total"] == 0
        assert client.get("/sessions/s4/summary").json()["total"] == 1

    def test_run_tool_on_session_results(self, client):
        client.post("/query", json={"request": "ref:finance", "session_id": "s5"})

        response = client.post(
            "/tools",
            json={
                "params": {
                    "tool": "get_node_details",
                    "from_prior_results": True,
                    "include_hierarchy": True,
                },
                "session_id": "s5",
            },
        )

        assert response.status_code == 200
        [result] = response.json()["results"]
        assert result["uid"] == "blk-fin-001"
        assert result["parents"][0]["content"] == "Ledger"

    def test_run_tool_without_prior_results(self, client):
        response = client.post(
            "/tools", json={"params": {"tool": "get_node_details", "from_prior_results": True}}
        )
        assert response.status_code == 422

    def test_run_tool_rejects_unknown_tool(self, client):
        response = client.post("/tools", json={"params": {"tool": "drop_everything"}})
        assert response.status_code == 422


@pytest.mark.integration
class TestSessions:
    """Tests for session bookkeeping."""

    def test_anonymous_requests_are_not_kept(self, client):
        for _ in range(3):
            response = client.post("/query", json={"request": "ref:finance"})
            assert response.status_code == 200

        assert client.get("/health").json()["sessions"] == 0
        assert client.get(f"/sessions/{response.json()['session_id']}/results").status_code == 404

    def test_least_recently_used_session_is_evicted(self, small_client):
        for session_id in ("a", "b"):
            small_client.post("/query", json={"request": "ref:finance", "session_id": session_id})
        # Reading "a" makes "b" the least recently used
        small_client.get("/sessions/a/results")
        small_client.post("/query", json={"request": "ref:finance", "session_id": "c"})

        assert small_client.get("/health").json()["sessions"] == 2
        assert small_client.get("/sessions/a/results").status_code == 200
        assert small_client.get("/sessions/b/results").status_code == 404
        assert small_client.get("/sessions/c/results").status_code == 200
