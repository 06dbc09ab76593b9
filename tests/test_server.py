import httpx
import pytest
from fastapi.testclient import TestClient

from tazatools.core.config_loader import build_config
from tazatools.docs_client import DocsClient
from tazatools.server import create_app


def _docs_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"answer": "Webhook events: payment.created, payment.completed"})


@pytest.fixture
def client():
    docs = DocsClient("http://docs.test", transport=httpx.MockTransport(_docs_handler))
    app = create_app(config=build_config(), docs=docs, sandbox=True)
    with TestClient(app) as c:
        yield c


def test_health_and_tools(client):
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok" and data["tools"] == 4
    r2 = client.get("/tools")
    assert [t["name"] for t in r2.json()["tools"]][0] == "create_payment"
    assert r2.json()["tools"][0]["inputSchema"]["required"] == ["amount", "currency"]


def test_relevant_tools(client):
    r = client.get("/tools/relevant", params={"q": "check my balance"})
    assert r.json() == {"query": "check my balance", "tools": ["get_balance"]}
    assert client.get("/tools/relevant").status_code == 422


def test_invoke(client):
    r = client.post("/invoke", json={"tool": "get_balance", "arguments": {"currency": "usd"}})
    assert r.status_code == 200
    body = r.json()
    assert body["isError"] is False
    assert "USD" in body["content"]
    assert client.post("/invoke", json={"tool": "nope"}).status_code == 404
    assert client.post("/invoke", json={"tool": "get_balance", "timeout_ms": 0}).status_code == 422


def test_query(client):
    r = client.post("/query", json={"text": "List my 5 recent transactions"})
    body = r.json()
    assert body["tool"] == "list_transactions"
    assert body["arguments"] == {"limit": 5}
    assert body["result"]["isError"] is False
    miss = client.post("/query", json={"text": "tell me a joke"}).json()
    assert miss["tool"] is None


def test_chat_modes(client):
    help_md = client.post("/chat", json={"message": "help"}).json()["markdown"]
    assert "create_payment" in help_md
    docs_md = client.post("/chat", json={"message": "what webhook events exist", "agent_mode": False}).json()
    assert "payment.created" in docs_md["markdown"]
    agent_md = client.post("/chat", json={"message": "Check payment status pay_1234567890"}).json()["markdown"]
    assert "get_payment_status" in agent_md and "pay_1234567890" in agent_md


def test_refresh_and_metrics(client):
    r = client.post("/admin/refresh")
    assert r.json()["refreshed"] is True
    client.post("/invoke", json={"tool": "get_balance"})
    m = client.get("/metrics").json()
    assert m["__aggregate__"]["invoke_total"] >= 1
    assert client.get("/metrics", params={"tool": "get_balance"}).json()["invoke_count"] >= 1


def test_worker_start_failure_degrades_health():
    cfg = build_config({"worker": {"command": "tazatools-no-such-binary"}})
    docs = DocsClient("http://docs.test", transport=httpx.MockTransport(_docs_handler))
    with TestClient(create_app(config=cfg, docs=docs)) as c:
        data = c.get("/health").json()
        assert data["status"] == "degraded" and data["state"] == "failed"
        assert c.post("/admin/refresh").status_code == 503
        md = c.post("/chat", json={"message": "what's my balance"}).json()["markdown"]
        assert md.startswith("**Error:**")


def test_status_for_error_kinds():
    from tazatools.core.errors import CallTimeoutError, ConfigError, LaunchError, ToolNotFoundError
    from tazatools.server import status_for

    assert status_for(ToolNotFoundError("x")) == 404
    assert status_for(LaunchError("x")) == 503
    assert status_for(ConfigError("x")) == 400
    assert status_for(CallTimeoutError("tools/call", 1.0)) == 500
