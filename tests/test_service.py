import json
import time
from decimal import Decimal

import pytest

from tazatools.core.config_loader import build_config, sandbox_launch_spec
from tazatools.core.errors import ChannelClosedError, LaunchError
from tazatools.core.process_channel import ChannelState
from tazatools.core.service import ToolInvocationService


@pytest.fixture
def sandbox_service():
    svc = ToolInvocationService(build_config(), launch_spec=sandbox_launch_spec())
    svc.start()
    yield svc
    svc.stop()


def _plain(make_spec, *args, **timeouts):
    cfg = build_config({"worker": {"handshake": False}, "timeouts": timeouts or {}})
    return ToolInvocationService(cfg, launch_spec=make_spec(*args))


def test_invoke_timeout_is_an_error_result(make_spec):
    svc = _plain(make_spec, "silent")
    svc.start(refresh=False)
    try:
        start = time.monotonic()
        res = svc.invoke("anything", {}, timeout_ms=10)
        elapsed = time.monotonic() - start
        assert res.is_error
        assert "did not answer within 10 ms" in res.content
        assert res.error_kind == "CallTimeoutError"
        assert elapsed < 1.0
        assert svc.get_metrics("anything")["timeout_count"] == 1
    finally:
        svc.stop()


def test_sandbox_discovery_and_handshake(sandbox_service):
    names = [t.name for t in sandbox_service.list_tools()]
    assert names == ["create_payment", "get_payment_status", "list_transactions", "get_balance"]
    assert sandbox_service.server_info["name"] == "tazapay-sandbox"
    st = sandbox_service.status()
    assert st["state"] == "connected" and st["tools"] == 4 and st["pending"] == 0


def test_run_query_end_to_end(sandbox_service):
    outcome = sandbox_service.run_query("pay $45.50 for hosting")
    assert outcome.tool.name == "create_payment"
    assert outcome.arguments == {"amount": 45.5, "currency": "USD", "description": "hosting"}
    assert not outcome.result.is_error
    body = json.loads(outcome.result.content)
    assert body["amount"] == 45.5 and body["description"] == "hosting"
    assert body["payment_id"].startswith("pay_")


def test_run_query_without_match(sandbox_service):
    assert sandbox_service.run_query("tell me a joke") is None


def test_remote_validation_error_is_surfaced(sandbox_service):
    res = sandbox_service.invoke("create_payment", {})
    assert res.is_error
    assert res.error_kind == "RemoteToolError"
    assert "Missing required argument(s): amount, currency" in res.content


def test_unknown_tool_when_registry_loaded(sandbox_service):
    res = sandbox_service.invoke("delete_everything", {})
    assert res.is_error and res.error_kind == "ToolNotFoundError"
    agg = sandbox_service.get_metrics()["__aggregate__"]
    assert agg["invoke_total"] == 1 and agg["error_total"] == 1


def test_invoke_before_start_reports_not_connected():
    svc = ToolInvocationService(build_config(), launch_spec=sandbox_launch_spec())
    res = svc.invoke("get_balance", {})
    assert res.is_error and res.error_kind == "NotConnectedError"
    assert "Not connected" in res.content


def test_launch_error_for_missing_binary():
    svc = ToolInvocationService(build_config({"worker": {"command": "tazatools-no-such-binary"}}))
    with pytest.raises(LaunchError):
        svc.start()
    assert svc.status()["state"] == "failed"
    assert not svc.is_connected
    svc.stop()


def test_handshake_timeout_becomes_launch_error(make_spec):
    cfg = build_config({"timeouts": {"handshake_s": 0.2}})
    svc = ToolInvocationService(cfg, launch_spec=make_spec("silent"))
    with pytest.raises(LaunchError) as ei:
        svc.start()
    assert "handshake failed" in str(ei.value)
    assert svc.channel.state is ChannelState.DISCONNECTED


def test_worker_crash_fails_pending_then_restarts(make_spec):
    svc = _plain(make_spec, "echo")
    svc.start()
    try:
        assert svc.list_tools()[0].name == "t1"
        a = svc.correlator.submit("noreply", timeout=30)
        b = svc.correlator.submit("noreply", timeout=30)
        svc.correlator.submit("exit", {"code": 4}, timeout=30)
        for fut in (a, b):
            with pytest.raises(ChannelClosedError):
                fut.result(timeout=5)
        assert svc.status()["state"] == "failed"
        assert not svc.is_connected
        # stale tools survive the crash
        assert [t.name for t in svc.list_tools()] == ["t1"]
        svc.ensure_started()
        assert svc.is_connected
        res = svc.invoke("t1", {"x": 1})
        assert not res.is_error
        assert json.loads(res.content) == {"tool": "t1", "arguments": {"x": 1}}
    finally:
        svc.stop()


def test_context_manager_stops_worker(make_spec):
    with _plain(make_spec, "echo") as svc:
        assert svc.is_connected
        pid = svc.channel.pid
        assert pid
    assert svc.channel.state is ChannelState.DISCONNECTED


def test_invoke_deadline_holds_when_worker_stops_reading(make_spec):
    svc = _plain(make_spec, "noread", stop_s=0.5)
    svc.start(refresh=False)
    try:
        start = time.monotonic()
        res = svc.invoke("t", {"blob": "x" * 2_000_000}, timeout_ms=100)
        assert time.monotonic() - start < 2.0
        assert res.is_error and res.error_kind == "CallTimeoutError"
        assert svc.correlator.pending_count() == 0
    finally:
        svc.stop()
    assert svc.channel.state is ChannelState.DISCONNECTED


def test_unserializable_arguments_are_an_error_result(make_spec):
    svc = _plain(make_spec, "echo")
    svc.start()
    try:
        res = svc.invoke("t1", {"amount": Decimal("45.50")})
        assert res.is_error and res.error_kind == "RequestEncodingError"
        assert "could not be sent" in res.content
        assert svc.correlator.pending_count() == 0
        # the channel is still usable afterwards
        assert not svc.invoke("t1", {"amount": 45.5}).is_error
    finally:
        svc.stop()
