import types

import httpx

from tazatools.assistant import DEFAULT_ANSWER, TOPIC_ANSWERS, ChatAssistant, topic_fallback
from tazatools.core.errors import LaunchError
from tazatools.core.registry import Tool
from tazatools.core.service import InvokeResult, QueryOutcome
from tazatools.docs_client import DocsClient


class FakeService:
    def __init__(self, tools=(), outcome=None, start_error=None):
        self.tools = list(tools)
        self.outcome = outcome
        self.start_error = start_error
        self.queries = []

    def list_tools(self):
        return self.tools

    def ensure_started(self):
        if self.start_error:
            raise self.start_error

    def run_query(self, text, timeout_ms=None):
        self.queries.append((text, timeout_ms))
        return self.outcome


def _failing_docs():
    return DocsClient("http://docs.test", transport=httpx.MockTransport(lambda request: httpx.Response(503)))


def test_help_lists_tools():
    svc = FakeService([Tool("get_balance", "Balance per currency")])
    md = ChatAssistant(svc).respond("help")
    assert "- **get_balance**: Balance per currency" in md
    assert "No tools available" in ChatAssistant(FakeService()).respond("")
    assert "Payment APIs" in ChatAssistant(svc).respond("help", agent_mode=False)


def test_agent_mode_formats_outcome():
    tool = Tool("get_balance", "Balance per currency")
    outcome = QueryOutcome(tool=tool, arguments={}, result=InvokeResult(content='{"USD": 5}', tool="get_balance"))
    svc = FakeService([tool], outcome=outcome)
    md = ChatAssistant(svc, timeout_ms=500).respond("my balance")
    assert md.startswith("**Using TazaPay Tool: get_balance**")
    assert '{"USD": 5}' in md
    assert svc.queries == [("my balance", 500)]


def test_agent_mode_error_result():
    tool = Tool("create_payment", "Create")
    result = InvokeResult(content="The payment service did not answer within 10 ms.", is_error=True)
    svc = FakeService([tool], outcome=QueryOutcome(tool=tool, arguments={}, result=result))
    assert ChatAssistant(svc).respond("pay 5").startswith("**Error using create_payment:** The payment")


def test_no_match_without_docs_fallback():
    md = ChatAssistant(FakeService([Tool("t1", "x")])).respond("tell me a joke")
    assert "No relevant TazaPay tools found" in md
    assert "tell me a joke" in md


def test_no_match_falls_back_to_docs_then_topics():
    md = ChatAssistant(FakeService(), _failing_docs()).respond("how do webhook retries work", docs_fallback=True)
    assert md == TOPIC_ANSWERS["webhook"]


def test_start_failure_is_reported():
    svc = FakeService(start_error=LaunchError("Worker executable 'docker' not found"))
    md = ChatAssistant(svc).respond("what's my balance")
    assert md.startswith("**Error:** Could not start the payment service worker")


def test_docs_mode_uses_answer():
    docs = DocsClient("http://docs.test", transport=httpx.MockTransport(
        lambda request: httpx.Response(200, json={"answer": "Escrow holds funds."})
    ))
    svc = types.SimpleNamespace(list_tools=lambda: [])
    assert ChatAssistant(svc, docs).respond("what is escrow", agent_mode=False) == "Escrow holds funds."


def test_topic_fallback():
    assert topic_fallback("How do I CREATE a payment?") == TOPIC_ANSWERS["payment"]
    assert topic_fallback("escrow release") == TOPIC_ANSWERS["escrow"]
    assert topic_fallback("hello") == DEFAULT_ANSWER
