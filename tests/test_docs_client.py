import json

import httpx
import pytest

from tazatools.docs_client import (
    GENERIC_ANSWER,
    NO_ANSWER,
    THROTTLED_ANSWER,
    TIMEOUT_ANSWER,
    UNAVAILABLE_ANSWER,
    DocsClient,
    DocsUnavailable,
)


def _client(handler):
    return DocsClient("http://docs.test/", transport=httpx.MockTransport(handler))


def test_query_posts_question_and_returns_answer():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"answer": "Use POST /v3/checkout"})

    client = _client(handler)
    assert client.query("how do I create a payment?") == "Use POST /v3/checkout"
    assert seen["url"] == "http://docs.test/public/rag/query"
    assert seen["body"] == {"question": "how do I create a payment?", "source": "tazatools"}
    client.close()


@pytest.mark.parametrize(
    "status, expected",
    [(404, UNAVAILABLE_ANSWER), (429, THROTTLED_ANSWER), (500, GENERIC_ANSWER)],
)
def test_http_errors_map_to_messages(status, expected):
    client = _client(lambda request: httpx.Response(status, json={}))
    assert client.query("q") == expected


def test_timeout_and_empty_answer():
    def slow(request):
        raise httpx.ReadTimeout("slow", request=request)

    assert _client(slow).query("q") == TIMEOUT_ANSWER
    assert _client(lambda request: httpx.Response(200, json={"answer": ""})).query("q") == NO_ANSWER
    assert _client(lambda request: httpx.Response(200, text="not json")).query("q") == GENERIC_ANSWER


def test_strict_mode_raises():
    client = _client(lambda request: httpx.Response(404))
    with pytest.raises(DocsUnavailable) as ei:
        client.query("q", strict=True)
    assert str(ei.value) == UNAVAILABLE_ANSWER


def test_quick_help_mentions_topics():
    text = DocsClient.quick_help()
    assert "Escrow" in text and "webhook" in text
