"""Documentation question-answering client.

Posts free-text questions to the provider's public documentation assistant
endpoint. Failures are turned into readable answers instead of exceptions so
the chat layer can render them directly.
"""
from __future__ import annotations

from typing import Optional

import httpx

from .core.logging import get_logger

logger = get_logger("tazatools.docs")

QUERY_PATH = "/public/rag/query"
SOURCE = "tazatools"
USER_AGENT = "tazatools/0.1.0"

NO_ANSWER = (
    "I couldn't find a relevant answer to your question. "
    "Please try rephrasing it or contact TazaPay support for more specific help."
)
TIMEOUT_ANSWER = "The request timed out. Please try again or contact TazaPay support."
UNAVAILABLE_ANSWER = "The documentation service is currently unavailable. Please try again later or contact TazaPay support."
THROTTLED_ANSWER = "Too many requests. Please wait a moment and try again."
GENERIC_ANSWER = (
    "I encountered an error while processing your question. "
    "Please try again or contact TazaPay support for assistance."
)


class DocsUnavailable(Exception):
    """Raised by ``query(strict=True)`` when no real answer could be obtained."""


class DocsClient:
    def __init__(self, base_url: str, timeout_s: float = 30.0, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout_s,
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
            transport=transport,
        )

    def query(self, question: str, strict: bool = False) -> str:
        try:
            resp = self._client.post(QUERY_PATH, json={"question": question, "source": SOURCE})
            resp.raise_for_status()
            answer = resp.json().get("answer")
        except httpx.TimeoutException as e:
            return self._fail(TIMEOUT_ANSWER, e, strict)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                return self._fail(UNAVAILABLE_ANSWER, e, strict)
            if status == 429:
                return self._fail(THROTTLED_ANSWER, e, strict)
            return self._fail(GENERIC_ANSWER, e, strict)
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            return self._fail(GENERIC_ANSWER, e, strict)
        if not answer:
            return self._fail(NO_ANSWER, None, strict)
        return str(answer)

    def _fail(self, message: str, exc: Optional[BaseException], strict: bool) -> str:
        if exc is not None:
            logger.warning(f"docs query failed: {type(exc).__name__}: {exc}")
        if strict:
            raise DocsUnavailable(message) from exc
        return message

    @staticmethod
    def quick_help() -> str:
        return """Hi! I'm the TazaPay assistant. I can help you with:

- **Payment APIs**: integration guides, endpoints, and examples
- **Escrow Services**: how to use TazaPay's escrow features
- **Authentication**: API keys, webhooks, and security
- **Troubleshooting**: common issues and solutions

Try asking things like:
- "How do I create a payment with TazaPay?"
- "What are the webhook events available?"
- "How does TazaPay's escrow work?"
"""

    def close(self):
        self._client.close()


__all__ = ["DocsClient", "DocsUnavailable"]
