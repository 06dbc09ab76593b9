"""Chat-style front end over the tool invocation service.

``respond`` turns one user message into Markdown:

- empty / "help": capabilities plus the discovered tool list;
- agent mode: pick a tool, extract arguments, invoke it;
- otherwise (or when no tool fits and ``docs_fallback`` is set): ask the
  documentation assistant, with canned topic answers if that fails too.
"""
from __future__ import annotations

from typing import Optional

from .core.errors import LaunchError, describe_error
from .core.logging import get_logger
from .core.service import QueryOutcome, ToolInvocationService
from .docs_client import DocsClient, DocsUnavailable

logger = get_logger("tazatools.assistant")

DASHBOARD_URL = "https://dashboard.tazapay.com"
DOCS_URL = "https://docs.tazapay.com"

TOPIC_ANSWERS = {
    "payment": (
        "# Creating Payments with TazaPay\n\n"
        "Create a payment with amount, currency, description and the buyer/seller details, "
        "then set up webhook endpoints, handle payment confirmations and implement escrow release.\n\n"
        f"*For complete documentation, visit [TazaPay API Docs]({DOCS_URL})*"
    ),
    "webhook": (
        "# TazaPay Webhook Events\n\n"
        "- `payment.created`: new payment initiated\n"
        "- `payment.completed`: payment successfully processed\n"
        "- `escrow.released`: funds released from escrow\n"
        "- `dispute.created`: dispute opened by buyer/seller\n\n"
        f"*Set up webhooks in your [TazaPay Dashboard]({DASHBOARD_URL})*"
    ),
    "escrow": (
        "# TazaPay Escrow Services\n\n"
        "1. **Buyer** pays into secure escrow\n"
        "2. **Seller** delivers goods/services\n"
        "3. **Buyer** confirms satisfaction\n"
        "4. **Funds** are released to the seller\n\n"
        f"*Learn more at [TazaPay Escrow Guide]({DOCS_URL}/escrow)*"
    ),
}

DEFAULT_ANSWER = (
    "# TazaPay Information\n\n"
    "I can help with TazaPay's payment and escrow services. Try asking about:\n\n"
    "- **Payments**: API integration, processing\n"
    "- **Webhooks**: event handling, notifications\n"
    "- **Escrow**: secure transaction management\n\n"
    f"*For detailed documentation, visit [docs.tazapay.com]({DOCS_URL})*"
)


def topic_fallback(message: str) -> str:
    lowered = message.lower()
    if "payment" in lowered and "create" in lowered:
        return TOPIC_ANSWERS["payment"]
    for topic in ("webhook", "escrow"):
        if topic in lowered:
            return TOPIC_ANSWERS[topic]
    return DEFAULT_ANSWER


class ChatAssistant:
    def __init__(self, service: ToolInvocationService, docs: Optional[DocsClient] = None, timeout_ms: Optional[float] = None):
        self.service = service
        self.docs = docs
        self.timeout_ms = timeout_ms

    def tools_markdown(self) -> str:
        tools = self.service.list_tools()
        if not tools:
            return "No tools available. The worker may still be starting up."
        return "\n".join(f"- **{t.name}**: {t.description}" for t in tools)

    def help_text(self, agent_mode: bool) -> str:
        if agent_mode:
            return (
                "I can execute TazaPay operations for you!\n"
                '- "Can you check my TazaPay balance"\n'
                '- "Create a payment for $100 USD"\n'
                '- "Check payment status pay_1234567890"\n'
                '- "List my 5 recent transactions"\n\n'
                f"### Available Tools:\n{self.tools_markdown()}"
            )
        return DocsClient.quick_help()

    def respond(self, message: str, agent_mode: bool = True, docs_fallback: bool = False) -> str:
        message = (message or "").strip()
        if not message or message.lower() == "help":
            return self.help_text(agent_mode)
        if agent_mode:
            try:
                self.service.ensure_started()
            except LaunchError as e:
                return f"**Error:** {describe_error(e)}"
            outcome = self.service.run_query(message, timeout_ms=self.timeout_ms)
            if outcome is not None:
                return self.format_outcome(outcome)
            if not docs_fallback:
                return (
                    "**No relevant TazaPay tools found for your request.**\n\n"
                    f'I couldn\'t find a specific tool to handle: "{message}"\n\n'
                    f"**Available tools:**\n{self.tools_markdown()}\n\n"
                    "Tip: for general questions, ask without agent mode for documentation-based answers."
                )
        return self.ask_docs(message)

    def ask_docs(self, message: str) -> str:
        if self.docs is None:
            return topic_fallback(message)
        try:
            return self.docs.query(message, strict=True)
        except DocsUnavailable as e:
            logger.info(f"docs unavailable, using topic fallback: {e}")
            return topic_fallback(message)

    @staticmethod
    def format_outcome(outcome: QueryOutcome) -> str:
        res = outcome.result
        if res.is_error:
            return f"**Error using {outcome.tool.name}:** {res.content or 'Unknown error'}"
        return (
            f"**Using TazaPay Tool: {outcome.tool.name}**\n\n"
            f"{outcome.tool.description}\n\n"
            f"**Result:**\n{res.content}\n\n"
            f"*For more complex operations, visit [TazaPay Dashboard]({DASHBOARD_URL})*"
        )


__all__ = ["ChatAssistant", "topic_fallback"]
