"""Deterministic argument extraction from free text.

The extractor never fails: fields it cannot find are left out and the worker
reports missing required arguments as a structured error.

Tool families are picked from the tool name, most specific first:

- list family ("list" in name): ``limit`` from "N transactions|payments|...",
  default 10;
- status family ("status" in name): an identifier token;
- payment family ("payment", "payout" or "checkout" in name): ``amount``,
  ``currency`` (default USD), ``description`` (text after "for"), plus an
  identifier token carrying a digit, underscore or hyphen when one is present.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Optional

from .registry import Tool

CURRENCIES = ("USD", "EUR", "GBP", "SGD", "AUD", "CAD")
DEFAULT_CURRENCY = "USD"
DEFAULT_LIMIT = 10
DEFAULT_ID_FIELD = "payment_id"

PAYMENT_MARKERS = ("payment", "payout", "checkout")
STATUS_MARKERS = ("status",)
LIST_MARKERS = ("list",)

_AMOUNT_RE = re.compile(r"(?:(?<![\w.])|(?<=USD|EUR|GBP|SGD|AUD|CAD))\$?(\d+(?:\.\d+)?)(?![\w.]*\d)", re.IGNORECASE)
_CURRENCY_RE = re.compile(r"(?<![A-Za-z])(" + "|".join(CURRENCIES) + r")(?![A-Za-z])", re.IGNORECASE)
_DESCRIPTION_RE = re.compile(r"\bfor\s+(.+?)(?:\.(?:\s|$)|$)", re.IGNORECASE)
_IDENTIFIER_RE = re.compile(r"(?<![\w-])([A-Za-z0-9_-]{10,})(?![\w-])")
_ID_MARKERS = re.compile(r"[\d_-]")
_LIMIT_RE = re.compile(r"(\d+)\s+(?:recent\s+|last\s+)?(?:transactions|payments|items|payouts|refunds|records)\b", re.IGNORECASE)


def tool_family(name: str) -> Optional[str]:
    lowered = name.lower()
    if any(m in lowered for m in LIST_MARKERS):
        return "list"
    if any(m in lowered for m in STATUS_MARKERS):
        return "status"
    if any(m in lowered for m in PAYMENT_MARKERS):
        return "payment"
    return None


class ParameterExtractor:
    def extract(self, tool: Tool, query: str) -> Dict[str, Any]:
        family = tool_family(tool.name)
        args: Dict[str, Any] = {}
        if family == "list":
            args["limit"] = self.limit(query)
        elif family == "status":
            ident = self.identifier(query)
            if ident:
                args[self.id_field(tool)] = ident
        elif family == "payment":
            ident = self.identifier(query, plain_words=False)
            amount = self.amount(query, skip=ident)
            if amount is not None:
                args["amount"] = amount
            args["currency"] = self.currency(query, skip=ident)
            desc = self.description(query)
            if desc:
                args["description"] = desc
            if ident:
                args[self.id_field(tool)] = ident
        return args

    @staticmethod
    def amount(query: str, skip: Optional[str] = None) -> Optional[float]:
        text = query.replace(skip, " ") if skip else query
        m = _AMOUNT_RE.search(text)
        return float(m.group(1)) if m else None

    @staticmethod
    def currency(query: str, skip: Optional[str] = None) -> str:
        text = query.replace(skip, " ") if skip else query
        m = _CURRENCY_RE.search(text)
        return m.group(1).upper() if m else DEFAULT_CURRENCY

    @staticmethod
    def description(query: str) -> Optional[str]:
        m = _DESCRIPTION_RE.search(query)
        if not m:
            return None
        desc = m.group(1).strip()
        return desc or None

    @staticmethod
    def identifier(query: str, plain_words: bool = True) -> Optional[str]:
        """First id-looking token; plain words only when nothing better is present."""
        tokens = _IDENTIFIER_RE.findall(query)
        # "pay_abcdefghij" beats "internationalization"
        for token in tokens:
            if _ID_MARKERS.search(token):
                return token
        if plain_words and tokens:
            return tokens[0]
        return None

    @staticmethod
    def limit(query: str) -> int:
        m = _LIMIT_RE.search(query)
        return int(m.group(1)) if m else DEFAULT_LIMIT

    @staticmethod
    def id_field(tool: Tool) -> str:
        props = tool.properties()
        for key in props:
            if key == "id" or key.endswith("_id"):
                return key
        return DEFAULT_ID_FIELD


__all__ = ["ParameterExtractor", "tool_family", "CURRENCIES"]
