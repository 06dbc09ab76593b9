"""Three-tier relevance matching of free text against discovered tools.

Tiers short-circuit: the first non-empty tier is the answer.

 1. name tier: the tool name (case-insensitive) occurs in the query, or the
    name stripped to alphanumerics occurs in the stripped query
    ("create-payment" matches "createpayment" and "Create_Payment").
 2. description tier: the description occurs in the query or the query occurs
    in the description (case-insensitive, empty strings never match).
 3. keyword tier: intent phrases keyed by tool-name glob (fnmatch on the
    lower-cased name); plus a catch-all that matches every tool mentioning
    "balance" in its name or description when the query mentions "balance".

Intent table schema (YAML/JSON -> list of dicts)::

    - pattern: "*create*payment*"
      phrases: ["create payment", "send money"]
"""
from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

_NON_ALNUM = re.compile(r"[^0-9a-z]+")

DEFAULT_INTENTS: List[Dict[str, Any]] = [
    {
        "pattern": "*create*payment*",
        "phrases": ["create payment", "create a payment", "make a payment", "send money", "pay ", "new payment", "charge"],
    },
    {
        "pattern": "*checkout*",
        "phrases": ["checkout", "payment link", "collect payment", "invoice"],
    },
    {
        "pattern": "*payout*",
        "phrases": ["payout", "pay out", "withdraw", "transfer to beneficiary"],
    },
    {
        "pattern": "*status*",
        "phrases": ["status", "check payment", "track payment", "where is my payment"],
    },
    {
        "pattern": "*list*",
        "phrases": ["list", "recent transactions", "show transactions", "history", "transactions"],
    },
    {
        "pattern": "*refund*",
        "phrases": ["refund", "money back", "reverse payment"],
    },
    {
        "pattern": "*beneficiar*",
        "phrases": ["beneficiary", "recipient", "payee"],
    },
    {
        "pattern": "*rate*",
        "phrases": ["exchange rate", "fx rate", "conversion rate", "convert currency"],
    },
]

BALANCE_WORD = "balance"


def strip_alnum(text: str) -> str:
    return _NON_ALNUM.sub("", text.lower())


@dataclass
class Intent:
    pattern: str
    phrases: Tuple[str, ...] = field(default_factory=tuple)

    def applies_to(self, tool_name: str) -> bool:
        return fnmatch.fnmatch(tool_name.lower(), self.pattern.lower())

    def hit(self, query_lower: str) -> bool:
        return any(p.lower() in query_lower for p in self.phrases if p)


def parse_intents(raw: Optional[Iterable[Dict[str, Any]]]) -> List[Intent]:
    intents: List[Intent] = []
    for item in raw or []:
        pattern = item.get("pattern")
        phrases = item.get("phrases") or []
        if isinstance(phrases, str):
            phrases = [phrases]
        if not pattern:
            continue
        intents.append(Intent(pattern=str(pattern), phrases=tuple(str(p) for p in phrases)))
    return intents


class ToolMatcher:
    def __init__(self, intents: Optional[Iterable[Dict[str, Any]]] = None):
        self.intents = parse_intents(DEFAULT_INTENTS if intents is None else intents)

    def name_tier(self, tools: Sequence[Any], query: str) -> List[Any]:
        q = query.lower()
        q_stripped = strip_alnum(query)
        out = []
        for t in tools:
            name = t.name.lower()
            stripped = strip_alnum(name)
            if (name and name in q) or (stripped and stripped in q_stripped):
                out.append(t)
        return out

    def description_tier(self, tools: Sequence[Any], query: str) -> List[Any]:
        q = query.lower().strip()
        out = []
        if not q:
            return out
        for t in tools:
            desc = (t.description or "").lower().strip()
            if desc and (desc in q or q in desc):
                out.append(t)
        return out

    def keyword_tier(self, tools: Sequence[Any], query: str) -> List[Any]:
        q = query.lower()
        wants_balance = BALANCE_WORD in q
        out = []
        for t in tools:
            hit = any(i.applies_to(t.name) and i.hit(q) for i in self.intents)
            if not hit and wants_balance:
                hit = BALANCE_WORD in t.name.lower() or BALANCE_WORD in (t.description or "").lower()
            if hit:
                out.append(t)
        return out

    def rank(self, tools: Sequence[Any], query: str) -> List[Any]:
        if not query or not tools:
            return []
        for tier in (self.name_tier, self.description_tier, self.keyword_tier):
            found = tier(tools, query)
            if found:
                return found
        return []


__all__ = ["ToolMatcher", "Intent", "parse_intents", "strip_alnum", "DEFAULT_INTENTS"]
