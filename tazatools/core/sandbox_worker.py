"""Offline sandbox worker (newline-delimited JSON-RPC over stdin/stdout).

Run with ``python -m tazatools.core.sandbox_worker``. It answers the same
methods as the production payment worker with deterministic canned data, so
the service can be developed and tested without Docker or real credentials:

    initialize, notifications/initialized, tools/list, tools/call

Tools: create_payment, get_payment_status, list_transactions, get_balance.
Diagnostics go to stderr; stdout carries protocol frames only.
"""
from __future__ import annotations

import hashlib
import json
import os
import sys
from typing import Any, Callable, Dict, List

from .protocol import (
    API_KEY_ENV,
    INITIALIZE,
    INITIALIZED,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVOKE,
    DISCOVER,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    make_error,
    make_result,
)

SERVER_INFO = {"name": "tazapay-sandbox", "version": "0.1.0"}
STATUSES = ("created", "pending", "completed", "failed")
BALANCES = {"USD": 12500.0, "SGD": 3400.5, "EUR": 980.25}


class InvalidParams(ValueError):
    pass


TOOLS: List[Dict[str, Any]] = [
    {
        "name": "create_payment",
        "description": "Create a payment link for a buyer to pay a seller",
        "inputSchema": {
            "type": "object",
            "properties": {
                "amount": {"type": "number"},
                "currency": {"type": "string"},
                "description": {"type": "string"},
            },
            "required": ["amount", "currency"],
        },
    },
    {
        "name": "get_payment_status",
        "description": "Get the status of a payment by its id",
        "inputSchema": {
            "type": "object",
            "properties": {"payment_id": {"type": "string"}},
            "required": ["payment_id"],
        },
    },
    {
        "name": "list_transactions",
        "description": "List recent transactions on the account",
        "inputSchema": {
            "type": "object",
            "properties": {"limit": {"type": "integer"}},
        },
    },
    {
        "name": "get_balance",
        "description": "Get the current account balance per currency",
        "inputSchema": {"type": "object", "properties": {"currency": {"type": "string"}}},
    },
]


def _digest(*parts: Any) -> str:
    return hashlib.sha1("|".join(str(p) for p in parts).encode("utf-8")).hexdigest()


def _text(payload: Any) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": json.dumps(payload, sort_keys=True)}], "isError": False}


def _require(args: Dict[str, Any], *names: str):
    missing = [n for n in names if args.get(n) in (None, "")]
    if missing:
        raise InvalidParams(f"Missing required argument(s): {', '.join(missing)}")


def tool_create_payment(args: Dict[str, Any]) -> Dict[str, Any]:
    _require(args, "amount", "currency")
    try:
        amount = float(args["amount"])
    except (TypeError, ValueError):
        raise InvalidParams(f"amount must be a number, got {args['amount']!r}")
    if amount <= 0:
        raise InvalidParams("amount must be positive")
    pid = "pay_" + _digest(amount, args["currency"], args.get("description"))[:12]
    return _text({
        "payment_id": pid,
        "amount": amount,
        "currency": str(args["currency"]).upper(),
        "description": args.get("description"),
        "status": "created",
    })


def tool_get_payment_status(args: Dict[str, Any]) -> Dict[str, Any]:
    _require(args, "payment_id")
    pid = str(args["payment_id"])
    status = STATUSES[int(_digest(pid)[:8], 16) % len(STATUSES)]
    return _text({"payment_id": pid, "status": status})


def tool_list_transactions(args: Dict[str, Any]) -> Dict[str, Any]:
    try:
        limit = int(args.get("limit", 10))
    except (TypeError, ValueError):
        raise InvalidParams(f"limit must be an integer, got {args.get('limit')!r}")
    limit = max(0, min(limit, 100))
    txns = [
        {"id": f"txn_{i:04d}", "amount": round(10.0 + i * 7.25, 2), "currency": "USD", "status": STATUSES[i % len(STATUSES)]}
        for i in range(limit)
    ]
    return _text({"count": len(txns), "transactions": txns})


def tool_get_balance(args: Dict[str, Any]) -> Dict[str, Any]:
    cur = args.get("currency")
    if cur:
        cur = str(cur).upper()
        return _text({"balances": {cur: BALANCES.get(cur, 0.0)}})
    return _text({"balances": BALANCES})


TOOL_HANDLERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "create_payment": tool_create_payment,
    "get_payment_status": tool_get_payment_status,
    "list_transactions": tool_list_transactions,
    "get_balance": tool_get_balance,
}


def handle_initialize(_params: Dict[str, Any]):
    return {"protocolVersion": PROTOCOL_VERSION, "capabilities": {"tools": {}}, "serverInfo": SERVER_INFO}


def handle_list(_params: Dict[str, Any]):
    return {"tools": TOOLS}


def handle_call(params: Dict[str, Any]):
    name = params.get("name")
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        raise InvalidParams(f"Unknown tool: {name}")
    args = params.get("arguments") or {}
    if not isinstance(args, dict):
        raise InvalidParams("arguments must be an object")
    return handler(args)


HANDLERS = {INITIALIZE: handle_initialize, DISCOVER: handle_list, INVOKE: handle_call}


def respond(msg: Any) -> Dict[str, Any] | None:
    """Response frame for one decoded message (None for notifications)."""
    if not isinstance(msg, dict):
        return make_error(None, "Request must be a JSON object", code=INVALID_PARAMS)
    method = msg.get("method")
    call_id = msg.get("id")
    if call_id is None:  # notification
        return None
    if method not in HANDLERS:
        return make_error(call_id, f"Method not found: {method}", code=METHOD_NOT_FOUND)
    try:
        return make_result(call_id, HANDLERS[method](msg.get("params") or {}))
    except InvalidParams as e:
        return make_error(call_id, str(e), code=INVALID_PARAMS)
    except Exception as e:  # noqa: BLE001
        return make_error(call_id, f"Internal error: {e}", code=INTERNAL_ERROR)


def main():  # pragma: no cover - exercised via subprocess tests
    if not os.getenv(API_KEY_ENV):
        sys.stderr.write("sandbox: no API key in environment; serving canned data\n")
        sys.stderr.flush()
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except json.JSONDecodeError as e:
            out = make_error(None, f"Parse error: {e}", code=PARSE_ERROR)
        else:
            if isinstance(msg, dict) and msg.get("method") == INITIALIZED:
                continue
            out = respond(msg)
        if out is not None:
            sys.stdout.write(json.dumps(out) + "\n")
            sys.stdout.flush()


if __name__ == "__main__":  # pragma: no cover
    main()
