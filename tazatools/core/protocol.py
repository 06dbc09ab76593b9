"""Worker wire protocol (newline-delimited JSON-RPC 2.0).

Client -> worker:
    {"jsonrpc": "2.0", "id": 7, "method": "tools/list", "params": {}}
    {"jsonrpc": "2.0", "id": 8, "method": "tools/call", "params": {"name": ..., "arguments": {...}}}
    {"jsonrpc": "2.0", "method": "notifications/initialized"}          (notification, no id)

Worker -> client:
    {"jsonrpc": "2.0", "id": 7, "result": {"tools": [{"name", "description", "inputSchema"}]}}
    {"jsonrpc": "2.0", "id": 8, "result": {"content": [{"type": "text", "text": ...}], "isError": false}}
    {"jsonrpc": "2.0", "id": 8, "error": {"code": -32602, "message": ...}}

Anything carrying a ``method`` is worker-initiated (request or notification)
and is not a response.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

INITIALIZE = "initialize"
INITIALIZED = "notifications/initialized"
DISCOVER = "tools/list"
INVOKE = "tools/call"

# JSON-RPC error codes used by the sandbox worker
PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

API_KEY_ENV = "TAZAPAY_API_KEY"
API_SECRET_ENV = "TAZAPAY_API_SECRET"


def make_request(call_id: int, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": call_id, "method": method, "params": params or {}}


def make_notification(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    msg: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params:
        msg["params"] = params
    return msg


def make_result(call_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": call_id, "result": result}


def make_error(call_id: Any, message: str, code: int = INTERNAL_ERROR, data: Any = None) -> Dict[str, Any]:
    err: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        err["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": call_id, "error": err}


def initialize_params(client_name: str, client_version: str) -> Dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {},
        "clientInfo": {"name": client_name, "version": client_version},
    }


def response_id(frame: Any) -> Optional[int]:
    """Id of a response frame, or None for anything that is not a response."""
    if not isinstance(frame, dict) or "method" in frame:
        return None
    rid = frame.get("id")
    if isinstance(rid, bool) or not isinstance(rid, int):
        return None
    return rid


def error_fields(frame: Dict[str, Any]) -> Optional[Tuple[str, Optional[int], Any]]:
    """(message, code, data) when the response carries an error, else None."""
    if "error" not in frame or frame["error"] is None:
        return None
    err = frame["error"]
    if isinstance(err, dict):
        code = err.get("code")
        return str(err.get("message") or "Unknown worker error"), code if isinstance(code, int) else None, err.get("data")
    return str(err), None, None


def content_text(result: Any) -> Tuple[str, bool]:
    """Flatten an invocation result into (text, is_error).

    MCP-style results carry a ``content`` list of text items plus ``isError``;
    other JSON results are rendered as compact JSON.
    """
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        parts: List[str] = []
        for item in result["content"]:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
            else:
                parts.append(json.dumps(item, ensure_ascii=False))
        return "\n".join(parts), bool(result.get("isError", False))
    if isinstance(result, str):
        return result, False
    return json.dumps(result, ensure_ascii=False), False


__all__ = [
    "JSONRPC_VERSION",
    "PROTOCOL_VERSION",
    "INITIALIZE",
    "INITIALIZED",
    "DISCOVER",
    "INVOKE",
    "API_KEY_ENV",
    "API_SECRET_ENV",
    "make_request",
    "make_notification",
    "make_result",
    "make_error",
    "initialize_params",
    "response_id",
    "error_fields",
    "content_text",
]
