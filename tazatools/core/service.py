"""ToolInvocationService: owns the worker channel, correlator and registry.

Lifecycle: ``start()`` spawns the worker, performs the optional initialize
handshake and discovers tools; ``stop()`` fails whatever is still pending and
shuts the worker down. Every collaborator is created (or injected) here, so
one service instance maps to exactly one worker process.

Caller-facing operations never raise for call failures: ``invoke`` returns an
``InvokeResult`` with ``is_error=True`` and a readable message instead.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config_loader import ServiceConfig
from .correlator import RpcCorrelator
from .errors import LaunchError, NotConnectedError, ToolError, ToolNotFoundError, CallTimeoutError, describe_error
from .extractor import ParameterExtractor
from .logging import core_logger, summarize_for_log
from .process_channel import LaunchSpec, ProcessChannel
from .protocol import INITIALIZE, INITIALIZED, INVOKE, content_text, initialize_params
from .registry import Tool, ToolRegistry
from .relevance import ToolMatcher

CLIENT_NAME = "tazatools"
CLIENT_VERSION = "0.1.0"


@dataclass
class InvokeResult:
    content: str
    is_error: bool = False
    tool: Optional[str] = None
    error_kind: Optional[str] = None
    latency_ms: float = 0.0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "content": self.content,
            "isError": self.is_error,
            "errorKind": self.error_kind,
            "latencyMs": round(self.latency_ms, 2),
        }


@dataclass
class QueryOutcome:
    tool: Tool
    arguments: Dict[str, Any]
    result: InvokeResult
    candidates: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "tool": self.tool.name,
            "description": self.tool.description,
            "arguments": self.arguments,
            "candidates": self.candidates,
            "result": self.result.to_payload(),
        }


class ToolInvocationService:
    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        launch_spec: Optional[LaunchSpec] = None,
        channel: Optional[ProcessChannel] = None,
        extractor: Optional[ParameterExtractor] = None,
        matcher: Optional[ToolMatcher] = None,
    ):
        self.config = config or ServiceConfig()
        self.launch_spec = launch_spec or self.config.launch_spec()
        self.channel = channel or ProcessChannel(name=self.config.worker_name)
        self.registry = ToolRegistry(
            matcher=matcher or ToolMatcher(self.config.intents),
            discovery_timeout_s=self.config.discovery_timeout_s,
        )
        self.extractor = extractor or ParameterExtractor()
        self.correlator: Optional[RpcCorrelator] = None
        self.server_info: Optional[Dict[str, Any]] = None
        self._lock = threading.RLock()
        # metrics: per tool name
        self._metrics: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    def start(self, refresh: bool = True):
        with self._lock:
            if self.channel.is_connected and self.correlator is not None:
                return
            if self.correlator is not None:
                # left over from a worker that exited on its own
                self.correlator.close()
            # subscribe before spawning so an immediate exit is not missed
            self.correlator = RpcCorrelator(self.channel, default_timeout_s=self.config.invoke_timeout_s)
            self.registry.correlator = self.correlator
            try:
                self.channel.start(self.launch_spec)
            except LaunchError:
                self._teardown()
                raise
            if self.config.handshake:
                try:
                    self._handshake()
                except ToolError as e:
                    self.stop()
                    raise LaunchError(f"Worker handshake failed: {describe_error(e)}") from e
            if refresh:
                self.registry.refresh()

    def stop(self):
        with self._lock:
            self._teardown()
            self.channel.stop(timeout=self.config.stop_timeout_s)

    def ensure_started(self):
        if not self.is_connected:
            self.start()

    @property
    def is_connected(self) -> bool:
        return self.channel.is_connected and self.correlator is not None

    def _teardown(self):
        if self.correlator is not None:
            self.correlator.close()
        self.correlator = None
        self.registry.correlator = None

    def _handshake(self):
        assert self.correlator is not None
        result = self.correlator.call(
            INITIALIZE, initialize_params(CLIENT_NAME, CLIENT_VERSION), timeout=self.config.handshake_timeout_s
        )
        self.server_info = result.get("serverInfo") if isinstance(result, dict) else None
        self.correlator.notify(INITIALIZED)
        core_logger.info(f"worker handshake ok server={self.server_info}")

    def __enter__(self) -> "ToolInvocationService":
        self.start()
        return self

    def __exit__(self, *exc):
        self.stop()

    # ------------------------------------------------------------------
    # Caller-facing operations
    def list_tools(self) -> List[Tool]:
        return self.registry.list()

    def refresh_tools(self) -> bool:
        return self.registry.refresh()

    def find_relevant(self, text: str) -> List[Tool]:
        return self.registry.find_relevant(text)

    def invoke(self, tool_name: str, args: Optional[Dict[str, Any]] = None, timeout_ms: Optional[float] = None) -> InvokeResult:
        timeout_s = self.config.invoke_timeout_s if timeout_ms is None else timeout_ms / 1000.0
        start = time.monotonic()
        try:
            if len(self.registry) and self.registry.get(tool_name) is None:
                raise ToolNotFoundError(tool_name)
            correlator = self.correlator
            if correlator is None:
                raise NotConnectedError("Service not started")
            core_logger.debug(f"invoke tool={tool_name} args={summarize_for_log(args or {})}")
            raw = correlator.call(INVOKE, {"name": tool_name, "arguments": args or {}}, timeout=timeout_s)
            text, is_error = content_text(raw)
            out = InvokeResult(content=text, is_error=is_error, tool=tool_name, error_kind="ToolResultError" if is_error else None)
        except ToolError as e:
            core_logger.warning(f"invoke tool={tool_name} failed: {type(e).__name__}: {e}")
            out = InvokeResult(content=describe_error(e), is_error=True, tool=tool_name, error_kind=type(e).__name__)
        out.latency_ms = (time.monotonic() - start) * 1000.0
        self._record(tool_name, out)
        return out

    def run_query(self, text: str, timeout_ms: Optional[float] = None) -> Optional[QueryOutcome]:
        """Pick the best tool for ``text``, derive its arguments and invoke it."""
        candidates = self.find_relevant(text)
        if not candidates:
            core_logger.info("no relevant tool for query")
            return None
        tool = candidates[0]
        args = self.extractor.extract(tool, text)
        core_logger.info(f"query -> tool={tool.name} candidates={len(candidates)} args={sorted(args)}")
        result = self.invoke(tool.name, args, timeout_ms=timeout_ms)
        return QueryOutcome(tool=tool, arguments=args, result=result, candidates=[t.name for t in candidates])

    # ------------------------------------------------------------------
    # Introspection
    def status(self) -> Dict[str, Any]:
        return {
            "state": self.channel.state.value,
            "pid": self.channel.pid,
            "exit_code": self.channel.exit_code,
            "tools": len(self.registry),
            "pending": self.correlator.pending_count() if self.correlator else 0,
            "last_refresh_error": self.registry.last_refresh_error,
            "server_info": self.server_info,
        }

    def _record(self, tool_name: str, out: InvokeResult):
        with self._lock:
            m = self._metrics.setdefault(
                tool_name,
                {"invoke_count": 0, "error_count": 0, "timeout_count": 0, "total_latency_ms": 0.0, "last_latency_ms": 0.0},
            )
            m["invoke_count"] += 1
            if out.is_error:
                m["error_count"] += 1
            if out.error_kind == CallTimeoutError.__name__:
                m["timeout_count"] += 1
            m["total_latency_ms"] += out.latency_ms
            m["last_latency_ms"] = out.latency_ms
            m["avg_latency_ms"] = m["total_latency_ms"] / m["invoke_count"]

    def get_metrics(self, tool_name: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            if tool_name:
                return dict(self._metrics.get(tool_name, {}))
            out: Dict[str, Any] = {k: dict(v) for k, v in self._metrics.items()}
            out["__aggregate__"] = {
                "invoke_total": sum(v["invoke_count"] for v in self._metrics.values()),
                "error_total": sum(v["error_count"] for v in self._metrics.values()),
                "timeout_total": sum(v["timeout_count"] for v in self._metrics.values()),
            }
            return out


__all__ = ["ToolInvocationService", "InvokeResult", "QueryOutcome"]
