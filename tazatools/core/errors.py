"""Centralized custom exception hierarchy for the tool invocation service."""
from __future__ import annotations

from typing import Any, Optional


class ToolError(Exception):
    """Base class for all tool related errors."""


class ConfigError(ToolError):
    pass


class LaunchError(ToolError):  # worker executable missing / spawn failure
    pass


class NotConnectedError(ToolError):
    pass


class CallTimeoutError(ToolError, TimeoutError):
    def __init__(self, method: str, timeout_s: float):
        super().__init__(f"No response to '{method}' within {timeout_s * 1000:.0f} ms")
        self.method = method
        self.timeout_s = timeout_s


class RemoteToolError(ToolError):
    """Structured error returned by the worker; message is surfaced verbatim."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


class ChannelClosedError(ToolError):
    def __init__(self, message: str = "Worker process exited", exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


class ToolNotFoundError(ToolError):
    pass


class RequestEncodingError(ToolError):  # arguments that cannot be serialized to JSON
    pass


def describe_error(exc: BaseException) -> str:
    """Human readable, trace-free message for each failure kind."""
    if isinstance(exc, CallTimeoutError):
        return (
            f"The payment service did not answer within {exc.timeout_s * 1000:.0f} ms. "
            "It may be busy; it is safe to try again."
        )
    if isinstance(exc, RemoteToolError):
        return f"The payment service rejected the request: {exc.message}"
    if isinstance(exc, ChannelClosedError):
        code = "" if exc.exit_code is None else f" (exit code {exc.exit_code})"
        return f"The payment service worker stopped unexpectedly{code}. Reconnect and retry."
    if isinstance(exc, NotConnectedError):
        return "Not connected to the payment service. Start or reconnect the worker first."
    if isinstance(exc, LaunchError):
        return f"Could not start the payment service worker: {exc}"
    if isinstance(exc, ToolNotFoundError):
        return f"Unknown tool: {exc}"
    if isinstance(exc, RequestEncodingError):
        return f"The request could not be sent: {exc}"
    if isinstance(exc, ConfigError):
        return f"Configuration problem: {exc}"
    return "Unexpected error while talking to the payment service."


__all__ = [
    "ToolError",
    "ConfigError",
    "LaunchError",
    "NotConnectedError",
    "CallTimeoutError",
    "RemoteToolError",
    "ChannelClosedError",
    "ToolNotFoundError",
    "RequestEncodingError",
    "describe_error",
]
