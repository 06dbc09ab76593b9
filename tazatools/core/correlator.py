"""Request/response correlation over a ``ProcessChannel``.

Every call gets a fresh integer id and a ``PendingCall`` entry in a table
guarded by a single lock. Whoever removes an entry from the table decides the
outcome of that call:

- the channel reader thread, when a response frame with that id arrives;
- the caller or the deadline sweeper, when the deadline elapses;
- the exit handler, when the worker process goes away.

So a call resolves at most once, and a response arriving after its deadline
finds no entry and is discarded.
"""
from __future__ import annotations

import heapq
import itertools
import threading
import time
from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import CallTimeoutError, ChannelClosedError, RemoteToolError, RequestEncodingError, ToolError
from .framing import encode_frame
from .logging import core_logger, summarize_for_log
from .process_channel import ExitEvent, ProcessChannel
from .protocol import error_fields, make_notification, make_request, response_id


@dataclass
class PendingCall:
    id: int
    method: str
    timeout_s: float
    deadline: float
    future: Future = field(repr=False)
    sent_at: float = field(default_factory=time.monotonic)


class RpcCorrelator:
    def __init__(self, channel: ProcessChannel, default_timeout_s: float = 30.0):
        self.channel = channel
        self.default_timeout_s = default_timeout_s
        self._lock = threading.Lock()
        self._wakeup = threading.Condition(self._lock)
        self._pending: Dict[int, PendingCall] = {}
        self._deadlines: List[Tuple[float, int]] = []
        self._ids = itertools.count(1)
        self._closed = False
        self._late_frames = 0
        self._unsubscribe: List[Callable[[], None]] = [
            channel.subscribe(self._on_frame),
            channel.on_exit(self._on_exit),
        ]
        self._sweeper = threading.Thread(target=self._sweep_loop, name=f"{channel.name}-deadlines", daemon=True)
        self._sweeper.start()

    # ------------------------------------------------------------------
    def submit(self, method: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Future:
        """Send a request and return a future resolved by its response.

        The future fails with ``CallTimeoutError``, ``RemoteToolError`` or
        ``ChannelClosedError``; cancelling it drops the pending entry. Usable
        from an event loop through ``asyncio.wrap_future``.
        """
        return self._dispatch(method, params, timeout).future

    def call(self, method: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Any:
        pc = self._dispatch(method, params, timeout)
        try:
            return pc.future.result(timeout=pc.timeout_s)
        except FutureTimeoutError:
            self._expire(pc.id)
            # either our expiry or a response that won the race just before it
            return pc.future.result()

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None):
        self.channel.send(make_notification(method, params))

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def pending_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._pending)

    @property
    def late_frames(self) -> int:
        return self._late_frames

    def close(self):
        with self._lock:
            self._closed = True
        for unsub in self._unsubscribe:
            unsub()
        self._unsubscribe = []
        self.fail_all(ChannelClosedError("Service stopped"))
        if self._sweeper is not threading.current_thread():
            self._sweeper.join(timeout=1.0)

    def fail_all(self, error: ToolError) -> int:
        with self._lock:
            calls = list(self._pending.values())
            self._pending.clear()
            self._deadlines.clear()
            self._wakeup.notify()
        for pc in calls:
            self._settle(pc.future, error=error)
        if calls:
            core_logger.warning(f"failed {len(calls)} pending call(s): {error}")
        return len(calls)

    # ------------------------------------------------------------------
    def _dispatch(self, method: str, params: Optional[Dict[str, Any]], timeout: Optional[float]) -> PendingCall:
        timeout_s = self.default_timeout_s if timeout is None else float(timeout)
        with self._lock:
            if self._closed:
                raise ChannelClosedError("Correlator is closed")
            call_id = next(self._ids)
        # encode before registering so a bad payload never leaves a pending entry behind
        try:
            data = encode_frame(make_request(call_id, method, params)).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise RequestEncodingError(f"{method} params are not JSON serializable: {e}") from e
        with self._lock:
            if self._closed:
                raise ChannelClosedError("Correlator is closed")
            if call_id in self._pending:
                raise ToolError(f"request id {call_id} already outstanding")
            now = time.monotonic()
            pc = PendingCall(
                id=call_id, method=method, timeout_s=timeout_s, deadline=now + timeout_s, future=Future(), sent_at=now
            )
            self._pending[call_id] = pc
            heapq.heappush(self._deadlines, (pc.deadline, call_id))
            self._wakeup.notify()
        pc.future.add_done_callback(lambda f, cid=call_id: self._on_future_done(cid, f))
        core_logger.debug(f"rpc -> id={call_id} method={method} timeout_ms={timeout_s * 1000:.0f}")
        try:
            self.channel.send(data)
        except ToolError as e:
            if self._take(call_id) is not None:
                self._settle(pc.future, error=e)
            raise
        return pc

    def _take(self, call_id: int) -> Optional[PendingCall]:
        with self._lock:
            return self._pending.pop(call_id, None)

    def _settle(self, fut: Future, result: Any = None, error: Optional[BaseException] = None):
        try:
            if error is not None:
                fut.set_exception(error)
            else:
                fut.set_result(result)
        except InvalidStateError:
            # cancelled by the caller in the meantime
            pass

    def _on_frame(self, frame: Any):
        call_id = response_id(frame)
        if call_id is None:
            core_logger.debug(f"rpc <- unsolicited frame discarded: {summarize_for_log(frame)}")
            return
        pc = self._take(call_id)
        if pc is None:
            self._late_frames += 1
            core_logger.debug(f"rpc <- late or unknown response id={call_id} discarded")
            return
        latency_ms = (time.monotonic() - pc.sent_at) * 1000.0
        err = error_fields(frame)
        if err is not None:
            message, code, data = err
            core_logger.debug(f"rpc <- id={call_id} method={pc.method} error={message!r} latency_ms={latency_ms:.1f}")
            self._settle(pc.future, error=RemoteToolError(message, code=code, data=data))
        else:
            core_logger.debug(f"rpc <- id={call_id} method={pc.method} latency_ms={latency_ms:.1f}")
            self._settle(pc.future, result=frame.get("result"))

    def _on_exit(self, event: ExitEvent):
        self.fail_all(
            ChannelClosedError(
                f"Worker process exited (code {event.exit_code}) while calls were pending",
                exit_code=event.exit_code,
            )
        )

    def _expire(self, call_id: int):
        pc = self._take(call_id)
        if pc is not None:
            core_logger.debug(f"rpc x id={call_id} method={pc.method} timed out after {pc.timeout_s * 1000:.0f} ms")
            self._settle(pc.future, error=CallTimeoutError(pc.method, pc.timeout_s))

    def _on_future_done(self, call_id: int, fut: Future):
        if fut.cancelled() and self._take(call_id) is not None:
            core_logger.debug(f"rpc x id={call_id} cancelled by caller")

    def _sweep_loop(self):
        while True:
            due: List[int] = []
            with self._lock:
                if self._closed:
                    return
                now = time.monotonic()
                while self._deadlines and self._deadlines[0][0] <= now:
                    _, cid = heapq.heappop(self._deadlines)
                    if cid in self._pending:
                        due.append(cid)
                if not due:
                    wait = self._deadlines[0][0] - now if self._deadlines else None
                    self._wakeup.wait(timeout=wait)
                    continue
            for cid in due:
                self._expire(cid)


__all__ = ["RpcCorrelator", "PendingCall"]
