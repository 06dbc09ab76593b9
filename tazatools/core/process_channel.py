"""Process channel owning a single out-of-process tool worker.

The channel spawns the worker, hands newline-terminated JSON documents to a
writer thread that feeds its stdin (so callers never block on a full pipe) and
runs a dedicated reader thread that turns stdout chunks into frames
(via ``LineFramer``) and publishes them to subscribers. Worker stderr is
drained on its own thread into the ``tazatools.worker`` logger so diagnostic
output never mixes with protocol frames.

State machine::

    DISCONNECTED --start--> STARTING --spawned--> CONNECTED
    CONNECTED --stop / exit 0--> DISCONNECTED
    CONNECTED --non-zero exit--> FAILED
    STARTING --spawn error--> FAILED
"""
from __future__ import annotations

import os
import queue
import shutil
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

from .errors import LaunchError, NotConnectedError, RequestEncodingError
from .framing import DEFAULT_MAX_LINE_BYTES, LineFramer, encode_frame
from .logging import core_logger, redact_env, worker_logger
from .protocol import API_KEY_ENV, API_SECRET_ENV


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    STARTING = "starting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass
class LaunchSpec:
    command: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    inherit_env: bool = True
    secret_keys: Tuple[str, ...] = (API_KEY_ENV, API_SECRET_ENV)

    def argv(self) -> List[str]:
        return [self.command, *self.args]

    def build_env(self) -> Dict[str, str]:
        base = dict(os.environ) if self.inherit_env else {}
        base.update({k: str(v) for k, v in self.env.items()})
        return base

    def describe(self) -> str:
        # credentials travel in env only; log key names, never values
        env = redact_env(self.env, self.secret_keys)
        return f"cmd={' '.join(self.argv())} env={env}"


@dataclass(frozen=True)
class ExitEvent:
    exit_code: Optional[int]
    requested: bool

    @property
    def failed(self) -> bool:
        return not self.requested and self.exit_code != 0


FrameCallback = Callable[[Any], None]
ExitCallback = Callable[[ExitEvent], None]


class ProcessChannel:
    def __init__(
        self,
        name: str = "worker",
        read_size: int = 64 * 1024,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
        exit_grace_s: float = 2.0,
        stderr_tail: int = 50,
    ):
        self.name = name
        self._read_size = read_size
        self._max_line_bytes = max_line_bytes
        self._exit_grace_s = exit_grace_s
        self._lock = threading.RLock()
        self._writes: Optional["queue.Queue[Optional[bytes]]"] = None
        self._state = ChannelState.DISCONNECTED
        self._proc: Optional[subprocess.Popen] = None
        self._reader: Optional[threading.Thread] = None
        self._stderr_reader: Optional[threading.Thread] = None
        self._writer: Optional[threading.Thread] = None
        self._stop_requested = False
        self._exit_code: Optional[int] = None
        self._frame_subs: List[FrameCallback] = []
        self._exit_subs: List[ExitCallback] = []
        self._stderr_tail: Deque[str] = deque(maxlen=stderr_tail)
        self.started: Optional[float] = None

    # ------------------------------------------------------------------
    # Introspection
    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ChannelState.CONNECTED

    @property
    def pid(self) -> Optional[int]:
        proc = self._proc
        return proc.pid if proc is not None else None

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    @property
    def stderr_tail(self) -> List[str]:
        return list(self._stderr_tail)

    # ------------------------------------------------------------------
    # Subscriptions
    def subscribe(self, callback: FrameCallback) -> Callable[[], None]:
        with self._lock:
            self._frame_subs.append(callback)

        def _unsubscribe():
            with self._lock:
                if callback in self._frame_subs:
                    self._frame_subs.remove(callback)
        return _unsubscribe

    def on_exit(self, callback: ExitCallback) -> Callable[[], None]:
        with self._lock:
            self._exit_subs.append(callback)

        def _unsubscribe():
            with self._lock:
                if callback in self._exit_subs:
                    self._exit_subs.remove(callback)
        return _unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    def start(self, spec: LaunchSpec):
        with self._lock:
            if self._state in (ChannelState.STARTING, ChannelState.CONNECTED):
                core_logger.debug(f"[{self.name}] start ignored; state={self._state.value}")
                return
            self._state = ChannelState.STARTING
            self._stop_requested = False
            self._exit_code = None
            self._stderr_tail.clear()
            env = spec.build_env()
            exe = shutil.which(spec.command, path=env.get("PATH"))
            if exe is None:
                self._state = ChannelState.FAILED
                raise LaunchError(
                    f"Worker executable '{spec.command}' not found. Is it installed and on PATH?"
                )
            core_logger.debug(f"[{self.name}] spawn worker {spec.describe()}")
            try:
                proc = subprocess.Popen(
                    [exe, *spec.args],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env=env,
                    cwd=spec.cwd,
                )
            except (OSError, ValueError) as e:
                self._state = ChannelState.FAILED
                raise LaunchError(f"Failed spawning worker '{spec.command}': {e}") from e
            self._proc = proc
            self.started = time.time()
            framer = LineFramer(max_line_bytes=self._max_line_bytes)
            self._reader = threading.Thread(
                target=self._read_loop, args=(proc, framer), name=f"{self.name}-stdout", daemon=True
            )
            self._stderr_reader = threading.Thread(
                target=self._drain_stderr, args=(proc,), name=f"{self.name}-stderr", daemon=True
            )
            self._writes = queue.Queue()
            self._writer = threading.Thread(
                target=self._write_loop, args=(proc, self._writes), name=f"{self.name}-stdin", daemon=True
            )
            self._state = ChannelState.CONNECTED
            self._reader.start()
            self._stderr_reader.start()
            self._writer.start()
            core_logger.info(f"[{self.name}] worker started pid={proc.pid}")

    def stop(self, timeout: float = 5.0):
        with self._lock:
            proc = self._proc
            if proc is None:
                if self._state is not ChannelState.DISCONNECTED:
                    core_logger.debug(f"[{self.name}] stop: reset state {self._state.value} -> disconnected")
                self._state = ChannelState.DISCONNECTED
                return
            self._stop_requested = True
            reader, stderr_reader, writer = self._reader, self._stderr_reader, self._writer
            writes = self._writes
        core_logger.debug(f"[{self.name}] stopping worker pid={proc.pid}")
        if writes is not None:
            # writer closes stdin once queued frames are out; a well-behaved worker exits on EOF
            writes.put(None)
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.terminate()
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                core_logger.warning(f"[{self.name}] worker pid={proc.pid} ignored SIGTERM; killing")
                proc.kill()
                proc.wait()
        current = threading.current_thread()
        for t in (reader, stderr_reader, writer):
            if t is not None and t is not current:
                t.join(timeout=timeout)
        with self._lock:
            if self._proc is proc:
                # reader did not get to finalize (join timed out)
                self._proc = None
                self._writes = None
                self._exit_code = proc.returncode
            self._state = ChannelState.DISCONNECTED

    # ------------------------------------------------------------------
    # Output
    def send(self, frame: Union[Dict[str, Any], str, bytes]):
        """Queue one frame for the writer thread; never blocks on the pipe."""
        if isinstance(frame, (bytes, bytearray)):
            data = bytes(frame)
        else:
            try:
                data = (frame if isinstance(frame, str) else encode_frame(frame)).encode("utf-8")
            except (TypeError, ValueError) as e:
                raise RequestEncodingError(f"Frame is not JSON serializable: {e}") from e
        if not data.endswith(b"\n"):
            data += b"\n"
        with self._lock:
            writes = self._writes
            if self._state is not ChannelState.CONNECTED or writes is None:
                raise NotConnectedError(f"Channel '{self.name}' is {self._state.value}")
            writes.put(data)

    def _write_loop(self, proc: subprocess.Popen, writes: "queue.Queue[Optional[bytes]]"):
        stream = proc.stdin
        assert stream is not None
        try:
            while True:
                data = writes.get()
                if data is None:
                    break
                try:
                    stream.write(data)
                    stream.flush()
                except (OSError, ValueError) as e:  # BrokenPipeError, write to closed file
                    core_logger.warning(f"[{self.name}] worker stdin closed: {e}")
                    break
        finally:
            try:
                stream.close()
            except (OSError, ValueError):
                pass

    # ------------------------------------------------------------------
    # Reader threads
    def _read_loop(self, proc: subprocess.Popen, framer: LineFramer):
        stream = proc.stdout
        assert stream is not None
        try:
            while True:
                try:
                    chunk = stream.read1(self._read_size)
                except (OSError, ValueError) as e:
                    core_logger.debug(f"[{self.name}] stdout read stopped: {e}")
                    break
                if not chunk:
                    break
                for frame in framer.feed(chunk):
                    self._publish(frame)
            for frame in framer.flush():
                self._publish(frame)
        finally:
            try:
                stream.close()
            except OSError:
                pass
            self._handle_exit(proc)

    def _drain_stderr(self, proc: subprocess.Popen):
        stream = proc.stderr
        assert stream is not None
        try:
            for raw in iter(stream.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line:
                    self._stderr_tail.append(line)
                    worker_logger.debug(f"[{self.name}] {line}")
        except (OSError, ValueError):
            pass
        finally:
            try:
                stream.close()
            except OSError:
                pass

    def _publish(self, frame: Any):
        with self._lock:
            subs = list(self._frame_subs)
        for cb in subs:
            try:
                cb(frame)
            except Exception as e:  # noqa: BLE001
                core_logger.exception(f"[{self.name}] frame subscriber failed: {e}")

    def _handle_exit(self, proc: subprocess.Popen):
        try:
            code = proc.wait(timeout=self._exit_grace_s)
        except subprocess.TimeoutExpired:
            # stdout closed but the process lingers; the channel is unusable either way
            core_logger.warning(f"[{self.name}] worker pid={proc.pid} closed stdout but kept running; killing")
            proc.kill()
            code = proc.wait()
        with self._lock:
            if self._proc is not proc:
                return
            requested = self._stop_requested
            self._proc = None
            self._exit_code = code
            event = ExitEvent(exit_code=code, requested=requested)
            self._state = ChannelState.FAILED if event.failed else ChannelState.DISCONNECTED
            subs = list(self._exit_subs)
            writes, self._writes = self._writes, None
        if writes is not None:
            writes.put(None)
        if event.failed:
            tail = " | ".join(self.stderr_tail[-5:])
            core_logger.error(f"[{self.name}] worker exited unexpectedly code={code} stderr_tail={tail!r}")
        else:
            core_logger.info(f"[{self.name}] worker exited code={code} requested={requested}")
        for cb in subs:
            try:
                cb(event)
            except Exception as e:  # noqa: BLE001
                core_logger.exception(f"[{self.name}] exit subscriber failed: {e}")


__all__ = ["ProcessChannel", "ChannelState", "LaunchSpec", "ExitEvent"]
