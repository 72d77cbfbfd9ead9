"""Parent side of the worker stdio protocol.

See ``ktc_core._worker`` for the message format. This module starts the
worker, sends it the loading context, waits for it to report the bound tool,
and exchanges one request per invocation. Output the tool writes is relayed
while it runs, so a killed tool still leaves its diagnostics behind.
"""

from __future__ import annotations

import json
import logging
import queue
import subprocess
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Sequence

from ktc_core.errors import EntryPointError, ToolInvocationError, ToolTimeoutError

if TYPE_CHECKING:
    from ktc_core.loader import LoadingContext

logger = logging.getLogger(__name__)

WORKER_SCRIPT = Path(__file__).with_name("_worker.py")

# Seconds allowed for a worker to import and instantiate its tool
STARTUP_TIMEOUT = 60.0

_EOF = None


class IsolatedProcess:
    """A worker interpreter with one tool bound inside a loading context."""

    def __init__(
        self,
        context: LoadingContext,
        entry_point: str,
        status_type: str,
        startup_timeout: float = STARTUP_TIMEOUT,
    ) -> None:
        self.entry_point = entry_point
        spec = {
            "entry_point": entry_point,
            "status_type": status_type,
            "artifacts": [str(a) for a in context.artifacts],
            "host_path": list(context.host_path),
            "modules": sorted(context.modules),
        }
        cmd = [context.interpreter, "-I", str(WORKER_SCRIPT)]
        try:
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                text=True,
                encoding="utf-8",
            )
        except OSError as e:
            raise EntryPointError(
                f"Cannot start worker for {entry_point} with {context.interpreter}: {e}"
            ) from e

        self._replies: queue.Queue[dict[str, Any] | None] = queue.Queue()
        self._reader = threading.Thread(
            target=self._pump, name=f"ktc-worker-{self._proc.pid}", daemon=True
        )
        self._reader.start()

        try:
            self._send(spec)
            reply = self._receive(startup_timeout)
        except ToolInvocationError as e:
            self.close()
            raise EntryPointError(f"Worker for {entry_point} failed to start: {e}") from e

        if reply.get("event") != "ready":
            self.close()
            raise EntryPointError(
                f"Cannot bind {entry_point}: {reply.get('message', reply)}"
            )

        logger.info("Bound %s in worker pid %d", entry_point, self._proc.pid)

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def alive(self) -> bool:
        return self._proc.poll() is None

    def _pump(self) -> None:
        """Forward protocol lines from the worker's stdout to the reply queue."""
        stdout = self._proc.stdout
        if stdout is None:
            raise RuntimeError("subprocess.Popen stdout is None despite stdout=PIPE")
        for line in stdout:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                self._replies.put(json.loads(stripped))
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed reply from %s: %r", self.entry_point, stripped[:200])
        self._replies.put(_EOF)

    def _receive(self, timeout: float | None) -> dict[str, Any]:
        try:
            reply = self._replies.get(timeout=timeout)
        except queue.Empty:
            logger.warning(
                "Worker pid %d for %s did not reply in time, killing it",
                self._proc.pid,
                self.entry_point,
            )
            self._kill()
            raise ToolTimeoutError(f"{self.entry_point} did not finish within {timeout}s") from None

        if reply is _EOF:
            code = self._proc.wait()
            raise ToolInvocationError(f"Worker for {self.entry_point} exited with code {code}")
        return reply

    def _send(self, message: dict[str, Any]) -> None:
        if self._proc.stdin is None:
            raise ToolInvocationError(f"Worker for {self.entry_point} is not running")
        try:
            self._proc.stdin.write(json.dumps(message) + "\n")
            self._proc.stdin.flush()
        except OSError as e:
            raise ToolInvocationError(f"Worker for {self.entry_point} went away: {e}") from e

    def request(
        self,
        args: Sequence[str],
        timeout: float | None = None,
        on_output: Callable[[str], object] | None = None,
    ) -> dict[str, Any]:
        """Send one invocation to the worker and wait for its final reply.

        Args:
            args: Tool arguments.
            timeout: Seconds for the whole invocation, None to wait forever.
            on_output: Called with each chunk of text the tool writes.

        Returns:
            The ``result`` or ``failure`` message.
        """
        if not self.alive:
            raise ToolInvocationError(f"Worker for {self.entry_point} is not running")
        self._send({"args": list(args)})

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                reply = self._receive(remaining)
            except ToolTimeoutError:
                raise ToolTimeoutError(
                    f"{self.entry_point} did not finish within {timeout}s"
                ) from None
            if reply.get("event") != "output":
                return reply
            if on_output is not None:
                on_output(reply.get("text", ""))

    def _kill(self) -> None:
        self._proc.kill()
        self._proc.wait()

    def close(self) -> None:
        """Stop the worker. Safe to call more than once."""
        if self._proc.stdin is not None and not self._proc.stdin.closed:
            try:
                self._proc.stdin.close()
            except OSError as e:
                logger.debug("Worker pid %d already gone: %s", self._proc.pid, e)
        try:
            self._proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._kill()
