"""Invoke Kotlin command line tools inside a toolchain's loading context.

Tool types are never imported into the host. An invoker binds a tool by its
fully-qualified name in a worker process and talks to it through a narrow
structural contract:

    tool = EntryPoint()                 # no-argument constructor
    status = tool.exec(out, args)       # out: text sink, args: list[str]
    code = StatusType.get_code(status)  # int, see ktc_core.status.ExitCode
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Sequence, TextIO

from ktc_core.errors import ToolInvocationError

if TYPE_CHECKING:
    from ktc_core.toolchain import Toolchain

logger = logging.getLogger(__name__)

EXIT_CODE_TYPE = "kotlin.cli.common.ExitCode"


class ToolInvoker:
    """Runs one tool entry point from a toolchain.

    Safe for repeated sequential use. Overlapping calls on the same invoker
    are serialized; bind separate invokers (or toolchains) for parallel
    compilations.
    """

    entry_point: str = ""

    def __init__(
        self,
        toolchain: Toolchain,
        entry_point: str | None = None,
        *,
        status_type: str = EXIT_CODE_TYPE,
        timeout: float | None = None,
    ) -> None:
        """Bind the tool.

        Args:
            toolchain: Toolchain whose loading context hosts the tool.
            entry_point: Fully-qualified tool type. Defaults to the class-level
                         entry_point of concrete invokers.
            status_type: Fully-qualified type providing get_code().
            timeout: Default per-invocation timeout in seconds.

        Raises:
            EntryPointError: If the tool or status type is not in the context.
        """
        self.entry_point = entry_point or self.entry_point
        if not self.entry_point:
            raise ValueError(f"{type(self).__name__} needs an entry point")
        self.status_type = status_type
        self.timeout = timeout
        self._lock = threading.Lock()
        self._process = toolchain.context.spawn(self.entry_point, status_type)

    def invoke(self, args: Sequence[str], out: TextIO, timeout: float | None = None) -> int:
        """Run the tool and return its exit code unchanged.

        Codes 1-3 are the tool's own verdict and are returned, not raised.

        Args:
            args: Command line arguments for the tool.
            out: Sink that receives the tool's diagnostics as they are written,
                 including those of a run that timed out.
            timeout: Overrides the invoker's default timeout.

        Raises:
            ToolTimeoutError: If the run exceeded its timeout.
            ToolInvocationError: If the tool raised or its worker died.
        """
        with self._lock:
            logger.debug("Invoking %s with %d args", self.entry_point, len(args))
            try:
                reply = self._process.request(
                    args,
                    timeout if timeout is not None else self.timeout,
                    on_output=out.write,
                )
            finally:
                out.flush()

        if reply.get("event") != "result":
            raise ToolInvocationError(
                f"{self.entry_point} failed: {reply.get('message', reply)}"
            )
        return int(reply["code"])

    def close(self) -> None:
        """Stop the worker hosting the tool."""
        self._process.close()

    def __enter__(self) -> ToolInvoker:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class KotlincInvoker(ToolInvoker):
    """Compiles Kotlin to JVM bytecode."""

    entry_point = "kotlin_builder.compiler.BazelK2JVMCompiler"


class K2JSCompilerInvoker(ToolInvoker):
    """Compiles Kotlin to JavaScript."""

    entry_point = "kotlin.cli.js.K2JSCompiler"
