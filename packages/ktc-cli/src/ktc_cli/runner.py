"""Run a compiler from the toolchain with console output."""

from __future__ import annotations

import logging
import sys
from typing import Sequence, TextIO

from ktc_core.errors import ToolchainError, ToolInvocationError, ToolTimeoutError
from ktc_core.invoker import K2JSCompilerInvoker, KotlincInvoker, ToolInvoker
from ktc_core.status import ExitCode
from ktc_core.toolchain import Toolchain

logger = logging.getLogger(__name__)

# CLI target name -> invoker bound to that compiler
INVOKERS: dict[str, type[ToolInvoker]] = {
    "jvm": KotlincInvoker,
    "js": K2JSCompilerInvoker,
}

# Exit code for a compiler killed by its timeout
_TIMEOUT_EXIT_CODE = 124


def run_compiler(
    toolchain: Toolchain,
    target: str,
    args: Sequence[str],
    timeout: float | None = None,
    out: TextIO | None = None,
) -> int:
    """Run the compiler for ``target`` and return a process exit code.

    Args:
        toolchain: Toolchain hosting the compilers.
        target: Key of INVOKERS ("jvm" or "js").
        args: Arguments passed to the compiler verbatim.
        timeout: Seconds before the compiler is killed.
        out: Diagnostics sink, stdout by default.

    Returns:
        The compiler's exit code, 2 if it could not be run, 124 on timeout.
    """
    out = out or sys.stdout
    invoker_type = INVOKERS[target]

    try:
        with invoker_type(toolchain, timeout=timeout) as invoker:
            code = invoker.invoke(list(args), out)
    except ToolTimeoutError as e:
        print(f"Error: {e}", file=sys.stderr)
        return _TIMEOUT_EXIT_CODE
    except (ToolchainError, ToolInvocationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return ExitCode.INTERNAL_ERROR

    logger.debug("%s compiler exited with %d", target, code)
    return code


def describe_toolchain(toolchain: Toolchain, out: TextIO | None = None) -> None:
    """Print the artifacts and plugins a toolchain was built from."""
    out = out or sys.stdout
    context = toolchain.context
    print(f"Runtime home: {context.base_path}", file=out)
    print(f"Interpreter:  {context.interpreter}", file=out)
    print("\nArtifacts (resolution order):", file=out)
    for artifact in context.artifacts:
        print(f"  {artifact}", file=out)
    print("\nCompiler plugins:", file=out)
    for kind, plugin in toolchain.plugins.items():
        print(f"  {kind.value:<32} {plugin.id}", file=out)
        print(f"  {'':<32} {plugin.location}", file=out)
