"""Exit codes reported by the Kotlin command line tools."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Outcome of a tool run.

    Invokers return the raw integer unchanged; this enum only names the
    known values for callers that want to branch on them.
    """

    OK = 0
    COMPILATION_ERROR = 1
    INTERNAL_ERROR = 2
    SCRIPT_EXECUTION_ERROR = 3
