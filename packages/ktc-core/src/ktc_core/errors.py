"""Exceptions raised while assembling or running a toolchain.

Assembly errors (``ToolchainError`` and subclasses) are fatal: no partially
built toolchain or invoker is ever returned. Exit codes produced by a tool
are ordinary data and never surface as exceptions.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class ToolchainError(RuntimeError):
    """A toolchain or invoker could not be assembled."""


class ArtifactResolutionError(ToolchainError):
    """An artifact key could not be resolved to an existing file."""


class LoadingContextError(ToolchainError):
    """Preloading the artifacts of a loading context failed.

    Attributes:
        base_path: Runtime home the context was built against.
        artifacts: Full, ordered artifact list that was being loaded.
    """

    def __init__(self, base_path: Path, artifacts: Sequence[Path]) -> None:
        self.base_path = base_path
        self.artifacts = tuple(artifacts)
        super().__init__(f"{base_path}, {[str(a) for a in self.artifacts]}")


class EntryPointError(ToolchainError):
    """A tool entry point or its status type is missing from the context."""


class ToolInvocationError(RuntimeError):
    """A tool run ended without producing a status."""


class ToolTimeoutError(ToolInvocationError):
    """A tool run exceeded its timeout and the worker was killed."""
