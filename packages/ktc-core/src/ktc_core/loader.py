"""Build isolated loading contexts over a fixed list of tool artifacts.

A loading context is the import search path a tool runs against: the
artifacts first, in the order given, then whatever the host interpreter can
see. Tools never run in the host process. Each bound tool gets a worker
interpreter started in isolated mode with the artifacts prepended to its
``sys.path``, so an artifact module always shadows a host module of the
same name.
"""

from __future__ import annotations

import logging
import platform
import sys
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence

from ktc_core.errors import LoadingContextError

if TYPE_CHECKING:
    from ktc_core.process import IsolatedProcess

logger = logging.getLogger(__name__)

# Runtime-image subdirectory some installations report as their home
LEGACY_RUNTIME_IMAGE = "jre"

# Compatibility library required by pre-modern runtimes, relative to the home
LEGACY_SYSTEM_LIBRARY = ("lib", "tools.zip")

_MODULE_SUFFIXES = (".py", ".pyc")


@dataclass(frozen=True)
class LoadingContext:
    """Immutable, preloaded view of a tool artifact set.

    Attributes:
        base_path: Runtime home the context was built against.
        artifacts: Artifacts in resolution order.
        interpreter: Interpreter used to start workers.
        host_path: Import path searched after the artifacts, empty to use
                   the worker interpreter's own path.
        modules: Every module found in the artifacts, mapped to the first
                 artifact that provides it.
    """

    base_path: Path
    artifacts: tuple[Path, ...]
    interpreter: str
    host_path: tuple[str, ...] = ()
    modules: Mapping[str, Path] = field(default_factory=dict, repr=False, hash=False)

    def provides(self, module: str) -> bool:
        """Check whether one of the artifacts defines ``module``."""
        return module in self.modules

    def origin(self, module: str) -> Path | None:
        """Return the artifact a module resolves to, or None for host modules."""
        return self.modules.get(module)

    def spawn(self, entry_point: str, status_type: str) -> IsolatedProcess:
        """Start a worker with ``entry_point`` bound inside this context."""
        from ktc_core.process import IsolatedProcess

        return IsolatedProcess(self, entry_point, status_type)


def is_legacy_runtime(version: str) -> bool:
    """Return True for runtimes that predate the modern import system."""
    return version.split(".", 1)[0] == "2"


def runtime_home(home: str | Path | None = None) -> Path:
    """Resolve the host runtime root.

    Defaults to the base prefix of the running interpreter (outside any
    virtualenv). A home that points into the legacy runtime-image
    subdirectory is moved up to its parent.
    """
    path = Path(home) if home is not None else Path(sys.base_prefix)
    if path.name == LEGACY_RUNTIME_IMAGE:
        path = path.parent
    return path.absolute()


def _module_name(member: str) -> str | None:
    """Map an archive member or relative file path to a module name."""
    name = member.replace("\\", "/")
    for suffix in _MODULE_SUFFIXES:
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            break
    else:
        return None

    parts = [p for p in name.split("/") if p]
    if not parts or "__pycache__" in parts:
        return None
    if parts[-1] == "__init__":
        parts = parts[:-1]
    if not parts or not all(p.isidentifier() for p in parts):
        return None
    return ".".join(parts)


def _preload(artifact: Path) -> list[str]:
    """List every module an artifact provides.

    Raises:
        OSError: If the artifact cannot be read.
        zipfile.BadZipFile: If a file artifact is not an archive.
    """
    if artifact.is_dir():
        members: Iterable[str] = (
            p.relative_to(artifact).as_posix() for p in artifact.rglob("*") if p.is_file()
        )
    else:
        with zipfile.ZipFile(artifact) as archive:
            members = archive.namelist()

    return [name for name in map(_module_name, members) if name is not None]


def build_loading_context(
    base_path: Path,
    artifacts: Sequence[Path],
    *,
    runtime_version: str | None = None,
    interpreter: str | None = None,
) -> LoadingContext:
    """Preload ``artifacts`` into a new loading context.

    Construction is all-or-nothing: any artifact that cannot be read aborts
    the whole context.

    Args:
        base_path: Host runtime home.
        artifacts: Artifact files or directories, in resolution order.
        runtime_version: Host runtime version. Defaults to the running
                         interpreter's version.
        interpreter: Interpreter used for workers. Defaults to sys.executable,
                     in which case workers also see the host's sys.path.

    Returns:
        The constructed LoadingContext.

    Raises:
        LoadingContextError: Wrapping the underlying failure together with
                             the base path and the full artifact list.
    """
    version = runtime_version or platform.python_version()
    paths = [Path(a) for a in artifacts]
    if is_legacy_runtime(version):
        paths.append(Path(base_path).joinpath(*LEGACY_SYSTEM_LIBRARY))

    modules: dict[str, Path] = {}
    try:
        for artifact in paths:
            for name in _preload(artifact):
                modules.setdefault(name, artifact)
    except (OSError, zipfile.BadZipFile, MemoryError) as e:
        raise LoadingContextError(base_path, paths) from e

    context = LoadingContext(
        base_path=Path(base_path),
        artifacts=tuple(paths),
        interpreter=interpreter or sys.executable,
        host_path=tuple(p for p in sys.path if p) if interpreter is None else (),
        modules=MappingProxyType(modules),
    )
    logger.info(
        "Built loading context with %d artifacts (%d modules) at %s",
        len(paths),
        len(modules),
        base_path,
    )
    return context
