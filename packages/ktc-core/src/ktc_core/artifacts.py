"""Resolve symbolic artifact keys to verified files.

The default toolchain is described by an artifact manifest, a YAML file
mapping each well-known key to an archive on disk:

    artifacts:
      kotlinc: external/kotlin/kotlin-compiler.zip
      compiler: bazel-bin/compiler.zip
      jvm-abi-gen: external/kotlin/jvm-abi-gen.zip
      ...

Relative paths are resolved against the directory holding the manifest.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from ktc_core.errors import ArtifactResolutionError

logger = logging.getLogger(__name__)

# Compiler artifacts, in load order
KOTLINC = "kotlinc"
COMPILER = "compiler"

# Plugin artifacts
JVM_ABI_GEN = "jvm-abi-gen"
SKIP_CODE_GEN = "skip-code-gen"
JDEPS_GEN = "jdeps-gen"
KAPT = "kapt"
KSP_SYMBOL_PROCESSING_API = "ksp-symbol-processing-api"
KSP_SYMBOL_PROCESSING_CMDLINE = "ksp-symbol-processing-cmdline"


@runtime_checkable
class ArtifactResolver(Protocol):
    """Maps an artifact key to an existing, absolute file path."""

    def resolve(self, key: str) -> Path:
        """Return the verified path for ``key``.

        Raises:
            ArtifactResolutionError: If the artifact cannot be located.
        """
        ...


def verified_path(path: str | Path) -> Path:
    """Return ``path`` as an absolute path, failing if it does not exist."""
    resolved = Path(path).absolute()
    if not resolved.exists():
        raise ArtifactResolutionError(f"{resolved} does not exist")
    return resolved


class ManifestResolver:
    """ArtifactResolver backed by a YAML artifact manifest."""

    def __init__(self, manifest_path: Path):
        self._manifest_path = Path(manifest_path).absolute()
        self._entries: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        """Load the manifest (result is cached)."""
        if self._entries is not None:
            return self._entries

        try:
            data = yaml.safe_load(self._manifest_path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ArtifactResolutionError(
                f"Cannot read artifact manifest {self._manifest_path}: {e}"
            ) from e

        entries = data.get("artifacts") if isinstance(data, dict) else None
        if not isinstance(entries, dict):
            raise ArtifactResolutionError(
                f"Artifact manifest {self._manifest_path} has no 'artifacts' mapping"
            )

        logger.debug("Loaded %d artifact entries from %s", len(entries), self._manifest_path)
        self._entries = entries
        return self._entries

    def resolve(self, key: str) -> Path:
        entries = self._load()
        if key not in entries:
            raise ArtifactResolutionError(
                f"Artifact '{key}' is not declared in {self._manifest_path}"
            )
        path = Path(str(entries[key]))
        if not path.is_absolute():
            path = self._manifest_path.parent / path
        return verified_path(path)
