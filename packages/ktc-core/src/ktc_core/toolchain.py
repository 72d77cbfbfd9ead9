"""Assemble the Kotlin toolchain: one loading context plus its compiler plugins."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Sequence

from ktc_core import artifacts
from ktc_core.artifacts import ArtifactResolver, ManifestResolver
from ktc_core.config import ToolchainSettings
from ktc_core.errors import ToolchainError
from ktc_core.loader import LoadingContext, build_loading_context, runtime_home

logger = logging.getLogger(__name__)


class PluginKind(Enum):
    """Compiler plugins shipped with the toolchain, in load order.

    The value of each kind is its artifact key.
    """

    JVM_ABI_GEN = artifacts.JVM_ABI_GEN
    SKIP_CODE_GEN = artifacts.SKIP_CODE_GEN
    JDEPS_GEN = artifacts.JDEPS_GEN
    KAPT = artifacts.KAPT
    KSP_SYMBOL_PROCESSING_API = artifacts.KSP_SYMBOL_PROCESSING_API
    KSP_SYMBOL_PROCESSING_CMDLINE = artifacts.KSP_SYMBOL_PROCESSING_CMDLINE

    @property
    def plugin_id(self) -> str:
        """Logical plugin id passed to the compiler."""
        return PLUGIN_IDS[self]


PLUGIN_IDS: dict[PluginKind, str] = {
    PluginKind.JVM_ABI_GEN: "org.jetbrains.kotlin.jvm.abi",
    PluginKind.SKIP_CODE_GEN: "io.bazel.kotlin.plugin.SkipCodeGen",
    PluginKind.JDEPS_GEN: "io.bazel.kotlin.plugin.jdeps.JDepsGen",
    PluginKind.KAPT: "org.jetbrains.kotlin.kapt3",
    # Both KSP artifacts register under the same id
    PluginKind.KSP_SYMBOL_PROCESSING_API: "com.google.devtools.ksp.symbol-processing",
    PluginKind.KSP_SYMBOL_PROCESSING_CMDLINE: "com.google.devtools.ksp.symbol-processing",
}


@dataclass(frozen=True)
class CompilerPlugin:
    """A compiler plugin known to a toolchain's loading context."""

    location: Path
    id: str


@dataclass(frozen=True)
class ToolchainArtifacts:
    """Every file a toolchain is built from.

    Attributes:
        base_path: Host runtime home.
        compiler: Compiler artifacts in load order (kotlinc, then the builder).
        plugins: Artifact for each PluginKind.
    """

    base_path: Path
    compiler: tuple[Path, ...]
    plugins: Mapping[PluginKind, Path] = field(default_factory=dict, hash=False)

    @classmethod
    def resolve(cls, resolver: ArtifactResolver, base_path: Path) -> ToolchainArtifacts:
        """Resolve the default artifact set through ``resolver``."""
        return cls(
            base_path=base_path,
            compiler=(
                resolver.resolve(artifacts.KOTLINC),
                resolver.resolve(artifacts.COMPILER),
            ),
            plugins=MappingProxyType({kind: resolver.resolve(kind.value) for kind in PluginKind}),
        )


@dataclass(frozen=True)
class Toolchain:
    """Immutable bundle of a loading context and its compiler plugins.

    Build it once per process and share it; every invoker bound to it runs
    against the same artifacts.
    """

    context: LoadingContext
    plugins: Mapping[PluginKind, CompilerPlugin] = field(hash=False)

    def plugin(self, kind: PluginKind) -> CompilerPlugin:
        return self.plugins[kind]

    @property
    def jvm_abi_gen(self) -> CompilerPlugin:
        return self.plugins[PluginKind.JVM_ABI_GEN]

    @property
    def skip_code_gen(self) -> CompilerPlugin:
        return self.plugins[PluginKind.SKIP_CODE_GEN]

    @property
    def jdeps_gen(self) -> CompilerPlugin:
        return self.plugins[PluginKind.JDEPS_GEN]

    @property
    def kapt3(self) -> CompilerPlugin:
        return self.plugins[PluginKind.KAPT]

    @property
    def ksp_symbol_processing_api(self) -> CompilerPlugin:
        return self.plugins[PluginKind.KSP_SYMBOL_PROCESSING_API]

    @property
    def ksp_symbol_processing_cmdline(self) -> CompilerPlugin:
        return self.plugins[PluginKind.KSP_SYMBOL_PROCESSING_CMDLINE]


def create_toolchain(
    base_path: Path,
    compiler: Sequence[Path],
    plugins: Mapping[PluginKind, Path],
    *,
    runtime_version: str | None = None,
    interpreter: str | None = None,
) -> Toolchain:
    """Build a toolchain from explicit artifact paths.

    Plugins must be preloaded together with the compiler: the context is
    built over ``[*compiler, *plugins]`` with plugins in PluginKind order.

    Args:
        base_path: Host runtime home.
        compiler: Compiler artifacts in load order.
        plugins: Artifact for every PluginKind.
        runtime_version: Host runtime version, see build_loading_context.
        interpreter: Worker interpreter, see build_loading_context.

    Raises:
        ToolchainError: If a plugin kind is missing or unknown, or a plugin
                        is not one of the context's artifacts.
        LoadingContextError: If any artifact cannot be preloaded.
    """
    if not compiler:
        raise ToolchainError("At least one compiler artifact is required")

    unknown = [k for k in plugins if not isinstance(k, PluginKind)]
    if unknown:
        raise ToolchainError(f"Unknown plugin kinds: {unknown}")
    missing = [k.value for k in PluginKind if k not in plugins]
    if missing:
        raise ToolchainError(f"Missing plugin artifacts: {', '.join(missing)}")

    plugin_paths = [Path(plugins[kind]) for kind in PluginKind]
    context = build_loading_context(
        Path(base_path),
        [*(Path(c) for c in compiler), *plugin_paths],
        runtime_version=runtime_version,
        interpreter=interpreter,
    )

    descriptors = {
        kind: CompilerPlugin(location=path, id=kind.plugin_id)
        for kind, path in zip(PluginKind, plugin_paths)
    }
    outside = [d.location for d in descriptors.values() if d.location not in context.artifacts]
    if outside:
        raise ToolchainError(f"Plugins not loaded by the toolchain context: {outside}")

    logger.info("Assembled toolchain with %d plugins", len(descriptors))
    return Toolchain(context=context, plugins=MappingProxyType(descriptors))


def create_default_toolchain(settings: ToolchainSettings) -> Toolchain:
    """Resolve the default artifact set from ``settings`` and build a toolchain."""
    if settings.artifact_manifest is None:
        raise ToolchainError(
            "No artifact manifest configured. Set KTC_ARTIFACT_MANIFEST to the "
            "YAML file listing the toolchain artifacts."
        )

    resolved = ToolchainArtifacts.resolve(
        ManifestResolver(settings.artifact_manifest),
        runtime_home(settings.runtime_home),
    )
    return create_toolchain(
        resolved.base_path,
        resolved.compiler,
        resolved.plugins,
        interpreter=settings.interpreter,
    )


_default_lock = threading.Lock()
_default_toolchain: Toolchain | None = None


def default_toolchain(settings: ToolchainSettings | None = None) -> Toolchain:
    """Return the process-wide default toolchain, building it on first use.

    Concurrent callers block until the first build finishes and then share
    its result. ``settings`` is only consulted by the call that builds. A
    failed build is not cached.
    """
    global _default_toolchain
    with _default_lock:
        if _default_toolchain is None:
            _default_toolchain = create_default_toolchain(settings or ToolchainSettings())
        return _default_toolchain
