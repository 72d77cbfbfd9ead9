"""Tests for toolchain assembly."""

from __future__ import annotations

import threading
import time
from dataclasses import FrozenInstanceError
from pathlib import Path
from unittest.mock import patch

import pytest

from ktc_core.config import ToolchainSettings
from ktc_core.errors import ArtifactResolutionError, LoadingContextError, ToolchainError
from ktc_core.loader import LoadingContext
from ktc_core.toolchain import (
    CompilerPlugin,
    PluginKind,
    ToolchainArtifacts,
    create_default_toolchain,
    create_toolchain,
    default_toolchain,
)
from tests.fakes import build_artifacts

EXPECTED_IDS = {
    PluginKind.JVM_ABI_GEN: "org.jetbrains.kotlin.jvm.abi",
    PluginKind.SKIP_CODE_GEN: "io.bazel.kotlin.plugin.SkipCodeGen",
    PluginKind.JDEPS_GEN: "io.bazel.kotlin.plugin.jdeps.JDepsGen",
    PluginKind.KAPT: "org.jetbrains.kotlin.kapt3",
    PluginKind.KSP_SYMBOL_PROCESSING_API: "com.google.devtools.ksp.symbol-processing",
    PluginKind.KSP_SYMBOL_PROCESSING_CMDLINE: "com.google.devtools.ksp.symbol-processing",
}


class DictResolver:
    """ArtifactResolver test double backed by a plain dict."""

    def __init__(self, paths: dict[str, Path]):
        self.paths = paths

    def resolve(self, key: str) -> Path:
        if key not in self.paths:
            raise ArtifactResolutionError(f"unknown artifact {key}")
        return self.paths[key]


def _resolver_for(artifact_set: ToolchainArtifacts) -> DictResolver:
    paths = {"kotlinc": artifact_set.compiler[0], "compiler": artifact_set.compiler[1]}
    paths.update({kind.value: path for kind, path in artifact_set.plugins.items()})
    return DictResolver(paths)


# ---------------------------------------------------------------------------
# create_toolchain
# ---------------------------------------------------------------------------


def test_descriptors_have_expected_ids(toolchain, artifact_set):
    assert set(toolchain.plugins) == set(PluginKind)
    for kind, plugin in toolchain.plugins.items():
        assert plugin == CompilerPlugin(location=artifact_set.plugins[kind], id=EXPECTED_IDS[kind])


def test_context_order_is_compiler_then_plugins(toolchain, artifact_set):
    expected = [*artifact_set.compiler, *(artifact_set.plugins[kind] for kind in PluginKind)]
    assert list(toolchain.context.artifacts) == expected


def test_every_plugin_is_preloaded(toolchain):
    for plugin in toolchain.plugins.values():
        assert plugin.location in toolchain.context.artifacts


def test_named_plugin_accessors(toolchain):
    assert toolchain.jvm_abi_gen.id == "org.jetbrains.kotlin.jvm.abi"
    assert toolchain.skip_code_gen.id == "io.bazel.kotlin.plugin.SkipCodeGen"
    assert toolchain.jdeps_gen.id == "io.bazel.kotlin.plugin.jdeps.JDepsGen"
    assert toolchain.kapt3.id == "org.jetbrains.kotlin.kapt3"
    assert toolchain.ksp_symbol_processing_api is toolchain.plugin(PluginKind.KSP_SYMBOL_PROCESSING_API)
    assert toolchain.ksp_symbol_processing_cmdline is toolchain.plugin(
        PluginKind.KSP_SYMBOL_PROCESSING_CMDLINE
    )


def test_toolchain_is_immutable(toolchain):
    with pytest.raises(FrozenInstanceError):
        toolchain.context = None
    with pytest.raises(TypeError):
        toolchain.plugins[PluginKind.KAPT] = CompilerPlugin(Path("/tmp/other.zip"), "other")


def test_toolchain_is_hashable(toolchain, artifact_set):
    same = create_toolchain(
        artifact_set.base_path,
        artifact_set.compiler,
        artifact_set.plugins,
        runtime_version="3.12.0",
    )

    assert hash(toolchain) == hash(same)
    assert {toolchain: "jvm"}[same] == "jvm"
    assert hash(artifact_set) == hash(artifact_set)


def test_missing_plugin_kind(artifact_set):
    plugins = dict(artifact_set.plugins)
    del plugins[PluginKind.KAPT]

    with pytest.raises(ToolchainError, match="Missing plugin artifacts: kapt"):
        create_toolchain(artifact_set.base_path, artifact_set.compiler, plugins)


def test_unknown_plugin_kind(artifact_set):
    plugins = {**artifact_set.plugins, "allopen": artifact_set.compiler[0]}

    with pytest.raises(ToolchainError, match="Unknown plugin kinds"):
        create_toolchain(artifact_set.base_path, artifact_set.compiler, plugins)


def test_no_compiler(artifact_set):
    with pytest.raises(ToolchainError, match="compiler artifact"):
        create_toolchain(artifact_set.base_path, (), artifact_set.plugins)


def test_plugin_outside_context_is_rejected(artifact_set):
    compiler_only = LoadingContext(
        base_path=artifact_set.base_path,
        artifacts=artifact_set.compiler,
        interpreter="python3",
    )

    with patch("ktc_core.toolchain.build_loading_context", return_value=compiler_only):
        with pytest.raises(ToolchainError, match="Plugins not loaded by the toolchain context"):
            create_toolchain(artifact_set.base_path, artifact_set.compiler, artifact_set.plugins)


def test_nonexistent_plugin_fails_before_any_toolchain(artifact_set, tmp_path):
    resolver = _resolver_for(artifact_set)
    resolver.paths[PluginKind.JDEPS_GEN.value] = tmp_path / "gone" / "jdeps-gen.zip"
    resolved = ToolchainArtifacts.resolve(resolver, artifact_set.base_path)

    with pytest.raises(LoadingContextError) as excinfo:
        create_toolchain(resolved.base_path, resolved.compiler, resolved.plugins)

    assert tmp_path / "gone" / "jdeps-gen.zip" in excinfo.value.artifacts
    assert excinfo.value.base_path == artifact_set.base_path


def test_two_toolchains_have_independent_contexts(artifact_set):
    one = create_toolchain(artifact_set.base_path, artifact_set.compiler, artifact_set.plugins)
    two = create_toolchain(artifact_set.base_path, artifact_set.compiler, artifact_set.plugins)

    assert one.context is not two.context
    assert one.context.artifacts == two.context.artifacts


# ---------------------------------------------------------------------------
# ToolchainArtifacts
# ---------------------------------------------------------------------------


def test_artifacts_resolve_default_set(artifact_set):
    resolved = ToolchainArtifacts.resolve(_resolver_for(artifact_set), artifact_set.base_path)

    assert resolved.compiler == artifact_set.compiler
    assert dict(resolved.plugins) == dict(artifact_set.plugins)


def test_artifacts_resolve_propagates_resolver_errors(artifact_set):
    resolver = _resolver_for(artifact_set)
    del resolver.paths["kapt"]

    with pytest.raises(ArtifactResolutionError, match="kapt"):
        ToolchainArtifacts.resolve(resolver, artifact_set.base_path)


# ---------------------------------------------------------------------------
# Default toolchain
# ---------------------------------------------------------------------------


def test_create_default_toolchain_from_manifest(manifest, artifact_set, tmp_path):
    settings = ToolchainSettings(artifact_manifest=manifest, runtime_home=tmp_path / "jdk" / "jre")

    toolchain = create_default_toolchain(settings)

    assert toolchain.context.base_path == tmp_path / "jdk"
    assert toolchain.context.artifacts[:2] == artifact_set.compiler
    assert toolchain.kapt3.location == artifact_set.plugins[PluginKind.KAPT]


def test_create_default_toolchain_requires_manifest():
    with pytest.raises(ToolchainError, match="KTC_ARTIFACT_MANIFEST"):
        create_default_toolchain(ToolchainSettings(artifact_manifest=None))


def test_default_toolchain_reads_environment(reset_default_toolchain, manifest, monkeypatch):
    monkeypatch.setenv("KTC_ARTIFACT_MANIFEST", str(manifest))

    toolchain = default_toolchain()

    assert toolchain is default_toolchain()
    assert len(toolchain.plugins) == len(PluginKind)


def test_default_toolchain_built_once_under_concurrency(reset_default_toolchain, tmp_path):
    built = build_artifacts(tmp_path / "concurrent")
    calls = []

    def slow_build(settings):
        calls.append(settings)
        time.sleep(0.2)
        return create_toolchain(built.base_path, built.compiler, built.plugins)

    results = []
    with patch("ktc_core.toolchain.create_default_toolchain", side_effect=slow_build):
        threads = [
            threading.Thread(target=lambda: results.append(default_toolchain(ToolchainSettings())))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    assert len(calls) == 1
    assert len(results) == 8
    assert all(result is results[0] for result in results)


def test_default_toolchain_failure_is_not_cached(reset_default_toolchain, manifest):
    with pytest.raises(ToolchainError):
        default_toolchain(ToolchainSettings(artifact_manifest=None))

    toolchain = default_toolchain(ToolchainSettings(artifact_manifest=manifest))

    assert toolchain.context.artifacts
