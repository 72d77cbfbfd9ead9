"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest
import yaml

from ktc_core import toolchain as toolchain_module
from ktc_core.toolchain import Toolchain, create_toolchain
from tests.fakes import build_artifacts


@pytest.fixture
def artifact_set(tmp_path):
    """A known-good artifact set in a temporary directory."""
    return build_artifacts(tmp_path / "artifacts")


@pytest.fixture
def toolchain(artifact_set) -> Toolchain:
    """Toolchain built from artifact_set."""
    return create_toolchain(
        artifact_set.base_path,
        artifact_set.compiler,
        artifact_set.plugins,
        runtime_version="3.12.0",
    )


@pytest.fixture
def manifest(artifact_set, tmp_path):
    """Artifact manifest describing artifact_set with paths relative to it."""
    root = tmp_path / "artifacts"
    entries = {
        "kotlinc": artifact_set.compiler[0].relative_to(root).as_posix(),
        "compiler": artifact_set.compiler[1].relative_to(root).as_posix(),
    }
    for kind, path in artifact_set.plugins.items():
        entries[kind.value] = path.relative_to(root).as_posix()

    manifest_path = root / "artifacts.yaml"
    manifest_path.write_text(yaml.dump({"artifacts": entries}))
    return manifest_path


@pytest.fixture
def sources(tmp_path):
    """Kotlin source files: one valid, one with a syntax error."""
    src = tmp_path / "src"
    src.mkdir()
    good = src / "Main.kt"
    good.write_text('fun main() {\n    println("hello")\n}\n')
    broken = src / "Broken.kt"
    broken.write_text('fun main() {\n    println("hello")\n')
    return {"good": good, "broken": broken}


@pytest.fixture
def reset_default_toolchain(monkeypatch):
    """Forget any memoized default toolchain for the duration of a test."""
    monkeypatch.setattr(toolchain_module, "_default_toolchain", None)
