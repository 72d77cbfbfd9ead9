"""Toolchain settings loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class ToolchainSettings(BaseSettings):
    """KTC settings.

    All values can be overridden via environment variables with the
    KTC_ prefix. Example: KTC_ARTIFACT_MANIFEST=/opt/kotlin/artifacts.yaml
    """

    artifact_manifest: Path | None = None  # YAML mapping artifact keys to files
    runtime_home: Path | None = None  # defaults to the host interpreter's prefix
    interpreter: str | None = None  # worker interpreter, defaults to sys.executable
    invoke_timeout_seconds: float | None = None  # None waits forever

    model_config = {"env_prefix": "KTC_"}
