"""KTC Core: isolated invocation of the Kotlin compiler toolchain."""

from ktc_core.errors import (
    ArtifactResolutionError,
    EntryPointError,
    LoadingContextError,
    ToolchainError,
    ToolInvocationError,
    ToolTimeoutError,
)
from ktc_core.invoker import K2JSCompilerInvoker, KotlincInvoker, ToolInvoker
from ktc_core.loader import LoadingContext, build_loading_context
from ktc_core.status import ExitCode
from ktc_core.toolchain import (
    CompilerPlugin,
    PluginKind,
    Toolchain,
    create_toolchain,
    default_toolchain,
)

__version__ = "0.1.0"

__all__ = [
    "ArtifactResolutionError",
    "CompilerPlugin",
    "EntryPointError",
    "ExitCode",
    "K2JSCompilerInvoker",
    "KotlincInvoker",
    "LoadingContext",
    "LoadingContextError",
    "PluginKind",
    "ToolInvocationError",
    "ToolInvoker",
    "ToolTimeoutError",
    "Toolchain",
    "ToolchainError",
    "build_loading_context",
    "create_toolchain",
    "default_toolchain",
]
