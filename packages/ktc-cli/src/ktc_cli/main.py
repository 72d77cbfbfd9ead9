"""KTC CLI entry point.

Usage:
    ktc                             Show help
    ktc [OPTIONS] jvm [ARGS...]     Compile for the JVM
    ktc [OPTIONS] js [ARGS...]      Compile to JavaScript
    ktc toolchain                   Show the resolved toolchain
    ktc --version                   Show version

Everything after the command is passed to the compiler unchanged. The
toolchain is described by the artifact manifest named in
KTC_ARTIFACT_MANIFEST.
"""

from __future__ import annotations

import argparse
import logging
import sys

from ktc_cli import __version__
from ktc_cli.runner import describe_toolchain, run_compiler
from ktc_core.config import ToolchainSettings
from ktc_core.errors import ToolchainError
from ktc_core.status import ExitCode
from ktc_core.toolchain import default_toolchain

COMMANDS: dict[str, str] = {
    "jvm": "Compile Kotlin sources for the JVM",
    "js": "Compile Kotlin sources to JavaScript",
    "toolchain": "Show the artifacts and plugins of the toolchain",
}


def build_parser() -> argparse.ArgumentParser:
    """Parser for the global options that precede the command."""
    epilog = "Commands:\n" + "\n".join(
        f"  {name:<20} {help_text}" for name, help_text in COMMANDS.items()
    )
    parser = argparse.ArgumentParser(
        prog="ktc",
        usage="ktc [options] <command> [args...]",
        description="Run Kotlin compilers inside an isolated toolchain.",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"ktc {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds before the compiler is killed (default: KTC_INVOKE_TIMEOUT_SECONDS)",
    )
    return parser


def split_command(argv: list[str]) -> tuple[list[str], str | None, list[str]]:
    """Split argv into global options, the command, and the command's arguments."""
    for index, token in enumerate(argv):
        if token in COMMANDS:
            return argv[:index], token, argv[index + 1 :]
    return argv, None, []


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    argv = sys.argv[1:] if argv is None else argv
    global_args, command, tool_args = split_command(argv)

    parser = build_parser()
    options = parser.parse_args(global_args)

    logging.basicConfig(
        level=logging.DEBUG if options.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # No command: show help
    if command is None:
        parser.print_help()
        return 0

    settings = ToolchainSettings()
    try:
        toolchain = default_toolchain(settings)
    except ToolchainError as e:
        print(f"Error: {e}", file=sys.stderr)
        return ExitCode.INTERNAL_ERROR

    if command == "toolchain":
        describe_toolchain(toolchain)
        return 0

    timeout = options.timeout if options.timeout is not None else settings.invoke_timeout_seconds
    return run_compiler(toolchain, command, tool_args, timeout=timeout)


if __name__ == "__main__":
    sys.exit(main())
