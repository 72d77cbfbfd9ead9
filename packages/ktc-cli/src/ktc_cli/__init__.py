"""KTC CLI: run Kotlin compilers from the default toolchain."""

__version__ = "0.1.0"
