"""Command-line surface for serial-dispatch."""

from serial_dispatch.ui.cli import build_parser, run_cli

__all__ = ["build_parser", "run_cli"]
