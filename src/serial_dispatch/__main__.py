"""Module entrypoint for ``python -m serial_dispatch``."""

from __future__ import annotations

from serial_dispatch.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
