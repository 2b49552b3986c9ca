"""
serial-dispatch — end-to-end simulation flows

File: tests/integration/test_simulation_flow.py
Last updated: 2026-10-18

Purpose
- Drive the dispatcher with the simulated transport the way a device driver would.
- Run ``python -m serial_dispatch`` as a subprocess and check exit codes and log files.

Functional requirements
- Offline; timeouts in the tens of milliseconds.
"""

from __future__ import annotations

import asyncio
import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from serial_dispatch import Dispatcher, OutcomeKind
from serial_dispatch.transport import SimulatedTransport, SimulationProfile

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"

pytestmark = pytest.mark.integration


def _run_cli(cwd: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    for key in [name for name in env if name.startswith("SERIAL_DISPATCH_")]:
        del env[key]
    return subprocess.run(
        [sys.executable, "-m", "serial_dispatch", *args],
        cwd=cwd,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


async def test_demo_flow_with_follow_ups_and_late_additions() -> None:
    transport = SimulatedTransport(SimulationProfile(max_latency_ms=8.0), seed=2024)
    dispatcher = Dispatcher(transport, max_id=0xFFFF, timeout_ms=25, sending_delay_ms=2)
    follow_ups = 0

    def on_success(notice: object) -> None:
        nonlocal follow_ups
        if follow_ups < 3:
            follow_ups += 1
            dispatcher.enqueue({"addr": 1, "cmd": "1"})

    dispatcher.on(OutcomeKind.SUCCESS, on_success)
    dispatcher.enqueue({"addr": None, "cmd": "0"})
    dispatcher.enqueue({"addr": 3, "cmd": "3"})
    assert dispatcher.pending_count() == 1
    assert dispatcher.active_count() == 1

    await asyncio.sleep(0.01)
    dispatcher.enqueue({"addr": 2, "cmd": "2"})
    await dispatcher.join()

    history = dispatcher.bus.history()
    total = 3 + follow_ups
    assert len(history) == total
    assert len(transport.calls) == total
    assert sorted(event.request_id for event in history) == list(range(1, total + 1))
    assert [envelope.id for envelope in transport.calls] == [
        event.request_id for event in history
    ]
    await dispatcher.aclose()


def test_cli_simulate_writes_json_log_file(tmp_path: Path) -> None:
    (tmp_path / "serial_dispatch.toml").write_text(
        """
[dispatcher]
max_id = 255
timeout_ms = 40

[observability]
log_dir = "var/logs"
log_to_stdout = false
""".strip(),
        encoding="utf-8",
    )

    completed = _run_cli(
        tmp_path, "simulate", "--count", "4", "--seed", "5", "--max-latency-ms", "10", "--json"
    )

    assert completed.returncode == 0, completed.stderr
    summary = json.loads(completed.stdout.strip().splitlines()[-1])
    assert summary["requested"] == 4
    assert summary["settings"]["max_id"] == 255

    log_path = tmp_path / "var" / "logs" / "serial_dispatch.jsonl"
    records = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    admitted = [record for record in records if record["message"] == "request_admitted"]
    assert [record["request_id"] for record in admitted] == ["1", "2", "3", "4"]
    assert any(record["message"] == "dispatcher_closed" for record in records)


def test_cli_rejects_bad_config_with_exit_code_two(tmp_path: Path) -> None:
    (tmp_path / "serial_dispatch.toml").write_text(
        "[dispatcher]\nmax_id = -4\n", encoding="utf-8"
    )

    completed = _run_cli(tmp_path, "config")

    assert completed.returncode == 2
    assert "dispatcher.max_id" in completed.stderr
