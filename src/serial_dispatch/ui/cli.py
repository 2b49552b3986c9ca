"""Command-line interface router for serial-dispatch."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from dataclasses import asdict, dataclass
from typing import Final

from serial_dispatch.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    effective_config,
    load_config,
)
from serial_dispatch.control_plane import Dispatcher, DispatcherSettings
from serial_dispatch.domain.models import OutcomeKind, SuccessNotice
from serial_dispatch.errors import DispatcherConfigError
from serial_dispatch.observability import setup_logging, shutdown_logging
from serial_dispatch.transport import SimulatedTransport, SimulationProfile

DEFAULT_REQUEST_COUNT: Final[int] = 5
DEFAULT_MAX_LATENCY_MS: Final[float] = 1000.0


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class SimulationSummary:
    requested: int
    succeeded: int
    timed_out: int
    failed: int
    observer_failures: int
    elapsed_ms: float


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="serial-dispatch",
        description=(
            "serial-dispatch: single-flight request dispatcher.\n\n"
            "Common workflows:\n"
            "  serial-dispatch simulate --count 10     Drive a simulated transport\n"
            "  serial-dispatch config --profile fast   Show the effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./serial_dispatch.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name.",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit machine-readable JSON.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # simulate ------------------------------------------------------------
    simulate_parser = subparsers.add_parser(
        "simulate",
        parents=[common],
        help="Send synthetic requests through a randomized transport",
        description=(
            "Enqueue synthetic payloads on a dispatcher backed by a transport that\n"
            "randomly answers, rejects, or loses each request.\n\n"
            "Examples:\n"
            "  serial-dispatch simulate --count 20 --seed 7\n"
            "  serial-dispatch simulate --timeout-ms 300 --sending-delay-ms 50\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    simulate_parser.add_argument(
        "--count",
        type=_non_negative_int,
        default=DEFAULT_REQUEST_COUNT,
        help=f"Number of requests to enqueue up front (default: {DEFAULT_REQUEST_COUNT}).",
    )
    simulate_parser.add_argument(
        "--follow-ups",
        type=_non_negative_int,
        default=0,
        help="Enqueue one more request per success, up to this many.",
    )
    simulate_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the transport's random outcomes.",
    )
    simulate_parser.add_argument(
        "--max-latency-ms",
        type=_non_negative_float,
        default=DEFAULT_MAX_LATENCY_MS,
        help=f"Upper bound for simulated latency (default: {DEFAULT_MAX_LATENCY_MS:g}).",
    )
    simulate_parser.add_argument("--max-id", type=_non_negative_int, default=None)
    simulate_parser.add_argument("--timeout-ms", type=_non_negative_float, default=None)
    simulate_parser.add_argument("--sending-delay-ms", type=float, default=None)
    simulate_parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default=None,
    )
    simulate_parser.add_argument("--log-format", choices=("json", "text"), default=None)
    simulate_parser.add_argument(
        "--no-log-file",
        action="store_true",
        default=False,
        help="Log to stdout only, ignoring observability.log_dir.",
    )
    simulate_parser.set_defaults(handler=_cmd_simulate)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the effective configuration",
        description=(
            "Resolve defaults, file, environment, and profile, then print the result.\n\n"
            "Examples:\n"
            "  serial-dispatch config\n"
            "  SERIAL_DISPATCH_DISPATCHER_TIMEOUT_MS=250 serial-dispatch config --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_simulate(args: argparse.Namespace) -> int:
    config = _load_effective_config(
        args,
        overrides={
            "dispatcher.max_id": args.max_id,
            "dispatcher.timeout_ms": args.timeout_ms,
            "dispatcher.sending_delay_ms": args.sending_delay_ms,
            "observability.log_level": args.log_level,
            "observability.log_format": args.log_format,
        },
    )
    try:
        settings = DispatcherSettings.from_config(config)
    except DispatcherConfigError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    observability = dict(_section(config, "observability"))
    if args.no_log_file:
        observability["log_dir"] = None
    setup_logging(observability)
    try:
        summary = asyncio.run(
            simulate(
                settings,
                count=args.count,
                follow_ups=args.follow_ups,
                transport=SimulatedTransport(
                    SimulationProfile(max_latency_ms=args.max_latency_ms), seed=args.seed
                ),
            )
        )
    finally:
        shutdown_logging()

    if args.json:
        _emit_json({"command": "simulate", "settings": settings.to_dict(), **asdict(summary)})
        return 0

    print(
        f"requested={summary.requested} succeeded={summary.succeeded} "
        f"timed_out={summary.timed_out} failed={summary.failed} "
        f"elapsed_ms={summary.elapsed_ms:.0f}"
    )
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    if args.json:
        print(dump_effective_config(config))
        return 0

    print(f"Active profile: {args.profile or '(default)'}")
    print(json.dumps(effective_config(config), indent=2, sort_keys=True, ensure_ascii=False))
    return 0


async def simulate(
    settings: DispatcherSettings,
    *,
    count: int,
    transport: SimulatedTransport,
    follow_ups: int = 0,
) -> SimulationSummary:
    """Run ``count`` requests (plus follow-ups) to completion and tally the outcomes."""

    dispatcher = Dispatcher.from_settings(transport, settings)
    remaining = follow_ups
    requested = 0
    counts: Counter[OutcomeKind] = Counter()

    def _follow_up(notice: SuccessNotice) -> None:
        nonlocal remaining, requested
        if remaining <= 0:
            return
        remaining -= 1
        requested += 1
        dispatcher.enqueue({"addr": notice.id, "cmd": "follow-up"})

    def _tally(kind: OutcomeKind) -> Callable[[object], None]:
        def observer(_notice: object) -> None:
            counts[kind] += 1

        return observer

    for kind in OutcomeKind:
        dispatcher.on(kind, _tally(kind))
    dispatcher.on(OutcomeKind.SUCCESS, _follow_up)
    started = time.monotonic()
    async with dispatcher:
        for index in range(count):
            dispatcher.enqueue({"addr": index, "cmd": str(index)})
            requested += 1
        await dispatcher.join()
        elapsed_ms = (time.monotonic() - started) * 1000.0
        observer_failures = len(dispatcher.bus.failures())

    return SimulationSummary(
        requested=requested,
        succeeded=counts[OutcomeKind.SUCCESS],
        timed_out=counts[OutcomeKind.TIMEOUT],
        failed=counts[OutcomeKind.ERROR],
        observer_failures=observer_failures,
        elapsed_ms=round(elapsed_ms, 3),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _load_effective_config(
    args: argparse.Namespace,
    *,
    overrides: Mapping[str, object] | None = None,
) -> dict[str, object]:
    try:
        return load_config(args.config_path, profile=args.profile, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _section(config: Mapping[str, object], name: str) -> Mapping[str, object]:
    section = config.get(name, {})
    return section if isinstance(section, Mapping) else {}


def _non_negative_int(value: str) -> int:
    parsed = int(value)
    if parsed < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return parsed


def _non_negative_float(value: str) -> float:
    parsed = float(value)
    if parsed < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return parsed


__all__ = ["CLIError", "SimulationSummary", "build_parser", "run_cli", "simulate"]
