"""
Command-line host for a test run.

    msnr run --ip 192.168.1.100 --roof !1234abcd --mountain !5678ef01

Every flag overrides the matching value from --config (YAML).
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Sequence

from .config import Config, LnaControl, OutputFormat, Topology, TransportMode, load_config
from .engine import Engine
from .errors import MsnrError, RunCancelled
from .log import python_logger
from .progress import ProgressState
from .transport import transport_from_config

BAR_WIDTH = 20


def render_progress(progress: ProgressState) -> str:
    filled = int(round(progress.total_progress * BAR_WIDTH))
    filled = max(0, min(BAR_WIDTH, filled))
    bar = "#" * filled + "-" * (BAR_WIDTH - filled)
    return (
        f"[{bar}] {progress.total_progress * 100:5.1f}% "
        f"{progress.phase:<7} ETA {progress.eta_seconds:>5}s  {progress.status_message}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="msnr", description="Mesh SNR / LNA comparison tool")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run an LNA off/on comparison")
    run.add_argument("--config", help="YAML config file")
    run.add_argument("--transport", choices=[m.value for m in TransportMode])
    run.add_argument("--ip", help="Radio IP address")
    run.add_argument("--port", type=int, help="Radio TCP port")
    run.add_argument("--serial", help="Serial device, e.g. /dev/ttyUSB0")
    run.add_argument("--target", help="Target node id (direct topology)")
    run.add_argument("--roof", help="Roof node id (relay topology)")
    run.add_argument("--mountain", help="Mountain node id (relay topology)")
    run.add_argument("--local", help="Local node id, used in validation messages")
    run.add_argument("--topology", choices=[t.value for t in Topology])
    run.add_argument("--lna-control", choices=[c.value for c in LnaControl])
    run.add_argument("--duration", type=float, help="Seconds per phase")
    run.add_argument("--cycles", type=int, help="Number of OFF/ON cycles")
    run.add_argument("--interval", type=float, help="Seconds between traceroutes")
    run.add_argument("--output", help="Output file path")
    run.add_argument("--format", choices=[f.value for f in OutputFormat])
    run.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "transport_mode": args.transport,
        "ip": args.ip,
        "port": args.port,
        "serial_port": args.serial,
        "target_node_id": args.target,
        "roof_node_id": args.roof,
        "mountain_node_id": args.mountain,
        "local_node_id": args.local,
        "topology": args.topology,
        "lna_control": args.lna_control,
        "phase_duration_ms": int(args.duration * 1000) if args.duration is not None else None,
        "cycles": args.cycles,
        "interval_ms": int(args.interval * 1000) if args.interval is not None else None,
        "output_path": args.output,
        "output_format": args.format,
    }


def config_from_args(args: argparse.Namespace) -> Config:
    overrides = _overrides(args)
    if args.config:
        return load_config(args.config, **overrides)
    return Config.from_dict({k: v for k, v in overrides.items() if v is not None})


def _run(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    log = python_logger("msnr")

    try:
        config = config_from_args(args)
        transport = transport_from_config(config, logger=log)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    engine = Engine(config, transport, logger=log)

    def on_progress(progress: ProgressState) -> None:
        print(render_progress(progress), flush=True)

    try:
        engine.run(on_progress)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 1
    except RunCancelled:
        print("Cancelled", file=sys.stderr)
        return 1
    except MsnrError as e:
        print(f"Test failed: {e}", file=sys.stderr)
        return 1

    for line in engine.average_stats().summary_lines():
        print(line)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return _run(args, parser)


if __name__ == "__main__":
    sys.exit(main())
