"""Command-line entry point for the reconciliation sweep.

Usage::

    python -m dockvault.sweep --once
    python -m dockvault.sweep --interval 600
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import List, Optional

from .config import DockvaultConfig
from .runtime import DockvaultRuntime
from .telemetry import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Retire expired trash whose objects are gone.")
    parser.add_argument("--once", action="store_true", help="run a single sweep and exit")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="seconds between sweeps (defaults to DOCKVAULT_SWEEP_INTERVAL_SECONDS)",
    )
    return parser


def main(argv: Optional[List[str]] = None, runtime: Optional[DockvaultRuntime] = None) -> int:
    args = build_parser().parse_args(argv)
    if runtime is None:
        config = DockvaultConfig.from_env()
        configure_logging(config.observability.log_level)
        runtime = DockvaultRuntime.bootstrap(config)

    runner = runtime.build_sweep_runner(args.interval)
    if args.once:
        report = runner.run_once()
        print(json.dumps(report.to_payload(), indent=2))
        return 1 if report.errors else 0

    logger.info("Starting sweep loop every %ss", runner.interval_seconds)
    try:
        runner.run_forever()
    except KeyboardInterrupt:
        logger.info("Sweep loop interrupted")
        runner.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
