"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the scoring engine.

- replay: feed a JSONL sample file through the coordinator and
  print the resulting scores
- show-config: print the effective configuration

============================================================
USAGE
============================================================
python -m orchestrator.cli replay --samples week.jsonl
python -m orchestrator.cli replay --samples week.jsonl --day 2025-03-14 --timezone Europe/Berlin
python -m orchestrator.cli show-config

Sample file format, one JSON object per line:
    {"metric": "HRV", "timestamp": "2025-03-14T07:02:00+01:00", "value": 45.0}

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from core.clock import ClockProtocol, MockClock, ensure_aware, local_day
from core.exceptions import ScoringException
from scoring_engine.interpretation import ScoreBand, directive, stress_band
from scoring_engine.types import BiometricSample, CompositeScore, MetricKind, ScoreKind
from .core import ScoringRuntime, build_runtime, setup_logging
from .models import VALID_LOG_FORMATS, VALID_LOG_LEVELS, EngineConfig


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="biometric-scoring",
        description="Derived-metric scoring engine (Recovery and Sleep scores)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  replay       - Replay a JSONL sample file and print the resulting scores
  show-config  - Print the effective configuration

Examples:
  %(prog)s replay --samples week.jsonl
  %(prog)s replay --samples week.jsonl --day 2025-03-14 --timezone Europe/Berlin
  %(prog)s show-config --timezone America/New_York
        """
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # --------------------------------------------------------
    # replay
    # --------------------------------------------------------
    replay = subparsers.add_parser("replay", help="Replay a sample file")

    replay.add_argument(
        "--samples",
        type=str,
        required=True,
        metavar="FILE",
        help="JSONL file with one sample per line",
    )

    replay.add_argument(
        "--day",
        type=str,
        metavar="YYYY-MM-DD",
        help="Only print scores for this day (default: every day with samples)",
    )

    replay.add_argument(
        "--now",
        type=str,
        metavar="ISO8601",
        help="Pin the clock (default: wall clock)",
    )

    replay.add_argument(
        "--no-durable",
        action="store_true",
        help="Keep scores in memory only",
    )

    _add_common_arguments(replay)

    # --------------------------------------------------------
    # show-config
    # --------------------------------------------------------
    show_config = subparsers.add_parser("show-config", help="Print effective configuration")
    _add_common_arguments(show_config)

    return parser


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    # --------------------------------------------------------
    # Engine Options
    # --------------------------------------------------------
    engine_group = parser.add_argument_group("Engine Options")

    engine_group.add_argument(
        "--timezone",
        type=str,
        metavar="TZ",
        help="IANA zone for day keys (default: SCORING_TIMEZONE or UTC)",
    )

    engine_group.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="Durable tier URL (default: DATABASE_URL or local SQLite)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=list(VALID_LOG_LEVELS),
        help="Logging level (default: LOG_LEVEL or INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=list(VALID_LOG_FORMATS),
        help="Logging format (default: LOG_FORMAT or json)",
    )


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []

    if args.command == "replay":
        if not Path(args.samples).is_file():
            errors.append(f"--samples file not found: {args.samples}")
        if args.day:
            try:
                date.fromisoformat(args.day)
            except ValueError as e:
                errors.append(f"Invalid --day: {e}")
        if args.now:
            try:
                datetime.fromisoformat(args.now)
            except ValueError as e:
                errors.append(f"Invalid --now: {e}")

    return errors


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> EngineConfig:
    """Environment configuration with CLI overrides applied."""
    config = EngineConfig.from_env()

    if args.timezone:
        config.timezone = args.timezone
    if args.database_url:
        config.database = replace(config.database, url=args.database_url)
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format
    if getattr(args, "no_durable", False):
        config.durable_enabled = False

    return config


# ============================================================
# SAMPLE LOADING
# ============================================================

def parse_sample(line: str) -> BiometricSample:
    """
    Parse one JSONL record.

    Raises:
        ValueError: On malformed records or unknown metrics
    """
    record = json.loads(line)
    try:
        metric = MetricKind(str(record["metric"]).upper())
        timestamp = ensure_aware(datetime.fromisoformat(record["timestamp"]))
        value = float(record["value"])
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed record: {e}") from e
    return BiometricSample(metric, timestamp, value)


def load_samples(path: str) -> List[BiometricSample]:
    samples = []
    with open(path, "r", encoding="utf-8") as handle:
        for number, line in enumerate(handle, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                samples.append(parse_sample(line))
            except ValueError as e:
                logger.warning(f"Skipping line {number} of {path}: {e}")
    return samples


# ============================================================
# OUTPUT
# ============================================================

def format_score(score: CompositeScore) -> List[str]:
    band = ScoreBand.for_score(score.overall)
    lines = [
        f"  {score.score_kind.value:<9s} {score.overall:3d}/100  "
        f"[{band.value}]{'' if score.data_complete else '  (incomplete)'}",
    ]
    for component in score.components:
        marker = "" if component.complete else f"  <- {component.degraded_reason}"
        lines.append(
            f"      {component.name:<16s} {component.normalized_value:6.1f} "
            f"x {component.weight:.2f} = {component.contribution:6.2f}{marker}"
        )
    lines.append(f"      {directive(score)}")
    if score.score_kind == ScoreKind.RECOVERY:
        stress = stress_band(score)
        if stress is not None:
            lines.append(f"      Stress: {stress.value}")
    return lines


async def print_day(runtime: ScoringRuntime, day: date) -> None:
    print(f"\n{day.isoformat()}")
    print("-" * 60)
    for kind in ScoreKind:
        score = await runtime.query.current_score(kind, day)
        freshness = await runtime.query.freshness_status(kind, day)
        if score is None:
            print(f"  {kind.value:<9s} no score  ({freshness.message})")
            continue
        for line in format_score(score):
            print(line)
        print(f"      Status: {freshness.status.value} - {freshness.message}")


# ============================================================
# COMMANDS
# ============================================================

async def run_replay(args: argparse.Namespace, config: EngineConfig) -> int:
    samples = load_samples(args.samples)
    if not samples:
        print(f"Error: no usable samples in {args.samples}", file=sys.stderr)
        return 1

    clock: Optional[ClockProtocol] = None
    if args.now:
        clock = MockClock(ensure_aware(datetime.fromisoformat(args.now)))

    runtime = build_runtime(config, clock=clock)
    async with runtime:
        keys = await runtime.coordinator.on_samples(samples)
        await runtime.coordinator.wait_until_idle()
        logger.info(f"Replayed {len(samples)} sample(s) into {len(keys)} key(s)")

        if args.day:
            days = [date.fromisoformat(args.day)]
        else:
            days = sorted({local_day(s.timestamp, runtime.tracker.tz) for s in samples})
        for day in days:
            await print_day(runtime, day)

        stats = runtime.coordinator.get_stats()
        print(f"\nComputations: {stats['computations']}  Publishes: {stats['publishes']}  "
              f"Discards: {stats['discards']}")
    return 0


def show_config(config: EngineConfig) -> None:
    print(json.dumps(config.to_dict(), indent=2, default=str))


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    config = build_config(args)
    setup_logging(config.log_level, config.log_format)

    try:
        if args.command == "replay":
            return await run_replay(args, config)
        return 0
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
    except ScoringException as e:
        logging.error(f"{e.code}: {e.message}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    if args.command == "show-config":
        config = build_config(args)
        show_config(config)
        problems = config.validate()
        for problem in problems:
            print(f"Error: {problem}", file=sys.stderr)
        return 1 if problems else 0

    return asyncio.run(async_main(args))


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
