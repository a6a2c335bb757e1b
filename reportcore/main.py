"""Command line entry point.

Builds a report from result directories or files. In stage mode
(``--dump-state``) the ingested records are written to a dump instead of
completing the report, so CI shards can be merged later with ``--restore``.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from reportcore.config import ReportConfig, read_config_data, resolve_config
from reportcore.errors import KnownError, UnknownError
from reportcore.logs import log_error, report_error
from reportcore.quality_gate.gate import stringify_quality_gate_results
from reportcore.report import Report


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Build a test report from result files"
    )
    parser.add_argument(
        "results",
        nargs="*",
        type=Path,
        help="Result directories or files",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a JSON or YAML config file",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output directory (overrides the config)",
    )
    parser.add_argument(
        "--name",
        type=str,
        default=None,
        help="Report name (overrides the config)",
    )
    parser.add_argument(
        "--history-path",
        type=Path,
        default=None,
        help="Local history file (overrides the config)",
    )
    parser.add_argument(
        "--history-limit",
        type=int,
        default=None,
        help="Max history points to keep (overrides the config)",
    )
    parser.add_argument(
        "--restore",
        type=Path,
        action="append",
        default=[],
        metavar="STAGE",
        help="Stage dump to restore before reading results (repeatable)",
    )
    parser.add_argument(
        "--dump-state",
        type=Path,
        default=None,
        metavar="PATH",
        help="Write the ingested records to PATH instead of completing the report",
    )
    parser.add_argument(
        "--logs-dir",
        type=Path,
        default=None,
        help="Directory for diagnostic logs (overrides the config)",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ReportConfig:
    """Read the config file, apply command-line overrides, then resolve it.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the config is invalid.
    """
    data = read_config_data(args.config) if args.config else {}
    overrides = {
        "output": args.output,
        "name": args.name,
        "history_path": args.history_path,
        "history_limit": args.history_limit,
        "logs_dir": args.logs_dir,
    }
    data.update({k: str(v) if isinstance(v, Path) else v
                 for k, v in overrides.items() if v is not None})
    return resolve_config(data, path=args.config)


async def run(args: argparse.Namespace, config: ReportConfig) -> int:
    async with Report(config) as report:
        return await _build(report, args, config)


async def _build(report: Report, args: argparse.Namespace, config: ReportConfig) -> int:
    await report.start(create_remote=args.dump_state is None)
    await report.restore_state(args.restore)

    for path in args.results:
        if path.is_dir():
            await report.read_directory(path)
        elif path.is_file():
            await report.read_file(path)
        else:
            print(f"report: results path not found: {path}", file=sys.stderr)

    if not report.store.all_test_results(include_hidden=True):
        print("Error: no test results found", file=sys.stderr)
        return 1

    if args.dump_state:
        dump_path = await report.dump_state(args.dump_state)
        print(f"State dumped to: {dump_path}")
        return 0

    outcome = await report.done()
    print(f"Report written to: {config.output}")
    if outcome.summary_path:
        print(f"Summary written to: {outcome.summary_path}")
    if report.report_url:
        print(f"Remote report: {report.report_url}")

    if not outcome.quality_gate.passed:
        print(stringify_quality_gate_results(outcome.quality_gate.results), file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except FileNotFoundError:
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: Invalid config: {e}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run(args, config))
    except (KnownError, UnknownError) as e:
        report_error("report: service error", e, config.logs_dir)
        return 1
    except Exception as e:
        log_error("report: failed to generate report due to unexpected error", e, config.logs_dir)
        return 1


if __name__ == "__main__":
    sys.exit(main())
