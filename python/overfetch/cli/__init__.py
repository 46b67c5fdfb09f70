"""overfetch CLI - seed the tables or run the benchmark matrix."""

from __future__ import annotations

import argparse
import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from overfetch.config import BenchConfig, load_config
from overfetch.errors import SetupError, UnsupportedParameter
from overfetch.log import configure_logging
from overfetch.strategies import available_strategies

logger = logging.getLogger("overfetch.cli")

EXIT_OK = 0
EXIT_CELL_FAILED = 1
EXIT_SETUP_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="overfetch",
        description="Measure the cost of over-fetching a row versus selecting one column",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        help="'seed' creates and populates the tables; anything else runs the benchmark",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to an ini file with an [overfetch] section (default: ./overfetch.ini if present)",
    )
    parser.add_argument(
        "--url",
        help="Database URL (overrides config and environment)",
    )
    parser.add_argument(
        "--widths",
        help="Comma-separated table widths, e.g. 4,16,512",
    )
    parser.add_argument(
        "--strategies",
        help=f"Comma-separated strategies ({', '.join(available_strategies())})",
    )
    parser.add_argument("--iterations", type=int, help="Timed calls per operation")
    parser.add_argument("--warmup", type=int, help="Untimed calls per operation")
    parser.add_argument("--runs", type=int, help="Run the matrix N times and keep the best result")
    parser.add_argument("--bulk-rows", type=int, help="Rows per table written by 'seed'")
    parser.add_argument("--export-dir", help="Directory for markdown/json/csv reports")
    parser.add_argument(
        "--no-export",
        action="store_true",
        help="Don't write report files",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON instead of tables",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging",
    )
    return parser


def _resolve_config(args: Any) -> BenchConfig:
    config = load_config(args.config)
    changes: dict[str, Any] = {}
    if args.url:
        changes["database_url"] = args.url
    if args.widths:
        changes["widths"] = tuple(w for w in args.widths.split(",") if w.strip())
    if args.strategies:
        changes["strategies"] = tuple(s for s in args.strategies.split(",") if s.strip())
    if args.iterations is not None:
        changes["iterations"] = args.iterations
    if args.warmup is not None:
        changes["warmup"] = args.warmup
    if args.runs is not None:
        changes["best_of"] = args.runs
    if args.bulk_rows is not None:
        changes["bulk_rows"] = args.bulk_rows
    if args.export_dir:
        changes["export_dir"] = args.export_dir
    config = replace(config, **changes) if changes else config

    unknown = [s for s in config.strategies if s not in available_strategies()]
    if unknown:
        raise UnsupportedParameter(
            f"Unknown strategy {unknown[0]!r}; expected one of {', '.join(available_strategies())}"
        )
    return config


def main(args: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Command-line arguments (defaults to sys.argv)

    Returns:
        Exit code: 0 on success, 1 if any benchmark cell failed, 2 on a
        setup or configuration error.
    """
    parsed = build_parser().parse_args(args)
    configure_logging(parsed.verbose)

    try:
        config = _resolve_config(parsed)
    except (UnsupportedParameter, ValueError, FileNotFoundError) as e:
        logger.error("[red]Invalid configuration: %s[/red]", escape(str(e)))
        return EXIT_SETUP_FAILED

    if parsed.command.lower() == "seed":
        return asyncio.run(_seed(config))
    return asyncio.run(_run(config, as_json=parsed.json, export=not parsed.no_export))


async def _seed(config: BenchConfig) -> int:
    """Create the schema, write bulk rows and one run row per width."""
    from overfetch.database import create_engine, ping
    from overfetch.seeder import Seeder

    logger.info("Seeding %s", config.masked_url())
    engine = None
    try:
        engine = create_engine(config.database_url, echo=config.echo_sql)
        await ping(engine)
        seeder = Seeder(engine, widths=config.widths)
        await seeder.create_schema()
        await seeder.seed_bulk(config.bulk_rows)
        await seeder.seed_run_row(uuid.uuid4())
    except SetupError as e:
        logger.error("[red]Seeding failed: %s[/red]", escape(str(e)))
        return EXIT_SETUP_FAILED
    finally:
        if engine is not None:
            await engine.dispose()

    logger.info("[green]Seeding complete[/green]")
    return EXIT_OK


async def _run(config: BenchConfig, *, as_json: bool = False, export: bool = True) -> int:
    """Run the benchmark matrix and report."""
    from overfetch.database import create_engine, ping
    from overfetch.report import export as export_reports
    from overfetch.report import print_rich_table, to_json
    from overfetch.runner import BenchmarkRunner

    console = Console()
    if not as_json:
        console.print(Panel.fit(
            "[bold]Over-fetching Benchmark[/bold]\n"
            f"widths {', '.join(map(str, config.widths))} · "
            f"strategies {', '.join(config.strategies)} · "
            f"{config.iterations} iterations",
            border_style="cyan",
        ))

    engine = None
    try:
        engine = create_engine(config.database_url, echo=config.echo_sql)
        await ping(engine)
        runner = BenchmarkRunner(engine, config)
        suite = await runner.run()
    except SetupError as e:
        logger.error("[red]Setup failed: %s[/red]", escape(str(e)))
        return EXIT_SETUP_FAILED
    finally:
        if engine is not None:
            await engine.dispose()

    if as_json:
        print(to_json(suite))
    else:
        print_rich_table(suite, console)

    if export:
        for path in export_reports(suite, config.export_dir):
            logger.info("Wrote %s", path)

    return EXIT_OK if suite.ok else EXIT_CELL_FAILED
