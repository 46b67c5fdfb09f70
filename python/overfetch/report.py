"""Result tables and exported reports."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from overfetch.runner import BenchResult, BenchSuite

REPORT_STEM = "overfetch-report"

CSV_FIELDS = [
    "strategy",
    "width",
    "operation",
    "iterations",
    "mean_ms",
    "error_ms",
    "stddev_ms",
    "median_ms",
    "min_ms",
    "max_ms",
    "error",
]


def _sorted(results: list[BenchResult]) -> list[BenchResult]:
    return sorted(results, key=lambda r: (r.width, r.operation.value, r.strategy))


def _fastest(results: list[BenchResult]) -> dict[tuple[int, str], float]:
    """Fastest successful mean per (width, operation)."""
    fastest: dict[tuple[int, str], float] = {}
    for r in results:
        if not r.ok:
            continue
        key = (r.width, r.operation.value)
        if key not in fastest or r.mean_ms < fastest[key]:
            fastest[key] = r.mean_ms
    return fastest


def print_rich_table(suite: BenchSuite, console: Console | None = None) -> None:
    """Print one table per width, fastest strategy first within each operation."""
    console = console or Console()
    fastest = _fastest(suite.results)

    widths = sorted({r.width for r in suite.results})
    for width in widths:
        results = [r for r in suite.results if r.width == width]
        results.sort(key=lambda r: (r.operation.value, not r.ok, r.mean_ms if r.ok else 0.0))

        table = Table(
            title=f"table{width} ({width} filler columns)",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Strategy", style="bold")
        table.add_column("Operation")
        table.add_column("Mean (ms)", justify="right")
        table.add_column("Error (ms)", justify="right")
        table.add_column("StdDev (ms)", justify="right")
        table.add_column("Median (ms)", justify="right")
        table.add_column("vs Fastest", justify="right")
        table.add_column("", justify="left")  # Bar

        for r in results:
            if not r.ok:
                table.add_row(
                    r.strategy, r.operation.value, "[red]failed[/red]", "", "", "", "",
                    f"[red]{escape(r.error or '')}[/red]",
                )
                continue

            best = fastest[(r.width, r.operation.value)]
            ratio = r.mean_ms / best if best > 0 else 1
            bar = "█" * max(1, int(20 / ratio))

            if r.mean_ms == best:
                style = "green"
                vs = "fastest"
            elif ratio < 1.5:
                style = "yellow"
                vs = f"{ratio:.2f}x"
            else:
                style = "red"
                vs = f"{ratio:.2f}x"

            table.add_row(
                r.strategy,
                r.operation.value,
                f"{r.mean_ms:.3f}",
                f"{r.error_ms:.3f}",
                f"{r.stddev_ms:.3f}",
                f"{r.median_ms:.3f}",
                vs,
                f"[{style}]{bar}[/{style}]",
            )

        console.print(table)
        console.print()

    failures = suite.failures()
    if failures:
        console.print(f"[bold red]{len(failures)} of {len(suite.results)} measurements failed[/bold red]")


def _md_cell(text: str) -> str:
    # GitHub tables: single line, escaped pipes
    return " ".join(text.split()).replace("|", "\\|")


def to_markdown(suite: BenchSuite) -> str:
    """GitHub-flavoured markdown table of every result."""
    lines = [
        "| Strategy | Width | Operation | Mean (ms) | Error (ms) | StdDev (ms) | Median (ms) |",
        "|----------|------:|-----------|----------:|-----------:|------------:|------------:|",
    ]
    for r in _sorted(suite.results):
        if r.ok:
            stats = f"{r.mean_ms:.3f} | {r.error_ms:.3f} | {r.stddev_ms:.3f} | {r.median_ms:.3f}"
        else:
            stats = f"NA | NA | NA | NA ({_md_cell(r.error or '')})"
        lines.append(f"| {r.strategy} | {r.width} | {r.operation.value} | {stats} |")
    return "\n".join(lines) + "\n"


def to_json(suite: BenchSuite) -> str:
    return json.dumps(
        {
            "run_id": str(suite.run_id) if suite.run_id else None,
            "results": [r.to_dict() for r in _sorted(suite.results)],
        },
        indent=2,
    )


def to_csv(suite: BenchSuite) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_FIELDS, lineterminator="\n")
    writer.writeheader()
    for r in _sorted(suite.results):
        writer.writerow(r.to_dict())
    return buf.getvalue()


def export(suite: BenchSuite, directory: Path | str) -> list[Path]:
    """Write the markdown, json and csv reports into ``directory``.

    Returns:
        Paths written, in that order.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    written = []
    for suffix, render in ((".md", to_markdown), (".json", to_json), (".csv", to_csv)):
        path = directory / f"{REPORT_STEM}{suffix}"
        path.write_text(render(suite), encoding="utf-8")
        written.append(path)
    return written
