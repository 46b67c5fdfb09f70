"""Benchmark matrix: width x strategy x operation.

Cells run one at a time. A failure inside a cell is recorded on that cell's
results and the matrix carries on; only setup failures abort the run.
"""

from __future__ import annotations

import enum
import gc
import logging
import math
import statistics
import time
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from rich.markup import escape
from sqlalchemy.ext.asyncio import AsyncEngine

from overfetch.config import BenchConfig
from overfetch.errors import InvariantViolation
from overfetch.seeder import Seeder
from overfetch.strategies import QueryStrategy, create_strategy

logger = logging.getLogger(__name__)

# Two-sided 99.9% quantile of the normal distribution.
Z_999 = 3.2905


class Operation(str, enum.Enum):
    OVERFETCH = "Overfetch"
    SELECT_ONE = "SelectOne"


@dataclass
class BenchResult:
    """Latency samples of one (strategy, width, operation) combination."""

    strategy: str
    width: int
    operation: Operation
    samples_ms: list[float] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.samples_ms)

    @property
    def key(self) -> tuple[str, int, Operation]:
        return (self.strategy, self.width, self.operation)

    @property
    def mean_ms(self) -> float:
        return statistics.fmean(self.samples_ms) if self.samples_ms else math.nan

    @property
    def stddev_ms(self) -> float:
        return statistics.stdev(self.samples_ms) if len(self.samples_ms) > 1 else 0.0

    @property
    def error_ms(self) -> float:
        """Half-width of the 99.9% confidence interval of the mean."""
        n = len(self.samples_ms)
        return Z_999 * self.stddev_ms / math.sqrt(n) if n > 1 else 0.0

    @property
    def median_ms(self) -> float:
        return statistics.median(self.samples_ms) if self.samples_ms else math.nan

    @property
    def min_ms(self) -> float:
        return min(self.samples_ms) if self.samples_ms else math.nan

    @property
    def max_ms(self) -> float:
        return max(self.samples_ms) if self.samples_ms else math.nan

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy,
            "width": self.width,
            "operation": self.operation.value,
            "iterations": len(self.samples_ms),
            "mean_ms": None if not self.ok else self.mean_ms,
            "error_ms": None if not self.ok else self.error_ms,
            "stddev_ms": None if not self.ok else self.stddev_ms,
            "median_ms": None if not self.ok else self.median_ms,
            "min_ms": None if not self.ok else self.min_ms,
            "max_ms": None if not self.ok else self.max_ms,
            "error": self.error,
        }


@dataclass
class BenchSuite:
    """Collection of benchmark results."""

    results: list[BenchResult] = field(default_factory=list)
    run_id: uuid.UUID | None = None

    def add(self, result: BenchResult) -> None:
        self.results.append(result)

    def get(self, strategy: str, width: int, operation: Operation) -> BenchResult | None:
        for r in self.results:
            if r.key == (strategy, width, operation):
                return r
        return None

    def cells(self) -> list[tuple[int, str]]:
        """Distinct (width, strategy) pairs, in the order they ran."""
        return list(dict.fromkeys((r.width, r.strategy) for r in self.results))

    def failures(self) -> list[BenchResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return bool(self.results) and not self.failures()

    def merge_best(self, other: BenchSuite) -> None:
        """Merge another suite, keeping the lowest mean for each key.

        A successful result always beats a failed one.
        """
        best: dict[tuple[str, int, Operation], BenchResult] = {}
        for r in [*self.results, *other.results]:
            current = best.get(r.key)
            if current is None or _better(r, current):
                best[r.key] = r
        self.results = list(best.values())


def _better(candidate: BenchResult, current: BenchResult) -> bool:
    if candidate.ok != current.ok:
        return candidate.ok
    return candidate.ok and candidate.mean_ms < current.mean_ms


async def timeit(
    fn: Callable[[], Awaitable[Any]],
    iterations: int,
    warmup: int = 0,
) -> list[float]:
    """Time an async function, one sample per call.

    Args:
        fn: Zero-argument coroutine function to measure.
        iterations: Timed calls.
        warmup: Untimed calls made first.

    Returns:
        Per-call latencies in milliseconds.
    """
    for _ in range(warmup):
        await fn()

    # Force GC before timing
    gc.collect()

    samples: list[float] = []
    for _ in range(iterations):
        start = time.perf_counter()
        await fn()
        samples.append((time.perf_counter() - start) * 1000)
    return samples


class BenchmarkRunner:
    """Runs the width x strategy matrix against a seeded database.

    Args:
        engine: Engine of the backing store.
        config: Widths, strategies and iteration counts.
        run_id: Identity of this run's rows; a fresh UUID when omitted.
        strategies: Strategy instances to use instead of building
            ``config.strategies`` by name.

    Example:
        >>> runner = BenchmarkRunner(engine, config)
        >>> suite = await runner.run()
    """

    def __init__(
        self,
        engine: AsyncEngine,
        config: BenchConfig,
        *,
        run_id: uuid.UUID | None = None,
        strategies: Iterable[QueryStrategy] | None = None,
    ) -> None:
        self.engine = engine
        self.config = config
        self.run_id = run_id or uuid.uuid4()
        if strategies is None:
            self.strategies = [create_strategy(name, engine) for name in config.strategies]
        else:
            self.strategies = list(strategies)
        self.seeder = Seeder(engine, widths=config.widths)
        self.expected: dict[int, str] = {}

    async def setup(self) -> None:
        """Verify the schema and write this run's row for every width.

        Raises:
            SetupError: On any storage problem. Fatal for the whole run.
        """
        await self.seeder.verify_schema()
        self.expected = await self.seeder.seed_run_row(self.run_id)

    async def _verify(self, strategy: QueryStrategy, width: int) -> None:
        if width not in self.expected:
            raise InvariantViolation(
                f"table{width}", self.run_id, detail="no run row seeded for this width, call setup() first"
            )
        full = await strategy.fetch_full(width, self.run_id)
        projected = await strategy.fetch_projected(width, self.run_id)
        expected = self.expected[width]
        if not (full == projected == expected):
            raise InvariantViolation(
                f"table{width}",
                self.run_id,
                detail=f"{strategy.name}: fetch_full={full!r} fetch_projected={projected!r} seeded={expected!r}",
            )

    async def run_cell(self, width: int, strategy: QueryStrategy) -> list[BenchResult]:
        """Measure both operations for one (width, strategy) pair.

        Exceptions are caught and stored on the results; nothing is retried.
        """
        operations: dict[Operation, Callable[[], Awaitable[str]]] = {
            Operation.OVERFETCH: lambda: strategy.fetch_full(width, self.run_id),
            Operation.SELECT_ONE: lambda: strategy.fetch_projected(width, self.run_id),
        }
        results = [BenchResult(strategy.name, width, op) for op in operations]

        try:
            await self._verify(strategy, width)
        except Exception as e:
            logger.error("[red]%s width=%d failed setup check: %s[/red]", strategy.name, width, escape(str(e)))
            for r in results:
                r.error = _describe(e)
            return results

        for result, fn in zip(results, operations.values()):
            try:
                result.samples_ms = await timeit(fn, self.config.iterations, self.config.warmup)
            except Exception as e:
                logger.error(
                    "[red]%s width=%d %s failed: %s[/red]",
                    strategy.name, width, result.operation.value, escape(str(e)),
                )
                result.samples_ms = []
                result.error = _describe(e)
            else:
                logger.debug(
                    "%s width=%d %s: %.3f ms", strategy.name, width, result.operation.value, result.mean_ms
                )
        return results

    async def run_once(self) -> BenchSuite:
        """One pass over the matrix. Assumes :meth:`setup` already ran."""
        suite = BenchSuite(run_id=self.run_id)
        for width in self.config.widths:
            logger.info("[yellow]Width %d[/yellow]", width)
            for strategy in self.strategies:
                logger.info("  • %s", strategy.name)
                for r in await self.run_cell(width, strategy):
                    suite.add(r)
            gc.collect()
        return suite

    async def run(self) -> BenchSuite:
        """Seed the run rows, then run the matrix ``best_of`` times.

        Raises:
            SetupError: If seeding the run rows fails.
        """
        logger.info("Run identity %s", self.run_id)
        await self.setup()

        best = BenchSuite(run_id=self.run_id)
        try:
            for run_num in range(1, self.config.best_of + 1):
                if self.config.best_of > 1:
                    logger.info("[bold magenta]━━━ Run %d/%d ━━━[/bold magenta]", run_num, self.config.best_of)
                best.merge_best(await self.run_once())
        finally:
            for strategy in self.strategies:
                await strategy.close()
        return best


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"

