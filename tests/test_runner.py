"""Tests for the benchmark runner."""

import math
import uuid

import pytest

from overfetch import (
    BenchConfig,
    BenchmarkRunner,
    BenchResult,
    BenchSuite,
    InvariantViolation,
    Operation,
    Seeder,
    SetupError,
    SqlStrategy,
)
from overfetch.runner import timeit


def make_config(**kwargs):
    kwargs.setdefault("iterations", 5)
    kwargs.setdefault("warmup", 1)
    return BenchConfig(**kwargs)


class BrokenStrategy:
    """Fails every lookup on one width."""

    name = "broken"

    def __init__(self, engine, broken_width):
        self._inner = SqlStrategy(engine)
        self.broken_width = broken_width

    async def fetch_full(self, width, row_id):
        if width == self.broken_width:
            raise InvariantViolation(f"table{width}", row_id, count=0)
        return await self._inner.fetch_full(width, row_id)

    async def fetch_projected(self, width, row_id):
        return await self._inner.fetch_projected(width, row_id)

    async def close(self):
        pass


class FlakyStrategy(BrokenStrategy):
    """Passes the pre-timing check, then fails full fetches on one width."""

    name = "flaky"

    def __init__(self, engine, broken_width):
        super().__init__(engine, broken_width)
        self.calls = 0

    async def fetch_full(self, width, row_id):
        if width == self.broken_width:
            self.calls += 1
            if self.calls > 1:
                raise RuntimeError("connection dropped")
        return await self._inner.fetch_full(width, row_id)


class DisagreeingStrategy(BrokenStrategy):
    name = "disagreeing"

    async def fetch_projected(self, width, row_id):
        return "someone-else@example.com"


@pytest.fixture
async def schema(sqlite_engine):
    seeder = Seeder(sqlite_engine, widths=(4, 512))
    await seeder.create_schema()
    await seeder.seed_bulk(10)
    return sqlite_engine


# ========== Statistics ==========

def test_result_statistics():
    r = BenchResult("sql", 4, Operation.OVERFETCH, samples_ms=[1.0, 2.0, 3.0, 4.0])
    assert r.ok
    assert r.mean_ms == 2.5
    assert r.median_ms == 2.5
    assert r.min_ms == 1.0
    assert r.max_ms == 4.0
    assert r.stddev_ms == pytest.approx(1.290994, rel=1e-5)
    assert r.error_ms == pytest.approx(3.2905 * 1.290994 / 2, rel=1e-4)


def test_failed_result():
    r = BenchResult("sql", 4, Operation.SELECT_ONE, error="boom")
    assert not r.ok
    assert math.isnan(r.mean_ms)
    assert r.error_ms == 0.0
    assert r.to_dict()["mean_ms"] is None
    assert r.to_dict()["operation"] == "SelectOne"


def test_merge_best_keeps_fastest_and_successful():
    slow = BenchResult("orm", 4, Operation.OVERFETCH, samples_ms=[5.0])
    fast = BenchResult("orm", 4, Operation.OVERFETCH, samples_ms=[1.0])
    failed = BenchResult("sql", 4, Operation.OVERFETCH, error="x")
    recovered = BenchResult("sql", 4, Operation.OVERFETCH, samples_ms=[9.0])

    suite = BenchSuite([slow, failed])
    suite.merge_best(BenchSuite([fast, recovered]))

    assert suite.get("orm", 4, Operation.OVERFETCH) is fast
    assert suite.get("sql", 4, Operation.OVERFETCH) is recovered
    assert suite.ok


@pytest.mark.asyncio
async def test_timeit_counts_calls():
    calls = []

    async def fn():
        calls.append(1)

    samples = await timeit(fn, iterations=7, warmup=3)
    assert len(samples) == 7
    assert len(calls) == 10
    assert all(s >= 0 for s in samples)


# ========== Matrix ==========

@pytest.mark.asyncio
async def test_matrix_four_cells(schema):
    """Widths {4, 512} x two strategies -> 4 cells, both operations each."""
    config = make_config(widths=(4, 512), strategies=("orm", "sql"))
    runner = BenchmarkRunner(schema, config)

    suite = await runner.run()

    assert suite.cells() == [(4, "orm"), (4, "sql"), (512, "orm"), (512, "sql")]
    assert len(suite.results) == 8
    assert suite.ok
    for r in suite.results:
        assert len(r.samples_ms) == 5
    assert suite.run_id == runner.run_id


@pytest.mark.asyncio
async def test_setup_seeds_run_row_once(schema):
    run_id = uuid.uuid4()
    runner = BenchmarkRunner(schema, make_config(widths=(4, 512)), run_id=run_id)

    await runner.run()

    seeder = Seeder(schema, widths=(4, 512))
    assert await seeder.count_rows(4, run_id) == 1
    assert await seeder.count_rows(512, run_id) == 1
    assert set(runner.expected) == {4, 512}


@pytest.mark.asyncio
async def test_failed_cell_is_isolated(schema):
    config = make_config(widths=(4, 512))
    runner = BenchmarkRunner(
        schema,
        config,
        strategies=[SqlStrategy(schema), BrokenStrategy(schema, broken_width=512)],
    )

    suite = await runner.run()

    assert not suite.ok
    failures = suite.failures()
    assert {(r.strategy, r.width) for r in failures} == {("broken", 512)}
    assert all("InvariantViolation" in r.error for r in failures)
    assert suite.get("broken", 4, Operation.OVERFETCH).ok
    assert suite.get("sql", 512, Operation.SELECT_ONE).ok


@pytest.mark.asyncio
async def test_disagreeing_strategy_fails_its_cell(schema):
    runner = BenchmarkRunner(
        schema,
        make_config(widths=(4,)),
        strategies=[DisagreeingStrategy(schema, broken_width=None)],
    )

    suite = await runner.run()

    assert [r.ok for r in suite.results] == [False, False]
    assert "someone-else" in suite.results[0].error


@pytest.mark.asyncio
async def test_missing_schema_is_fatal(sqlite_engine):
    runner = BenchmarkRunner(sqlite_engine, make_config(widths=(4,)))

    with pytest.raises(SetupError, match="overfetch seed"):
        await runner.run()


@pytest.mark.asyncio
async def test_best_of_merges_runs(schema):
    runner = BenchmarkRunner(schema, make_config(widths=(4,), strategies=("sql",), best_of=3))

    suite = await runner.run()

    assert len(suite.results) == 2
    assert suite.ok


@pytest.mark.asyncio
async def test_error_inside_timed_loop_fails_only_that_operation(schema):
    runner = BenchmarkRunner(
        schema,
        make_config(widths=(4, 512)),
        strategies=[FlakyStrategy(schema, broken_width=512), SqlStrategy(schema)],
    )

    suite = await runner.run()

    failed = suite.get("flaky", 512, Operation.OVERFETCH)
    assert not failed.ok
    assert failed.samples_ms == []
    assert failed.error == "RuntimeError: connection dropped"
    assert suite.failures() == [failed]

    assert suite.get("flaky", 512, Operation.SELECT_ONE).ok
    assert suite.get("flaky", 4, Operation.OVERFETCH).ok
    assert suite.get("sql", 512, Operation.OVERFETCH).ok


@pytest.mark.asyncio
async def test_cell_without_run_row_fails(schema):
    """Without setup() there is no seeded email to compare against."""
    runner = BenchmarkRunner(schema, make_config(widths=(4,)), strategies=[SqlStrategy(schema)])

    results = await runner.run_cell(4, runner.strategies[0])

    assert [r.ok for r in results] == [False, False]
    assert "setup()" in results[0].error
