"""Tests for the command line entry point."""

import json

import pytest

from overfetch.cli import EXIT_CELL_FAILED, EXIT_OK, EXIT_SETUP_FAILED, main


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for var in ("DATABASE_URL", "OVERFETCH_DATABASE_URL", "OVERFETCH_WIDTHS", "OVERFETCH_STRATEGIES"):
        monkeypatch.delenv(var, raising=False)


def seed(url, *extra):
    return main(["seed", "--url", url, "--widths", "4,16", "--bulk-rows", "5", *extra])


def test_seed_then_run(sqlite_url, tmp_path):
    assert seed(sqlite_url) == EXIT_OK

    code = main([
        "--url", sqlite_url,
        "--widths", "4,16",
        "--iterations", "3",
        "--warmup", "0",
        "--export-dir", str(tmp_path / "results"),
    ])

    assert code == EXIT_OK
    assert (tmp_path / "results" / "overfetch-report.md").exists()
    assert (tmp_path / "results" / "overfetch-report.json").exists()


def test_seed_is_case_insensitive(sqlite_url):
    assert main(["SEED", "--url", sqlite_url, "--widths", "4", "--bulk-rows", "1"]) == EXIT_OK


def test_any_other_command_runs_benchmark(sqlite_url, capsys):
    assert seed(sqlite_url) == EXIT_OK
    capsys.readouterr()

    code = main(["bench", "--url", sqlite_url, "--widths", "4", "--strategies", "sql",
                 "--iterations", "2", "--json", "--no-export"])

    assert code == EXIT_OK
    data = json.loads(capsys.readouterr().out)
    assert {(r["strategy"], r["operation"]) for r in data["results"]} == {
        ("sql", "Overfetch"),
        ("sql", "SelectOne"),
    }


def test_run_without_seed_fails_setup(sqlite_url):
    assert main(["--url", sqlite_url, "--widths", "4", "--no-export"]) == EXIT_SETUP_FAILED


def test_seed_unreachable_database(tmp_path):
    url = f"sqlite:///{tmp_path / 'no' / 'such' / 'dir.db'}"
    assert seed(url) == EXIT_SETUP_FAILED


@pytest.mark.parametrize(
    "extra",
    [["--widths", "4,7"], ["--strategies", "dapper"], ["--iterations", "0"]],
)
def test_bad_parameters(sqlite_url, extra):
    assert main(["--url", sqlite_url, "--no-export", *extra]) == EXIT_SETUP_FAILED


def test_failed_cell_sets_exit_code(sqlite_url, monkeypatch):
    from overfetch import runner as runner_module
    from overfetch.errors import InvariantViolation

    assert seed(sqlite_url) == EXIT_OK

    async def broken_verify(self, strategy, width):
        raise InvariantViolation(f"table{width}", self.run_id, count=0)

    monkeypatch.setattr(runner_module.BenchmarkRunner, "_verify", broken_verify)

    code = main(["--url", sqlite_url, "--widths", "4", "--strategies", "sql", "--no-export"])
    assert code == EXIT_CELL_FAILED


@pytest.mark.parametrize("command", ["seed", "run"])
@pytest.mark.parametrize("url", ["not a url", "mysql+nosuchdriver://u:p@h/db"])
def test_bad_database_url(command, url):
    assert main([command, "--url", url, "--widths", "4", "--no-export"]) == EXIT_SETUP_FAILED


def test_bad_database_url_from_environment(monkeypatch):
    monkeypatch.setenv("OVERFETCH_DATABASE_URL", "mysql+nosuchdriver://u:p@h/db")
    assert main(["seed", "--widths", "4"]) == EXIT_SETUP_FAILED
