"""Exception hierarchy for the benchmark harness."""

from __future__ import annotations

from typing import Any


class OverfetchError(Exception):
    """Base class for every error raised by overfetch."""


class SetupError(OverfetchError):
    """Storage is unreachable, the schema is missing, or seeding failed.

    Fatal: no measurement can run without the seeded rows.
    """


class InvariantViolation(OverfetchError):
    """A lookup by id did not match exactly one row, or strategies disagree.

    Attributes:
        table: Table that was queried.
        row_id: Id that was looked up.
        count: 0 when nothing matched, None when more than one row matched
            or the failure isn't about row counts.
    """

    def __init__(self, table: str, row_id: Any, count: int | None = None, *, detail: str | None = None) -> None:
        self.table = table
        self.row_id = row_id
        self.count = count
        if detail is None:
            found = "no rows" if count == 0 else "more than one row"
            detail = f"expected exactly one row with id={row_id}, found {found}"
        super().__init__(f"{table}: {detail}")


class UnsupportedParameter(OverfetchError, ValueError):
    """A width or strategy outside the configured set was requested."""
