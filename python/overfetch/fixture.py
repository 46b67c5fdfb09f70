"""Synthetic row generation for seeding.

Values are meaningless: filler columns only exist to make rows wide. Pass a
seeded ``random.Random`` for reproducible output.
"""

from __future__ import annotations

import random
import string
import uuid
from typing import Any

from overfetch.schema import TableBase, filler_columns

DOMAINS = ("example.com", "example.org", "example.net", "mail.test")


class RowFactory:
    """Builds column dictionaries for the benchmark tables.

    Example:
        >>> factory = RowFactory(random.Random(42))
        >>> row = factory.build(table_model(4), id=run_id)
        >>> sorted(row)
        ['col_001', 'col_002', 'col_003', 'col_004', 'email', 'id']
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def new_id(self) -> uuid.UUID:
        return uuid.UUID(int=self._rng.getrandbits(128), version=4)

    def email(self) -> str:
        local = "".join(self._rng.choices(string.ascii_lowercase + string.digits, k=12))
        return f"{local}@{self._rng.choice(DOMAINS)}"

    def filler(self, column: str) -> str:
        # column name followed by a random hex token, e.g. "col_007a3f..."
        return f"{column}{self._rng.getrandbits(128):032x}"

    def build(self, model: type[TableBase], **overrides: Any) -> dict[str, Any]:
        """Build one row for ``model``.

        Args:
            model: Mapped table class.
            **overrides: Column values that replace the generated ones.

        Returns:
            Mapping of column name to value, covering every column.
        """
        row: dict[str, Any] = {"id": self.new_id(), "email": self.email()}
        for column in filler_columns(model):
            row[column] = self.filler(column)

        unknown = set(overrides) - set(row)
        if unknown:
            raise TypeError(f"Unknown column(s) for {model.__tablename__}: {', '.join(sorted(unknown))}")
        row.update(overrides)
        return row

    def build_many(self, model: type[TableBase], count: int) -> list[dict[str, Any]]:
        """Build ``count`` rows with distinct ids."""
        rows: list[dict[str, Any]] = []
        seen: set[uuid.UUID] = set()
        while len(rows) < count:
            row = self.build(model)
            if row["id"] in seen:
                continue
            seen.add(row["id"])
            rows.append(row)
        return rows
