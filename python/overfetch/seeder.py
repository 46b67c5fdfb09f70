"""Populate the benchmark tables.

Two kinds of rows are written:

- bulk rows (``seed_bulk``), only there to give each table realistic density;
- one run row per width (``seed_run_row``) whose id is the run identity the
  benchmark looks up.

Seeding is additive. Reseeding appends rows and run rows are never deleted,
so the tables grow by one row per width for every benchmark process.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import func, insert, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from overfetch.database import session_factory
from overfetch.errors import SetupError
from overfetch.fixture import RowFactory
from overfetch.schema import BULK_WIDTHS, Base, resolve_widths, table_model

logger = logging.getLogger(__name__)

# Rows per INSERT executemany, keeps parameter counts sane for wide tables.
BATCH_SIZE = 200


class Seeder:
    """Creates the schema and writes seed rows for a set of widths.

    Every database error is raised as :class:`SetupError`; nothing is retried.

    Example:
        >>> seeder = Seeder(engine, widths=(4, 16))
        >>> await seeder.create_schema()
        >>> await seeder.seed_bulk(1000)
        >>> emails = await seeder.seed_run_row(run_id)
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        widths: Iterable[int] = BULK_WIDTHS,
        row_factory: RowFactory | None = None,
    ) -> None:
        self.engine = engine
        self.widths = resolve_widths(widths)
        self.rows = row_factory or RowFactory()
        self._sessions = session_factory(engine)

    def _tables(self) -> list:
        return [table_model(width).__table__ for width in self.widths]

    async def create_schema(self) -> None:
        """Create missing tables and indexes. Existing tables are left alone."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all, tables=self._tables())
        except (SQLAlchemyError, OSError) as e:
            raise SetupError(f"Schema creation failed: {e}") from e
        logger.info("Schema ready for widths %s", ", ".join(map(str, self.widths)))

    async def verify_schema(self) -> None:
        """Check that every configured table exists.

        Raises:
            SetupError: If a table is missing or the database is unreachable.
        """

        def _missing(sync_conn) -> list[str]:
            existing = set(inspect(sync_conn).get_table_names())
            return [t.name for t in self._tables() if t.name not in existing]

        try:
            async with self.engine.connect() as conn:
                missing = await conn.run_sync(_missing)
        except (SQLAlchemyError, OSError) as e:
            raise SetupError(f"Database unreachable: {e}") from e

        if missing:
            raise SetupError(
                f"Missing table(s): {', '.join(missing)}. Run `overfetch seed` first."
            )

    async def seed_bulk(self, rows_per_table: int = 1000) -> dict[int, int]:
        """Insert ``rows_per_table`` synthetic rows into every table.

        Each width is committed separately.

        Returns:
            Rows inserted per width.
        """
        inserted: dict[int, int] = {}
        for width in self.widths:
            model = table_model(width)
            rows = self.rows.build_many(model, rows_per_table)
            try:
                async with self.engine.begin() as conn:
                    for offset in range(0, len(rows), BATCH_SIZE):
                        await conn.execute(insert(model), rows[offset:offset + BATCH_SIZE])
            except (SQLAlchemyError, OSError) as e:
                raise SetupError(f"Bulk seed of {model.__tablename__} failed: {e}") from e
            inserted[width] = len(rows)
            logger.debug("Seeded %d rows into %s", len(rows), model.__tablename__)

        logger.info("Bulk seeded %d rows into %d tables", sum(inserted.values()), len(inserted))
        return inserted

    async def seed_run_row(self, run_id: uuid.UUID) -> dict[int, str]:
        """Insert one row per width with ``id == run_id``, in one transaction.

        Either every width gets its run row or none does.

        Returns:
            The email written for each width.
        """
        entities = [table_model(width)(**self.rows.build(table_model(width), id=run_id)) for width in self.widths]
        try:
            async with self._sessions() as session:
                async with session.begin():
                    session.add_all(entities)
        except (SQLAlchemyError, OSError) as e:
            raise SetupError(f"Seeding run row {run_id} failed: {e}") from e

        logger.info("Seeded run row %s into %d tables", run_id, len(entities))
        return {entity.width: entity.email for entity in entities}

    async def count_rows(self, width: int, run_id: uuid.UUID | None = None) -> int:
        """Count rows of a table, optionally only those with ``id == run_id``."""
        model = table_model(width)
        stmt = select(func.count()).select_from(model)
        if run_id is not None:
            stmt = stmt.where(model.id == run_id)
        try:
            async with self._sessions() as session:
                return (await session.execute(stmt)).scalar_one()
        except (SQLAlchemyError, OSError) as e:
            raise SetupError(f"Counting rows of {model.__tablename__} failed: {e}") from e
