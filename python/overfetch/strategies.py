"""Interchangeable ways of reading one row's email.

Every strategy answers the same two questions for a ``(width, id)`` pair:

- ``fetch_full``: read every column of the row, then return its email
  (the over-fetching pattern);
- ``fetch_projected``: ask the database for the email column only.

For any seeded row all strategies must return the same email from both
operations; the timing comparison is meaningless otherwise.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Protocol, runtime_checkable

from sqlalchemy import Uuid, bindparam, select, text
from sqlalchemy.exc import MultipleResultsFound, NoResultFound
from sqlalchemy.ext.asyncio import AsyncEngine

from overfetch.database import session_factory
from overfetch.errors import InvariantViolation, UnsupportedParameter
from overfetch.schema import table_model


@runtime_checkable
class QueryStrategy(Protocol):
    """Capability set shared by every data-access strategy."""

    name: str

    async def fetch_full(self, width: int, row_id: uuid.UUID) -> str:
        """Load the whole row and return its email."""
        ...

    async def fetch_projected(self, width: int, row_id: uuid.UUID) -> str:
        """Select only the email column."""
        ...

    async def close(self) -> None:
        ...


@contextmanager
def exactly_one(table: str, row_id: uuid.UUID) -> Iterator[None]:
    """Translate SQLAlchemy's one-row errors into :class:`InvariantViolation`."""
    try:
        yield
    except NoResultFound:
        raise InvariantViolation(table, row_id, count=0) from None
    except MultipleResultsFound:
        raise InvariantViolation(table, row_id) from None


# ========== ORM ==========

class OrmStrategy:
    """Mapped-entity queries through an ``AsyncSession``.

    With ``tracking=True`` the full row is loaded as an entity that lives in
    the session's identity map. With ``tracking=False`` the row is read as
    plain columns and turned into a transient entity that is never attached
    to a session, so identity-map and change-tracking overhead drop out and
    only the cost of moving the bytes remains.
    """

    def __init__(self, engine: AsyncEngine, *, tracking: bool = True) -> None:
        self.tracking = tracking
        self.name = "orm" if tracking else "orm-notracking"
        self._sessions = session_factory(engine, tracking=tracking)

    async def fetch_full(self, width: int, row_id: uuid.UUID) -> str:
        model = table_model(width)
        async with self._sessions() as session:
            with exactly_one(model.__tablename__, row_id):
                if self.tracking:
                    result = await session.execute(select(model).where(model.id == row_id))
                    entity = result.scalar_one()
                else:
                    result = await session.execute(select(model.__table__).where(model.id == row_id))
                    entity = model(**result.mappings().one())
            return entity.email

    async def fetch_projected(self, width: int, row_id: uuid.UUID) -> str:
        model = table_model(width)
        async with self._sessions() as session:
            with exactly_one(model.__tablename__, row_id):
                result = await session.execute(select(model.email).where(model.id == row_id))
                return result.scalar_one()

    async def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"OrmStrategy(tracking={self.tracking})"


# ========== Hand-written SQL ==========

class SqlStrategy:
    """Parameterised SQL on a bare connection, rows mapped to dicts.

    The statements are written out by hand; the mapped classes are only used
    to validate the width and look up the table name.
    """

    name = "sql"

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @staticmethod
    def _statement(sql: str):
        return text(sql).bindparams(bindparam("id", type_=Uuid()))

    async def fetch_full(self, width: int, row_id: uuid.UUID) -> str:
        table = table_model(width).__tablename__
        stmt = self._statement(f"SELECT * FROM {table} WHERE id = :id")
        async with self._engine.connect() as conn:
            result = await conn.execute(stmt, {"id": row_id})
            with exactly_one(table, row_id):
                row = dict(result.mappings().one())
        return row["email"]

    async def fetch_projected(self, width: int, row_id: uuid.UUID) -> str:
        table = table_model(width).__tablename__
        stmt = self._statement(f"SELECT email FROM {table} WHERE id = :id")
        async with self._engine.connect() as conn:
            result = await conn.execute(stmt, {"id": row_id})
            with exactly_one(table, row_id):
                return result.scalar_one()

    async def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return "SqlStrategy()"


# ========== Registry ==========

STRATEGIES: dict[str, Callable[[AsyncEngine], QueryStrategy]] = {
    "orm": lambda engine: OrmStrategy(engine, tracking=True),
    "orm-notracking": lambda engine: OrmStrategy(engine, tracking=False),
    "sql": SqlStrategy,
}


def available_strategies() -> list[str]:
    """Names accepted by :func:`create_strategy`."""
    return list(STRATEGIES)


def create_strategy(name: str, engine: AsyncEngine) -> QueryStrategy:
    """Instantiate a strategy by name.

    Raises:
        UnsupportedParameter: If ``name`` isn't registered.
    """
    try:
        factory = STRATEGIES[name.strip().lower()]
    except KeyError:
        raise UnsupportedParameter(
            f"Unknown strategy {name!r}; expected one of {', '.join(STRATEGIES)}"
        ) from None
    return factory(engine)
