"""Mapped tables of increasing width.

Every table has the same shape: an ``id`` primary key, an indexed ``email``
column and ``width`` filler columns. The eight mapped classes are generated
from one factory instead of being declared by hand.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable

from sqlalchemy import String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from overfetch.errors import UnsupportedParameter

WIDTHS: tuple[int, ...] = (4, 8, 16, 32, 64, 128, 256, 512)

# Widths populated by ``overfetch seed`` and tagged with the run row.
BULK_WIDTHS: tuple[int, ...] = WIDTHS

FILLER_LENGTH = 64
EMAIL_LENGTH = 255


class Base(DeclarativeBase):
    pass


class TableBase(Base):
    """Columns shared by every benchmark table."""

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(String(EMAIL_LENGTH), index=True)

    # Number of filler columns, set on each generated subclass.
    width = 0

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} email={self.email!r}>"


def filler_names(width: int) -> list[str]:
    """Column names for ``width`` filler columns: ``col_001``, ``col_002``, ..."""
    digits = max(3, len(str(width)))
    return [f"col_{i:0{digits}d}" for i in range(1, width + 1)]


def _build_model(width: int) -> type[TableBase]:
    namespace: dict[str, object] = {
        "__tablename__": f"table{width}",
        "__module__": __name__,
        "width": width,
    }
    for name in filler_names(width):
        namespace[name] = mapped_column(String(FILLER_LENGTH), nullable=True)
    return type(f"Table{width}", (TableBase,), namespace)  # type: ignore[return-value]


_MODELS: dict[int, type[TableBase]] = {width: _build_model(width) for width in WIDTHS}


def table_model(width: int) -> type[TableBase]:
    """Return the mapped class for a table width.

    Raises:
        UnsupportedParameter: If ``width`` is not one of :data:`WIDTHS`.
    """
    try:
        return _MODELS[width]
    except (KeyError, TypeError):
        raise UnsupportedParameter(
            f"Unsupported width {width!r}; expected one of {', '.join(map(str, WIDTHS))}"
        ) from None


def filler_columns(model: type[TableBase]) -> list[str]:
    """Names of the filler columns of a mapped table, in declaration order."""
    return [c.name for c in model.__table__.columns if c.name not in ("id", "email")]


def resolve_widths(values: Iterable[int | str]) -> tuple[int, ...]:
    """Validate widths and return them sorted and de-duplicated.

    Accepts ints or numeric strings (as they come from the CLI or the
    environment).

    Raises:
        UnsupportedParameter: On an unknown or non-numeric width.
    """
    widths: set[int] = set()
    for value in values:
        try:
            width = int(str(value).strip())
        except ValueError:
            raise UnsupportedParameter(f"Width must be an integer, got {value!r}") from None
        table_model(width)
        widths.add(width)
    if not widths:
        raise UnsupportedParameter("At least one width is required")
    return tuple(sorted(widths))
