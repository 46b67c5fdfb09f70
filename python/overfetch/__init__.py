"""overfetch - what reading a whole row costs compared to one column."""

from __future__ import annotations

from overfetch.config import BenchConfig, load_config
from overfetch.database import create_engine, session_factory
from overfetch.errors import InvariantViolation, OverfetchError, SetupError, UnsupportedParameter
from overfetch.fixture import RowFactory
from overfetch.runner import BenchmarkRunner, BenchResult, BenchSuite, Operation
from overfetch.schema import BULK_WIDTHS, WIDTHS, Base, TableBase, table_model
from overfetch.seeder import Seeder
from overfetch.strategies import (
    OrmStrategy,
    QueryStrategy,
    SqlStrategy,
    available_strategies,
    create_strategy,
)

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "BenchConfig",
    "load_config",
    # Database
    "create_engine",
    "session_factory",
    # Schema
    "Base",
    "TableBase",
    "WIDTHS",
    "BULK_WIDTHS",
    "table_model",
    # Seeding
    "RowFactory",
    "Seeder",
    # Strategies
    "QueryStrategy",
    "OrmStrategy",
    "SqlStrategy",
    "available_strategies",
    "create_strategy",
    # Benchmark
    "BenchmarkRunner",
    "BenchResult",
    "BenchSuite",
    "Operation",
    # Errors
    "OverfetchError",
    "SetupError",
    "InvariantViolation",
    "UnsupportedParameter",
]
