"""Storage layer: engine setup, data accessors and the data server."""

from .accessor import DataAccessor, SqlDataAccessor
from .base import create_engine_for_url, drop_database, get_database_url, init_database
from .server import DataServer

__all__ = [
    "DataAccessor",
    "DataServer",
    "SqlDataAccessor",
    "create_engine_for_url",
    "drop_database",
    "get_database_url",
    "init_database",
]
