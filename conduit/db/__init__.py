"""PostgreSQL and Redis connection module."""

from .client import init_db, close_db, get_db_session, get_async_engine, get_db_pool, close_db_pool
from .port import get_raw_query_pool

__all__ = [
    "init_db",
    "close_db",
    "get_db_session",
    "get_async_engine",
    "get_db_pool",
    "close_db_pool",
    "get_raw_query_pool",
]
