"""Database package: shared engine, session factory and declarative base."""

from todo_api.db.base import Base, close_db, get_session_factory, init_db

__all__ = [
    "Base",
    "close_db",
    "get_session_factory",
    "init_db",
]
