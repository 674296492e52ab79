"""Database engine helpers."""

from inbox_assistant.db.engine import create_db_engine, get_engine

__all__ = ["create_db_engine", "get_engine"]
