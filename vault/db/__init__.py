"""
Database module for SQLAlchemy session management.
"""
from vault.db.session import get_db, init_db, check_db_connection, build_engine, engine, SessionLocal

__all__ = ["get_db", "init_db", "check_db_connection", "build_engine", "engine", "SessionLocal"]
