"""Database package — async engine, session factory and declarative Base."""
from cphb_events.db.base import Base, async_session_factory, engine, get_db, make_engine

__all__ = ["Base", "async_session_factory", "engine", "get_db", "make_engine"]
