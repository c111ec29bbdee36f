"""Database initialization helpers."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db_models import Base


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist yet."""
    Base.metadata.create_all(engine)


def build_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create the engine, ensure the schema and return a session factory."""
    engine = create_engine(database_url, future=True)
    init_db(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
