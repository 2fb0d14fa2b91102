"""Engine and session factory construction from Settings."""

from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlmodel import SQLModel

from guardian.core.config import Settings


def make_engine(database_url: str) -> Engine:
    """Engine for database_url. SQLite connections are shared with capture threads."""
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def make_session_factory(settings: Settings) -> Callable[[], Session]:
    """Session factory for settings.database_url; creates tables when auto_create_tables is set."""
    engine = make_engine(settings.database_url)
    if settings.auto_create_tables:
        SQLModel.metadata.create_all(engine)
    return sessionmaker(engine, autocommit=False, autoflush=False, expire_on_commit=False)
