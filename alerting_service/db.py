# alerting_service/db.py

from typing import Generator

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Table definitions must be imported before create_all
from alerting_service.models import models  # noqa: F401


# 1. Create Engine
def build_engine(database_url: str) -> Engine:
    """
    pool_pre_ping=True lets PostgreSQL connections survive a DB restart.
    SQLite (local runs, tests) shares one connection so in-memory data persists.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, pool_pre_ping=True)


# 2. Initialization
def init_db(engine: Engine) -> None:
    """
    Creates the devices, readings and alerts tables if they don't exist.
    """
    SQLModel.metadata.create_all(engine)


# 3. Dependency for FastAPI
def get_session(request: Request) -> Generator[Session, None, None]:
    """
    Yields a database session. Used in FastAPI routes via Depends(get_session).
    Rows stay loaded after commit so background tasks can read them.
    """
    with Session(request.app.state.engine, expire_on_commit=False) as session:
        yield session


def close_db_connection(engine: Engine) -> None:
    engine.dispose()
