from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from app.models.base import Base


def build_engine(database_url: str) -> Engine:
    # SQLite needs the same connection shared across the threads FastAPI runs sync code on.
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def initialize_schema(engine: Engine) -> None:
    from app.models import entities  # noqa: F401  registers DocumentRow on Base.metadata

    Base.metadata.create_all(engine)
