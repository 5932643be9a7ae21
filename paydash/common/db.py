"""Database bootstrap for the payment record store."""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from paydash.common.config import settings


def engine_options(dsn: str) -> dict:
    # SQLite connections are shared across the threadpool FastAPI runs sync work on.
    if dsn.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.database_dsn, **engine_options(settings.database_dsn))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass
