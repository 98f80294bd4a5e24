from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
  pass


def normalize_database_url(dsn: str | None) -> str | None:
  """Rewrite plain Postgres DSNs to the asyncpg driver."""
  if dsn and dsn.startswith("postgresql://"):
    return dsn.replace("postgresql://", "postgresql+asyncpg://", 1)
  if dsn and dsn.startswith("postgres://"):
    return dsn.replace("postgres://", "postgresql+asyncpg://", 1)
  return dsn


def create_db_engine(dsn: str, *, debug: bool = False) -> AsyncEngine:
  """Build an async engine for the configured DSN."""
  database_url = normalize_database_url(dsn)
  if not database_url:
    raise RuntimeError("Database connection is not configured (COSMIC_PG_DSN is missing).")
  return create_async_engine(database_url, echo=debug, future=True, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
  """Bind a session factory to an engine owned by the caller."""
  return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
