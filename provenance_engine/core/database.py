from __future__ import annotations

from provenance_engine.config import Settings
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
  pass


def database_url(raw_dsn: str) -> str:
  """Route plain Postgres DSNs through the asyncpg driver."""
  if raw_dsn.startswith("postgresql://"):
    return raw_dsn.replace("postgresql://", "postgresql+asyncpg://", 1)
  return raw_dsn


def build_engine(settings: Settings) -> AsyncEngine:
  if not settings.pg_dsn:
    raise RuntimeError("Database connection is not configured (PROVENANCE_PG_DSN is missing).")
  url = database_url(settings.pg_dsn)
  connect_args = {"timeout": settings.pg_connect_timeout} if url.startswith("postgresql+asyncpg://") else {}
  return create_async_engine(url, echo=settings.debug, future=True, connect_args=connect_args)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
  return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def create_tables(engine: AsyncEngine) -> None:
  """Create tables for registered models when they do not exist yet."""
  # Import models so they register on the metadata before create_all runs.
  from provenance_engine.schema import jobs  # noqa: F401

  async with engine.begin() as connection:
    await connection.run_sync(Base.metadata.create_all)
