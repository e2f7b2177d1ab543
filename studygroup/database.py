from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from studygroup.core.config import DATABASE_URL, SQL_ECHO


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    kwargs = {"connect_args": {"check_same_thread": False}}
    # An in-memory database only lives as long as its single connection
    if url.endswith("://") or ":memory:" in url:
        kwargs["poolclass"] = StaticPool
    return kwargs


# Async engine
engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO, **_engine_kwargs(DATABASE_URL))


if engine.dialect.name == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # SQLite leaves foreign keys unenforced unless asked per connection
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Async session factory
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


# Dependency
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


# Base class for models
Base = declarative_base()
