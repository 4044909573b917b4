import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import ConcurrencyError, InfrastructureError
from shared.database.postgres import get_async_session_factory, get_session

# Import all models so SQLAlchemy's Base.metadata is populated.
# Required for Alembic autogenerate and create_all().
import app.models  # noqa: F401

logger = logging.getLogger(__name__)

_session_factory: async_sessionmaker[AsyncSession] | None = None

# serialization_failure, deadlock_detected
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01"})


def init_db(database_url: str) -> None:
    global _session_factory
    _session_factory = get_async_session_factory(database_url, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized")
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session(get_session_factory()):
        yield session


# ---------------------------------------------------------------------------
# Transaction boundary & store error translation
# ---------------------------------------------------------------------------


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """All-or-nothing unit of work on ``db``.

    Begins (and commits) a transaction when the session has none open;
    inside a caller's open transaction it runs under a SAVEPOINT instead.
    Any exception rolls the unit back and propagates.
    """
    if db.in_transaction():
        async with db.begin_nested():
            yield db
    else:
        async with db.begin():
            yield db


def _sqlstate(exc: sa_exc.DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@asynccontextmanager
async def store_guard(timeout: float | None = None) -> AsyncIterator[None]:
    """Bound a block of store calls and classify what goes wrong.

    - ``asyncio`` timeout, pool timeout, connectivity -> InfrastructureError
    - unique violation, serialization failure, deadlock -> ConcurrencyError

    Both are retryable; neither is ever reported as an unmet requirement.
    """
    try:
        async with asyncio.timeout(timeout):
            yield
    except TimeoutError as exc:
        logger.warning("Store call exceeded %ss timeout", timeout)
        raise InfrastructureError(f"Store call timed out after {timeout}s") from exc
    except sa_exc.IntegrityError as exc:
        logger.warning("Write conflict: %s", exc.orig)
        raise ConcurrencyError("Concurrent update conflict, retry the request") from exc
    except sa_exc.DBAPIError as exc:
        if _sqlstate(exc) in _CONFLICT_SQLSTATES:
            logger.warning("Transaction conflict (sqlstate=%s)", _sqlstate(exc))
            raise ConcurrencyError("Concurrent update conflict, retry the request") from exc
        logger.warning("Store failure: %s", exc.orig)
        raise InfrastructureError("Progress store unavailable") from exc
    except (sa_exc.TimeoutError, OSError) as exc:
        logger.warning("Store connectivity failure: %s", exc)
        raise InfrastructureError("Progress store unavailable") from exc


# ---------------------------------------------------------------------------
# Dialect-aware upsert
# ---------------------------------------------------------------------------


def upsert(db: AsyncSession, model: Any) -> Any:
    """``INSERT`` construct supporting ``on_conflict_do_update`` for the bound dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise NotImplementedError(f"Upsert not supported for dialect {dialect!r}")
