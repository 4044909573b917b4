import asyncio

import pytest
from sqlalchemy import exc as sa_exc

from app.database import store_guard
from app.exceptions import ConcurrencyError, InfrastructureError, NotFoundError


class _DriverError(Exception):
    def __init__(self, sqlstate: str | None = None):
        super().__init__("driver error")
        self.sqlstate = sqlstate


@pytest.mark.asyncio
async def test_timeout_becomes_infrastructure_error() -> None:
    with pytest.raises(InfrastructureError) as excinfo:
        async with store_guard(0.01):
            await asyncio.sleep(1)
    assert excinfo.value.retryable is True


@pytest.mark.asyncio
async def test_no_timeout_when_unbounded() -> None:
    async with store_guard(None):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_integrity_error_becomes_concurrency_error() -> None:
    with pytest.raises(ConcurrencyError):
        async with store_guard():
            raise sa_exc.IntegrityError("INSERT ...", {}, _DriverError("23505"))


@pytest.mark.asyncio
async def test_serialization_failure_becomes_concurrency_error() -> None:
    with pytest.raises(ConcurrencyError):
        async with store_guard():
            raise sa_exc.OperationalError("UPDATE ...", {}, _DriverError("40001"))


@pytest.mark.asyncio
async def test_connection_failure_becomes_infrastructure_error() -> None:
    with pytest.raises(InfrastructureError):
        async with store_guard():
            raise sa_exc.OperationalError("SELECT 1", {}, _DriverError())

    with pytest.raises(InfrastructureError):
        async with store_guard():
            raise ConnectionRefusedError("connection refused")


@pytest.mark.asyncio
async def test_domain_errors_pass_through() -> None:
    with pytest.raises(NotFoundError):
        async with store_guard(1.0):
            raise NotFoundError("x")
