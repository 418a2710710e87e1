# app/core/store.py
"""
Data-access plumbing shared by every store.

Each call here is one awaited round trip to the hosted database. Failures
are translated into the application error taxonomy and the session is
rolled back so it can be reused for the next step (or a compensation).
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional, Type

from loguru import logger
from sqlalchemy import or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from app.core.config import settings
from app.core.exceptions import Conflict, NotFound, Unavailable


async def _rollback(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except Exception:
        logger.exception("Rollback failed; session will be discarded")


def _integrity_message(exc: IntegrityError) -> str:
    msg = str(getattr(exc, "orig", exc)).lower()
    if "department_hod_id" in msg:
        return "Faculty is already HOD of another department"
    if "email" in msg:
        return "Email already exists"
    if "foreign key" in msg:
        return "Row is still referenced by another record"
    return "Write rejected by a database constraint"


@asynccontextmanager
async def _round_trip(session: AsyncSession, operation: str):
    try:
        yield
    except asyncio.TimeoutError:
        await _rollback(session)
        logger.warning("Database timed out during {}", operation)
        raise Unavailable(f"Database timed out during {operation}", operation=operation)
    except IntegrityError as e:
        await _rollback(session)
        raise Conflict(_integrity_message(e)) from e
    except (OperationalError, InterfaceError) as e:
        await _rollback(session)
        logger.error("Database unreachable during {}: {}", operation, e)
        raise Unavailable(f"Database unavailable during {operation}", operation=operation) from e
    except DBAPIError as e:
        await _rollback(session)
        if e.connection_invalidated:
            raise Unavailable(f"Database connection lost during {operation}", operation=operation) from e
        raise


# ------------------------------------------------------------
# ROUND TRIPS
# ------------------------------------------------------------
async def execute(session: AsyncSession, stmt, operation: str = "query"):
    async with _round_trip(session, operation):
        return await asyncio.wait_for(
            session.execute(stmt), timeout=settings.STORE_TIMEOUT_SECONDS
        )


async def commit(session: AsyncSession, operation: str = "commit") -> None:
    async with _round_trip(session, operation):
        await asyncio.wait_for(session.commit(), timeout=settings.STORE_TIMEOUT_SECONDS)


def detach(session: AsyncSession, row):
    """
    Take a loaded row out of the session. A later rollback expires every
    attached instance, and an expired attribute cannot be lazy-loaded under
    asyncio; detached rows keep their values for undo steps and messages.
    """
    if row is not None and row in session:
        session.expunge(row)
    return row


async def insert(session: AsyncSession, row: SQLModel, operation: str = "insert"):
    session.add(row)
    await commit(session, operation)
    async with _round_trip(session, operation):
        await session.refresh(row)
    return detach(session, row)


async def fetch_by_id(session: AsyncSession, model: Type[SQLModel], pk: Any):
    """Re-read a row, overwriting whatever the session has cached for it."""
    stmt = (
        select(model)
        .where(model.id == pk)
        .execution_options(populate_existing=True)
    )
    result = await execute(session, stmt, f"fetch {model.__name__}")
    return detach(session, result.scalars().first())


# ------------------------------------------------------------
# CONDITIONAL UPDATE (compare-and-swap on `version`)
# ------------------------------------------------------------
async def guarded_update(
    session: AsyncSession,
    model: Type[SQLModel],
    pk: Any,
    values: Dict[str, Any],
    expected_version: int,
    operation: Optional[str] = None,
):
    """
    UPDATE model SET values WHERE id = pk AND version = expected_version.

    Bumps `version` and `updated_date`, commits, and returns the fresh row.
    Raises NotFound if the row is gone and Conflict if someone else wrote
    it since `expected_version` was read.
    """
    name = model.__name__
    operation = operation or f"update {name}"

    stmt = (
        update(model)
        .where(model.id == pk, model.version == expected_version)
        .values(**values, version=model.version + 1, updated_date=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await execute(session, stmt, operation)

    if result.rowcount == 0:
        await _rollback(session)
        current = await fetch_by_id(session, model, pk)
        if current is None:
            raise NotFound(f"{name} {pk} not found", resource_type=name.lower())
        logger.warning(
            "{} {} changed concurrently (expected v{}, found v{})",
            name, pk, expected_version, current.version,
        )
        raise Conflict(
            f"{name} {pk} was modified concurrently; reload and try again",
            details={"expected_version": expected_version, "current_version": current.version},
        )

    await commit(session, operation)
    return await fetch_by_id(session, model, pk)


# ------------------------------------------------------------
# SEARCH
# ------------------------------------------------------------
def ilike_any(term: str, *columns):
    """`or`-composed case-insensitive substring filter."""
    return or_(*[col.icontains(term, autoescape=True) for col in columns])
