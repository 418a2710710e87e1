# app/services/faculty_service.py

from typing import Optional

from loguru import logger
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core import store
from app.core.exceptions import (
    CollegeAdminError,
    Conflict,
    Degraded,
    InvalidState,
    NotFound,
    PreconditionFailed,
)
from app.models.faculty import Faculty
from app.schemas.faculty import (
    FacultyCreate,
    FacultyProfileUpdate,
    FacultyStats,
    FacultyUpdate,
)
from app.schemas.hod import HodRelease


def _has_department(department: Optional[str]) -> bool:
    return bool(department and department.strip())


# ------------------------------------------------------------
# READ
# ------------------------------------------------------------
async def list_faculty(session: AsyncSession, admin_email: Optional[str] = None) -> list[Faculty]:
    stmt = select(Faculty)
    if admin_email:
        stmt = stmt.where(Faculty.admin_email == admin_email)
    result = await store.execute(session, stmt.order_by(Faculty.id.desc()), "list faculty")
    return list(result.scalars().all())


async def get_faculty(session: AsyncSession, faculty_id: int) -> Faculty:
    faculty = await store.fetch_by_id(session, Faculty, faculty_id)
    if not faculty:
        raise NotFound(f"Faculty {faculty_id} not found", resource_type="faculty")
    return faculty


async def get_faculty_by_email(session: AsyncSession, email: str) -> Faculty:
    result = await store.execute(
        session,
        select(Faculty).where(func.lower(Faculty.email) == email.strip().lower()),
        "get faculty by email",
    )
    faculty = result.scalars().first()
    if not faculty:
        raise NotFound(f"No faculty registered with {email}", resource_type="faculty")
    return faculty


async def search_faculty(
    session: AsyncSession, term: str, admin_email: Optional[str] = None
) -> list[Faculty]:
    """Case-insensitive substring match over names, email and department."""
    term = term.strip()
    if not term:
        return await list_faculty(session, admin_email)

    stmt = select(Faculty).where(
        store.ilike_any(
            term,
            Faculty.email,
            Faculty.first_name,
            Faculty.last_name,
            Faculty.department,
        )
    )
    if admin_email:
        stmt = stmt.where(Faculty.admin_email == admin_email)
    result = await store.execute(session, stmt.order_by(Faculty.id.desc()), "search faculty")
    return list(result.scalars().all())


async def list_available_hods(
    session: AsyncSession,
    admin_email: Optional[str] = None,
    include_id: Optional[int] = None,
) -> list[Faculty]:
    """
    Active faculty not chairing any department: the candidates offered when
    picking a department's HOD. `include_id` keeps the department's current
    HOD in the list when editing.
    """
    condition = (Faculty.is_active == True) & (Faculty.is_hod == False)  # noqa: E712
    if include_id is not None:
        condition = condition | (Faculty.id == include_id)

    stmt = select(Faculty).where(condition)
    if admin_email:
        stmt = stmt.where(Faculty.admin_email == admin_email)
    result = await store.execute(
        session,
        stmt.order_by(Faculty.first_name.asc(), Faculty.last_name.asc()),
        "list available HODs",
    )
    return list(result.scalars().all())


async def faculty_stats(session: AsyncSession, admin_email: Optional[str] = None) -> FacultyStats:
    rows = await list_faculty(session, admin_email)
    active = sum(1 for f in rows if f.is_active)
    return FacultyStats(
        total=len(rows),
        active=active,
        inactive=len(rows) - active,
        hod=sum(1 for f in rows if f.is_hod),
    )


# ------------------------------------------------------------
# CREATE
# ------------------------------------------------------------
async def create_faculty(session: AsyncSession, data: FacultyCreate, admin_email: str) -> Faculty:
    for key in ("first_name", "last_name"):
        if not getattr(data, key).strip():
            raise InvalidState(f"{key.replace('_', ' ').capitalize()} cannot be empty")

    has_department = _has_department(data.department)
    requested = True if data.is_active is None else data.is_active

    faculty = Faculty(
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        department=data.department.strip() if has_department else None,
        email=str(data.email).strip().lower(),
        phone=data.phone,
        gender=data.gender,
        qualification=data.qualification,
        # no department -> never active
        is_active=requested and has_department,
        is_hod=False,
        admin_email=admin_email,
    )
    faculty = await store.insert(session, faculty, "create faculty")
    logger.info("Faculty {} created by {}", faculty.id, admin_email)
    return faculty


# ------------------------------------------------------------
# UPDATE
# ------------------------------------------------------------
async def update_faculty(session: AsyncSession, faculty_id: int, patch: FacultyUpdate) -> Faculty:
    faculty = await get_faculty(session, faculty_id)
    values = patch.model_dump(exclude_unset=True)

    for key in ("first_name", "last_name"):
        if key in values:
            if not values[key] or not values[key].strip():
                raise InvalidState(f"{key.replace('_', ' ').capitalize()} cannot be empty")
            values[key] = values[key].strip()

    department = values.get("department", faculty.department)
    if "department" in values and department is not None:
        values["department"] = department = department.strip()

    if not _has_department(department):
        if values.get("is_active"):
            raise PreconditionFailed("Faculty cannot be active without a department")
        if faculty.is_hod:
            raise InvalidState(
                f"{faculty.full_name} is an HOD; replace them in department management "
                "before removing their department"
            )
        values["is_active"] = False

    if values.get("is_active") is False and faculty.is_hod:
        raise InvalidState(
            f"{faculty.full_name} is an HOD and cannot be deactivated directly; "
            "select a replacement HOD or disable the department"
        )

    if not values:
        return faculty

    return await store.guarded_update(
        session, Faculty, faculty_id, values, faculty.version, "update faculty"
    )


async def update_own_profile(
    session: AsyncSession, faculty_id: int, patch: FacultyProfileUpdate
) -> Faculty:
    """Faculty-portal edit: personal details only."""
    faculty = await get_faculty(session, faculty_id)
    values = patch.model_dump(exclude_unset=True)
    for key in ("first_name", "last_name"):
        if key in values and (not values[key] or not values[key].strip()):
            raise InvalidState(f"{key.replace('_', ' ').capitalize()} cannot be empty")
    if not values:
        return faculty
    return await store.guarded_update(
        session, Faculty, faculty_id, values, faculty.version, "update faculty profile"
    )


async def set_faculty_active(session: AsyncSession, faculty_id: int, is_active: bool) -> Faculty:
    faculty = await get_faculty(session, faculty_id)

    if is_active and not faculty.has_department:
        raise PreconditionFailed(
            f"{faculty.full_name} has no department; assign one before activating"
        )
    if not is_active and faculty.is_hod:
        raise InvalidState(
            f"{faculty.full_name} is an HOD and cannot be deactivated directly; "
            "select a replacement HOD or disable the department"
        )
    if faculty.is_active == is_active:
        return faculty

    return await store.guarded_update(
        session, Faculty, faculty_id, {"is_active": is_active}, faculty.version,
        "toggle faculty status",
    )


async def set_hod_flag(
    session: AsyncSession,
    faculty_id: int,
    is_hod: bool,
    expected_version: Optional[int] = None,
) -> Faculty:
    """
    Low-level HOD flag write. Only the HOD coordinator calls this; it has
    no view of the department side of the relationship.
    """
    if expected_version is None:
        expected_version = (await get_faculty(session, faculty_id)).version
    return await store.guarded_update(
        session, Faculty, faculty_id, {"is_hod": is_hod}, expected_version,
        "promote faculty" if is_hod else "demote faculty",
    )


# ------------------------------------------------------------
# DELETE
# ------------------------------------------------------------
async def delete_faculty(session: AsyncSession, faculty_id: int) -> HodRelease:
    """
    Discharge any HOD duties first, then remove the row. Returns the
    department that was deactivated (if any) so the caller can warn.
    """
    from app.services import hod_coordinator

    faculty = await get_faculty(session, faculty_id)

    try:
        release = await hod_coordinator.release_hod_if_any(session, faculty_id)
    except Degraded:
        raise
    except CollegeAdminError as e:
        logger.warning("Faculty {} not deleted; HOD release failed: {}", faculty_id, e.message)
        raise Conflict(
            f"Could not release HOD duties of {faculty.full_name}; faculty was not deleted"
        ) from e

    # is_hod guard: a concurrent promotion after the release blocks the delete
    result = await store.execute(
        session,
        delete(Faculty).where(Faculty.id == faculty_id, Faculty.is_hod == False),  # noqa: E712
        "delete faculty",
    )
    if result.rowcount == 0:
        await session.rollback()
        raise Conflict(f"{faculty.full_name} was promoted concurrently; faculty was not deleted")
    await store.commit(session, "delete faculty")

    logger.info("Faculty {} deleted", faculty_id)
    return release
