# app/services/department_service.py

from typing import Optional

from loguru import logger
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core import store
from app.core.exceptions import (
    CollegeAdminError,
    InvalidOperation,
    InvalidState,
    NotFound,
    PreconditionFailed,
)
from app.models.department import Department
from app.schemas.department import DepartmentCreate, DepartmentUpdate


# ------------------------------------------------------------
# READ
# ------------------------------------------------------------
async def list_departments(session: AsyncSession, admin_email: Optional[str] = None) -> list[Department]:
    stmt = select(Department)
    if admin_email:
        stmt = stmt.where(Department.admin_email == admin_email)
    result = await store.execute(session, stmt.order_by(Department.id.desc()), "list departments")
    return list(result.scalars().all())


async def get_department(session: AsyncSession, department_id: int) -> Department:
    department = await store.fetch_by_id(session, Department, department_id)
    if not department:
        raise NotFound(f"Department {department_id} not found", resource_type="department")
    return department


async def find_by_hod_id(session: AsyncSession, faculty_id: int) -> Optional[Department]:
    """The department chaired by `faculty_id`, or None."""
    result = await store.execute(
        session,
        select(Department)
        .where(Department.department_hod_id == faculty_id)
        .execution_options(populate_existing=True),
        "find department by HOD",
    )
    rows = [store.detach(session, d) for d in result.scalars().all()]
    if len(rows) > 1:
        logger.error(
            "Faculty {} chairs {} departments ({}); needs reconciliation",
            faculty_id, len(rows), [d.id for d in rows],
        )
    return rows[0] if rows else None


async def search_departments(
    session: AsyncSession, term: str, admin_email: Optional[str] = None
) -> list[Department]:
    term = term.strip()
    if not term:
        return await list_departments(session, admin_email)

    stmt = select(Department).where(
        store.ilike_any(term, Department.name, Department.admin_email)
    )
    if admin_email:
        stmt = stmt.where(Department.admin_email == admin_email)
    result = await store.execute(session, stmt.order_by(Department.id.desc()), "search departments")
    return list(result.scalars().all())


# ------------------------------------------------------------
# CREATE
# ------------------------------------------------------------
async def create_department(
    session: AsyncSession, data: DepartmentCreate, admin_email: str
) -> Department:
    hod_id = data.department_hod_id
    is_active = data.is_department_active
    if is_active is None:
        is_active = hod_id is not None

    if is_active and hod_id is None:
        raise InvalidState("A department cannot be active without an HOD")
    if not data.name or not data.name.strip():
        raise InvalidState("Department name cannot be empty")

    department = Department(
        name=data.name.strip(),
        establish_year=data.establish_year,
        department_hod_id=hod_id,
        is_department_active=is_active,
        admin_email=admin_email,
    )
    department = await store.insert(session, department, "create department")
    logger.info("Department {} ({}) created by {}", department.id, department.name, admin_email)
    return department


# ------------------------------------------------------------
# UPDATE
# ------------------------------------------------------------
async def update_department(
    session: AsyncSession, department_id: int, patch: DepartmentUpdate
) -> Department:
    department = await get_department(session, department_id)
    values = patch.model_dump(exclude_unset=True)

    if "department_hod_id" in values:
        if values["department_hod_id"] != department.department_hod_id:
            raise InvalidOperation("HOD changes must go through HOD assignment")
        values.pop("department_hod_id")

    if "name" in values:
        if not values["name"] or not values["name"].strip():
            raise InvalidState("Department name cannot be empty")
        values["name"] = values["name"].strip()

    if values.get("is_department_active") is None:
        values.pop("is_department_active", None)
    elif values["is_department_active"] and department.department_hod_id is None:
        raise InvalidState("A department cannot be active without an HOD")

    if not values:
        return department

    return await store.guarded_update(
        session, Department, department_id, values, department.version, "update department"
    )


async def set_department_active(
    session: AsyncSession, department_id: int, is_active: bool
) -> Department:
    department = await get_department(session, department_id)

    if is_active and department.department_hod_id is None:
        raise PreconditionFailed(
            f"{department.name} has no HOD; assign one before activating"
        )
    if department.is_department_active == is_active:
        return department

    return await store.guarded_update(
        session, Department, department_id, {"is_department_active": is_active},
        department.version, "toggle department status",
    )


async def set_department_hod(
    session: AsyncSession,
    department_id: int,
    faculty_id: Optional[int],
    is_active: Optional[bool] = None,
    expected_version: Optional[int] = None,
) -> Department:
    """
    Low-level HOD pointer write, used only by the HOD coordinator.
    Clearing the HOD always deactivates the department.
    """
    if expected_version is None:
        expected_version = (await get_department(session, department_id)).version

    values = {"department_hod_id": faculty_id}
    if faculty_id is None:
        if is_active:
            raise InvalidState("A department cannot be active without an HOD")
        values["is_department_active"] = False
    elif is_active is not None:
        values["is_department_active"] = is_active

    return await store.guarded_update(
        session, Department, department_id, values, expected_version, "set department HOD"
    )


# ------------------------------------------------------------
# DELETE
# ------------------------------------------------------------
async def remove_department_row(session: AsyncSession, department_id: int) -> None:
    await store.execute(
        session, delete(Department).where(Department.id == department_id), "delete department"
    )
    await store.commit(session, "delete department")


async def delete_department(session: AsyncSession, department_id: int) -> None:
    """
    Release the HOD (if any), then delete. The delete goes ahead even when
    the release fails; that failure is logged for reconciliation.
    """
    from app.services import hod_coordinator

    department = await get_department(session, department_id)

    if department.department_hod_id is not None:
        try:
            await hod_coordinator.release_hod_if_any(session, department.department_hod_id)
        except CollegeAdminError as e:
            logger.warning(
                "Deleting department {} although releasing HOD {} failed: {}",
                department_id, department.department_hod_id, e.message,
            )
            # Drop the pointer so the row can go despite the FK
            try:
                await set_department_hod(session, department_id, None)
            except CollegeAdminError:
                logger.exception("Could not clear HOD pointer of department {}", department_id)

    await remove_department_row(session, department_id)
    logger.info("Department {} deleted", department_id)
