# app/services/class_service.py

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core import store
from app.core.exceptions import Conflict, InvalidState, NotFound
from app.models.academic_class import AcademicClass
from app.models.faculty import Faculty
from app.schemas.academic import ClassCreate, ClassRead, ClassUpdate
from app.services.subject_service import department_names, with_department_name


async def to_read_models(session: AsyncSession, classes: Iterable[AcademicClass]) -> list[ClassRead]:
    names = await department_names(session)
    return [with_department_name(c, names, ClassRead) for c in classes]


# ------------------------------------------------------------
# READ
# ------------------------------------------------------------
async def list_classes(session: AsyncSession, admin_email: Optional[str] = None) -> list[AcademicClass]:
    stmt = select(AcademicClass)
    if admin_email:
        stmt = stmt.where(AcademicClass.admin_email == admin_email)
    result = await store.execute(session, stmt.order_by(AcademicClass.id.desc()), "list classes")
    return list(result.scalars().all())


async def get_class(session: AsyncSession, class_id: int) -> AcademicClass:
    academic_class = await store.fetch_by_id(session, AcademicClass, class_id)
    if not academic_class:
        raise NotFound(f"Class {class_id} not found", resource_type="class")
    return academic_class


async def search_classes(
    session: AsyncSession, term: str, admin_email: Optional[str] = None
) -> list[AcademicClass]:
    """Class name substring, or exact batch year when the term is numeric."""
    term = term.strip()
    if not term:
        return await list_classes(session, admin_email)

    condition = store.ilike_any(term, AcademicClass.class_name)
    if term.isdigit():
        condition = condition | (AcademicClass.batch_year == int(term))

    stmt = select(AcademicClass).where(condition)
    if admin_email:
        stmt = stmt.where(AcademicClass.admin_email == admin_email)
    result = await store.execute(session, stmt.order_by(AcademicClass.id.desc()), "search classes")
    return list(result.scalars().all())


async def list_available_coordinators(
    session: AsyncSession, admin_email: Optional[str] = None
) -> list[Faculty]:
    """Active faculty not yet coordinating any class."""
    assigned = select(AcademicClass.class_coordinator_id).where(
        AcademicClass.class_coordinator_id.is_not(None)
    )
    faculty_stmt = select(Faculty).where(Faculty.is_active == True)  # noqa: E712
    if admin_email:
        assigned = assigned.where(AcademicClass.admin_email == admin_email)
        faculty_stmt = faculty_stmt.where(Faculty.admin_email == admin_email)

    result = await store.execute(
        session,
        faculty_stmt.where(Faculty.id.not_in(assigned)).order_by(Faculty.first_name.asc()),
        "list available coordinators",
    )
    return list(result.scalars().all())


# ------------------------------------------------------------
# WRITE
# ------------------------------------------------------------
async def _ensure_free_coordinator(
    session: AsyncSession, coordinator_id: Optional[int], class_id: Optional[int]
) -> None:
    if coordinator_id is None:
        return
    stmt = select(AcademicClass).where(AcademicClass.class_coordinator_id == coordinator_id)
    if class_id is not None:
        stmt = stmt.where(AcademicClass.id != class_id)
    result = await store.execute(session, stmt, "check class coordinator")
    existing = result.scalars().first()
    if existing:
        raise Conflict(
            f"This faculty member is already the coordinator of {existing.class_name}",
            details={"class_id": existing.id},
        )


async def create_class(session: AsyncSession, data: ClassCreate, admin_email: str) -> AcademicClass:
    if not data.class_name.strip():
        raise InvalidState("Class name cannot be empty")
    await _ensure_free_coordinator(session, data.class_coordinator_id, None)

    academic_class = AcademicClass(
        class_name=data.class_name.strip(),
        department_id=data.department_id,
        batch_year=data.batch_year,
        class_coordinator_id=data.class_coordinator_id,
        is_active=data.is_active,
        admin_email=admin_email,
    )
    return await store.insert(session, academic_class, "create class")


async def update_class(session: AsyncSession, class_id: int, patch: ClassUpdate) -> AcademicClass:
    academic_class = await get_class(session, class_id)
    values = patch.model_dump(exclude_unset=True)

    if "class_coordinator_id" in values:
        await _ensure_free_coordinator(session, values["class_coordinator_id"], class_id)
    if "class_name" in values:
        if not values["class_name"] or not values["class_name"].strip():
            raise InvalidState("Class name cannot be empty")
        values["class_name"] = values["class_name"].strip()

    for key, value in values.items():
        if value is None and key in ("batch_year", "is_active"):
            continue
        setattr(academic_class, key, value)
    academic_class.updated_date = datetime.utcnow()

    session.add(academic_class)
    await store.commit(session, "update class")
    return await get_class(session, class_id)


async def set_class_active(session: AsyncSession, class_id: int, is_active: bool) -> AcademicClass:
    academic_class = await get_class(session, class_id)
    academic_class.is_active = is_active
    academic_class.updated_date = datetime.utcnow()
    session.add(academic_class)
    await store.commit(session, "toggle class status")
    return await get_class(session, class_id)


async def delete_class(session: AsyncSession, class_id: int) -> None:
    await get_class(session, class_id)
    await store.execute(
        session, delete(AcademicClass).where(AcademicClass.id == class_id), "delete class"
    )
    await store.commit(session, "delete class")
