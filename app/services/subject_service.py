# app/services/subject_service.py

from typing import Iterable, Optional

from loguru import logger
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core import store
from app.core.exceptions import InvalidState, NotFound
from app.models.department import Department
from app.models.subject import Subject
from app.schemas.academic import SubjectCreate, SubjectRead, SubjectUpdate

UNKNOWN_DEPARTMENT = "Unknown"


# ------------------------------------------------------------
# DISPLAY HELPERS
# ------------------------------------------------------------
async def department_names(session: AsyncSession) -> dict[int, str]:
    result = await store.execute(
        session, select(Department.id, Department.name), "load department names"
    )
    return {row.id: row.name for row in result.all()}


def with_department_name(item, names: dict[int, str], read_model):
    """Map the soft department reference to a display name for the UI."""
    out = read_model.model_validate(item)
    if item.department_id is None:
        out.department_name = None
    else:
        out.department_name = names.get(item.department_id, UNKNOWN_DEPARTMENT)
    return out


async def to_read_models(session: AsyncSession, subjects: Iterable[Subject]) -> list[SubjectRead]:
    names = await department_names(session)
    return [with_department_name(s, names, SubjectRead) for s in subjects]


# ------------------------------------------------------------
# READ
# ------------------------------------------------------------
async def list_subjects(session: AsyncSession, admin_email: Optional[str] = None) -> list[Subject]:
    stmt = select(Subject)
    if admin_email:
        stmt = stmt.where(Subject.admin_email == admin_email)
    result = await store.execute(session, stmt.order_by(Subject.id.desc()), "list subjects")
    return list(result.scalars().all())


async def get_subject(session: AsyncSession, subject_id: int) -> Subject:
    subject = await store.fetch_by_id(session, Subject, subject_id)
    if not subject:
        raise NotFound(f"Subject {subject_id} not found", resource_type="subject")
    return subject


async def list_subjects_by_department(session: AsyncSession, department_id: int) -> list[Subject]:
    result = await store.execute(
        session,
        select(Subject).where(Subject.department_id == department_id).order_by(Subject.name.asc()),
        "list subjects by department",
    )
    return list(result.scalars().all())


async def search_subjects(
    session: AsyncSession, term: str, admin_email: Optional[str] = None
) -> list[Subject]:
    term = term.strip()
    if not term:
        return await list_subjects(session, admin_email)

    stmt = select(Subject).where(store.ilike_any(term, Subject.name))
    if admin_email:
        stmt = stmt.where(Subject.admin_email == admin_email)
    result = await store.execute(session, stmt.order_by(Subject.id.desc()), "search subjects")
    return list(result.scalars().all())


# ------------------------------------------------------------
# WRITE
# ------------------------------------------------------------
async def create_subject(session: AsyncSession, data: SubjectCreate, admin_email: str) -> Subject:
    if not data.name.strip():
        raise InvalidState("Subject name cannot be empty")

    subject = Subject(
        name=data.name.strip(),
        department_id=data.department_id,
        credits=data.credits,
        admin_email=admin_email,
    )
    return await store.insert(session, subject, "create subject")


async def update_subject(session: AsyncSession, subject_id: int, patch: SubjectUpdate) -> Subject:
    subject = await get_subject(session, subject_id)

    # Apply only fields provided
    for key, value in patch.model_dump(exclude_unset=True).items():
        if key == "name":
            if not value or not value.strip():
                raise InvalidState("Subject name cannot be empty")
            value = value.strip()
        if key == "credits" and value is None:
            continue
        setattr(subject, key, value)

    session.add(subject)
    await store.commit(session, "update subject")
    return await get_subject(session, subject_id)


async def delete_subject(session: AsyncSession, subject_id: int) -> None:
    await get_subject(session, subject_id)
    await store.execute(session, delete(Subject).where(Subject.id == subject_id), "delete subject")
    await store.commit(session, "delete subject")


async def bulk_assign_department(
    session: AsyncSession, subject_ids: list[int], department_id: Optional[int]
) -> int:
    """Point many subjects at one department (or none) in a single UPDATE."""
    if not subject_ids:
        return 0

    result = await store.execute(
        session,
        update(Subject)
        .where(Subject.id.in_(subject_ids))
        .values(department_id=department_id)
        .execution_options(synchronize_session=False),
        "bulk assign subjects",
    )
    await store.commit(session, "bulk assign subjects")
    logger.info("{} subject(s) assigned to department {}", result.rowcount, department_id)
    return result.rowcount
