# app/api/endpoints/subjects.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admin_email, get_db_session, require_confirmation
from app.schemas.academic import SubjectBulkAssign, SubjectCreate, SubjectRead, SubjectUpdate
from app.services import subject_service

router = APIRouter(prefix="/api/subjects", tags=["Subjects"])


@router.get("/", response_model=List[SubjectRead])
async def list_subjects(
    q: Optional[str] = Query(None, description="Search subject name"),
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    if q:
        subjects = await subject_service.search_subjects(session, q, admin_email)
    else:
        subjects = await subject_service.list_subjects(session, admin_email)
    return await subject_service.to_read_models(session, subjects)


@router.post("/", response_model=SubjectRead, status_code=status.HTTP_201_CREATED)
async def create_subject(
    payload: SubjectCreate,
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    subject = await subject_service.create_subject(session, payload, admin_email)
    return (await subject_service.to_read_models(session, [subject]))[0]


# Bulk move between departments (admin "assign subjects" dialog)
@router.post("/bulk-assign")
async def bulk_assign(
    payload: SubjectBulkAssign,
    session: AsyncSession = Depends(get_db_session),
):
    updated = await subject_service.bulk_assign_department(
        session, payload.subject_ids, payload.department_id
    )
    return {"updated": updated}


@router.get("/{subject_id}", response_model=SubjectRead)
async def get_subject(subject_id: int, session: AsyncSession = Depends(get_db_session)):
    subject = await subject_service.get_subject(session, subject_id)
    return (await subject_service.to_read_models(session, [subject]))[0]


@router.patch("/{subject_id}", response_model=SubjectRead)
async def update_subject(
    subject_id: int,
    payload: SubjectUpdate,
    session: AsyncSession = Depends(get_db_session),
):
    subject = await subject_service.update_subject(session, subject_id, payload)
    return (await subject_service.to_read_models(session, [subject]))[0]


@router.delete("/{subject_id}")
async def delete_subject(
    subject_id: int,
    session: AsyncSession = Depends(get_db_session),
    _: bool = Depends(require_confirmation("Deleting a subject")),
):
    await subject_service.delete_subject(session, subject_id)
    return {"detail": "Subject deleted successfully"}
