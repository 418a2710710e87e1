# app/api/endpoints/classes.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admin_email, get_db_session, require_confirmation
from app.schemas.academic import ClassCreate, ClassRead, ClassStatusUpdate, ClassUpdate
from app.schemas.faculty import FacultyRead
from app.services import class_service

router = APIRouter(prefix="/api/classes", tags=["Classes"])


@router.get("/", response_model=List[ClassRead])
async def list_classes(
    q: Optional[str] = Query(None, description="Search class name or batch year"),
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    if q:
        classes = await class_service.search_classes(session, q, admin_email)
    else:
        classes = await class_service.list_classes(session, admin_email)
    return await class_service.to_read_models(session, classes)


@router.get("/available-coordinators", response_model=List[FacultyRead])
async def available_coordinators(
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    return await class_service.list_available_coordinators(session, admin_email)


@router.post("/", response_model=ClassRead, status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: ClassCreate,
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    academic_class = await class_service.create_class(session, payload, admin_email)
    return (await class_service.to_read_models(session, [academic_class]))[0]


@router.get("/{class_id}", response_model=ClassRead)
async def get_class(class_id: int, session: AsyncSession = Depends(get_db_session)):
    academic_class = await class_service.get_class(session, class_id)
    return (await class_service.to_read_models(session, [academic_class]))[0]


@router.patch("/{class_id}", response_model=ClassRead)
async def update_class(
    class_id: int,
    payload: ClassUpdate,
    session: AsyncSession = Depends(get_db_session),
):
    academic_class = await class_service.update_class(session, class_id, payload)
    return (await class_service.to_read_models(session, [academic_class]))[0]


@router.post("/{class_id}/active", response_model=ClassRead)
async def set_class_active(
    class_id: int,
    payload: ClassStatusUpdate,
    session: AsyncSession = Depends(get_db_session),
):
    academic_class = await class_service.set_class_active(session, class_id, payload.is_active)
    return (await class_service.to_read_models(session, [academic_class]))[0]


@router.delete("/{class_id}")
async def delete_class(
    class_id: int,
    session: AsyncSession = Depends(get_db_session),
    _: bool = Depends(require_confirmation("Deleting a class")),
):
    await class_service.delete_class(session, class_id)
    return {"detail": "Class deleted successfully"}
