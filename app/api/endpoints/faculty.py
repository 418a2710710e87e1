# app/api/endpoints/faculty.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admin_email, get_db_session, require_confirmation
from app.schemas.faculty import (
    FacultyCreate,
    FacultyProfileUpdate,
    FacultyRead,
    FacultyStats,
    FacultyStatusUpdate,
    FacultyUpdate,
    HodFlagUpdate,
)
from app.schemas.hod import HodRelease, HodReplacement, HodReplacementRequest
from app.services import faculty_service, hod_coordinator

router = APIRouter(prefix="/api/faculty", tags=["Faculty"])


# -------------------------------------------------------------------
# List / search (scoped to the calling admin)
# -------------------------------------------------------------------
@router.get("/", response_model=List[FacultyRead])
async def list_faculty(
    q: Optional[str] = Query(None, description="Search names, email and department"),
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    if q:
        return await faculty_service.search_faculty(session, q, admin_email)
    return await faculty_service.list_faculty(session, admin_email)


@router.get("/stats", response_model=FacultyStats)
async def faculty_stats(
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    return await faculty_service.faculty_stats(session, admin_email)


@router.get("/available-hods", response_model=List[FacultyRead])
async def available_hods(
    include_id: Optional[int] = Query(None, description="Keep this faculty (current HOD) in the list"),
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    return await faculty_service.list_available_hods(session, admin_email, include_id)


# -------------------------------------------------------------------
# Faculty portal: own profile
# -------------------------------------------------------------------
@router.get("/me", response_model=FacultyRead)
async def my_profile(
    email: str = Query(..., description="Logged-in faculty email"),
    session: AsyncSession = Depends(get_db_session),
):
    return await faculty_service.get_faculty_by_email(session, email)


@router.patch("/me", response_model=FacultyRead)
async def update_my_profile(
    payload: FacultyProfileUpdate,
    email: str = Query(..., description="Logged-in faculty email"),
    session: AsyncSession = Depends(get_db_session),
):
    faculty = await faculty_service.get_faculty_by_email(session, email)
    return await faculty_service.update_own_profile(session, faculty.id, payload)


# -------------------------------------------------------------------
# CRUD
# -------------------------------------------------------------------
@router.post("/", response_model=FacultyRead, status_code=status.HTTP_201_CREATED)
async def create_faculty(
    payload: FacultyCreate,
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    return await faculty_service.create_faculty(session, payload, admin_email)


@router.get("/{faculty_id}", response_model=FacultyRead)
async def get_faculty(faculty_id: int, session: AsyncSession = Depends(get_db_session)):
    return await faculty_service.get_faculty(session, faculty_id)


@router.patch("/{faculty_id}", response_model=FacultyRead)
async def update_faculty(
    faculty_id: int,
    payload: FacultyUpdate,
    session: AsyncSession = Depends(get_db_session),
):
    return await faculty_service.update_faculty(session, faculty_id, payload)


@router.post("/{faculty_id}/active", response_model=FacultyRead)
async def set_faculty_active(
    faculty_id: int,
    payload: FacultyStatusUpdate,
    session: AsyncSession = Depends(get_db_session),
):
    return await faculty_service.set_faculty_active(session, faculty_id, payload.is_active)


@router.delete("/{faculty_id}")
async def delete_faculty(
    faculty_id: int,
    session: AsyncSession = Depends(get_db_session),
    _: bool = Depends(require_confirmation("Deleting a faculty member")),
):
    release = await faculty_service.delete_faculty(session, faculty_id)
    return {
        "detail": "Faculty deleted successfully",
        "department_deactivated": release.department_affected,
    }


# -------------------------------------------------------------------
# HOD actions
# -------------------------------------------------------------------
@router.post("/{faculty_id}/hod")
async def toggle_hod(
    faculty_id: int,
    payload: HodFlagUpdate,
    session: AsyncSession = Depends(get_db_session),
):
    # Always rejected: HOD status follows department assignment
    await hod_coordinator.toggle_hod_flag(session, faculty_id, payload.is_hod)


@router.post("/{faculty_id}/demote", response_model=HodRelease)
async def demote_hod(
    faculty_id: int,
    session: AsyncSession = Depends(get_db_session),
    _: bool = Depends(require_confirmation("Demoting an HOD deactivates their department")),
):
    return await hod_coordinator.demote_hod(session, faculty_id)


@router.post("/{faculty_id}/replace-hod", response_model=HodReplacement)
async def replace_hod(
    faculty_id: int,
    payload: HodReplacementRequest,
    session: AsyncSession = Depends(get_db_session),
    _: bool = Depends(require_confirmation("Replacing an HOD")),
):
    return await hod_coordinator.replace_hod(
        session,
        faculty_id,
        payload.new_faculty_id,
        keep_department_active=payload.keep_department_active,
        deactivate_outgoing=payload.deactivate_outgoing,
    )
