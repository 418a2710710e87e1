# app/api/endpoints/department.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    confirmation_required,
    get_admin_email,
    get_db_session,
    require_confirmation,
)
from app.core.exceptions import PreconditionFailed
from app.schemas.academic import SubjectRead
from app.schemas.department import (
    DepartmentCreate,
    DepartmentRead,
    DepartmentStatusUpdate,
    DepartmentUpdate,
)
from app.schemas.hod import ConsistencyReport, HodAssignment
from app.services import department_service, hod_coordinator, subject_service

router = APIRouter(
    prefix="/api/departments",
    tags=["Departments"]
)


# 1️⃣ List / search
@router.get("/", response_model=List[DepartmentRead])
async def list_departments(
    q: Optional[str] = Query(None, description="Search department name or owner email"),
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    if q:
        return await department_service.search_departments(session, q, admin_email)
    return await department_service.list_departments(session, admin_email)


# 2️⃣ Reconciliation report for operators
@router.get("/consistency", response_model=ConsistencyReport)
async def consistency_report(
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    return await hod_coordinator.check_consistency(session, admin_email)


@router.post("/", response_model=DepartmentRead, status_code=status.HTTP_201_CREATED)
async def create_department(
    payload: DepartmentCreate,
    session: AsyncSession = Depends(get_db_session),
    admin_email: str = Depends(get_admin_email),
):
    return await hod_coordinator.create_department(session, payload, admin_email)


@router.get("/{department_id}", response_model=DepartmentRead)
async def get_department(department_id: int, session: AsyncSession = Depends(get_db_session)):
    return await department_service.get_department(session, department_id)


@router.get("/{department_id}/subjects", response_model=List[SubjectRead])
async def department_subjects(department_id: int, session: AsyncSession = Depends(get_db_session)):
    subjects = await subject_service.list_subjects_by_department(session, department_id)
    return await subject_service.to_read_models(session, subjects)


@router.patch("/{department_id}", response_model=DepartmentRead)
async def update_department(
    department_id: int,
    payload: DepartmentUpdate,
    confirm: bool = Query(False),
    session: AsyncSession = Depends(get_db_session),
):
    fields = payload.model_dump(exclude_unset=True)
    current = await department_service.get_department(session, department_id)
    removes_hod = (
        "department_hod_id" in fields
        and fields["department_hod_id"] is None
        and current.department_hod_id is not None
    )
    if removes_hod and not confirm:
        raise confirmation_required("Removing the HOD deactivates the department")
    return await hod_coordinator.update_department(session, department_id, payload)


@router.post("/{department_id}/active", response_model=DepartmentRead)
async def set_department_active(
    department_id: int,
    payload: DepartmentStatusUpdate,
    confirm: bool = Query(False),
    session: AsyncSession = Depends(get_db_session),
):
    if not payload.is_active and not confirm:
        raise confirmation_required("Deactivating a department")
    return await department_service.set_department_active(session, department_id, payload.is_active)


@router.delete("/{department_id}")
async def delete_department(
    department_id: int,
    session: AsyncSession = Depends(get_db_session),
    _: bool = Depends(require_confirmation("Deleting a department")),
):
    await department_service.delete_department(session, department_id)
    return {"detail": "Department deleted successfully"}


# 3️⃣ HOD assignment
@router.put("/{department_id}/hod", response_model=DepartmentRead)
async def assign_hod(
    department_id: int,
    payload: HodAssignment,
    session: AsyncSession = Depends(get_db_session),
):
    return await hod_coordinator.change_department_hod(
        session, department_id, payload.faculty_id, payload.activate
    )


@router.delete("/{department_id}/hod", response_model=DepartmentRead)
async def remove_hod(
    department_id: int,
    session: AsyncSession = Depends(get_db_session),
    _: bool = Depends(require_confirmation("Removing the HOD deactivates the department")),
):
    department = await department_service.get_department(session, department_id)
    if department.department_hod_id is None:
        raise PreconditionFailed(f"{department.name} has no HOD to remove")
    return await hod_coordinator.change_department_hod(session, department_id, None)
