from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.schemas.common import OptionalId


class DepartmentCreate(BaseModel):
    name: str
    establish_year: OptionalId = None
    department_hod_id: OptionalId = None
    # None -> active only if an HOD is supplied
    is_department_active: Optional[bool] = None


class DepartmentUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    establish_year: OptionalId = None
    department_hod_id: OptionalId = None
    is_department_active: Optional[bool] = None


class DepartmentStatusUpdate(BaseModel):
    is_active: bool


class DepartmentRead(BaseModel):
    id: int
    name: str
    establish_year: Optional[int] = None
    department_hod_id: Optional[int] = None
    is_department_active: bool
    admin_email: str
    version: int
    created_date: datetime
    updated_date: datetime

    model_config = ConfigDict(from_attributes=True)
