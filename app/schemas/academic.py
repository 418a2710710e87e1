from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import OptionalId


# --- SUBJECT ---
class SubjectCreate(BaseModel):
    name: str
    department_id: OptionalId = None
    credits: int = Field(default=0, ge=0)


class SubjectUpdate(BaseModel):
    name: Optional[str] = None
    department_id: OptionalId = None
    credits: Optional[int] = Field(default=None, ge=0)


class SubjectBulkAssign(BaseModel):
    subject_ids: List[int]
    department_id: OptionalId = None


class SubjectRead(BaseModel):
    id: int
    name: str
    department_id: Optional[int] = None
    credits: int
    admin_email: str
    created_date: datetime
    # ✅ Resolved for display; "Unknown" for dangling references
    department_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# --- CLASS ---
class ClassCreate(BaseModel):
    class_name: str
    department_id: OptionalId = None
    batch_year: int
    class_coordinator_id: OptionalId = None
    is_active: bool = True


class ClassUpdate(BaseModel):
    class_name: Optional[str] = None
    department_id: OptionalId = None
    batch_year: Optional[int] = None
    class_coordinator_id: OptionalId = None
    is_active: Optional[bool] = None


class ClassStatusUpdate(BaseModel):
    is_active: bool


class ClassRead(BaseModel):
    id: int
    class_name: str
    department_id: Optional[int] = None
    batch_year: int
    class_coordinator_id: Optional[int] = None
    is_active: bool
    admin_email: str
    created_date: datetime
    updated_date: datetime
    department_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
