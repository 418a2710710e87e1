from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr

from app.schemas.common import OptionalText


# ---------------------------------------------------------
# CREATE (Admin adds faculty)
# ---------------------------------------------------------
class FacultyCreate(BaseModel):
    first_name: str
    last_name: str
    department: OptionalText = None
    email: EmailStr
    phone: OptionalText = None
    gender: OptionalText = None
    qualification: OptionalText = None
    # Defaults to active when a department is supplied
    is_active: Optional[bool] = None


# ---------------------------------------------------------
# UPDATE (Admin edits). Email and HOD flag are not editable here.
# ---------------------------------------------------------
class FacultyUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    department: OptionalText = None
    phone: OptionalText = None
    gender: OptionalText = None
    qualification: OptionalText = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------
# PROFILE UPDATE (Faculty portal, self-service)
# ---------------------------------------------------------
class FacultyProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: OptionalText = None
    gender: OptionalText = None
    qualification: OptionalText = None


class FacultyStatusUpdate(BaseModel):
    is_active: bool


class HodFlagUpdate(BaseModel):
    is_hod: bool


# ---------------------------------------------------------
# READ (response)
# ---------------------------------------------------------
class FacultyRead(BaseModel):
    id: int
    first_name: str
    last_name: str
    department: Optional[str] = None
    email: str
    phone: Optional[str] = None
    gender: Optional[str] = None
    qualification: Optional[str] = None
    is_active: bool
    is_hod: bool
    admin_email: str
    version: int
    created_date: datetime
    updated_date: datetime
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class FacultyStats(BaseModel):
    total: int
    active: int
    inactive: int
    hod: int
