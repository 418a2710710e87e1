from typing import List, Optional

from pydantic import BaseModel

from app.schemas.department import DepartmentRead


class HodAssignment(BaseModel):
    faculty_id: int
    activate: bool = True


class HodReplacementRequest(BaseModel):
    new_faculty_id: Optional[int] = None
    keep_department_active: bool = True
    deactivate_outgoing: bool = False


# ---------------------------------------------------------
# RESULTS
# ---------------------------------------------------------
class HodRelease(BaseModel):
    """Outcome of releasing a faculty's HOD duties."""
    faculty_id: int
    department_affected: Optional[DepartmentRead] = None


class HodReplacement(BaseModel):
    department: DepartmentRead
    demoted_faculty_id: int
    promoted_faculty_id: Optional[int] = None
    department_deactivated: bool
    outgoing_deactivated: bool = False


class ConsistencyIssue(BaseModel):
    kind: str
    entity: str
    entity_id: int
    message: str


class ConsistencyReport(BaseModel):
    consistent: bool
    issues: List[ConsistencyIssue]
