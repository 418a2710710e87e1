from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime
from typing import Optional


class AcademicClass(SQLModel, table=True):
    __tablename__ = "class"

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True)
    )

    class_name: str = Field(sa_column=Column(String(128), nullable=False))

    # Soft reference to department.id
    department_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, nullable=True, index=True)
    )

    batch_year: int = Field(sa_column=Column(Integer, nullable=False))

    # faculty.id of the coordinator; one class per coordinator
    class_coordinator_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, nullable=True, index=True)
    )

    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, default=True, nullable=False)
    )

    admin_email: str = Field(sa_column=Column(String(255), nullable=False, index=True))

    created_date: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_date: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
