from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from datetime import datetime
from typing import Optional


class Department(SQLModel, table=True):
    __tablename__ = "department"

    # Primary Key must be ONLY inside sa_column
    id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True)
    )

    name: str = Field(
        sa_column=Column(String(128), nullable=False)
    )

    establish_year: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, nullable=True)
    )

    # UNIQUE: one faculty chairs at most one department
    department_hod_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("faculty.id"), nullable=True, unique=True)
    )

    is_department_active: bool = Field(
        default=False,
        sa_column=Column(Boolean, default=False, nullable=False)
    )

    admin_email: str = Field(sa_column=Column(String(255), nullable=False, index=True))

    version: int = Field(
        default=1,
        sa_column=Column(Integer, default=1, nullable=False)
    )

    created_date: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_date: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
