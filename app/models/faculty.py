# app/models/faculty.py

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime
from typing import Optional


class Faculty(SQLModel, table=True):
    __tablename__ = "faculty"

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True)
    )

    first_name: str = Field(sa_column=Column(String(100), nullable=False))
    last_name: str = Field(sa_column=Column(String(100), nullable=False))

    # Free-text department name; empty means "unassigned"
    department: Optional[str] = Field(
        default=None,
        sa_column=Column(String(128), nullable=True)
    )

    # Immutable once set
    email: str = Field(
        sa_column=Column(String(255), nullable=False, unique=True, index=True)
    )

    phone: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True))
    gender: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True))
    qualification: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))

    is_active: bool = Field(
        default=False,
        sa_column=Column(Boolean, default=False, nullable=False)
    )

    # Only the HOD coordinator writes this flag
    is_hod: bool = Field(
        default=False,
        sa_column=Column(Boolean, default=False, nullable=False)
    )

    admin_email: str = Field(sa_column=Column(String(255), nullable=False, index=True))

    # Compare-and-swap counter, bumped on every write
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
    last_login: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def has_department(self) -> bool:
        return bool(self.department and self.department.strip())
