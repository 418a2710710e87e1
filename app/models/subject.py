from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime
from typing import Optional


class Subject(SQLModel, table=True):
    __tablename__ = "subject"

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True)
    )

    name: str = Field(sa_column=Column(String(255), nullable=False))

    # Soft reference: no FK, dangling ids render as "Unknown"
    department_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, nullable=True, index=True)
    )

    credits: int = Field(default=0, sa_column=Column(Integer, default=0, nullable=False))

    admin_email: str = Field(sa_column=Column(String(255), nullable=False, index=True))

    created_date: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
