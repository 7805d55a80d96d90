"""Wire models shared by the client facade and the reference server.

JSON on the wire is camelCase and the server-assigned identifier travels as
``_id``; Python attributes are snake_case.
"""
from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> Dict[str, Any]:
        """JSON-ready dict using wire (camelCase) names, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class StudentStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    DROPPED = "Dropped"
    ON_LEAVE = "OnLeave"
    SUSPENDED = "Suspended"


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"
    GUEST = "guest"


class Address(ApiModel):
    street: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    zip_code: str = ""


class Grade(ApiModel):
    subject: str
    score: float
    max_score: float = 100.0
    grade: str = ""
    semester: Optional[int] = None


class Student(ApiModel):
    """A student record. ``id`` is None until the server has persisted it."""

    id: Optional[str] = Field(default=None, alias="_id")
    name: str
    email: str
    phone: str = ""
    course: str
    status: StudentStatus = StudentStatus.ACTIVE
    enrollment_date: Optional[dt.date] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    address: Optional[Address] = None
    date_of_birth: Optional[dt.date] = None
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = None
    academic_year: Optional[str] = None
    semester: Optional[int] = None
    fees_paid: Optional[bool] = None
    attendance: Optional[float] = None
    grades: List[Grade] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    profile_image: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return self.id is None

    @field_validator("enrollment_date", "date_of_birth", mode="before")
    @classmethod
    def _date_from_timestamp(cls, v):
        # Servers commonly send full ISO timestamps for date-only fields.
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v


class StudentFilter(ApiModel):
    name: Optional[str] = None
    email: Optional[str] = None
    course: Optional[str] = None
    status: Optional[StudentStatus] = None
    min_enrollment_date: Optional[dt.date] = None
    max_enrollment_date: Optional[dt.date] = None
    academic_year: Optional[str] = None
    semester: Optional[int] = None
    fees_paid: Optional[bool] = None

    @field_validator("name", "email", "course", "academic_year", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        s = str(v).strip()
        return s if s else None

    def to_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for key, value in self.wire().items():
            if isinstance(value, bool):
                params[key] = "true" if value else "false"
            else:
                params[key] = str(value)
        return params


class Pagination(ApiModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)
    sort_by: str = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"

    def to_params(self) -> Dict[str, str]:
        return {
            "page": str(self.page),
            "limit": str(self.limit),
            "sortBy": self.sort_by,
            "sortOrder": self.sort_order,
        }


class PaginationInfo(ApiModel):
    total: int
    page: int
    limit: int
    pages: int


class ListResponse(ApiModel):
    data: List[Student] = Field(default_factory=list)
    pagination: Optional[PaginationInfo] = None
    message: str = ""
    status: int = 200
    timestamp: Optional[dt.datetime] = None


class BulkOperationResult(BaseModel):
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


class CourseStats(ApiModel):
    course: str
    count: int
    percentage: float


class MonthlyEnrollment(ApiModel):
    month: str
    count: int


class DashboardStats(ApiModel):
    total_students: int = 0
    active_students: int = 0
    completed_students: int = 0
    dropped_students: int = 0
    average_attendance: float = 0.0
    courses: List[CourseStats] = Field(default_factory=list)
    monthly_enrollments: List[MonthlyEnrollment] = Field(default_factory=list)


class ExportOptions(ApiModel):
    format: Literal["csv", "excel", "pdf"] = "csv"
    include_fields: List[str] = Field(default_factory=list)
    filters: Optional[StudentFilter] = None

    def to_params(self) -> Dict[str, str]:
        params = self.filters.to_params() if self.filters else {}
        params["format"] = self.format
        if self.include_fields:
            params["fields"] = ",".join(self.include_fields)
        return params


class User(ApiModel):
    id: str
    name: str
    email: str
    role: UserRole = UserRole.STUDENT
    is_active: bool = True
    last_login: Optional[dt.datetime] = None
