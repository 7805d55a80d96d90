"""In-memory record stores backing the reference API.

Both stores are safe to share between request threads. Records are kept as
validated models and copied on the way in and out so callers never alias
stored state.
"""
from __future__ import annotations

import math
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from werkzeug.security import check_password_hash, generate_password_hash

from ..models import Pagination, PaginationInfo, Student, StudentFilter, User, UserRole
from ..utils import utcnow


class DuplicateEmailError(Exception):
    """Raised when a record would share its email with another record."""


def new_id() -> str:
    # 24 hex chars, the shape document-database identifiers usually have.
    return uuid.uuid4().hex[:24]


def _matches(student: Student, f: StudentFilter) -> bool:
    if f.name and f.name.lower() not in student.name.lower():
        return False
    if f.email and f.email.lower() not in student.email.lower():
        return False
    if f.course and f.course.lower() != student.course.lower():
        return False
    if f.status is not None and student.status != f.status:
        return False
    if f.academic_year and student.academic_year != f.academic_year:
        return False
    if f.semester is not None and student.semester != f.semester:
        return False
    if f.fees_paid is not None and bool(student.fees_paid) != f.fees_paid:
        return False
    if f.min_enrollment_date or f.max_enrollment_date:
        enrolled = student.enrollment_date
        if enrolled is None:
            return False
        if f.min_enrollment_date and enrolled < f.min_enrollment_date:
            return False
        if f.max_enrollment_date and enrolled > f.max_enrollment_date:
            return False
    return True


# Scalar wire fields; nested objects and lists have no ordering.
SORTABLE_FIELDS = frozenset({
    "_id", "name", "email", "phone", "course", "status", "enrollmentDate",
    "createdAt", "updatedAt", "dateOfBirth", "guardianName", "guardianPhone",
    "academicYear", "semester", "feesPaid", "attendance", "profileImage",
})


def _sort_key(field: str):
    def key(student: Student) -> Tuple[bool, Any]:
        value = student.wire().get(field)
        if isinstance(value, str):
            value = value.lower()
        return (value is None, value if value is not None else "")

    return key


class StudentStore:
    def __init__(self) -> None:
        self._records: Dict[str, Student] = {}
        self._lock = threading.Lock()

    def _email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        needle = email.strip().lower()
        return any(
            s.email.lower() == needle and s.id != exclude_id
            for s in self._records.values()
        )

    def all(self) -> List[Student]:
        with self._lock:
            records = [s.model_copy(deep=True) for s in self._records.values()]
        records.sort(key=lambda s: s.created_at or utcnow(), reverse=True)
        return records

    def query(self, f: StudentFilter, p: Pagination) -> Tuple[List[Student], PaginationInfo]:
        matched = [s for s in self.all() if _matches(s, f)]
        matched.sort(key=_sort_key(p.sort_by), reverse=p.sort_order == "desc")
        total = len(matched)
        start = (p.page - 1) * p.limit
        page = matched[start:start + p.limit]
        info = PaginationInfo(total=total, page=p.page, limit=p.limit, pages=math.ceil(total / p.limit))
        return page, info

    def get(self, student_id: str) -> Optional[Student]:
        with self._lock:
            found = self._records.get(student_id)
            return found.model_copy(deep=True) if found else None

    def create(self, student: Student) -> Student:
        now = utcnow()
        record = student.model_copy(deep=True, update={"id": new_id(), "created_at": now, "updated_at": now})
        if record.enrollment_date is None:
            record.enrollment_date = now.date()
        with self._lock:
            if self._email_taken(record.email):
                raise DuplicateEmailError(record.email)
            self._records[record.id] = record
        return record.model_copy(deep=True)

    def update(self, student_id: str, student: Student) -> Optional[Student]:
        with self._lock:
            existing = self._records.get(student_id)
            if existing is None:
                return None
            if self._email_taken(student.email, exclude_id=student_id):
                raise DuplicateEmailError(student.email)
            record = student.model_copy(
                deep=True,
                update={"id": student_id, "created_at": existing.created_at, "updated_at": utcnow()},
            )
            self._records[student_id] = record
        return record.model_copy(deep=True)

    def delete(self, student_id: str) -> bool:
        with self._lock:
            return self._records.pop(student_id, None) is not None

    def search(self, q: str) -> List[Student]:
        needle = q.strip().lower()
        return [
            s for s in self.all()
            if needle in s.name.lower() or needle in s.email.lower() or needle in s.course.lower()
        ]

    def email_exists(self, email: str) -> bool:
        with self._lock:
            return self._email_taken(email)


@dataclass
class UserRecord:
    id: str
    name: str
    email: str
    role: UserRole
    password_hash: str
    is_active: bool = True
    refresh_token: Optional[str] = None
    last_login: Optional[Any] = None

    def public(self) -> User:
        return User(
            id=self.id,
            name=self.name,
            email=self.email,
            role=self.role,
            is_active=self.is_active,
            last_login=self.last_login,
        )


class UserStore:
    def __init__(self) -> None:
        self._by_id: Dict[str, UserRecord] = {}
        self._lock = threading.Lock()

    def _find_email(self, email: str) -> Optional[UserRecord]:
        needle = email.strip().lower()
        return next((u for u in self._by_id.values() if u.email == needle), None)

    def create(self, name: str, email: str, password: str, role: UserRole = UserRole.STUDENT) -> UserRecord:
        with self._lock:
            if self._find_email(email) is not None:
                raise DuplicateEmailError(email)
            record = UserRecord(
                id=new_id(),
                name=name.strip(),
                email=email.strip().lower(),
                role=UserRole(role),
                password_hash=generate_password_hash(password),
            )
            self._by_id[record.id] = record
            return record

    def get(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self._by_id.get(user_id)

    def authenticate(self, email: str, password: str) -> Optional[UserRecord]:
        with self._lock:
            record = self._find_email(email)
            if record is None or not record.is_active:
                return None
            if not check_password_hash(record.password_hash, password):
                return None
            record.last_login = utcnow()
            return record

    def set_refresh_token(self, user_id: str, token: Optional[str]) -> None:
        with self._lock:
            record = self._by_id.get(user_id)
            if record is not None:
                record.refresh_token = token
