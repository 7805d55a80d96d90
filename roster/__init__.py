"""Student management API client with a cached, observable data facade.

Public exports:
- Settings, get_settings
- StudentService, create_client
- models: Student, StudentFilter, Pagination, ListResponse, BulkOperationResult
- errors: ApiError, ErrorKind
"""
from .config import Settings, get_settings
from .errors import ApiError, ErrorKind
from .models import BulkOperationResult, ListResponse, Pagination, Student, StudentFilter
from .client import StudentService, create_client

__all__ = [
    "Settings",
    "get_settings",
    "ApiError",
    "ErrorKind",
    "Student",
    "StudentFilter",
    "Pagination",
    "ListResponse",
    "BulkOperationResult",
    "StudentService",
    "create_client",
]
