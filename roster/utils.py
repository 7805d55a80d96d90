import datetime as dt
import json
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from .models import Pagination, StudentFilter

LIST_KEY_PREFIX = "students_"
RECORD_KEY_PREFIX = "record_"
STATS_KEY = "dashboard_stats"

M = TypeVar("M", bound=BaseModel)


def as_model(cls: Type[M], value: Union[M, Mapping[str, Any], None]) -> Optional[M]:
    if value is None or isinstance(value, cls):
        return value
    return cls.model_validate(dict(value))


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def query_key(
    filter: Union[StudentFilter, Mapping[str, Any], None] = None,
    pagination: Union[Pagination, Mapping[str, Any], None] = None,
) -> str:
    """Order-independent cache key for a list query.

    Both parts are validated into their models first, so snake_case and
    camelCase spellings, blank strings and key order all collapse to one key.
    """
    f = as_model(StudentFilter, filter)
    p = as_model(Pagination, pagination)
    f_wire = f.wire() if f is not None else None
    f_part = _canonical(f_wire) if f_wire else "null"
    p_part = _canonical(p.wire()) if p is not None else "null"
    return f"{LIST_KEY_PREFIX}{f_part}_{p_part}"


def record_key(record_id: str) -> str:
    return f"{RECORD_KEY_PREFIX}{record_id}"


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)
