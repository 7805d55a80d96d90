from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from ..config import Settings, get_settings
from ..errors import RETRYABLE_KINDS, ApiError, UnknownApiError
from ..models import (
    BulkOperationResult,
    DashboardStats,
    ExportOptions,
    ListResponse,
    Pagination,
    Student,
    StudentFilter,
    StudentStatus,
)
from ..state import RequestState, StateStream
from ..utils import LIST_KEY_PREFIX, STATS_KEY, as_model, query_key, record_key
from .auth import AuthSession
from .base import Reply, Transport, unwrap
from .cache import CacheFacade

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")

FilterLike = Union[StudentFilter, Mapping[str, Any], None]
PaginationLike = Union[Pagination, Mapping[str, Any], None]
StudentLike = Union[Student, Mapping[str, Any]]


class StudentService:
    """Single point of access for student reads and writes against the REST API.

    Reads are served from the response cache when possible; identical reads that
    are already in flight share one request. Every successful write patches the
    local collection and invalidates the cache broadly. Cached entries never age
    out, so callers needing fresh data pass ``force_refresh`` or rely on writes
    clearing the cache.

    Completions are applied in issue order: each request takes a ticket when it
    is issued and a list result older than the latest write to the collection is
    returned to its caller but not applied to shared state.
    """

    def __init__(
        self,
        transport: Transport,
        settings: Optional[Settings] = None,
        cache: Optional[CacheFacade] = None,
        auth: Optional[AuthSession] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.transport = transport
        # Handle for consumers; the facade only reports Unauthorized, RestTransport tears the session down.
        self.auth = auth
        self.cache = cache or CacheFacade.from_settings(self.settings)

        self.students: StateStream[List[Student]] = StateStream([], name="students")
        self.request_state: StateStream[RequestState] = StateStream(RequestState(), name="request")
        self.selected: StateStream[Optional[Student]] = StateStream(None, name="selected")

        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.bulk_max_workers,
            thread_name_prefix="roster-bulk",
        )
        self._inflight: Dict[str, Future] = {}
        self._active = 0
        self._ticket = 0
        self._collection_ticket = 0
        self._selected_ticket = 0
        self._invalidated_at = 0
        self._disposed = False

    # ---- Lifecycle ----
    def dispose(self) -> None:
        """Stop the fan-out pool and drop all subscribers."""
        if self._disposed:
            return
        self._disposed = True
        self._executor.shutdown(wait=True)
        for stream in (self.students, self.request_state, self.selected):
            stream.close()

    def __enter__(self) -> "StudentService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    # ---- Bookkeeping ----
    def _issue(self) -> int:
        with self._lock:
            self._ticket += 1
            return self._ticket

    @contextmanager
    def _tracked(self) -> Iterator[None]:
        """Bracket one network operation with the loading flag and error state."""
        with self._lock:
            self._active += 1
            self.request_state.set(RequestState(loading=True, error=None))
        error: Optional[str] = None
        try:
            yield
        except ApiError as e:
            error = e.message
            logger.error("API Error: %s (%s, status=%s)", e.message, e.kind.value, e.status)
            raise
        finally:
            with self._lock:
                self._active -= 1
                self.request_state.set(RequestState(loading=self._active > 0, error=error))

    def _shared(self, key: str, load: Callable[[], R]) -> R:
        """Run ``load`` unless an identical read is in flight; then wait for that one."""
        with self._lock:
            pending = self._inflight.get(key)
            if pending is None:
                owned: Future = Future()
                self._inflight[key] = owned
        if pending is not None:
            logger.debug("joining in-flight request %s", key)
            return pending.result()

        try:
            result = load()
        except BaseException as e:
            owned.set_exception(e)
            raise
        else:
            owned.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def _read(self, path: str, timeout: float, params: Optional[Mapping[str, str]] = None) -> Reply:
        """GET with bounded retries for transport-class failures only."""
        attempts = self.settings.read_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return self.transport.send("GET", path, params=params, timeout=timeout)
            except ApiError as e:
                if e.kind not in RETRYABLE_KINDS or attempt == attempts:
                    raise
                logger.warning("GET %s failed with %s; retry %d of %d", path, e.kind.value, attempt, attempts - 1)
        raise AssertionError("unreachable")

    @staticmethod
    def _parse(model: Type[M], payload: Any, status: int) -> M:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise UnknownApiError("Unexpected response from server", status=status, detail=str(e)) from e

    @staticmethod
    def _as_student(record: StudentLike) -> Student:
        return record if isinstance(record, Student) else Student.model_validate(dict(record))

    def _cacheable(self, ticket: int) -> bool:
        # Reads issued before the latest invalidation may predate the write behind it.
        return ticket > self._invalidated_at

    def _written(self, ticket: int, pattern: Optional[str] = None, *more_patterns: str) -> None:
        """Record a successful write: advance sequencing and invalidate the cache."""
        self._collection_ticket = max(self._collection_ticket, ticket)
        self._invalidated_at = self._ticket
        if pattern is None:
            self.cache.invalidate()
        else:
            for p in (pattern, *more_patterns):
                self.cache.invalidate(p)

    # ---- Reads ----
    def list(self, filter: FilterLike = None, pagination: PaginationLike = None) -> ListResponse:
        key = query_key(filter, pagination)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        return self._shared(key, lambda: self._fetch_list(key, filter, pagination))

    def _fetch_list(self, key: str, filter: FilterLike, pagination: PaginationLike) -> ListResponse:
        ticket = self._issue()
        params: Dict[str, str] = {}
        f = as_model(StudentFilter, filter)
        p = as_model(Pagination, pagination)
        if f is not None:
            params.update(f.to_params())
        if p is not None:
            params.update(p.to_params())

        with self._tracked():
            reply = self._read("/students", self.settings.list_timeout_seconds, params)
            body = {"data": reply.body} if isinstance(reply.body, list) else reply.body
            response = self._parse(ListResponse, body, reply.status)
            with self._lock:
                if self._cacheable(ticket):
                    self.cache.set(key, response)
                if ticket > self._collection_ticket:
                    self._collection_ticket = ticket
                    self.students.set(list(response.data))
                else:
                    logger.info("Discarding stale list result for %s (ticket %d)", key, ticket)
        return response

    def get(self, record_id: str, force_refresh: bool = False) -> Student:
        key = record_key(record_id)
        if force_refresh:
            return self._fetch_record(record_id, key)
        cached = self.cache.get(key)
        if cached is not None:
            self.selected.set(cached)
            return cached
        return self._shared(key, lambda: self._fetch_record(record_id, key))

    def _fetch_record(self, record_id: str, key: str) -> Student:
        ticket = self._issue()
        with self._tracked():
            reply = self._read(f"/students/{record_id}", self.settings.get_timeout_seconds)
            student = self._parse(Student, unwrap(reply.body), reply.status)
            with self._lock:
                if self._cacheable(ticket):
                    self.cache.set(key, student)
                if ticket > self._selected_ticket:
                    self._selected_ticket = ticket
                    self.selected.set(student)
        return student

    def dashboard_stats(self) -> DashboardStats:
        cached = self.cache.get(STATS_KEY)
        if cached is not None:
            return cached
        return self._shared(STATS_KEY, self._fetch_stats)

    def _fetch_stats(self) -> DashboardStats:
        ticket = self._issue()
        with self._tracked():
            reply = self._read("/students/dashboard/stats", self.settings.get_timeout_seconds)
            stats = self._parse(DashboardStats, unwrap(reply.body), reply.status)
            with self._lock:
                if self._cacheable(ticket):
                    self.cache.set(STATS_KEY, stats)
        return stats

    def search(self, query: str) -> List[Student]:
        q = (query or "").strip()
        if not q:
            return []
        with self._tracked():
            reply = self.transport.send(
                "GET", "/students/search", params={"q": q}, timeout=self.settings.get_timeout_seconds
            )
            payload = unwrap(reply.body) or []
            return [self._parse(Student, item, reply.status) for item in payload]

    def email_available(self, email: str) -> bool:
        if not email:
            return False
        with self._tracked():
            reply = self.transport.send(
                "GET",
                "/students/validate/email",
                params={"email": email},
                timeout=self.settings.get_timeout_seconds,
            )
        body = reply.body if isinstance(reply.body, dict) else {}
        return not bool(body.get("exists"))

    def export(self, options: ExportOptions) -> bytes:
        with self._tracked():
            reply = self.transport.send(
                "GET",
                "/students/export",
                params=options.to_params(),
                timeout=self.settings.export_timeout_seconds,
            )
        return reply.content

    # ---- Writes (never retried) ----
    def create(self, record: StudentLike) -> Student:
        payload = self._as_student(record).wire()
        payload.pop("_id", None)
        ticket = self._issue()
        with self._tracked():
            reply = self.transport.send(
                "POST", "/students", json=payload, timeout=self.settings.write_timeout_seconds
            )
            created = self._parse(Student, unwrap(reply.body), reply.status)
            with self._lock:
                self.students.set([created, *self.students.value])
                self._written(ticket, LIST_KEY_PREFIX, STATS_KEY)
        logger.info("Created student %s", created.id)
        return created

    def update(self, record_id: str, record: StudentLike) -> Student:
        student = self._as_student(record)
        if student.id is not None and student.id != record_id:
            raise ValueError(f"record id {student.id!r} does not match {record_id!r}")
        payload = student.wire()
        payload.pop("_id", None)
        ticket = self._issue()
        with self._tracked():
            reply = self.transport.send(
                "PUT", f"/students/{record_id}", json=payload, timeout=self.settings.write_timeout_seconds
            )
            updated = self._parse(Student, unwrap(reply.body), reply.status)
            with self._lock:
                current = list(self.students.value)
                for index, existing in enumerate(current):
                    if existing.id == record_id:
                        current[index] = updated
                        self.students.set(current)
                        break
                self._selected_ticket = max(self._selected_ticket, ticket)
                self.selected.set(updated)
                self._written(ticket)
        return updated

    def _send_delete(self, record_id: str) -> None:
        self.transport.send("DELETE", f"/students/{record_id}", timeout=self.settings.delete_timeout_seconds)

    def _drop_local(self, ids: Iterable[str]) -> None:
        doomed = set(ids)
        self.students.set([s for s in self.students.value if s.id not in doomed])
        selected = self.selected.value
        if selected is not None and selected.id in doomed:
            self.selected.set(None)

    def delete(self, record_id: str) -> None:
        ticket = self._issue()
        with self._tracked():
            self._send_delete(record_id)
            with self._lock:
                self._drop_local([record_id])
                self._written(ticket)
        logger.info("Deleted student %s", record_id)

    def bulk_delete(self, ids: Iterable[str]) -> BulkOperationResult:
        """Delete every id concurrently; failures are collected, not raised."""
        unique = list(dict.fromkeys(ids))
        if not unique:
            return BulkOperationResult()

        ticket = self._issue()
        with self._tracked():
            future_to_id = {self._executor.submit(self._send_delete, rid): rid for rid in unique}
            wait(future_to_id)

        failures: Dict[str, str] = {}
        deleted: List[str] = []
        unexpected: Optional[BaseException] = None
        for future, rid in future_to_id.items():
            exc = future.exception()
            if exc is None:
                deleted.append(rid)
            elif isinstance(exc, ApiError):
                failures[rid] = exc.message
                logger.error("Failed to delete student %s: %s", rid, exc.message)
            elif unexpected is None:
                unexpected = exc

        # Deletes that reached the server are applied even if another one blew up.
        if deleted:
            with self._lock:
                self._drop_local(deleted)
                self._written(ticket)
        if unexpected is not None:
            raise unexpected

        return BulkOperationResult(
            succeeded=len(deleted),
            failed=len(failures),
            errors=[f"Failed to delete student {rid}: {failures[rid]}" for rid in unique if rid in failures],
        )

    def import_students(self, records: Iterable[StudentLike]) -> BulkOperationResult:
        """Create every record concurrently; failures are collected, not raised."""
        students = [self._as_student(r) for r in records]
        if not students:
            return BulkOperationResult()

        futures = [self._executor.submit(self.create, s) for s in students]
        wait(futures)

        errors: List[str] = []
        succeeded = 0
        unexpected: Optional[BaseException] = None
        for student, future in zip(students, futures):
            exc = future.exception()
            if exc is None:
                succeeded += 1
            elif isinstance(exc, ApiError):
                errors.append(f"Failed to import student {student.email}: {exc.message}")
            elif unexpected is None:
                unexpected = exc
        if unexpected is not None:
            raise unexpected

        return BulkOperationResult(succeeded=succeeded, failed=len(errors), errors=errors)

    # ---- Cache control ----
    def invalidate(self, pattern: Optional[str] = None) -> int:
        with self._lock:
            self._invalidated_at = self._ticket
            return self.cache.invalidate(pattern)

    def refresh_all(self) -> ListResponse:
        self.invalidate()
        return self.list()

    # ---- Derived views ----
    def count_by_status(self) -> Dict[str, int]:
        counts = Counter(s.status.value for s in self.list().data)
        return dict(counts)

    def active_students(self) -> List[Student]:
        return self.list(StudentFilter(status=StudentStatus.ACTIVE)).data

    def students_by_course(self, course: str) -> List[Student]:
        return self.list(StudentFilter(course=course)).data
