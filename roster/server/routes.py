import logging
import re
from typing import Any, Dict, List, Optional

import jwt
from flask import Blueprint, Response, abort, g, jsonify, request
from flask_caching import Cache
from pydantic import ValidationError

from ..models import Pagination, Student, StudentFilter, UserRole
from ..utils import STATS_KEY, utcnow
from .auth import TokenService
from .reports import EXPORT_FORMATS, dashboard_stats, render_export
from .store import SORTABLE_FIELDS, DuplicateEmailError, StudentStore, UserStore

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")

FILTER_PARAMS = {
    "name", "email", "course", "status", "minEnrollmentDate",
    "maxEnrollmentDate", "academicYear", "semester", "feesPaid",
}
PAGINATION_PARAMS = {"page", "limit", "sortBy", "sortOrder"}


def envelope(data: Any, message: str = "", status: int = 200, **extra: Any) -> Response:
    body: Dict[str, Any] = {
        "data": data,
        "message": message,
        "status": status,
        "timestamp": utcnow().isoformat(),
        **extra,
    }
    resp = jsonify(body)
    resp.status_code = status
    return resp


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    where = ".".join(str(p) for p in err.get("loc", ()))
    return f"{where}: {err.get('msg')}" if where else str(err.get("msg"))


def _student_from_body() -> Student:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        abort(400, description="Request body must be a JSON object")
    try:
        student = Student.model_validate(body)
    except ValidationError as e:
        abort(422, description=_first_error(e))
    problems: List[str] = []
    if not student.name.strip():
        problems.append("Name is required")
    if not EMAIL_RE.match(student.email.strip()):
        problems.append("Please enter a valid email")
    if not student.course.strip():
        problems.append("Course is required")
    if problems:
        abort(422, description="; ".join(problems))
    return student.model_copy(update={"email": student.email.strip().lower(), "name": student.name.strip()})


def _parse_query(model, names):
    raw = {k: v for k, v in request.args.items() if k in names and v != ""}
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        abort(400, description=_first_error(e))


def create_students_blueprint(store: StudentStore, cache: Cache, tokens: TokenService) -> Blueprint:
    bp = Blueprint("students", __name__)
    writers = tokens.require_roles(UserRole.ADMIN, UserRole.TEACHER)

    @bp.before_request
    def guard():
        tokens.authenticate()

    def _changed() -> None:
        cache.delete(STATS_KEY)

    @bp.get("")
    def list_students():
        f = _parse_query(StudentFilter, FILTER_PARAMS)
        p = _parse_query(Pagination, PAGINATION_PARAMS)
        if p.sort_by not in SORTABLE_FIELDS:
            abort(400, description=f"Cannot sort by {p.sort_by}")
        page, info = store.query(f, p)
        return envelope([s.wire() for s in page], pagination=info.wire())

    @bp.get("/search")
    def search_students():
        q = request.args.get("q", "")
        if not q.strip():
            return envelope([])
        return envelope([s.wire() for s in store.search(q)])

    @bp.get("/validate/email")
    def validate_email():
        email = request.args.get("email", "")
        return jsonify({"exists": bool(email) and store.email_exists(email)})

    @bp.get("/dashboard/stats")
    def stats():
        payload: Optional[Dict[str, Any]] = cache.get(STATS_KEY)
        if payload is None:
            payload = dashboard_stats(store.all()).wire()
            cache.set(STATS_KEY, payload)
        return envelope(payload)

    @bp.get("/export")
    def export_students():
        fmt = request.args.get("format", "csv")
        if fmt not in EXPORT_FORMATS:
            abort(400, description=f"Unsupported export format: {fmt}")
        f = _parse_query(StudentFilter, FILTER_PARAMS)
        fields = [c for c in request.args.get("fields", "").split(",") if c] or None
        matched, _ = store.query(f, Pagination(page=1, limit=max(len(store.all()), 1)))
        payload, mimetype, filename = render_export(matched, fmt, fields)
        return Response(
            payload,
            mimetype=mimetype,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @bp.get("/<student_id>")
    def get_student(student_id: str):
        student = store.get(student_id)
        if student is None:
            abort(404, description="Student not found")
        return envelope(student.wire())

    @bp.post("")
    @writers
    def create_student():
        student = _student_from_body()
        try:
            created = store.create(student)
        except DuplicateEmailError:
            abort(409, description="Email already exists")
        _changed()
        logger.info("Student %s created by %s", created.id, g.claims.sub)
        return envelope(created.wire(), message="Student created", status=201)

    @bp.put("/<student_id>")
    @writers
    def update_student(student_id: str):
        student = _student_from_body()
        try:
            updated = store.update(student_id, student)
        except DuplicateEmailError:
            abort(409, description="Email already exists")
        if updated is None:
            abort(404, description="Student not found")
        _changed()
        return envelope(updated.wire(), message="Student updated")

    @bp.delete("/<student_id>")
    @writers
    def delete_student(student_id: str):
        if not store.delete(student_id):
            abort(404, description="Student not found")
        _changed()
        logger.info("Student %s deleted by %s", student_id, g.claims.sub)
        return envelope(None, message="Student deleted successfully")

    return bp


def create_auth_blueprint(users: UserStore, tokens: TokenService) -> Blueprint:
    bp = Blueprint("auth", __name__)
    registrable = {UserRole.ADMIN.value, UserRole.TEACHER.value, UserRole.STUDENT.value}

    def _session_payload(user, status: int = 200) -> Response:
        refresh = tokens.issue_refresh(user)
        users.set_refresh_token(user.id, refresh)
        resp = jsonify({
            "success": True,
            "token": tokens.issue_access(user),
            "refreshToken": refresh,
            "user": user.public().wire(),
        })
        resp.status_code = status
        return resp

    @bp.post("/register")
    def register():
        body = request.get_json(silent=True) or {}
        name = str(body.get("name") or "").strip()
        email = str(body.get("email") or "").strip().lower()
        password = str(body.get("password") or "")
        role = str(body.get("role") or UserRole.STUDENT.value)

        errors = []
        if not name:
            errors.append("name is required")
        if not EMAIL_RE.match(email):
            errors.append("email is invalid")
        if len(password) < 6:
            errors.append("password must be at least 6 characters")
        if role not in registrable:
            errors.append("role is invalid")
        if errors:
            abort(400, description="; ".join(errors))

        try:
            user = users.create(name, email, password, UserRole(role))
        except DuplicateEmailError:
            abort(400, description="Email already registered")
        logger.info("Registered %s (%s)", user.email, user.role.value)
        return _session_payload(user, status=201)

    @bp.post("/login")
    def login():
        body = request.get_json(silent=True) or {}
        email = str(body.get("email") or "")
        password = str(body.get("password") or "")
        if not email or not password:
            abort(400, description="email and password are required")
        user = users.authenticate(email, password)
        if user is None:
            abort(401, description="Invalid credentials")
        return _session_payload(user)

    @bp.post("/refresh")
    def refresh():
        body = request.get_json(silent=True) or {}
        presented = str(body.get("token") or "")
        if not presented:
            abort(401, description="Refresh token required")
        try:
            claims = tokens.decode_refresh(presented)
        except (jwt.PyJWTError, ValidationError):
            abort(401, description="Invalid refresh token")
        user = users.get(claims.sub)
        if user is None or not user.is_active or user.refresh_token != presented:
            abort(401, description="Invalid refresh token")
        return jsonify({"success": True, "token": tokens.issue_access(user)})

    @bp.post("/logout")
    @tokens.login_required
    def logout():
        users.set_refresh_token(g.claims.sub, None)
        return jsonify({"success": True, "message": "Logged out successfully"})

    @bp.get("/profile")
    @tokens.login_required
    def profile():
        user = users.get(g.claims.sub)
        if user is None:
            abort(404, description="User not found")
        return jsonify({"success": True, "data": user.public().wire()})

    return bp
