"""
Course management and enrollment API routes.

Why:
    Thin FastAPI adapter over `EnrollmentEngine`. The adapter extracts the
    caller identity set by the auth middleware, passes it explicitly to the
    engine, and maps the engine's error kinds to stable HTTP responses.

Notes:
    - Persistence: Prefers the Postgres-backed repo when psycopg and a DSN are
      available; falls back to an in-memory repo for tests/local offline work.
      Tests can call `set_repo` / `set_directory` to override implementations.
    - Empty listings are reported as 404 `empty_result` so clients can tell
      "no data" apart from a failure.
    - Engine calls run through `asyncio.to_thread`: psycopg and the Keycloak
      directory do synchronous network I/O that must stay off the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Dict, List

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic.functional_validators import field_validator

from courses.domain import Course, RosterEntry, StudentSummary
from courses.errors import CourseError, EmptyResult
from courses.repo_memory import InMemoryCourseRepo
from courses.services.enrollment import EnrollmentEngine
from identity_access.directory import build_default_directory

courses_router = APIRouter(tags=["Courses"])  # explicit paths below
logger = logging.getLogger("coursehub.courses.repo")


# --- Wiring -----------------------------------------------------------------------

try:
    from courses.repo_db import DBCourseRepo  # type: ignore
except Exception as exc:  # pragma: no cover - optional dependency path
    DBCourseRepo = None  # type: ignore
    _DB_REPO_IMPORT_ERROR = exc
else:
    _DB_REPO_IMPORT_ERROR = None


def _build_default_repo():
    """Prefer the DB-backed repo; fall back to in-memory if unavailable."""
    if DBCourseRepo is None:
        if _DB_REPO_IMPORT_ERROR:
            logger.warning("Course repo import failed: %s", _DB_REPO_IMPORT_ERROR)
        return InMemoryCourseRepo()
    try:
        return DBCourseRepo()
    except Exception as exc:  # pragma: no cover - exercised when DSN missing
        logger.warning("Course repo unavailable (%s); using in-memory fallback", exc)
        return InMemoryCourseRepo()


# Lazy accessors to avoid import-time DB/directory checks in tests.
_REPO = None
_DIRECTORY = None


def _get_repo():  # pragma: no cover - simple accessor
    global _REPO
    if _REPO is None:
        _REPO = _build_default_repo()
    return _REPO


def _get_directory():  # pragma: no cover - simple accessor
    global _DIRECTORY
    if _DIRECTORY is None:
        _DIRECTORY = build_default_directory()
    return _DIRECTORY


def _get_engine() -> EnrollmentEngine:
    return EnrollmentEngine(_get_repo(), _get_directory())


def set_repo(repo) -> None:
    """Allow tests to swap the course repository implementation."""
    global _REPO
    _REPO = repo


def set_directory(directory) -> None:
    """Allow tests to swap the user directory implementation."""
    global _DIRECTORY
    _DIRECTORY = directory


# --- Request/Response models -----------------------------------------------------

class CourseWrite(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    start_date: date
    end_date: date

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date_only(cls, v):
        # Accept full timestamps and keep only the calendar date.
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            try:
                return datetime.fromisoformat(v.replace("Z", "+00:00")).date()
            except ValueError:
                return v
        return v


_STATUS_BY_CODE: Dict[str, int] = {
    "unauthenticated": 401,
    "forbidden": 403,
    "course_not_found": 404,
    "enrollment_failed": 400,
    "no_pending_enrollment": 404,
    "empty_result": 404,
}


def _json_private(payload, *, status_code: int = 200) -> JSONResponse:
    """Return a JSONResponse with cache disabled for shared caches and browsers."""
    return JSONResponse(content=payload, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _error_response(exc: CourseError) -> JSONResponse:
    status_code = _STATUS_BY_CODE.get(exc.code, 400)
    return _json_private({"error": exc.code, "detail": exc.message}, status_code=status_code)


def _current_sub(request: Request) -> str:
    user = getattr(request.state, "user", None)
    if not user:
        return ""
    sub = user.get("sub")
    return str(sub) if sub else ""


def _serialize_course(c: Course) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "description": c.description,
        "start_date": c.start_date.isoformat(),
        "end_date": c.end_date.isoformat(),
        "created_by": c.created_by,
    }


def _serialize_roster_entry(e: RosterEntry) -> dict:
    return {
        "student_id": e.student_id,
        "student_name": e.student_name,
        "course_id": e.course_id,
        "course_name": e.course_name,
        "status": e.status.value,
    }


def _serialize_student(s: StudentSummary) -> dict:
    return {"student_id": s.student_id, "name": s.name}


def _non_empty(items: List, message: str) -> List:
    if not items:
        raise EmptyResult(message)
    return items


# --- Routes ----------------------------------------------------------------------

@courses_router.post("/api/courses")
async def create_course(request: Request, payload: CourseWrite):
    """Create a course (admin/teacher).

    Behavior:
        - 201 with `Course`; `created_by` is the caller
        - 403 when caller is neither admin nor teacher
        - 401 when the caller cannot be resolved in the directory
    """
    try:
        course = await asyncio.to_thread(
            _get_engine().create_course,
            name=payload.name,
            description=payload.description,
            start_date=payload.start_date,
            end_date=payload.end_date,
            caller_id=_current_sub(request),
        )
    except CourseError as exc:
        return _error_response(exc)
    return _json_private(
        {"message": "Course created successfully!", "course": _serialize_course(course)}, status_code=201
    )


@courses_router.get("/api/courses/mine")
async def list_my_courses(request: Request):
    """List every course the caller is enrolled in (pending or confirmed)."""
    try:
        items = await asyncio.to_thread(_get_engine().list_user_courses, _current_sub(request))
        _non_empty(items, "User has not enrolled in any course.")
    except CourseError as exc:
        return _error_response(exc)
    return _json_private([_serialize_course(c) for c in items])


@courses_router.get("/api/courses/{course_id}")
async def get_course(request: Request, course_id: str):
    """Get a course by id; no role check."""
    try:
        course = await asyncio.to_thread(_get_engine().get_course, course_id)
    except CourseError as exc:
        return _error_response(exc)
    return _json_private(_serialize_course(course))


@courses_router.put("/api/courses/{course_id}")
async def edit_course(request: Request, course_id: str, payload: CourseWrite):
    """Overwrite name, description and dates (admin/teacher); creator is unchanged."""
    try:
        course = await asyncio.to_thread(
            _get_engine().edit_course,
            course_id,
            name=payload.name,
            description=payload.description,
            start_date=payload.start_date,
            end_date=payload.end_date,
            caller_id=_current_sub(request),
        )
    except CourseError as exc:
        return _error_response(exc)
    return _json_private({"message": "Course edited successfully!", "course": _serialize_course(course)})


@courses_router.delete("/api/courses/{course_id}")
async def delete_course(request: Request, course_id: str):
    """Delete a course (admin only). Non-admins get 403 even for unknown ids."""
    try:
        await asyncio.to_thread(_get_engine().delete_course, course_id, caller_id=_current_sub(request))
    except CourseError as exc:
        return _error_response(exc)
    return _json_private({"message": "Course deleted successfully!"})


@courses_router.post("/api/courses/{course_id}/enroll")
async def enroll_in_course(request: Request, course_id: str):
    """Enroll the caller (status Pending).

    Behavior:
        - 200 on success
        - 400 `enrollment_failed` when the course is unknown or the caller is
          already enrolled (indistinguishable by design of the contract)
    """
    try:
        await asyncio.to_thread(_get_engine().enroll_in_course, course_id, caller_id=_current_sub(request))
    except CourseError as exc:
        return _error_response(exc)
    return _json_private({"message": "Course enrollment successful!"})


@courses_router.post("/api/courses/{course_id}/enrollments/{student_id}/confirm")
async def confirm_enrollment(request: Request, course_id: str, student_id: str):
    """Confirm a pending enrollment (admin/teacher)."""
    try:
        await asyncio.to_thread(_get_engine().confirm_enrollment, course_id, student_id, caller_id=_current_sub(request))
    except CourseError as exc:
        return _error_response(exc)
    return _json_private({"message": "Student enrollment confirmed successfully."})


@courses_router.get("/api/enrollments")
async def list_students_and_courses(request: Request, enrollment_status: str | None = None):
    """Roster of (student, course, status) filtered by status (default Confirmed)."""
    try:
        items = await asyncio.to_thread(_get_engine().list_students_and_courses, enrollment_status, caller_id=_current_sub(request))
        shown = (enrollment_status or "").strip() or "Confirmed"
        _non_empty(items, f"There are no students enrolled with status {shown}.")
    except CourseError as exc:
        return _error_response(exc)
    return _json_private([_serialize_roster_entry(e) for e in items])


@courses_router.get("/api/courses/{course_id}/confirmed-students")
async def list_confirmed_students(request: Request, course_id: str):
    """Confirmed students of a course (admin/teacher)."""
    try:
        items = await asyncio.to_thread(_get_engine().list_confirmed_students_in_course, course_id, caller_id=_current_sub(request))
        _non_empty(items, "No confirmed students enrolled in this course.")
    except CourseError as exc:
        return _error_response(exc)
    return _json_private([_serialize_student(s) for s in items])
