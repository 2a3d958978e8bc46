"""
Error kinds reported by the enrollment core.

Each kind carries a stable `code` (used as the `error` field at the HTTP
boundary) and a non-sensitive default message. They extend the builtin
exception matching their concern so callers that only know `LookupError` or
`PermissionError` still handle them sensibly.
"""
from __future__ import annotations

from typing import Optional


class CourseError(Exception):
    code = "course_error"
    message = "Course operation failed."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)


class ActorNotFound(CourseError, PermissionError):
    code = "unauthenticated"
    message = "User information not found."


class Forbidden(CourseError, PermissionError):
    code = "forbidden"
    message = "You are not allowed to perform this action."


class CourseNotFound(CourseError, LookupError):
    code = "course_not_found"
    message = "Course does not exist."


class EnrollmentFailed(CourseError, ValueError):
    # Missing course and duplicate enrollment are deliberately indistinguishable.
    code = "enrollment_failed"
    message = "Unable to enroll in course (course does not exist or you have already enrolled)."


class NoPendingEnrollment(CourseError, LookupError):
    code = "no_pending_enrollment"
    message = "No enrollment found with Pending status."


class EmptyResult(CourseError, LookupError):
    code = "empty_result"
    message = "No data found."


# --- Persistence signals ---------------------------------------------------------

class DuplicateEnrollment(Exception):
    """Raised by persistence adapters on a (course_id, student_id) key conflict."""


class MissingCourseReference(Exception):
    """Raised by persistence adapters when an enrollment references no course."""


__all__ = [
    "ActorNotFound",
    "CourseError",
    "CourseNotFound",
    "DuplicateEnrollment",
    "EmptyResult",
    "EnrollmentFailed",
    "Forbidden",
    "MissingCourseReference",
    "NoPendingEnrollment",
]
