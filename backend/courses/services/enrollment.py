"""Course management and enrollment use cases (Clean Architecture boundary).

Why:
    Owns course CRUD and the enrollment state machine so that web adapters
    remain framework-free and the rules can be unit-tested with in-memory
    collaborators.

Behavior:
    - Every operation that takes `caller_id` first resolves the caller through
      the user directory (ActorNotFound when unresolvable).
    - Role-gated operations then consult the AuthorizationPolicy (Forbidden).
    - Uniqueness of (course, student) is the persistence adapter's job; a
      duplicate-key signal is reported as EnrollmentFailed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Protocol

from identity_access.directory import UserDirectoryProtocol
from identity_access.domain import UserRecord

from courses.domain import (
    DEFAULT_ROSTER_STATUS,
    Course,
    Enrollment,
    EnrollmentStatus,
    RosterEntry,
    StudentSummary,
)
from courses.errors import (
    ActorNotFound,
    CourseNotFound,
    DuplicateEnrollment,
    EnrollmentFailed,
    Forbidden,
    MissingCourseReference,
    NoPendingEnrollment,
)
from courses.policy import Action, AuthorizationPolicy

logger = logging.getLogger("coursehub.courses")

UNKNOWN_NAME = "Unknown"


class CoursePersistenceProtocol(Protocol):
    def insert_course(
        self, *, name: str, description: str, start_date: date, end_date: date, created_by: str
    ) -> Course:
        ...

    def update_course(
        self, course_id: str, *, name: str, description: str, start_date: date, end_date: date
    ) -> Optional[Course]:
        ...

    def delete_course(self, course_id: str) -> bool:
        ...

    def find_course_by_id(self, course_id: str) -> Optional[Course]:
        ...

    def insert_enrollment(self, course_id: str, student_id: str) -> Enrollment:
        ...

    def update_enrollment_status(
        self,
        course_id: str,
        student_id: str,
        *,
        expected: EnrollmentStatus,
        new: EnrollmentStatus,
    ) -> Optional[Enrollment]:
        ...

    def find_enrollment(self, course_id: str, student_id: str) -> Optional[Enrollment]:
        ...

    def list_courses_for_user(self, user_id: str) -> List[Course]:
        ...

    def list_enrollments(self, status: EnrollmentStatus) -> List[RosterEntry]:
        ...

    def list_confirmed_students(self, course_id: str) -> List[str]:
        ...


@dataclass
class EnrollmentEngine:
    """Use cases for courses and enrollments (framework-independent)."""

    repo: CoursePersistenceProtocol
    directory: UserDirectoryProtocol
    policy: AuthorizationPolicy = field(default_factory=AuthorizationPolicy)

    # --- Caller resolution ------------------------------------------------------
    def _resolve_actor(self, caller_id: str) -> UserRecord:
        if not caller_id:
            raise ActorNotFound()
        try:
            actor = self.directory.resolve(caller_id)
        except Exception as exc:
            logger.warning("Directory lookup failed: %s", exc.__class__.__name__)
            raise ActorNotFound() from exc
        if actor is None:
            raise ActorNotFound()
        return actor

    def _authorize(self, caller_id: str, action: Action) -> UserRecord:
        actor = self._resolve_actor(caller_id)
        if not self.policy.is_allowed(actor.role, action):
            logger.warning("Denied %s for role %s", action.value, actor.role.value)
            raise Forbidden()
        return actor

    def _display_names(self, subs: List[str]) -> Dict[str, str]:
        """One batched directory lookup per listing; missing names become "Unknown"."""
        wanted = [s for s in dict.fromkeys(subs) if s]
        if not wanted:
            return {}
        try:
            found = self.directory.resolve_names(wanted)
        except Exception as exc:
            logger.warning("Directory lookup failed: %s", exc.__class__.__name__)
            found = {}
        return {s: (found.get(s) or UNKNOWN_NAME) for s in wanted}

    # --- Courses ----------------------------------------------------------------
    def create_course(
        self,
        *,
        name: str,
        description: str,
        start_date: date,
        end_date: date,
        caller_id: str,
    ) -> Course:
        # start_date > end_date is accepted.
        self._authorize(caller_id, Action.CREATE_COURSE)
        course = self.repo.insert_course(
            name=name,
            description=description,
            start_date=start_date,
            end_date=end_date,
            created_by=caller_id,
        )
        logger.info("Course %s created", course.id)
        return course

    def edit_course(
        self,
        course_id: str,
        *,
        name: str,
        description: str,
        start_date: date,
        end_date: date,
        caller_id: str,
    ) -> Course:
        self._authorize(caller_id, Action.EDIT_COURSE)
        if self.repo.find_course_by_id(course_id) is None:
            raise CourseNotFound()
        updated = self.repo.update_course(
            course_id,
            name=name,
            description=description,
            start_date=start_date,
            end_date=end_date,
        )
        if updated is None:
            # Deleted between lookup and update
            raise CourseNotFound()
        logger.info("Course %s edited", course_id)
        return updated

    def get_course(self, course_id: str) -> Course:
        course = self.repo.find_course_by_id(course_id)
        if course is None:
            raise CourseNotFound()
        return course

    def delete_course(self, course_id: str, *, caller_id: str) -> None:
        # Role check precedes the existence check.
        self._authorize(caller_id, Action.DELETE_COURSE)
        if self.repo.find_course_by_id(course_id) is None:
            raise CourseNotFound()
        if not self.repo.delete_course(course_id):
            raise CourseNotFound()
        logger.info("Course %s deleted", course_id)

    def list_user_courses(self, caller_id: str) -> List[Course]:
        actor = self._resolve_actor(caller_id)
        return self.repo.list_courses_for_user(actor.sub)

    # --- Enrollment state machine ----------------------------------------------
    def enroll_in_course(self, course_id: str, *, caller_id: str) -> Enrollment:
        """Create a Pending enrollment for the caller.

        Raises EnrollmentFailed when the course does not exist or the caller is
        already enrolled; both causes look identical to the caller.
        """
        actor = self._resolve_actor(caller_id)
        if self.repo.find_course_by_id(course_id) is None:
            logger.warning("Enrollment rejected: course missing")
            raise EnrollmentFailed()
        try:
            enrollment = self.repo.insert_enrollment(course_id, actor.sub)
        except (DuplicateEnrollment, MissingCourseReference) as exc:
            logger.warning("Enrollment rejected: %s", exc.__class__.__name__)
            raise EnrollmentFailed() from exc
        logger.info("Enrollment created for course %s", course_id)
        return enrollment

    def confirm_enrollment(self, course_id: str, student_id: str, *, caller_id: str) -> Enrollment:
        self._authorize(caller_id, Action.CONFIRM_ENROLLMENT)
        current = self.repo.find_enrollment(course_id, student_id)
        if current is None or current.status is not EnrollmentStatus.PENDING:
            raise NoPendingEnrollment()
        confirmed = self.repo.update_enrollment_status(
            course_id,
            student_id,
            expected=EnrollmentStatus.PENDING,
            new=EnrollmentStatus.CONFIRMED,
        )
        if confirmed is None:
            # A concurrent confirmation won the conditional update
            raise NoPendingEnrollment()
        logger.info("Enrollment confirmed for course %s", course_id)
        return confirmed

    # --- Rosters ----------------------------------------------------------------
    def list_students_and_courses(
        self, enrollment_status: Optional[str] = None, *, caller_id: str
    ) -> List[RosterEntry]:
        """Return (student, course, status) entries filtered by status.

        Behavior:
            - Missing/blank status defaults to Confirmed.
            - Status matching is case-insensitive.
            - Unknown status strings yield an empty list.
        """
        self._authorize(caller_id, Action.VIEW_ROSTER)
        if enrollment_status is None or not str(enrollment_status).strip():
            status: Optional[EnrollmentStatus] = DEFAULT_ROSTER_STATUS
        else:
            status = EnrollmentStatus.parse(enrollment_status)
        if status is None:
            return []
        entries = self.repo.list_enrollments(status)
        names = self._display_names([e.student_id for e in entries if not e.student_name])
        return [
            RosterEntry(
                student_id=e.student_id,
                student_name=e.student_name or names.get(e.student_id, UNKNOWN_NAME),
                course_id=e.course_id,
                course_name=e.course_name,
                status=e.status,
            )
            for e in entries
        ]

    def list_confirmed_students_in_course(self, course_id: str, *, caller_id: str) -> List[StudentSummary]:
        self._authorize(caller_id, Action.VIEW_ROSTER)
        subs = self.repo.list_confirmed_students(course_id)
        names = self._display_names(subs)
        return [StudentSummary(student_id=s, name=names.get(s, UNKNOWN_NAME)) for s in subs]


__all__ = ["CoursePersistenceProtocol", "EnrollmentEngine", "UNKNOWN_NAME"]
