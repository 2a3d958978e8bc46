"""
In-memory course repository for tests and local offline work.

Every read and write holds the lock. Check-and-insert of an enrollment is
atomic, mirroring the primary key on (course_id, student_id) in Postgres.
"""
from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from courses.domain import Course, Enrollment, EnrollmentStatus, RosterEntry
from courses.errors import DuplicateEnrollment, MissingCourseReference


class InMemoryCourseRepo:
    def __init__(self) -> None:
        self.courses: Dict[str, Course] = {}
        # enrollments[(course_id, student_id)] = Enrollment, kept in insertion order
        self.enrollments: Dict[Tuple[str, str], Enrollment] = {}
        self._lock = threading.Lock()

    # --- Courses ----------------------------------------------------------------
    def insert_course(
        self, *, name: str, description: str, start_date: date, end_date: date, created_by: str
    ) -> Course:
        course = Course(
            id=str(uuid4()),
            name=name,
            description=description,
            start_date=start_date,
            end_date=end_date,
            created_by=created_by,
        )
        with self._lock:
            self.courses[course.id] = course
        return replace(course)

    def update_course(
        self, course_id: str, *, name: str, description: str, start_date: date, end_date: date
    ) -> Optional[Course]:
        with self._lock:
            c = self.courses.get(course_id)
            if not c:
                return None
            c.name = name
            c.description = description
            c.start_date = start_date
            c.end_date = end_date
            return replace(c)

    def delete_course(self, course_id: str) -> bool:
        with self._lock:
            existed = self.courses.pop(course_id, None) is not None
            # Same effect as the FK cascade in Postgres
            for key in [k for k in self.enrollments if k[0] == course_id]:
                self.enrollments.pop(key, None)
        return existed

    def find_course_by_id(self, course_id: str) -> Optional[Course]:
        with self._lock:
            c = self.courses.get(course_id)
            return replace(c) if c else None

    # --- Enrollments --------------------------------------------------------------
    def insert_enrollment(self, course_id: str, student_id: str) -> Enrollment:
        key = (course_id, student_id)
        with self._lock:
            if course_id not in self.courses:
                raise MissingCourseReference(course_id)
            if key in self.enrollments:
                raise DuplicateEnrollment(key)
            enrollment = Enrollment(course_id=course_id, student_id=student_id, status=EnrollmentStatus.PENDING)
            self.enrollments[key] = enrollment
        return replace(enrollment)

    def update_enrollment_status(
        self,
        course_id: str,
        student_id: str,
        *,
        expected: EnrollmentStatus,
        new: EnrollmentStatus,
    ) -> Optional[Enrollment]:
        with self._lock:
            e = self.enrollments.get((course_id, student_id))
            if not e or e.status is not expected:
                return None
            e.status = new
            return replace(e)

    def find_enrollment(self, course_id: str, student_id: str) -> Optional[Enrollment]:
        with self._lock:
            e = self.enrollments.get((course_id, student_id))
            return replace(e) if e else None

    def list_courses_for_user(self, user_id: str) -> List[Course]:
        with self._lock:
            ids = [cid for (cid, sid) in self.enrollments if sid == user_id]
            courses = [self.courses.get(cid) for cid in ids]
            return [replace(c) for c in courses if c is not None]

    def list_enrollments(self, status: EnrollmentStatus) -> List[RosterEntry]:
        out: List[RosterEntry] = []
        with self._lock:
            for e in self.enrollments.values():
                course = self.courses.get(e.course_id)
                if course is None or e.status is not status:
                    continue
                out.append(
                    RosterEntry(
                        student_id=e.student_id,
                        student_name="",
                        course_id=course.id,
                        course_name=course.name,
                        status=e.status,
                    )
                )
        return out

    def list_confirmed_students(self, course_id: str) -> List[str]:
        with self._lock:
            return [
                e.student_id
                for e in self.enrollments.values()
                if e.course_id == course_id and e.status is EnrollmentStatus.CONFIRMED
            ]


__all__ = ["InMemoryCourseRepo"]
