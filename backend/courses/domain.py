"""Course and enrollment entities shared by the engine and its adapters."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional


class EnrollmentStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"

    @classmethod
    def parse(cls, value: object) -> Optional["EnrollmentStatus"]:
        """Case-insensitive lookup; None for unknown strings."""
        if isinstance(value, EnrollmentStatus):
            return value
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for status in cls:
            if status.value.lower() == wanted:
                return status
        return None


DEFAULT_ROSTER_STATUS = EnrollmentStatus.CONFIRMED


@dataclass
class Course:
    id: str
    name: str
    description: str
    start_date: date
    end_date: date
    created_by: str


@dataclass
class Enrollment:
    course_id: str
    student_id: str
    status: EnrollmentStatus


@dataclass(frozen=True)
class RosterEntry:
    student_id: str
    student_name: str
    course_id: str
    course_name: str
    status: EnrollmentStatus


@dataclass(frozen=True)
class StudentSummary:
    student_id: str
    name: str


__all__ = [
    "Course",
    "DEFAULT_ROSTER_STATUS",
    "Enrollment",
    "EnrollmentStatus",
    "RosterEntry",
    "StudentSummary",
]
