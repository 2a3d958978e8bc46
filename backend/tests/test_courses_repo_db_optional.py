"""
Optional DB test for the course repository (skips when DB is unreachable).

Applies only when a Postgres database is reachable via COURSES_DATABASE_URL or
DATABASE_URL. Requires that migrations have been applied (e.g., `supabase migration up`).
"""
from __future__ import annotations

import os
import threading
from datetime import date
from uuid import uuid4

import pytest

from courses.domain import EnrollmentStatus
from courses.errors import DuplicateEnrollment


def _fallback_dsn() -> str:
    host = os.getenv("TEST_DB_HOST", "127.0.0.1")
    port = os.getenv("TEST_DB_PORT", "54322")
    user = os.getenv("TEST_DB_USER", "postgres")
    password = os.getenv("TEST_DB_PASSWORD", "postgres")
    return f"postgresql://{user}:{password}@{host}:{port}/postgres"


def _probe_dsn(dsn: str) -> bool:
    try:
        import psycopg  # type: ignore
        with psycopg.connect(dsn, connect_timeout=1) as _:
            return True
    except Exception:
        return False


@pytest.fixture
def db_repo():
    dsn = os.getenv("COURSES_DATABASE_URL") or os.getenv("DATABASE_URL") or _fallback_dsn()
    if not _probe_dsn(dsn):
        pytest.skip("Database not reachable; apply migrations and expose a DSN")

    from courses.repo_db import DBCourseRepo  # type: ignore

    return DBCourseRepo(dsn=dsn)


def test_db_repo_course_lifecycle_and_cascade(db_repo):
    course = db_repo.insert_course(
        name=f"Biology {uuid4().hex[:6]}",
        description="Cells",
        start_date=date(2024, 6, 1),
        end_date=date(2024, 1, 1),
        created_by="teacher-db-1",
    )
    fetched = db_repo.find_course_by_id(course.id)
    assert fetched is not None and fetched.start_date == date(2024, 6, 1)

    student = f"student-{uuid4().hex[:8]}"
    db_repo.insert_enrollment(course.id, student)
    with pytest.raises(DuplicateEnrollment):
        db_repo.insert_enrollment(course.id, student)

    confirmed = db_repo.update_enrollment_status(
        course.id, student, expected=EnrollmentStatus.PENDING, new=EnrollmentStatus.CONFIRMED
    )
    assert confirmed is not None
    assert db_repo.list_confirmed_students(course.id) == [student]

    assert db_repo.delete_course(course.id) is True
    assert db_repo.find_enrollment(course.id, student) is None


def test_db_repo_concurrent_enrollment_keeps_one_row(db_repo):
    course = db_repo.insert_course(
        name="Concurrency", description="", start_date=date(2024, 1, 1), end_date=date(2024, 2, 1), created_by="t"
    )
    student = f"student-{uuid4().hex[:8]}"
    outcomes: list[str] = []
    lock = threading.Lock()

    def _enroll():
        try:
            db_repo.insert_enrollment(course.id, student)
            result = "ok"
        except DuplicateEnrollment:
            result = "dup"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=_enroll) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    try:
        assert sorted(outcomes) == ["dup"] * 7 + ["ok"]
    finally:
        db_repo.delete_course(course.id)
