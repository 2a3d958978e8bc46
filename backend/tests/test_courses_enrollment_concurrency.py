"""Concurrent enrollment/confirmation against the in-memory repo.

Exactly one of several simultaneous enrollments for the same (course, student)
pair succeeds; the rest fail with EnrollmentFailed. Likewise only one of several
simultaneous confirmations wins.
"""
from __future__ import annotations

import threading
from datetime import date

from courses.domain import EnrollmentStatus
from courses.errors import EnrollmentFailed, NoPendingEnrollment
from courses.repo_memory import InMemoryCourseRepo
from courses.services.enrollment import EnrollmentEngine
from identity_access.directory import InMemoryUserDirectory


def _engine() -> tuple[EnrollmentEngine, InMemoryCourseRepo]:
    directory = InMemoryUserDirectory()
    directory.add("teacher-1", "teacher", "Tom Teacher")
    directory.add("student-1", "student", "Sam Student")
    repo = InMemoryCourseRepo()
    return EnrollmentEngine(repo, directory), repo


def _run_parallel(fn, n: int) -> list[str]:
    barrier = threading.Barrier(n)
    outcomes: list[str] = []
    lock = threading.Lock()

    def _worker():
        barrier.wait()
        result = fn()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=_worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return outcomes


def test_parallel_enrollments_leave_one_row():
    engine, repo = _engine()
    course = engine.create_course(
        name="Biology", description="", start_date=date(2024, 1, 1), end_date=date(2024, 6, 1), caller_id="teacher-1"
    )

    def _enroll() -> str:
        try:
            engine.enroll_in_course(course.id, caller_id="student-1")
            return "ok"
        except EnrollmentFailed:
            return "failed"

    outcomes = _run_parallel(_enroll, 10)
    assert outcomes.count("ok") == 1
    assert outcomes.count("failed") == 9
    assert list(repo.enrollments) == [(course.id, "student-1")]


def test_parallel_confirmations_have_one_winner():
    engine, _ = _engine()
    course = engine.create_course(
        name="Biology", description="", start_date=date(2024, 1, 1), end_date=date(2024, 6, 1), caller_id="teacher-1"
    )
    engine.enroll_in_course(course.id, caller_id="student-1")

    def _confirm() -> str:
        try:
            engine.confirm_enrollment(course.id, "student-1", caller_id="teacher-1")
            return "ok"
        except NoPendingEnrollment:
            return "no_pending"

    outcomes = _run_parallel(_confirm, 6)
    assert outcomes.count("ok") == 1
    assert outcomes.count("no_pending") == 5


def test_listing_reads_hold_the_repo_lock():
    engine, repo = _engine()
    course = engine.create_course(
        name="Biology", description="", start_date=date(2024, 1, 1), end_date=date(2024, 6, 1), caller_id="teacher-1"
    )
    engine.enroll_in_course(course.id, caller_id="student-1")
    engine.confirm_enrollment(course.id, "student-1", caller_id="teacher-1")

    lock_states: list[bool] = []

    class WatchedCourses(dict):
        def get(self, key, default=None):
            lock_states.append(repo._lock.locked())
            return super().get(key, default)

    repo.courses = WatchedCourses(repo.courses)
    assert [c.id for c in repo.list_courses_for_user("student-1")] == [course.id]
    assert len(repo.list_enrollments(EnrollmentStatus.CONFIRMED)) == 1
    assert repo.find_course_by_id(course.id) is not None
    assert lock_states and all(lock_states)


def test_listing_while_deleting_never_raises():
    engine, repo = _engine()
    errors: list[BaseException] = []
    stop = threading.Event()

    def _reader():
        while not stop.is_set():
            try:
                repo.list_courses_for_user("student-1")
                repo.list_enrollments(EnrollmentStatus.PENDING)
                repo.list_confirmed_students("any")
            except Exception as exc:  # pragma: no cover - failure path
                errors.append(exc)
                return

    reader = threading.Thread(target=_reader)
    reader.start()
    try:
        for i in range(200):
            course = engine.create_course(
                name=f"C{i}", description="", start_date=date(2024, 1, 1), end_date=date(2024, 6, 1), caller_id="teacher-1"
            )
            engine.enroll_in_course(course.id, caller_id="student-1")
            repo.delete_course(course.id)
    finally:
        stop.set()
        reader.join()
    assert errors == []
