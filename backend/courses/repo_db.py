"""
Postgres-backed repository for courses & enrollments.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection with a
  bounded connect timeout.
- Uniqueness of (course_id, student_id) is the table's primary key; inserts use
  `on conflict do nothing` and report a skipped insert as DuplicateEnrollment.
- Confirmation is a conditional update on the current status.
"""
from __future__ import annotations

from typing import List, Optional, Tuple
import os
from datetime import date
from uuid import UUID

try:
    import psycopg
    from psycopg import errors as pg_errors
    HAVE_PSYCOPG = True
except ImportError:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    pg_errors = None  # type: ignore
    HAVE_PSYCOPG = False

from courses.domain import Course, Enrollment, EnrollmentStatus, RosterEntry
from courses.errors import DuplicateEnrollment, MissingCourseReference


def _dsn() -> str:
    """Resolve the DSN for DB access from the environment."""
    for var in ("COURSES_DATABASE_URL", "DATABASE_URL"):
        dsn = os.getenv(var)
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBCourseRepo")


def _connect_timeout() -> int:
    try:
        return max(1, int(os.getenv("DB_CONNECT_TIMEOUT", "5") or 5))
    except ValueError:
        return 5


def _is_uuid_like(value: str) -> bool:
    try:
        UUID(str(value))
    except (ValueError, TypeError):
        return False
    return True


_COURSE_COLUMNS_SQL = "id::text, name, description, start_date, end_date, created_by"


def _course_from_row(row: Tuple) -> Course:
    return Course(
        id=row[0],
        name=row[1],
        description=row[2] or "",
        start_date=row[3],
        end_date=row[4],
        created_by=row[5],
    )


def _enrollment_from_row(row: Tuple) -> Enrollment:
    return Enrollment(course_id=row[0], student_id=row[1], status=EnrollmentStatus(row[2]))


class DBCourseRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        """Initialize a Postgres-backed repository.

        Parameters:
            dsn: Optional explicit DSN. When omitted, resolves from
                 COURSES_DATABASE_URL or DATABASE_URL.

        Behavior:
            - Does not open a connection eagerly; connections are per-call.
            - Raises RuntimeError when psycopg or a DSN is unavailable so the
              caller can fall back to the in-memory repo.
        """
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBCourseRepo")
        self._dsn = dsn or _dsn()
        self._timeout = _connect_timeout()

    def _connect(self):
        return psycopg.connect(self._dsn, connect_timeout=self._timeout)

    # --- Courses ----------------------------------------------------------------
    def insert_course(
        self, *, name: str, description: str, start_date: date, end_date: date, created_by: str
    ) -> Course:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    insert into public.courses (name, description, start_date, end_date, created_by)
                    values (%s, %s, %s, %s, %s)
                    returning {_COURSE_COLUMNS_SQL}
                    """,
                    (name, description, start_date, end_date, created_by),
                )
                row = cur.fetchone()
                conn.commit()
        return _course_from_row(row)

    def update_course(
        self, course_id: str, *, name: str, description: str, start_date: date, end_date: date
    ) -> Optional[Course]:
        if not _is_uuid_like(course_id):
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    update public.courses
                       set name = %s, description = %s, start_date = %s, end_date = %s, updated_at = now()
                     where id = %s
                    returning {_COURSE_COLUMNS_SQL}
                    """,
                    (name, description, start_date, end_date, course_id),
                )
                row = cur.fetchone()
                if not row:
                    return None
                conn.commit()
        return _course_from_row(row)

    def delete_course(self, course_id: str) -> bool:
        """Hard delete; enrollments go with the course via FK cascade."""
        if not _is_uuid_like(course_id):
            return False
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.courses where id = %s returning id::text", (course_id,))
                row = cur.fetchone()
                conn.commit()
        return row is not None

    def find_course_by_id(self, course_id: str) -> Optional[Course]:
        if not _is_uuid_like(course_id):
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_COURSE_COLUMNS_SQL} from public.courses where id = %s",
                    (course_id,),
                )
                row = cur.fetchone()
        return _course_from_row(row) if row else None

    # --- Enrollments --------------------------------------------------------------
    def insert_enrollment(self, course_id: str, student_id: str) -> Enrollment:
        if not _is_uuid_like(course_id):
            raise MissingCourseReference(course_id)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        insert into public.course_enrollments (course_id, student_id, status)
                        values (%s, %s, %s)
                        on conflict (course_id, student_id) do nothing
                        returning course_id::text, student_id, status
                        """,
                        (course_id, student_id, EnrollmentStatus.PENDING.value),
                    )
                    row = cur.fetchone()
                    conn.commit()
        except pg_errors.ForeignKeyViolation as exc:
            raise MissingCourseReference(course_id) from exc
        if not row:
            raise DuplicateEnrollment((course_id, student_id))
        return _enrollment_from_row(row)

    def update_enrollment_status(
        self,
        course_id: str,
        student_id: str,
        *,
        expected: EnrollmentStatus,
        new: EnrollmentStatus,
    ) -> Optional[Enrollment]:
        if not _is_uuid_like(course_id):
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    update public.course_enrollments
                       set status = %s,
                           confirmed_at = case when %s = 'Confirmed' then now() else confirmed_at end
                     where course_id = %s and student_id = %s and status = %s
                    returning course_id::text, student_id, status
                    """,
                    (new.value, new.value, course_id, student_id, expected.value),
                )
                row = cur.fetchone()
                if not row:
                    return None
                conn.commit()
        return _enrollment_from_row(row)

    def find_enrollment(self, course_id: str, student_id: str) -> Optional[Enrollment]:
        if not _is_uuid_like(course_id):
            return None
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select course_id::text, student_id, status
                    from public.course_enrollments
                    where course_id = %s and student_id = %s
                    """,
                    (course_id, student_id),
                )
                row = cur.fetchone()
        return _enrollment_from_row(row) if row else None

    def list_courses_for_user(self, user_id: str) -> List[Course]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select c.id::text, c.name, c.description, c.start_date, c.end_date, c.created_by
                    from public.courses c
                    join public.course_enrollments e on e.course_id = c.id
                    where e.student_id = %s
                    order by e.created_at asc, c.id
                    """,
                    (user_id,),
                )
                rows = cur.fetchall() or []
        return [_course_from_row(r) for r in rows]

    def list_enrollments(self, status: EnrollmentStatus) -> List[RosterEntry]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select e.student_id, c.id::text, c.name, e.status
                    from public.course_enrollments e
                    join public.courses c on c.id = e.course_id
                    where e.status = %s
                    order by c.name asc, e.created_at asc, e.student_id
                    """,
                    (status.value,),
                )
                rows = cur.fetchall() or []
        return [
            RosterEntry(
                student_id=r[0],
                student_name="",
                course_id=r[1],
                course_name=r[2],
                status=EnrollmentStatus(r[3]),
            )
            for r in rows
        ]

    def list_confirmed_students(self, course_id: str) -> List[str]:
        if not _is_uuid_like(course_id):
            return []
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select student_id
                    from public.course_enrollments
                    where course_id = %s and status = %s
                    order by confirmed_at asc nulls last, student_id
                    """,
                    (course_id, EnrollmentStatus.CONFIRMED.value),
                )
                rows = cur.fetchall() or []
        return [r[0] for r in rows]


__all__ = ["DBCourseRepo", "HAVE_PSYCOPG"]
