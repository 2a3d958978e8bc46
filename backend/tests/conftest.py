"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), and
keep module-level wiring (repo, directory, session store) isolated per test.
"""
import sys
from pathlib import Path

import pytest

# Ensure modules in backend/ are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(REPO_ROOT), str(BACKEND_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Keep env-driven behavior deterministic: dev env, no Keycloak, no dev seed."""
    for var in (
        "COURSEHUB_ENV",
        "COURSEHUB_DEV_USERS",
        "KC_ADMIN_CLIENT_SECRET",
        "KC_BASE_URL",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_course_wiring():
    """Reset the course repo and directory between tests.

    Behavior:
        - Always start from an empty in-memory repo and directory. Tests that
          need Postgres construct `DBCourseRepo` explicitly and skip when the
          database is not reachable.
    """
    from courses.repo_memory import InMemoryCourseRepo
    from identity_access.directory import InMemoryUserDirectory
    import web.routes.courses as courses_routes

    courses_routes.set_repo(InMemoryCourseRepo())
    courses_routes.set_directory(InMemoryUserDirectory())
    yield
    courses_routes.set_repo(None)
    courses_routes.set_directory(None)


@pytest.fixture(autouse=True)
def _reset_session_store(monkeypatch: pytest.MonkeyPatch):
    """Give every test a fresh SESSION_STORE on the web app module."""
    from identity_access.stores import SessionStore
    from web import main

    monkeypatch.setattr(main, "SESSION_STORE", SessionStore(), raising=False)
    yield
