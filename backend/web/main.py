"coursehub web application"
from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from identity_access.stores import SessionStore
from web import config as _cfg
from web.routes.courses import courses_router


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via COURSEHUB_ENABLE_DOTENV (default true outside pytest).
    """
    import sys
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("COURSEHUB_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


try:
    from dotenv import load_dotenv
    if _should_load_dotenv():
        load_dotenv()
except ImportError:
    pass

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("coursehub.web")
SESSION_COOKIE_NAME = "coursehub_session"

app = FastAPI(title="coursehub", description="Course management and enrollment", version="0.1.0")
app.include_router(courses_router)

SESSION_STORE = SessionStore()


# --- Auth Middleware --------------------------------------------------------------

def _is_public_path(path: str) -> bool:
    return path in ("/health", "/favicon.ico", "/openapi.json", "/docs")


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    path = request.url.path
    if _is_public_path(path):
        return await call_next(request)

    sid = request.cookies.get(SESSION_COOKIE_NAME)
    rec = None
    if sid:
        try:
            rec = SESSION_STORE.get(sid)
        except Exception as exc:
            logger.warning("Session store get failed: %s", exc.__class__.__name__)

    if not rec:
        headers = {"Cache-Control": "private, no-store"}
        return JSONResponse(
            {"error": "unauthenticated", "detail": "User information not found in session."},
            status_code=401,
            headers=headers,
        )

    # Expose minimal, read-only caller context; roles are resolved by the directory.
    request.state.user = {"sub": rec.sub, "name": rec.name}
    return await call_next(request)


@app.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and tests.
    return JSONResponse({"status": "healthy"}, headers={"Cache-Control": "private, no-store"})


def main() -> None:
    """CLI entrypoint: serve the API with uvicorn."""
    import uvicorn

    level_name = os.getenv("LOG_LEVEL", "INFO")
    logging.basicConfig(level=level_name.strip().upper() or "INFO")
    uvicorn.run(
        app,
        host=os.getenv("COURSEHUB_HOST", "127.0.0.1"),
        port=int(os.getenv("COURSEHUB_PORT", "8000") or 8000),
    )


if __name__ == "__main__":  # pragma: no cover
    main()
