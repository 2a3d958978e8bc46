"""
Configuration and startup security checks for coursehub.

Why: Prevent accidental insecure deployments. This module provides a single
guard that enforces minimal production safety constraints without burdening
local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os


def current_environment() -> str:
    return (os.getenv("COURSEHUB_ENV", "dev") or "dev").strip().lower()


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only):
    - A database DSN must be configured (no silent in-memory fallback).
    - The DSN must not explicitly disable TLS.
    - Keycloak admin client secret must be set and not a placeholder.
    - Keycloak endpoints must use HTTPS.
    - The development user seed must not be set.
    """
    env = current_environment()
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    dsn = os.getenv("COURSES_DATABASE_URL") or os.getenv("DATABASE_URL") or ""
    if not dsn.strip():
        raise SystemExit(
            "Refusing to start: COURSES_DATABASE_URL/DATABASE_URL is unset in production."
        )
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: database DSN contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    kc_secret = (os.getenv("KC_ADMIN_CLIENT_SECRET", "") or "").strip()
    if not kc_secret or kc_secret.upper().startswith("CHANGE_ME"):
        raise SystemExit(
            "Refusing to start: KC_ADMIN_CLIENT_SECRET is unset or a placeholder in production."
        )

    kc_base = (os.getenv("KC_BASE_URL", "") or "").strip().lower()
    if kc_base.startswith("http://"):
        raise SystemExit("Refusing to start: KC_BASE_URL must use https in production (got http).")

    if (os.getenv("COURSEHUB_DEV_USERS", "") or "").strip():
        raise SystemExit("Refusing to start: COURSEHUB_DEV_USERS must not be set in production/staging.")
