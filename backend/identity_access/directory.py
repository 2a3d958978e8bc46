"""
Directory adapters for user lookup (Keycloak Admin API or in-memory).

Why:
    The enrollment core needs to resolve a caller identity (OIDC `sub`) to a
    role and a display name. This module wraps the minimal Keycloak Admin API
    calls behind `resolve()` and offers an in-memory directory for local work
    and tests.

Security:
    - Uses admin credentials from environment to obtain a bearer token.
    - Do not log credentials or tokens.
    - Intended for server-side use only.
"""
from __future__ import annotations

from typing import Dict, Iterable, Optional, Protocol
import logging
import os
import re
from urllib.parse import quote

import requests

from identity_access.domain import Role, UserRecord, primary_role

logger = logging.getLogger("coursehub.identity_access")


class UserDirectoryProtocol(Protocol):
    def resolve(self, sub: str) -> Optional[UserRecord]:
        ...

    def resolve_names(self, subs: Iterable[str]) -> Dict[str, str]:
        ...


class _KC:
    def __init__(self) -> None:
        self.base_url = os.getenv("KC_BASE_URL", "http://localhost:8080").rstrip("/")
        self.realm = os.getenv("KC_REALM", "coursehub")
        # Token realm for admin client, typically 'master'
        self.admin_realm = os.getenv("KC_ADMIN_REALM", "master")
        self.admin_client_id = os.getenv("KC_ADMIN_CLIENT_ID", "coursehub-admin-cli")
        self.admin_client_secret = os.getenv("KC_ADMIN_CLIENT_SECRET")
        self.timeout = float(os.getenv("KC_HTTP_TIMEOUT", "10") or 10)

    def verify(self):
        # Honor CA bundle in production environments; default to system CAs
        ca = os.getenv("KEYCLOAK_CA_BUNDLE")
        return ca if ca else True

    def token(self) -> str:
        """Obtain an admin bearer token via OAuth2 client_credentials."""
        if not self.admin_client_secret:
            raise RuntimeError("Keycloak admin credentials missing: set KC_ADMIN_CLIENT_SECRET")
        url = f"{self.base_url}/realms/{self.admin_realm}/protocol/openid-connect/token"
        data = {
            "grant_type": "client_credentials",
            "client_id": self.admin_client_id,
            "client_secret": self.admin_client_secret,
        }
        r = requests.post(url, data=data, timeout=self.timeout, verify=self.verify())
        r.raise_for_status()
        tok = (r.json() or {}).get("access_token")
        if not tok:
            raise RuntimeError("Keycloak admin token missing")
        return str(tok)

    def hdr(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}


def _get_attr(u: dict, key: str) -> str:
    """Fetch a single-valued Keycloak user attribute from `attributes`.

    Keycloak exposes attributes as { key: [values...] }. We return the first string.
    """
    attrs = u.get("attributes") or {}
    vals = attrs.get(key) if isinstance(attrs, dict) else None
    if isinstance(vals, list) and vals:
        return str(vals[0] or "").strip()
    return ""


_splitter = re.compile(r"[^A-Za-z0-9]+")


def humanize_identifier(s: str) -> str:
    """Turn an email/username into a human display name.

    Rules:
    - For emails, use the part before '@'.
    - Split on non-alphanumeric separators (._- etc.).
    - Title-case each token and join with a single space.
    """
    if not s:
        return ""
    s = str(s)
    if "@" in s:
        s = s.split("@", 1)[0]
    parts = [p for p in _splitter.split(s) if p]
    if not parts:
        return ""
    return " ".join(p[:1].upper() + p[1:].lower() for p in parts)


def _display_name(u: dict) -> str:
    dn = _get_attr(u, "display_name")
    if dn:
        return dn
    first = (u.get("firstName") or "").strip()
    last = (u.get("lastName") or "").strip()
    if first or last:
        return " ".join([p for p in (first, last) if p]).strip()
    for key in ("email", "username"):
        h = humanize_identifier((u.get(key) or "").strip())
        if h:
            return h
    return ""


def _user_url(kc: _KC, sub: str) -> str:
    # sub is always a single escaped path segment
    return f"{kc.base_url}/admin/realms/{kc.realm}/users/{quote(str(sub), safe='')}"


class KeycloakUserDirectory:
    """Resolve users and their realm roles through the Keycloak Admin API."""

    def __init__(self, kc: Optional[_KC] = None) -> None:
        self._kc = kc or _KC()

    def resolve(self, sub: str) -> Optional[UserRecord]:
        """Return the user's record, or None when unknown or without an app role.

        Behavior:
            - 404 from Keycloak means the identity does not exist.
            - Realm roles are reduced to the highest-privilege app role.
            - Transport errors propagate to the caller.
        """
        if not sub:
            return None
        kc = self._kc
        token = kc.token()
        base = _user_url(kc, sub)
        r = requests.get(base, headers=kc.hdr(token), timeout=kc.timeout, verify=kc.verify())
        if r.status_code == 404:
            return None
        r.raise_for_status()
        user = r.json() or {}
        rr = requests.get(f"{base}/role-mappings/realm", headers=kc.hdr(token), timeout=kc.timeout, verify=kc.verify())
        rr.raise_for_status()
        names = [str(m.get("name", "")) for m in (rr.json() or []) if isinstance(m, dict)]
        role = primary_role(names)
        if role is None:
            return None
        return UserRecord(sub=str(user.get("id") or sub), role=role, name=_display_name(user))

    def resolve_names(self, subs: Iterable[str]) -> Dict[str, str]:
        """Resolve display names for many users with a single admin token.

        Behavior:
            - Duplicate subs are looked up once; role mappings are not fetched.
            - Unknown users and failed lookups map to an empty name.
        """
        unique = [s for s in dict.fromkeys(subs) if s]
        if not unique:
            return {}
        kc = self._kc
        token = kc.token()
        out: Dict[str, str] = {}
        for sid in unique:
            try:
                r = requests.get(_user_url(kc, sid), headers=kc.hdr(token), timeout=kc.timeout, verify=kc.verify())
                if r.status_code == 404:
                    out[sid] = ""
                    continue
                r.raise_for_status()
                out[sid] = _display_name(r.json() or {})
            except Exception as exc:
                logger.warning("Directory name lookup failed: %s", exc.__class__.__name__)
                out[sid] = ""
        return out


class InMemoryUserDirectory:
    """Dictionary-backed directory for tests and local development."""

    def __init__(self, users: Iterable[UserRecord] = ()) -> None:
        self._users: Dict[str, UserRecord] = {u.sub: u for u in users}

    def add(self, sub: str, role: Role | str, name: str = "") -> UserRecord:
        parsed = Role.parse(role)
        if parsed is None:
            raise ValueError("invalid_role")
        rec = UserRecord(sub=sub, role=parsed, name=name)
        self._users[sub] = rec
        return rec

    def resolve(self, sub: str) -> Optional[UserRecord]:
        return self._users.get(sub)

    def resolve_names(self, subs: Iterable[str]) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for sid in subs:
            rec = self._users.get(sid)
            out[sid] = rec.name if rec else ""
        return out

    @classmethod
    def from_spec(cls, spec: str) -> "InMemoryUserDirectory":
        """Build a directory from `sub:role[:name],...` (see COURSEHUB_DEV_USERS)."""
        directory = cls()
        for chunk in (spec or "").split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            parts = chunk.split(":", 2)
            if len(parts) < 2:
                raise ValueError(f"invalid user entry: {chunk!r}")
            name = parts[2] if len(parts) > 2 else humanize_identifier(parts[0])
            directory.add(parts[0].strip(), parts[1].strip(), name.strip())
        return directory


def build_default_directory() -> UserDirectoryProtocol:
    """Prefer Keycloak when admin credentials are configured; else in-memory."""
    if (os.getenv("KC_ADMIN_CLIENT_SECRET") or "").strip():
        return KeycloakUserDirectory()
    logger.warning("Keycloak admin credentials not configured; using in-memory directory")
    return InMemoryUserDirectory.from_spec(os.getenv("COURSEHUB_DEV_USERS", ""))


__all__ = [
    "InMemoryUserDirectory",
    "KeycloakUserDirectory",
    "UserDirectoryProtocol",
    "build_default_directory",
    "humanize_identifier",
]
