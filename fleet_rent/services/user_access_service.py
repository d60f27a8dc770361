from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import os
import threading
import time
from typing import Any

SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS") or 60 * 60 * 12)
STAFF_ROLES = {"Admin", "Staff"}

_LOCK = threading.Lock()
_REVOKED_TOKENS: dict[str, float] = {}


def _require_session_secret() -> bytes:
    raw = (os.environ.get("SESSION_SIGNING_SECRET") or "").strip()
    if len(raw) < 32:
        raise RuntimeError("SESSION_SIGNING_SECRET must be set and at least 32 characters long.")
    return raw.encode("utf-8")


_SESSION_SECRET = _require_session_secret()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def _sign(encoded: str) -> bytes:
    return hmac.new(_SESSION_SECRET, encoded.encode("ascii"), hashlib.sha256).digest()


def create_session(payload: dict[str, Any], ttl_seconds: int | None = None) -> str:
    session_payload = dict(payload)
    session_payload["expiresAt"] = time.time() + (ttl_seconds if ttl_seconds is not None else SESSION_TTL_SECONDS)
    body = json.dumps(session_payload, ensure_ascii=True, separators=(",", ":")).encode("utf-8")
    encoded = _b64encode(body)
    return f"{encoded}.{_b64encode(_sign(encoded))}"


def get_session(token: str | None) -> dict[str, Any] | None:
    if not token:
        return None
    now = time.time()
    try:
        encoded, encoded_sig = token.split(".", 1)
        if not hmac.compare_digest(_sign(encoded), _b64decode(encoded_sig)):
            return None
        decoded_session = json.loads(_b64decode(encoded).decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeError):
        return None

    if not isinstance(decoded_session, dict):
        return None
    if now >= float(decoded_session.get("expiresAt") or 0.0):
        return None

    with _LOCK:
        for revoked_token, revoked_exp in list(_REVOKED_TOKENS.items()):
            if now >= revoked_exp:
                _REVOKED_TOKENS.pop(revoked_token, None)
        if token in _REVOKED_TOKENS:
            return None
    return decoded_session


def remove_session(token: str | None) -> None:
    session = get_session(token)
    if not session:
        return
    with _LOCK:
        _REVOKED_TOKENS[token] = float(session["expiresAt"])


def is_authorized(session: dict[str, Any] | None) -> bool:
    if not session:
        return False
    return session.get("role") in STAFF_ROLES and bool(session.get("staffID"))
