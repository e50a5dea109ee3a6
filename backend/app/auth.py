import base64
import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException, status

DEFAULT_TOKEN_TTL_HOURS = 24


def _token_ttl_hours() -> int:
    try:
        value = int(os.getenv("AUTH_TOKEN_TTL_HOURS", str(DEFAULT_TOKEN_TTL_HOURS)))
    except ValueError:
        return DEFAULT_TOKEN_TTL_HOURS
    return value if value > 0 else DEFAULT_TOKEN_TTL_HOURS


TOKEN_TTL_HOURS = _token_ttl_hours()
_AUTH_SECRET = os.getenv("AUTH_SECRET", "dev-insecure-secret-change-me")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64urldecode(value: str) -> bytes:
    padding = "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def create_access_token(email: str) -> tuple[str, str]:
    expiry = datetime.now(timezone.utc) + timedelta(hours=TOKEN_TTL_HOURS)
    payload = f"{normalize_email(email)}|{int(expiry.timestamp())}".encode("utf-8")
    payload_part = _b64url(payload)
    sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    token = f"{payload_part}.{_b64url(sig)}"
    return token, expiry.isoformat()


def verify_access_token(token: str) -> Optional[str]:
    try:
        payload_part, sig_part = token.split(".", 1)
        payload = _b64urldecode(payload_part)
        sent_sig = _b64urldecode(sig_part)
    except ValueError:
        return None
    expected_sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    if not hmac.compare_digest(sent_sig, expected_sig):
        return None
    try:
        email, expiry_ts = payload.decode("utf-8").rsplit("|", 1)
        expires_at = int(expiry_ts)
    except ValueError:
        return None
    if datetime.now(timezone.utc).timestamp() > expires_at:
        return None
    return email or None


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def resolve_request_owner(authorization: Optional[str]) -> Optional[str]:
    token = parse_bearer_token(authorization)
    if not token:
        return None
    return verify_access_token(token)


def current_owner_email(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    """Identity context of a request; absent when no valid session token is sent."""
    return resolve_request_owner(authorization)


def require_authenticated_owner(authorization: Optional[str] = Header(default=None)) -> str:
    email = resolve_request_owner(authorization)
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing bearer token")
    return email


def admin_emails() -> set[str]:
    raw = os.getenv("ADMIN_EMAILS", "")
    return {normalize_email(item) for item in raw.split(",") if item.strip()}


def require_admin(authorization: Optional[str] = Header(default=None)) -> str:
    email = require_authenticated_owner(authorization)
    if email not in admin_emails():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operator access required")
    return email
