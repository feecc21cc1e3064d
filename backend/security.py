import base64
import hashlib
import hmac
import json
import time
from typing import Any, Literal

from fastapi import Depends, Header, HTTPException

from backend import config

Role = Literal["admin", "volunteer"]
ROLES = ("admin", "volunteer")


def _signature(body: str) -> str:
    digest = hmac.new(config.SIGNING_KEY.encode("utf-8"), body.encode("ascii"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_access_code(access_code: str) -> bool:
    """Check the code shared with volunteers; it grants a session, never a signing key."""
    expected = config.VOLUNTEER_ACCESS_CODE.strip()
    if not expected:
        return False
    return hmac.compare_digest((access_code or "").strip(), expected)


def role_for_email(email: str) -> Role:
    normalized = email.strip().lower()
    if normalized in config.ADMIN_EMAILS:
        return "admin"
    if config.ADMIN_DOMAIN and normalized.endswith(f"@{config.ADMIN_DOMAIN}"):
        return "admin"
    return "volunteer"


def issue_session_token(operator_id: str, *, name: str, role: Role) -> tuple[str, dict[str, Any]]:
    """Sign an operator session: `<base64url claims>.<base64url HMAC-SHA256>`."""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")
    now = int(time.time())
    claims = {
        "sub": operator_id.strip(),
        "name": name.strip(),
        "role": role,
        "iat": now,
        "exp": now + config.AUTH_TOKEN_TTL_SECONDS,
    }
    raw = json.dumps(claims, separators=(",", ":"), sort_keys=True).encode("utf-8")
    body = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
    return f"{body}.{_signature(body)}", claims


def decode_session_token(token: str) -> dict[str, Any] | None:
    body, _, signature = (token or "").partition(".")
    if not body or not signature or not hmac.compare_digest(signature, _signature(body)):
        return None

    try:
        claims = json.loads(base64.urlsafe_b64decode(body + "=" * (-len(body) % 4)))
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(claims, dict):
        return None
    sub, exp = claims.get("sub"), claims.get("exp")
    if not isinstance(sub, str) or not sub.strip() or claims.get("role") not in ROLES:
        return None
    if not isinstance(exp, int) or exp < int(time.time()):
        return None
    return claims


def require_session(authorization: str | None = Header(default=None)) -> dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing bearer token.")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid authorization scheme.")

    claims = decode_session_token(token.strip())
    if not claims:
        raise HTTPException(status_code=401, detail="Invalid or expired session token.")
    return claims


def require_admin(session: dict = Depends(require_session)) -> dict[str, Any]:
    if session.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required.")
    return session
