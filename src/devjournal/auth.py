"""Admin session cookie helpers."""

import hashlib
import hmac

from fastapi import Request

SESSION_COOKIE = "admin_session"
SESSION_MAX_AGE = 24 * 60 * 60


def session_token(admin_secret: str) -> str:
    """Cookie value granted after a successful login."""
    return hmac.new(
        admin_secret.encode("utf-8"), b"devjournal-admin-session", hashlib.sha256
    ).hexdigest()


def check_password(candidate: str, admin_secret: str) -> bool:
    return hmac.compare_digest(candidate.encode("utf-8"), admin_secret.encode("utf-8"))


def is_admin(request: Request, admin_secret: str) -> bool:
    """Whether the request carries a valid admin session cookie."""
    cookie = request.cookies.get(SESSION_COOKIE)
    if not cookie:
        return False
    return hmac.compare_digest(cookie, session_token(admin_secret))
