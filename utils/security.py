"""Security helpers for response headers, password policy, and attempt tracking."""
from flask import request


def apply_security_headers(response, force_https: bool = False):
    """Apply security headers suitable for a JSON API."""
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cache-Control", "no-store")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def password_meets_policy(password: str) -> tuple[bool, str | None]:
    """Enforce a sane password baseline for production."""
    if len(password) < 8:
        return False, "Password must be at least 8 characters long."
    if password.lower() == password or password.upper() == password:
        return False, "Use a mix of upper and lower case characters."
    if not any(c.isdigit() for c in password):
        return False, "Include at least one digit."
    return True, None


# Simple rate-limit ready structure (hook up to cache/store later)
_attempts = {}


def track_attempt(key: str, limit: int = 10):
    """Track attempts by key (e.g., IP or email) to enable rate limiting."""
    count = _attempts.get(key, 0) + 1
    _attempts[key] = count
    return count <= limit
