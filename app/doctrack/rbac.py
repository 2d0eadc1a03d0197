from collections.abc import Callable, Iterable
from functools import wraps
from typing import Any

from flask import abort, current_app, g, redirect, request, url_for

from app.doctrack.models import User

ROLE_ADMIN = "admin"
ROLE_ENCODER = "encoder"


def role_for(user: User | None, admin_emails: Iterable[str]) -> str | None:
    """
    Identity -> role. Allowlisted emails are admins, every other active
    account is an encoder, anonymous has no role.
    """
    if not user or not user.is_active:
        return None
    allow = {e.strip().lower() for e in admin_emails}
    return ROLE_ADMIN if (user.email or "").strip().lower() in allow else ROLE_ENCODER


def current_role() -> str | None:
    return role_for(getattr(g, "current_user", None), current_app.config.get("ADMIN_EMAILS") or ())


def _login_redirect():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_role() is None:
            return _login_redirect()
        return fn(*args, **kwargs)

    return wrapped


def require_role(role: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            have = current_role()
            # Unauthenticated → redirect to login.
            if have is None:
                return _login_redirect()
            # Authenticated but wrong role → 403
            if have != role:
                g.missing_role = role
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
