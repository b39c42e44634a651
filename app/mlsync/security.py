import hmac
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, current_app, request


def require_admin_key(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Admin endpoints need ``X-Admin-Key`` matching ADMIN_API_KEY; unset key disables them."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        expected = current_app.config.get("ADMIN_API_KEY") or ""
        if not expected:
            abort(404)
        supplied = request.headers.get("X-Admin-Key") or ""
        if not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
            abort(403)
        return fn(*args, **kwargs)

    return wrapped
