from __future__ import annotations

from functools import wraps

from flask import abort, g
from flask_login import current_user

from lex.core.models import Membership, Role
from lex.core.tenancy import RequestContext

FORBIDDEN = "Sin permisos para realizar esta acción"


def _active_membership() -> Membership:
    if not current_user.is_authenticated:
        abort(401)
    membership = getattr(g, "membership", None)
    if membership is None or getattr(g, "org", None) is None:
        abort(403)
    return membership


def require_membership(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        _active_membership()
        return fn(*args, **kwargs)

    return wrapper


def require_role(*roles: Role | str):
    """Route guard: the firm membership must hold one of ``roles``."""
    allowed = {Role(role) for role in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if _active_membership().role not in allowed:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def ensure_role(ctx: RequestContext, *roles: Role, message: str = FORBIDDEN) -> None:
    if not ctx.has_role(*roles):
        raise PermissionError(message)
