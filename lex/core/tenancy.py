from __future__ import annotations

from dataclasses import dataclass

from flask import abort, g, request
from flask_login import current_user

from lex.core.models import Membership, Organization, Role, User


@dataclass(frozen=True)
class RequestContext:
    """Caller identity handed explicitly to every service call."""

    user: User
    org: Organization
    role: Role
    ip_address: str = "unknown"
    user_agent: str = "unknown"

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def org_id(self) -> int:
        return self.org.id

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles


def load_tenant_context() -> None:
    g.org = None
    g.membership = None
    if not current_user.is_authenticated:
        return
    membership = (
        Membership.query.filter_by(user_id=current_user.id)
        .order_by(Membership.id.asc())
        .first()
    )
    if membership is None:
        abort(403)
    g.org = membership.organization
    g.membership = membership


def current_context() -> RequestContext:
    membership = getattr(g, "membership", None)
    if membership is None:
        abort(403)
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip_address = forwarded.split(",")[0].strip() or request.headers.get("X-Real-IP") or request.remote_addr
    return RequestContext(
        user=membership.user,
        org=membership.organization,
        role=membership.role,
        ip_address=ip_address or "unknown",
        user_agent=(request.user_agent.string or "unknown")[:255],
    )
