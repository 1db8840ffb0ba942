from __future__ import annotations

from lex.core.extensions import db
from lex.core.models import AuditAction, AuditLog, Role
from lex.core.permissions import ensure_role
from lex.core.tenancy import RequestContext
from lex.core.utils import jsonable


def log_audit_action(
    ctx: RequestContext,
    action: AuditAction,
    entity_type: str,
    entity_id: int | str | None,
    diff: dict[str, object] | None = None,
) -> AuditLog:
    # Added to the caller's transaction; committed together with the mutation.
    entry = AuditLog(
        org_id=ctx.org_id,
        actor_id=ctx.user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        diff_json=jsonable(diff) if diff is not None else None,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    db.session.add(entry)
    return entry


def audit_history(ctx: RequestContext, entity_type: str, entity_id: int | str, limit: int = 100) -> list[AuditLog]:
    ensure_role(ctx, Role.ADMIN_FIRMA, message="Sin permisos para ver auditoría")
    return (
        AuditLog.query.filter_by(org_id=ctx.org_id, entity_type=entity_type, entity_id=str(entity_id))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
