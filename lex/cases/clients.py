from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Mapping

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash

from lex.cases.validators import parse_client_payload, parse_search
from lex.core.audit import log_audit_action
from lex.core.extensions import atomic, db
from lex.core.models import STAFF_ROLES, AuditAction, Membership, Role, User
from lex.core.permissions import ensure_role
from lex.core.tenancy import RequestContext

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL = "Ya existe un usuario registrado con ese correo"


@dataclass
class NewClient:
    user: User
    # Only set when the password was generated here; it is shown once.
    temporary_password: str | None = None


def _initial_password(requested: str | None) -> tuple[str, bool]:
    if requested:
        return requested, False
    configured = (current_app.config.get("DEFAULT_CLIENT_PASSWORD") or "").strip()
    if configured:
        return configured, False
    return secrets.token_urlsafe(12), True


def create_client_profile(ctx: RequestContext, payload: Mapping[str, object]) -> NewClient:
    ensure_role(ctx, *STAFF_ROLES, message="Sin permisos para crear clientes")
    data = parse_client_payload(payload)
    if User.query.filter_by(email=data["email"]).first() is not None:
        raise ValueError(DUPLICATE_EMAIL)

    password, generated = _initial_password(data.pop("password"))
    try:
        with atomic():
            user = User(password_hash=generate_password_hash(password), **data)
            db.session.add(user)
            db.session.flush()
            db.session.add(Membership(user_id=user.id, org_id=ctx.org_id, role=Role.CLIENTE))
            log_audit_action(
                ctx,
                AuditAction.CREATE,
                "client",
                user.id,
                {"email": user.email, "nombre": user.full_name, "rut": user.rut},
            )
    except IntegrityError as exc:
        raise ValueError(DUPLICATE_EMAIL) from exc
    logger.info("Client profile %s created in org %s by user %s", user.id, ctx.org_id, ctx.user_id)
    return NewClient(user=user, temporary_password=password if generated else None)


def list_clients(ctx: RequestContext, search: object = None) -> list[User]:
    ensure_role(ctx, *STAFF_ROLES, message="Sin permisos para listar clientes")
    query = User.query.join(Membership, Membership.user_id == User.id).filter(
        Membership.org_id == ctx.org_id,
        Membership.role == Role.CLIENTE,
    )
    term = parse_search(search)
    if term:
        like = f"%{term}%"
        query = query.filter(or_(User.full_name.ilike(like), User.email.ilike(like), User.rut.ilike(like)))
    return query.order_by(User.full_name.asc(), User.id.asc()).all()
