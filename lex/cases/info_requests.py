from __future__ import annotations

import logging
from typing import Mapping

from sqlalchemy import or_

from lex.cases.services import NotFoundError, Page, accessible_case, case_scope_criteria
from lex.cases.validators import (
    parse_info_request_filters,
    parse_info_request_payload,
    parse_info_request_response,
)
from lex.core.audit import log_audit_action
from lex.core.extensions import atomic, db
from lex.core.models import (
    STAFF_ROLES,
    AuditAction,
    Case,
    InfoRequest,
    InfoRequestEstado,
    Role,
    utcnow,
)
from lex.core.permissions import ensure_role
from lex.core.tenancy import RequestContext

logger = logging.getLogger(__name__)

REQUEST_CLOSED = "La solicitud ya está cerrada"


def _request_by_id(ctx: RequestContext, request_id: int) -> InfoRequest:
    info_request = InfoRequest.query.filter_by(id=request_id, org_id=ctx.org_id).first()
    if info_request is None:
        raise NotFoundError("Solicitud no encontrada")
    return info_request


def _ensure_visible(ctx: RequestContext, info_request: InfoRequest) -> None:
    accessible_case(ctx, info_request.case_id)
    if ctx.role == Role.CLIENTE and not info_request.es_publica:
        raise PermissionError("Sin permisos para ver esta solicitud")


def _ensure_manager(ctx: RequestContext, info_request: InfoRequest, message: str) -> None:
    accessible_case(ctx, info_request.case_id)
    if ctx.role == Role.ADMIN_FIRMA or info_request.creador_id == ctx.user_id:
        return
    if ctx.role == Role.ABOGADO and info_request.case.abogado_responsable_id == ctx.user_id:
        return
    raise PermissionError(message)


def _ensure_open(info_request: InfoRequest) -> None:
    if info_request.estado == InfoRequestEstado.CERRADA:
        raise ValueError(REQUEST_CLOSED)


def create_info_request(ctx: RequestContext, payload: Mapping[str, object]) -> InfoRequest:
    ensure_role(ctx, *STAFF_ROLES, message="Sin permisos para crear solicitudes")
    data = parse_info_request_payload(payload)
    case = accessible_case(ctx, data.pop("case_id"))
    with atomic():
        info_request = InfoRequest(org_id=ctx.org_id, case_id=case.id, creador_id=ctx.user_id, **data)
        db.session.add(info_request)
        db.session.flush()
        log_audit_action(ctx, AuditAction.CREATE, "info_request", info_request.id, {"case_id": case.id, **data})
    return info_request


def update_info_request(ctx: RequestContext, request_id: int, payload: Mapping[str, object]) -> InfoRequest:
    info_request = _request_by_id(ctx, request_id)
    _ensure_manager(ctx, info_request, "Sin permisos para editar esta solicitud")
    _ensure_open(info_request)
    data = parse_info_request_payload(payload, partial=True)
    changes: dict[str, dict[str, object]] = {}
    with atomic():
        for key, value in data.items():
            before = getattr(info_request, key)
            if before != value:
                changes[key] = {"from": before, "to": value}
                setattr(info_request, key, value)
        if changes:
            log_audit_action(ctx, AuditAction.UPDATE, "info_request", info_request.id, changes)
    return info_request


def respond_info_request(ctx: RequestContext, request_id: int, payload: Mapping[str, object]) -> InfoRequest:
    info_request = _request_by_id(ctx, request_id)
    _ensure_visible(ctx, info_request)
    _ensure_open(info_request)
    data = parse_info_request_response(payload)
    with atomic():
        info_request.respuesta = data["respuesta"]
        info_request.archivo_adjunto = data["archivo_adjunto"]
        info_request.respondido_por_id = ctx.user_id
        info_request.respondido_at = utcnow()
        info_request.estado = InfoRequestEstado.RESPONDIDA
        log_audit_action(ctx, AuditAction.RESPOND, "info_request", info_request.id, {"response": data})
    logger.info("Info request %s answered by user %s", request_id, ctx.user_id)
    return info_request


def close_info_request(ctx: RequestContext, request_id: int) -> InfoRequest:
    info_request = _request_by_id(ctx, request_id)
    _ensure_manager(ctx, info_request, "Sin permisos para cerrar esta solicitud")
    _ensure_open(info_request)
    with atomic():
        previous = info_request.estado
        info_request.estado = InfoRequestEstado.CERRADA
        log_audit_action(
            ctx,
            AuditAction.CLOSE,
            "info_request",
            info_request.id,
            {"estado": {"from": previous, "to": InfoRequestEstado.CERRADA}},
        )
    return info_request


def get_info_request_by_id(ctx: RequestContext, request_id: int) -> InfoRequest:
    info_request = _request_by_id(ctx, request_id)
    _ensure_visible(ctx, info_request)
    return info_request


def get_info_requests(ctx: RequestContext, payload: Mapping[str, object] | None = None) -> Page:
    filters = parse_info_request_filters(payload or {})
    query = InfoRequest.query.join(Case, Case.id == InfoRequest.case_id).filter(
        InfoRequest.org_id == ctx.org_id, *case_scope_criteria(ctx)
    )
    if ctx.role == Role.CLIENTE:
        query = query.filter(InfoRequest.es_publica.is_(True))
    if filters["case_id"] is not None:
        accessible_case(ctx, filters["case_id"])
        query = query.filter(InfoRequest.case_id == filters["case_id"])
    for key in ("estado", "tipo", "prioridad", "creador_id"):
        if filters[key] is not None:
            query = query.filter(getattr(InfoRequest, key) == filters[key])
    if filters["es_publica"] is not None:
        query = query.filter(InfoRequest.es_publica.is_(filters["es_publica"]))
    if filters["search"]:
        like = f"%{filters['search']}%"
        query = query.filter(or_(InfoRequest.titulo.ilike(like), InfoRequest.descripcion.ilike(like)))

    total = query.count()
    page, limit = filters["page"], filters["limit"]
    items = (
        query.order_by(InfoRequest.created_at.desc(), InfoRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, total=total, page=page, limit=limit)
