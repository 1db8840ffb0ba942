from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Mapping

from sqlalchemy import case as sql_case, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from lex.cases.templates import HEARING_STAGE_NAMES, build_initial_stages
from lex.cases.validators import parse_case_filters, parse_case_payload, parse_int
from lex.core.audit import log_audit_action
from lex.core.extensions import atomic, db
from lex.core.models import (
    AudienciaTipo,
    AuditAction,
    Case,
    CaseClient,
    CaseEstado,
    CasePrioridad,
    CaseStage,
    EstadoPago,
    Membership,
    Role,
    StageEstado,
    User,
    WorkflowState,
    utcnow,
)
from lex.core.permissions import ensure_role
from lex.core.tenancy import RequestContext

logger = logging.getLogger(__name__)

DUPLICATE_CASE_NUMBER = "Ya existe un expediente registrado con ese número de causa."
STAGE_ALREADY_AUTHORIZED = "Esa etapa ya está autorizada para ejecución."
SCOPE_ALREADY_AUTHORIZED = "Ya existe un alcance igual o superior autorizado."


class NotFoundError(LookupError):
    pass


_NON_COLUMN_FIELDS = ("marcar_validado", "audiencia_inicial_tipo", "audiencia_inicial_requiere_testigos")
# Scope counters only move through request_case_advance / authorize_case_advance.
_PROTOCOL_FIELDS = ("alcance_cliente_solicitado", "alcance_cliente_autorizado")


@dataclass
class Page:
    items: list
    total: int
    page: int
    limit: int


@dataclass
class CaseDetail:
    case: Case
    stages: list[CaseStage] = field(default_factory=list)
    clients: list[User] = field(default_factory=list)


# --- access -------------------------------------------------------------


def case_scope_criteria(ctx: RequestContext) -> list:
    criteria = [Case.org_id == ctx.org_id]
    if ctx.role == Role.ABOGADO:
        criteria.append(Case.abogado_responsable_id == ctx.user_id)
    elif ctx.role == Role.CLIENTE:
        linked = select(CaseClient.case_id).where(CaseClient.client_id == ctx.user_id)
        criteria.append(or_(Case.cliente_principal_id == ctx.user_id, Case.id.in_(linked)))
    return criteria


def is_linked_client(ctx: RequestContext, case: Case) -> bool:
    if case.cliente_principal_id == ctx.user_id:
        return True
    return (
        CaseClient.query.filter_by(case_id=case.id, client_id=ctx.user_id).first() is not None
    )


def case_by_id(ctx: RequestContext, case_id: int) -> Case:
    case = Case.query.filter_by(id=case_id, org_id=ctx.org_id).first()
    if case is None:
        raise NotFoundError("Caso no encontrado")
    return case


def ensure_case_access(ctx: RequestContext, case: Case) -> None:
    if ctx.role in (Role.ADMIN_FIRMA, Role.ANALISTA):
        return
    if ctx.role == Role.ABOGADO and case.abogado_responsable_id == ctx.user_id:
        return
    if ctx.role == Role.CLIENTE and is_linked_client(ctx, case):
        return
    raise PermissionError("Sin permisos para ver este caso")


def accessible_case(ctx: RequestContext, case_id: int) -> Case:
    case = case_by_id(ctx, case_id)
    ensure_case_access(ctx, case)
    return case


def _ensure_can_edit(ctx: RequestContext, case: Case) -> None:
    if ctx.role == Role.ADMIN_FIRMA:
        return
    if ctx.role == Role.ABOGADO and case.abogado_responsable_id == ctx.user_id:
        return
    if (
        ctx.role == Role.ANALISTA
        and case.analista_id == ctx.user_id
        and case.workflow_state != WorkflowState.CERRADO
    ):
        return
    raise PermissionError("Sin permisos para editar este caso")


def _org_member(ctx: RequestContext, user_id: int | None, role: Role) -> User | None:
    if user_id is None:
        return None
    membership = Membership.query.filter_by(org_id=ctx.org_id, user_id=user_id, role=role).first()
    return membership.user if membership else None


def _ensure_lawyer(ctx: RequestContext, user_id: int) -> User:
    lawyer = _org_member(ctx, user_id, Role.ABOGADO)
    if lawyer is None:
        raise ValueError("El abogado seleccionado no pertenece a la firma")
    return lawyer


def _ensure_client(ctx: RequestContext, user_id: int | None) -> User:
    if user_id is None:
        raise ValueError("Debes indicar el cliente principal al crear el caso.")
    client = _org_member(ctx, user_id, Role.CLIENTE)
    if client is None:
        raise ValueError("El cliente principal debe ser un cliente de la firma")
    return client


def _ensure_unique_case_number(ctx: RequestContext, numero_causa: str | None, exclude_id: int | None = None) -> None:
    if not numero_causa:
        return
    query = Case.query.filter_by(org_id=ctx.org_id, numero_causa=numero_causa)
    if exclude_id is not None:
        query = query.filter(Case.id != exclude_id)
    if query.first() is not None:
        raise ValueError(DUPLICATE_CASE_NUMBER)


def is_duplicate_case_number(exc: IntegrityError) -> bool:
    # PostgreSQL reports the constraint name, SQLite the constrained columns.
    message = str(exc.orig)
    return "uq_cases_org_numero_causa" in message or "cases.numero_causa" in message


def _link_client(case: Case, client_id: int) -> None:
    exists = CaseClient.query.filter_by(case_id=case.id, client_id=client_id).first()
    if exists is None:
        db.session.add(CaseClient(org_id=case.org_id, case_id=case.id, client_id=client_id))


def public_profile_fields(user: User) -> dict[str, object]:
    return {"id": user.id, "nombre": user.full_name, "email": user.email, "telefono": user.telefono}


# --- case CRUD ----------------------------------------------------------


def tag_initial_hearing(stages: list[CaseStage], tipo: AudienciaTipo, requiere_testigos: bool) -> CaseStage | None:
    wanted = {name.lower() for name in HEARING_STAGE_NAMES.get(tipo.value, ())}
    target = next((s for s in stages if s.etapa.lower() in wanted), None)
    if target is None:
        target = next((s for s in stages if "audiencia" in s.etapa.lower()), None)
    if target is not None:
        target.audiencia_tipo = tipo
        target.requiere_testigos = bool(requiere_testigos)
    return target


def create_case(ctx: RequestContext, payload: Mapping[str, object]) -> Case:
    ensure_role(ctx, Role.ABOGADO, Role.ANALISTA, message="Sin permisos para crear casos")
    data = parse_case_payload(payload)

    marcar_validado = bool(data.get("marcar_validado"))
    audiencia_tipo = data.get("audiencia_inicial_tipo")
    requiere_testigos = bool(data.get("audiencia_inicial_requiere_testigos"))
    columns = {k: v for k, v in data.items() if k not in _NON_COLUMN_FIELDS and v is not None}

    if columns.get("abogado_responsable_id") is None and ctx.role == Role.ABOGADO:
        columns["abogado_responsable_id"] = ctx.user_id
    if columns.get("analista_id") is None and ctx.role == Role.ANALISTA:
        columns["analista_id"] = ctx.user_id
    if columns.get("abogado_responsable_id") is not None:
        _ensure_lawyer(ctx, columns["abogado_responsable_id"])
    if columns.get("analista_id") is not None and _org_member(ctx, columns["analista_id"], Role.ANALISTA) is None:
        raise ValueError("El analista seleccionado no pertenece a la firma")
    _ensure_client(ctx, columns.get("cliente_principal_id"))
    _ensure_unique_case_number(ctx, columns.get("numero_causa"))

    if marcar_validado:
        if columns.get("abogado_responsable_id") is None:
            raise ValueError("Para validar el caso debes asignar un abogado responsable.")
        columns["workflow_state"] = WorkflowState.EN_REVISION
        columns["validado_at"] = utcnow()
    columns.setdefault("workflow_state", WorkflowState.PREPARACION)

    try:
        with atomic():
            case = Case(org_id=ctx.org_id, **columns)
            db.session.add(case)
            db.session.flush()
            _link_client(case, case.cliente_principal_id)

            rows = build_initial_stages(case)
            stages = [CaseStage(org_id=ctx.org_id, case_id=case.id, **row) for row in rows]
            db.session.add_all(stages)
            if audiencia_tipo is not None:
                tag_initial_hearing(stages, audiencia_tipo, requiere_testigos)
            if not case.etapa_actual and rows:
                case.etapa_actual = rows[0]["etapa"]
            db.session.flush()

            log_audit_action(
                ctx,
                AuditAction.CREATE,
                "case",
                case.id,
                {"case": {k: v for k, v in columns.items()}, "stages": len(stages)},
            )
    except IntegrityError as exc:
        if not is_duplicate_case_number(exc):
            raise
        logger.warning("Duplicate numero_causa creating case in org %s: %s", ctx.org_id, exc.orig)
        raise ValueError(DUPLICATE_CASE_NUMBER) from exc
    logger.info("Case %s created by user %s with %d stages", case.id, ctx.user_id, len(rows))
    return case


def update_case(ctx: RequestContext, case_id: int, payload: Mapping[str, object]) -> Case:
    case = case_by_id(ctx, case_id)
    _ensure_can_edit(ctx, case)
    data = parse_case_payload(payload, partial=True)
    for key in _PROTOCOL_FIELDS:
        data.pop(key, None)

    marcar_validado = data.pop("marcar_validado", None)
    data.pop("audiencia_inicial_tipo", None)
    data.pop("audiencia_inicial_requiere_testigos", None)
    # Non-nullable columns keep their value when sent empty.
    for key in ("estado", "prioridad", "workflow_state", "honorario_moneda", "modalidad_cobro", "honorario_pagado_uf"):
        if key in data and data[key] is None:
            del data[key]

    if "numero_causa" in data and data["numero_causa"] != case.numero_causa:
        _ensure_unique_case_number(ctx, data["numero_causa"], exclude_id=case.id)
    if data.get("abogado_responsable_id") not in (None, case.abogado_responsable_id):
        _ensure_lawyer(ctx, data["abogado_responsable_id"])
    if "cliente_principal_id" in data:
        _ensure_client(ctx, data["cliente_principal_id"])

    total = data.get("honorario_total_uf", case.honorario_total_uf)
    pagado = data.get("honorario_pagado_uf", case.honorario_pagado_uf)
    if total is not None and pagado is not None and pagado > total:
        raise ValueError("El monto pagado no puede superar el honorario total.")

    if marcar_validado is True:
        abogado_id = data.get("abogado_responsable_id", case.abogado_responsable_id)
        cliente_id = data.get("cliente_principal_id", case.cliente_principal_id)
        if abogado_id is None or cliente_id is None:
            raise ValueError("Para validar el caso debes asignar abogado responsable y cliente principal.")
        data["validado_at"] = utcnow()
        if case.workflow_state != WorkflowState.CERRADO:
            data["workflow_state"] = WorkflowState.EN_REVISION
    elif marcar_validado is False:
        data["validado_at"] = None
        data["workflow_state"] = WorkflowState.PREPARACION

    changes: dict[str, dict[str, object]] = {}
    try:
        with atomic():
            for key, value in data.items():
                before = getattr(case, key)
                if before != value:
                    changes[key] = {"from": before, "to": value}
                    setattr(case, key, value)
            if "cliente_principal_id" in changes:
                _link_client(case, case.cliente_principal_id)
            if changes:
                log_audit_action(ctx, AuditAction.UPDATE, "case", case.id, changes)
    except IntegrityError as exc:
        if not is_duplicate_case_number(exc):
            raise
        raise ValueError(DUPLICATE_CASE_NUMBER) from exc
    return case


def delete_case(ctx: RequestContext, case_id: int) -> None:
    ensure_role(ctx, Role.ADMIN_FIRMA, message="Sin permisos para eliminar casos")
    case = case_by_id(ctx, case_id)
    with atomic():
        log_audit_action(
            ctx,
            AuditAction.DELETE,
            "case",
            case.id,
            {"numero_causa": case.numero_causa, "caratulado": case.caratulado},
        )
        db.session.delete(case)
    logger.info("Case %s deleted by user %s", case_id, ctx.user_id)


def assign_lawyer(ctx: RequestContext, case_id: int, abogado_id: object) -> dict[str, object]:
    ensure_role(ctx, Role.ADMIN_FIRMA, Role.ANALISTA, message="Sin permisos para asignar abogados")
    lawyer_id = parse_int(abogado_id, "abogado", minimum=1)
    if lawyer_id is None:
        raise ValueError("ID de abogado inválido")
    case = case_by_id(ctx, case_id)
    if case.abogado_responsable_id == lawyer_id:
        raise ValueError("El abogado ya está asignado a este caso")
    lawyer = _ensure_lawyer(ctx, lawyer_id)
    with atomic():
        previous = case.abogado_responsable_id
        case.abogado_responsable_id = lawyer.id
        log_audit_action(
            ctx,
            AuditAction.ASSIGN_LAWYER,
            "case",
            case.id,
            {"abogado_responsable_id": {"from": previous, "to": lawyer.id}},
        )
    return public_profile_fields(lawyer)


def list_available_lawyers(ctx: RequestContext) -> list[dict[str, object]]:
    ensure_role(ctx, Role.ADMIN_FIRMA, Role.ANALISTA, message="Sin permisos para listar abogados")
    lawyers = (
        User.query.join(Membership, Membership.user_id == User.id)
        .filter(Membership.org_id == ctx.org_id, Membership.role == Role.ABOGADO, User.is_active.is_(True))
        .order_by(User.full_name.asc())
        .all()
    )
    return [public_profile_fields(lawyer) for lawyer in lawyers]


def get_cases(ctx: RequestContext, payload: Mapping[str, object] | None = None) -> Page:
    filters = parse_case_filters(payload or {})
    query = Case.query.filter(*case_scope_criteria(ctx))
    if filters["estado"] is not None:
        query = query.filter(Case.estado == filters["estado"])
    if filters["prioridad"] is not None:
        query = query.filter(Case.prioridad == filters["prioridad"])
    if filters["abogado_responsable_id"] is not None:
        query = query.filter(Case.abogado_responsable_id == filters["abogado_responsable_id"])
    if filters["materia"]:
        query = query.filter(Case.materia.ilike(f"%{filters['materia']}%"))
    if filters["fecha_inicio_desde"] is not None:
        query = query.filter(Case.fecha_inicio >= filters["fecha_inicio_desde"])
    if filters["fecha_inicio_hasta"] is not None:
        query = query.filter(Case.fecha_inicio <= filters["fecha_inicio_hasta"])
    if filters["search"]:
        like = f"%{filters['search']}%"
        query = query.filter(
            or_(Case.caratulado.ilike(like), Case.nombre_cliente.ilike(like), Case.numero_causa.ilike(like))
        )

    total = query.count()
    page, limit = filters["page"], filters["limit"]
    items = (
        query.order_by(Case.created_at.desc(), Case.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, total=total, page=page, limit=limit)


def get_case_by_id(ctx: RequestContext, case_id: int) -> CaseDetail:
    case = accessible_case(ctx, case_id)
    stages = list(case.stages)
    if ctx.role == Role.CLIENTE:
        stages = [stage for stage in stages if stage.es_publica]
    clients = [link.client for link in case.client_links]
    return CaseDetail(case=case, stages=stages, clients=clients)


# --- brief intake -------------------------------------------------------

_BRIEF_TITLE_RE = re.compile(r"(?:caratulado|caso|demanda)[:\s]+(.+)", re.IGNORECASE)
_BRIEF_CLIENT_RE = re.compile(r"(?:cliente|demandante)[:\s]+(.+)", re.IGNORECASE)
_BRIEF_MATERIAS = (
    ("laboral", "Laboral"),
    ("civil", "Civil"),
    ("comercial", "Comercial"),
    ("penal", "Penal"),
    ("familia", "Familia"),
)


def extract_case_data_from_brief(brief: str) -> dict[str, object]:
    """Pull a few case fields out of a free-text brief, line by line.

    Later lines win over earlier ones.
    """
    out: dict[str, object] = {}
    for line in brief.splitlines():
        lower = line.lower()
        match = _BRIEF_TITLE_RE.search(line)
        if match and match.group(1).strip():
            out["caratulado"] = match.group(1).strip()
        match = _BRIEF_CLIENT_RE.search(line)
        if match and match.group(1).strip():
            out["nombre_cliente"] = match.group(1).strip()
        for keyword, materia in _BRIEF_MATERIAS:
            if keyword in lower:
                out["materia"] = materia
        if "urgente" in lower:
            out["prioridad"] = CasePrioridad.URGENTE.value
        if "alta prioridad" in lower:
            out["prioridad"] = CasePrioridad.ALTA.value
        if "baja prioridad" in lower:
            out["prioridad"] = CasePrioridad.BAJA.value
    out["observaciones"] = f"Caso creado desde brief:\n\n{brief}"
    return out


def create_case_from_brief(
    ctx: RequestContext, brief: str, overrides: Mapping[str, object] | None = None
) -> Case:
    ensure_role(ctx, Role.ABOGADO, message="Solo los abogados pueden crear casos desde un brief")
    brief = (brief or "").strip()
    if len(brief) < 10:
        raise ValueError("El brief debe tener al menos 10 caracteres")
    if len(brief) > 2000:
        raise ValueError("El brief no puede exceder 2000 caracteres")

    extracted = extract_case_data_from_brief(brief)
    payload: dict[str, object] = {
        "caratulado": extracted.get("caratulado", "Caso generado desde brief")[:500],
        "nombre_cliente": extracted.get("nombre_cliente", "Cliente por definir"),
        "materia": extracted.get("materia", "Civil"),
        "prioridad": extracted.get("prioridad", CasePrioridad.MEDIA.value),
        "estado": CaseEstado.ACTIVO.value,
        "descripcion_inicial": brief if len(brief) >= 20 else "Caso creado a partir de un brief.",
        "observaciones": extracted["observaciones"],
        "abogado_responsable_id": ctx.user_id,
    }
    payload.update({k: v for k, v in (overrides or {}).items() if v is not None})
    if not payload.get("cliente_principal_id"):
        raise ValueError("Debes indicar el cliente principal al crear el caso.")
    return create_case(ctx, payload)


# --- advancement protocol -----------------------------------------------


def request_case_advance(ctx: RequestContext, case_id: int, stage_id: int) -> int:
    ensure_role(ctx, Role.CLIENTE, message="Solo los clientes pueden solicitar avances")
    case = case_by_id(ctx, case_id)
    if not is_linked_client(ctx, case):
        raise PermissionError("Sin permisos para solicitar avances en este caso")

    stage = CaseStage.query.filter_by(id=stage_id, org_id=ctx.org_id).first()
    if stage is None:
        raise NotFoundError("Etapa no encontrada")
    if stage.case_id != case.id:
        raise ValueError("La etapa no pertenece a este caso")
    if not stage.es_publica:
        raise ValueError("La etapa no está disponible para el cliente")
    if stage.estado == StageEstado.COMPLETADO:
        raise ValueError("La etapa ya fue completada")
    target = stage.orden
    if target <= 0:
        raise ValueError("La etapa no tiene un orden válido")
    if target <= case.alcance_cliente_autorizado:
        raise ValueError(STAGE_ALREADY_AUTHORIZED)

    with atomic():
        result = db.session.execute(
            update(Case)
            .where(Case.id == case.id, Case.org_id == ctx.org_id, Case.alcance_cliente_autorizado < target)
            .values(
                alcance_cliente_solicitado=sql_case(
                    (Case.alcance_cliente_solicitado < target, target),
                    else_=Case.alcance_cliente_solicitado,
                )
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ValueError(STAGE_ALREADY_AUTHORIZED)
        requested = db.session.execute(
            select(Case.alcance_cliente_solicitado).where(Case.id == case.id)
        ).scalar_one()

        db.session.execute(
            update(CaseStage)
            .where(
                CaseStage.case_id == case.id,
                CaseStage.orden <= target,
                CaseStage.requiere_pago.is_(True),
                CaseStage.estado_pago.in_([EstadoPago.PENDIENTE, EstadoPago.VENCIDO]),
            )
            .values(estado_pago=EstadoPago.SOLICITADO, solicitado_por_id=ctx.user_id, solicitado_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        log_audit_action(
            ctx,
            AuditAction.REQUEST_ADVANCE,
            "case",
            case.id,
            {"stage_id": stage.id, "orden": target, "alcance_cliente_solicitado": requested},
        )
    logger.info("Client %s requested advance to stage %s on case %s", ctx.user_id, requested, case.id)
    return requested


def authorize_case_advance(ctx: RequestContext, case_id: int, target_order: object) -> int:
    ensure_role(ctx, Role.ADMIN_FIRMA, Role.ANALISTA, message="Sin permisos para autorizar avances")
    try:
        target = parse_int(target_order, "alcance", minimum=1)
    except ValueError as exc:
        raise ValueError("El alcance debe ser un número entero positivo") from exc
    if target is None:
        raise ValueError("El alcance debe ser un número entero positivo")

    case = case_by_id(ctx, case_id)
    if target <= case.alcance_cliente_autorizado:
        raise ValueError(SCOPE_ALREADY_AUTHORIZED)
    solicitado = case.alcance_cliente_solicitado or 0
    capped = min(target, solicitado) if solicitado > 0 else target
    if capped <= case.alcance_cliente_autorizado:
        raise ValueError(SCOPE_ALREADY_AUTHORIZED)
    if CaseStage.query.filter_by(case_id=case.id, orden=capped).first() is None:
        raise ValueError("No existe una etapa con ese orden en el caso")

    with atomic():
        result = db.session.execute(
            update(Case)
            .where(Case.id == case.id, Case.org_id == ctx.org_id, Case.alcance_cliente_autorizado < capped)
            .values(
                alcance_cliente_autorizado=capped,
                alcance_cliente_solicitado=sql_case(
                    (Case.alcance_cliente_solicitado < capped, capped),
                    else_=Case.alcance_cliente_solicitado,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ValueError(SCOPE_ALREADY_AUTHORIZED)

        db.session.execute(
            update(CaseStage)
            .where(
                CaseStage.case_id == case.id,
                CaseStage.orden <= capped,
                CaseStage.requiere_pago.is_(True),
                CaseStage.estado_pago == EstadoPago.SOLICITADO,
            )
            .values(estado_pago=EstadoPago.EN_PROCESO)
            .execution_options(synchronize_session=False)
        )
        log_audit_action(
            ctx,
            AuditAction.AUTHORIZE_ADVANCE,
            "case",
            case.id,
            {"requested": target, "alcance_cliente_autorizado": capped},
        )
    logger.info("User %s authorized case %s up to stage %s", ctx.user_id, case.id, capped)
    return capped


# --- dashboard ----------------------------------------------------------


def dashboard_summary(ctx: RequestContext, today: date | None = None) -> dict[str, object]:
    today = today or date.today()
    criteria = case_scope_criteria(ctx)

    by_estado = dict(
        db.session.execute(select(Case.estado, func.count(Case.id)).where(*criteria).group_by(Case.estado)).all()
    )
    by_workflow = dict(
        db.session.execute(
            select(Case.workflow_state, func.count(Case.id)).where(*criteria).group_by(Case.workflow_state)
        ).all()
    )

    stage_criteria = [CaseStage.org_id == ctx.org_id, *criteria]
    if ctx.role == Role.CLIENTE:
        stage_criteria.append(CaseStage.es_publica.is_(True))
    open_stage = CaseStage.estado != StageEstado.COMPLETADO

    def count_stages(*extra) -> int:
        return db.session.execute(
            select(func.count(CaseStage.id)).select_from(CaseStage).join(Case, Case.id == CaseStage.case_id).where(*stage_criteria, *extra)
        ).scalar_one()

    return {
        "total_cases": sum(by_estado.values()),
        "cases_by_estado": {estado.value: by_estado.get(estado, 0) for estado in CaseEstado},
        "cases_by_workflow": {state.value: by_workflow.get(state, 0) for state in WorkflowState},
        "stages_due_soon": count_stages(
            open_stage,
            CaseStage.fecha_programada >= today,
            CaseStage.fecha_programada <= today + timedelta(days=7),
        ),
        "stages_awaiting_authorization": count_stages(CaseStage.estado_pago == EstadoPago.SOLICITADO),
        "stages_overdue": count_stages(open_stage, CaseStage.fecha_programada < today),
    }
