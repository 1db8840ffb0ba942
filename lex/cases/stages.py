from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Mapping

from sqlalchemy.exc import IntegrityError

from lex.cases.services import NotFoundError, Page, accessible_case, case_scope_criteria
from lex.cases.validators import (
    parse_date,
    parse_decimal,
    parse_payment_link,
    parse_stage_filters,
    parse_stage_payload,
)
from lex.core.audit import log_audit_action
from lex.core.extensions import atomic, db
from lex.core.models import (
    STAFF_ROLES,
    AuditAction,
    Case,
    CaseStage,
    EstadoPago,
    Membership,
    Role,
    StageEstado,
)
from lex.core.permissions import ensure_role
from lex.core.tenancy import RequestContext
from lex.core.utils import money

logger = logging.getLogger(__name__)

COMPLETION_BLOCKED = "Debes registrar el pago de esta etapa antes de completarla"
DUPLICATE_ORDER = "Ya existe una etapa con ese orden en el caso"


def stage_by_id(ctx: RequestContext, stage_id: int) -> CaseStage:
    stage = CaseStage.query.filter_by(id=stage_id, org_id=ctx.org_id).first()
    if stage is None:
        raise NotFoundError("Etapa no encontrada")
    return stage


def _ensure_staff(ctx: RequestContext, message: str = "Sin permisos para gestionar etapas") -> None:
    ensure_role(ctx, *STAFF_ROLES, message=message)


def _ensure_stage_editor(ctx: RequestContext, stage: CaseStage) -> None:
    _ensure_staff(ctx)
    if ctx.role == Role.ABOGADO and ctx.user_id not in (stage.responsable_id, stage.case.abogado_responsable_id):
        raise PermissionError("Solo puedes modificar etapas de las que eres responsable")


def _ensure_staff_member(ctx: RequestContext, user_id: int | None) -> None:
    if user_id is None:
        return
    membership = (
        Membership.query.filter_by(org_id=ctx.org_id, user_id=user_id)
        .filter(Membership.role.in_(STAFF_ROLES))
        .first()
    )
    if membership is None:
        raise ValueError("El responsable debe pertenecer al equipo de la firma")


def _ensure_free_order(case_id: int, orden: int, exclude_id: int | None = None) -> None:
    query = CaseStage.query.filter_by(case_id=case_id, orden=orden)
    if exclude_id is not None:
        query = query.filter(CaseStage.id != exclude_id)
    if query.first() is not None:
        raise ValueError(DUPLICATE_ORDER)


def _ensure_payment_consistent(estado: StageEstado, requiere_pago: bool, estado_pago: EstadoPago) -> None:
    # A completed stage that requires payment must stay paid.
    if estado == StageEstado.COMPLETADO and requiere_pago and estado_pago != EstadoPago.PAGADO:
        raise ValueError(COMPLETION_BLOCKED)


def refresh_current_stage(case: Case) -> str | None:
    stages = (
        CaseStage.query.filter_by(case_id=case.id).order_by(CaseStage.orden.asc()).all()
    )
    pending = next((s for s in stages if s.estado != StageEstado.COMPLETADO), None)
    if pending is not None:
        case.etapa_actual = pending.etapa
    elif stages:
        case.etapa_actual = stages[-1].etapa
    return case.etapa_actual


def create_stage(ctx: RequestContext, payload: Mapping[str, object]) -> CaseStage:
    _ensure_staff(ctx, "Sin permisos para crear etapas")
    data = parse_stage_payload(payload)
    case = accessible_case(ctx, data.pop("case_id"))
    _ensure_free_order(case.id, data["orden"])
    _ensure_staff_member(ctx, data.get("responsable_id"))
    if data.get("enlace_pago"):
        data["requiere_pago"] = True
    _ensure_payment_consistent(data.get("estado"), data.get("requiere_pago"), data.get("estado_pago"))

    columns = {k: v for k, v in data.items() if v is not None}
    try:
        with atomic():
            stage = CaseStage(org_id=ctx.org_id, case_id=case.id, **columns)
            db.session.add(stage)
            db.session.flush()
            refresh_current_stage(case)
            log_audit_action(ctx, AuditAction.CREATE, "case_stage", stage.id, {"case_id": case.id, **columns})
    except IntegrityError as exc:
        raise ValueError(DUPLICATE_ORDER) from exc
    return stage


def update_stage(ctx: RequestContext, stage_id: int, payload: Mapping[str, object]) -> CaseStage:
    stage = stage_by_id(ctx, stage_id)
    _ensure_stage_editor(ctx, stage)
    data = parse_stage_payload(payload, partial=True)

    if "orden" in data and data["orden"] != stage.orden:
        _ensure_free_order(stage.case_id, data["orden"], exclude_id=stage.id)
    if "responsable_id" in data:
        _ensure_staff_member(ctx, data["responsable_id"])
    if data.get("enlace_pago"):
        data["requiere_pago"] = True

    _ensure_payment_consistent(
        data.get("estado", stage.estado),
        data.get("requiere_pago", stage.requiere_pago),
        data.get("estado_pago", stage.estado_pago),
    )

    changes: dict[str, dict[str, object]] = {}
    try:
        with atomic():
            for key, value in data.items():
                before = getattr(stage, key)
                if before != value:
                    changes[key] = {"from": before, "to": value}
                    setattr(stage, key, value)
            if "estado" in changes or "orden" in changes or "etapa" in changes:
                db.session.flush()
                refresh_current_stage(stage.case)
            if changes:
                log_audit_action(ctx, AuditAction.UPDATE, "case_stage", stage.id, changes)
    except IntegrityError as exc:
        raise ValueError(DUPLICATE_ORDER) from exc
    return stage


def complete_stage(
    ctx: RequestContext,
    stage_id: int,
    fecha_completada: object = None,
    observaciones: str | None = None,
) -> CaseStage:
    _ensure_staff(ctx, "Sin permisos para completar etapas")
    stage = stage_by_id(ctx, stage_id)
    _ensure_stage_editor(ctx, stage)
    if stage.estado == StageEstado.COMPLETADO:
        raise ValueError("La etapa ya está completada")
    if stage.blocks_completion:
        raise ValueError(COMPLETION_BLOCKED)

    completed_on = parse_date(fecha_completada, "fecha completada") or date.today()
    with atomic():
        previous = stage.estado
        stage.estado = StageEstado.COMPLETADO
        stage.fecha_cumplida = completed_on
        if observaciones is not None:
            stage.descripcion = observaciones.strip() or None
        db.session.flush()
        etapa_actual = refresh_current_stage(stage.case)
        log_audit_action(
            ctx,
            AuditAction.COMPLETE,
            "case_stage",
            stage.id,
            {
                "estado": {"from": previous, "to": StageEstado.COMPLETADO},
                "fecha_cumplida": completed_on,
                "etapa_actual": etapa_actual,
            },
        )
    logger.info("Stage %s completed by user %s", stage_id, ctx.user_id)
    return stage


def delete_stage(ctx: RequestContext, stage_id: int) -> None:
    ensure_role(ctx, Role.ADMIN_FIRMA, message="Sin permisos para eliminar etapas")
    stage = stage_by_id(ctx, stage_id)
    case = stage.case
    with atomic():
        log_audit_action(
            ctx,
            AuditAction.DELETE,
            "case_stage",
            stage.id,
            {"case_id": case.id, "etapa": stage.etapa, "orden": stage.orden},
        )
        case.stages.remove(stage)
        db.session.flush()
        refresh_current_stage(case)


def get_stages(ctx: RequestContext, payload: Mapping[str, object] | None = None) -> Page:
    filters = parse_stage_filters(payload or {})
    query = CaseStage.query.join(Case, Case.id == CaseStage.case_id).filter(
        CaseStage.org_id == ctx.org_id, *case_scope_criteria(ctx)
    )
    if ctx.role == Role.CLIENTE:
        query = query.filter(CaseStage.es_publica.is_(True))
    if filters["case_id"] is not None:
        query = query.filter(CaseStage.case_id == filters["case_id"])
    if filters["estado"] is not None:
        query = query.filter(CaseStage.estado == filters["estado"])
    if filters["responsable_id"] is not None:
        query = query.filter(CaseStage.responsable_id == filters["responsable_id"])
    if filters["es_publica"] is not None:
        query = query.filter(CaseStage.es_publica.is_(filters["es_publica"]))
    if filters["fecha_desde"] is not None:
        query = query.filter(CaseStage.fecha_programada >= filters["fecha_desde"])
    if filters["fecha_hasta"] is not None:
        query = query.filter(CaseStage.fecha_programada <= filters["fecha_hasta"])

    total = query.count()
    page, limit = filters["page"], filters["limit"]
    items = (
        query.order_by(CaseStage.case_id.asc(), CaseStage.orden.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, total=total, page=page, limit=limit)


# --- payments -----------------------------------------------------------


def assign_payment_link(ctx: RequestContext, stage_id: int, url: object) -> CaseStage:
    _ensure_staff(ctx, "Sin permisos para gestionar pagos")
    stage = stage_by_id(ctx, stage_id)
    accessible_case(ctx, stage.case_id)
    link = parse_payment_link(url)
    _ensure_payment_consistent(stage.estado, bool(link) or stage.requiere_pago, stage.estado_pago)
    with atomic():
        previous = stage.enlace_pago
        stage.enlace_pago = link
        if link:
            stage.requiere_pago = True
        log_audit_action(ctx, AuditAction.UPDATE, "case_stage", stage.id, {"enlace_pago": {"from": previous, "to": link}})
    return stage


def register_stage_payment(ctx: RequestContext, stage_id: int, amount: object) -> CaseStage:
    _ensure_staff(ctx, "Sin permisos para gestionar pagos")
    stage = stage_by_id(ctx, stage_id)
    accessible_case(ctx, stage.case_id)
    paid = parse_decimal(amount, "monto pagado", minimum=Decimal("0"))
    if paid is None:
        raise ValueError("Debes indicar el monto pagado")

    cost = Decimal(stage.costo_uf) if stage.costo_uf is not None else Decimal("0")
    new_state = EstadoPago.PAGADO if cost > 0 and paid >= cost else EstadoPago.PARCIAL
    _ensure_payment_consistent(stage.estado, True, new_state)
    with atomic():
        changes = {
            "monto_pagado_uf": {"from": stage.monto_pagado_uf, "to": paid},
            "estado_pago": {"from": stage.estado_pago, "to": new_state},
        }
        stage.monto_pagado_uf = paid
        stage.estado_pago = new_state
        stage.requiere_pago = True
        log_audit_action(ctx, AuditAction.UPDATE, "case_stage", stage.id, changes)
    return stage


def mark_stage_paid(ctx: RequestContext, stage_id: int, confirm: bool = False) -> CaseStage:
    _ensure_staff(ctx, "Sin permisos para gestionar pagos")
    stage = stage_by_id(ctx, stage_id)
    accessible_case(ctx, stage.case_id)

    paid = Decimal(stage.monto_pagado_uf or 0)
    if stage.costo_uf is not None:
        cost = Decimal(stage.costo_uf)
        if 0 < paid < cost and not confirm:
            currency = stage.case.honorario_moneda.value
            raise ValueError(
                f"El monto registrado ({money(paid, currency)}) es menor al costo de la etapa "
                f"({money(cost, currency)}). Confirma para marcarla como pagada."
            )
        amount = cost
    else:
        amount = paid

    with atomic():
        changes = {
            "monto_pagado_uf": {"from": stage.monto_pagado_uf, "to": amount},
            "estado_pago": {"from": stage.estado_pago, "to": EstadoPago.PAGADO},
        }
        stage.monto_pagado_uf = amount
        stage.estado_pago = EstadoPago.PAGADO
        log_audit_action(ctx, AuditAction.UPDATE, "case_stage", stage.id, changes)
    return stage


def case_payment_summary(ctx: RequestContext, case_id: int) -> dict[str, object]:
    case = accessible_case(ctx, case_id)
    stages = list(case.stages)
    if ctx.role == Role.CLIENTE:
        stages = [stage for stage in stages if stage.es_publica]

    billable = [stage for stage in stages if stage.requiere_pago]
    total_cost = sum((Decimal(s.costo_uf) for s in billable if s.costo_uf is not None), Decimal("0"))
    total_paid = sum((Decimal(s.monto_pagado_uf or 0) for s in billable), Decimal("0"))
    paid = [stage for stage in billable if stage.estado_pago == EstadoPago.PAGADO]
    return {
        "case_id": case.id,
        "moneda": case.honorario_moneda,
        "total_costo": total_cost,
        "total_pagado": total_paid,
        "saldo_pendiente": max(total_cost - total_paid, Decimal("0")),
        "etapas_con_pago": len(billable),
        "etapas_pagadas": len(paid),
        "etapas_pendientes": len(billable) - len(paid),
        "alcance_cliente_solicitado": case.alcance_cliente_solicitado,
        "alcance_cliente_autorizado": case.alcance_cliente_autorizado,
    }
