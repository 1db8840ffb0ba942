from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from lex.cases.services import (
    NotFoundError,
    SCOPE_ALREADY_AUTHORIZED,
    STAGE_ALREADY_AUTHORIZED,
    assign_lawyer,
    authorize_case_advance,
    create_case,
    create_case_from_brief,
    dashboard_summary,
    delete_case,
    get_case_by_id,
    get_cases,
    is_duplicate_case_number,
    list_available_lawyers,
    request_case_advance,
    update_case,
)
from lex.cases.stages import (
    COMPLETION_BLOCKED,
    assign_payment_link,
    case_payment_summary,
    complete_stage,
    create_stage,
    delete_stage,
    get_stages,
    mark_stage_paid,
    register_stage_payment,
    update_stage,
)
from lex.core.audit import audit_history
from lex.core.extensions import db
from lex.core.models import (
    AudienciaTipo,
    AuditAction,
    AuditLog,
    Case,
    CaseClient,
    CaseStage,
    EstadoPago,
    Membership,
    Role,
    StageEstado,
    User,
    WorkflowState,
)


def _set_scope(case: Case, solicitado: int, autorizado: int) -> None:
    case.alcance_cliente_solicitado = solicitado
    case.alcance_cliente_autorizado = autorizado
    db.session.commit()


def _stage(case: Case, orden: int) -> CaseStage:
    return CaseStage.query.filter_by(case_id=case.id, orden=orden).first()


# --- advancement protocol -----------------------------------------------


def test_request_then_partial_authorization(app, demo_case, client_ctx, admin_ctx):
    _set_scope(demo_case, 2, 2)

    requested = request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 5).id)
    assert requested == 5
    assert demo_case.alcance_cliente_solicitado == 5
    assert [_stage(demo_case, n).estado_pago for n in range(1, 7)] == [EstadoPago.SOLICITADO] * 5 + [
        EstadoPago.PENDIENTE
    ]
    assert _stage(demo_case, 5).solicitado_por_id == client_ctx.user_id

    authorized = authorize_case_advance(admin_ctx, demo_case.id, 3)
    assert authorized == 3
    assert demo_case.alcance_cliente_autorizado == 3
    assert demo_case.alcance_cliente_solicitado == 5
    assert [_stage(demo_case, n).estado_pago for n in range(1, 6)] == [EstadoPago.EN_PROCESO] * 3 + [
        EstadoPago.SOLICITADO
    ] * 2


def test_request_below_authorized_scope_is_rejected(app, demo_case, client_ctx):
    _set_scope(demo_case, 4, 4)
    with pytest.raises(ValueError, match=STAGE_ALREADY_AUTHORIZED):
        request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 3).id)
    assert demo_case.alcance_cliente_solicitado == 4
    assert demo_case.alcance_cliente_autorizado == 4
    assert _stage(demo_case, 3).estado_pago == EstadoPago.PENDIENTE
    assert AuditLog.query.filter_by(action=AuditAction.REQUEST_ADVANCE).count() == 0


def test_request_ceiling_is_monotonic(app, demo_case, client_ctx):
    assert request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 4).id) == 4
    assert request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 2).id) == 4
    assert request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 6).id) == 6
    assert demo_case.alcance_cliente_solicitado == 6


def test_request_below_ceiling_leaves_higher_stages_untouched(app, demo_case, client_ctx, admin_ctx):
    request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 5).id)
    update_stage(admin_ctx, _stage(demo_case, 4).id, {"estado_pago": "vencido"})

    assert request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 3).id) == 5
    assert _stage(demo_case, 4).estado_pago == EstadoPago.VENCIDO
    assert _stage(demo_case, 6).estado_pago == EstadoPago.PENDIENTE


def test_request_reopens_overdue_stages_up_to_target(app, demo_case, client_ctx):
    _stage(demo_case, 2).estado_pago = EstadoPago.VENCIDO
    _stage(demo_case, 4).estado_pago = EstadoPago.VENCIDO
    db.session.commit()

    request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 3).id)
    assert _stage(demo_case, 2).estado_pago == EstadoPago.SOLICITADO
    assert _stage(demo_case, 3).estado_pago == EstadoPago.SOLICITADO
    assert _stage(demo_case, 4).estado_pago == EstadoPago.VENCIDO



def test_authorization_is_capped_by_request(app, demo_case, client_ctx, analyst_ctx):
    request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 2).id)
    assert authorize_case_advance(analyst_ctx, demo_case.id, 6) == 2
    assert demo_case.alcance_cliente_autorizado == 2

    with pytest.raises(ValueError, match=SCOPE_ALREADY_AUTHORIZED):
        authorize_case_advance(analyst_ctx, demo_case.id, 2)
    # The request ceiling still caps a larger target at the already authorized order.
    with pytest.raises(ValueError, match=SCOPE_ALREADY_AUTHORIZED):
        authorize_case_advance(analyst_ctx, demo_case.id, 5)


def test_authorization_without_request_pushes_scope(app, demo_case, admin_ctx):
    assert authorize_case_advance(admin_ctx, demo_case.id, 2) == 2
    assert demo_case.alcance_cliente_solicitado == 2
    assert demo_case.alcance_cliente_autorizado == 2


def test_authorization_requires_existing_stage_and_positive_target(app, demo_case, admin_ctx):
    with pytest.raises(ValueError, match="No existe una etapa"):
        authorize_case_advance(admin_ctx, demo_case.id, 7)
    with pytest.raises(ValueError, match="entero positivo"):
        authorize_case_advance(admin_ctx, demo_case.id, 0)
    with pytest.raises(ValueError, match="entero positivo"):
        authorize_case_advance(admin_ctx, demo_case.id, "abc")


def test_advance_permissions(app, demo_case, client_ctx, lawyer_ctx, admin_ctx, context_for):
    stage = _stage(demo_case, 2)
    with pytest.raises(PermissionError):
        request_case_advance(lawyer_ctx, demo_case.id, stage.id)
    with pytest.raises(PermissionError):
        authorize_case_advance(lawyer_ctx, demo_case.id, 2)
    with pytest.raises(PermissionError):
        authorize_case_advance(client_ctx, demo_case.id, 2)

    outsider = User(email="otro@altius.local", full_name="Otro Cliente", password_hash="x")
    db.session.add(outsider)
    db.session.flush()
    db.session.add(Membership(user_id=outsider.id, org_id=admin_ctx.org_id, role=Role.CLIENTE))
    db.session.commit()
    with pytest.raises(PermissionError):
        request_case_advance(context_for("otro@altius.local"), demo_case.id, stage.id)


def test_request_rejects_private_or_completed_stage(app, demo_case, client_ctx):
    stage = _stage(demo_case, 3)
    stage.es_publica = False
    db.session.commit()
    with pytest.raises(ValueError, match="no está disponible"):
        request_case_advance(client_ctx, demo_case.id, stage.id)

    stage.es_publica = True
    stage.estado = StageEstado.COMPLETADO
    db.session.commit()
    with pytest.raises(ValueError, match="completada"):
        request_case_advance(client_ctx, demo_case.id, stage.id)


def test_advance_writes_audit_entries(app, demo_case, client_ctx, admin_ctx):
    request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 3).id)
    authorize_case_advance(admin_ctx, demo_case.id, 3)
    actions = [entry.action for entry in audit_history(admin_ctx, "case", demo_case.id)]
    assert actions[:2] == [AuditAction.AUTHORIZE_ADVANCE, AuditAction.REQUEST_ADVANCE]


# --- payments and completion --------------------------------------------


def test_completion_gate_blocks_unpaid_stage(app, demo_case, lawyer_ctx):
    stage = _stage(demo_case, 1)
    for estado_pago in (
        EstadoPago.PENDIENTE,
        EstadoPago.SOLICITADO,
        EstadoPago.EN_PROCESO,
        EstadoPago.PARCIAL,
        EstadoPago.VENCIDO,
    ):
        stage.estado_pago = estado_pago
        db.session.commit()
        with pytest.raises(ValueError, match=COMPLETION_BLOCKED):
            complete_stage(lawyer_ctx, stage.id)
        assert stage.estado == StageEstado.PENDIENTE

    with pytest.raises(ValueError, match=COMPLETION_BLOCKED):
        update_stage(lawyer_ctx, stage.id, {"estado": "completado"})


def test_complete_paid_stage_advances_current_stage(app, demo_case, lawyer_ctx, admin_ctx):
    first = _stage(demo_case, 1)
    mark_stage_paid(admin_ctx, first.id)
    completed = complete_stage(lawyer_ctx, first.id, "2025-03-05", "Demanda ingresada")
    assert completed.estado == StageEstado.COMPLETADO
    assert completed.fecha_cumplida.isoformat() == "2025-03-05"
    assert completed.descripcion == "Demanda ingresada"
    assert demo_case.etapa_actual == _stage(demo_case, 2).etapa
    assert AuditLog.query.filter_by(action=AuditAction.COMPLETE, entity_id=str(first.id)).count() == 1

    with pytest.raises(ValueError, match="ya está completada"):
        complete_stage(lawyer_ctx, first.id)


def test_register_payment_transitions(app, demo_case, analyst_ctx):
    stage = _stage(demo_case, 1)
    register_stage_payment(analyst_ctx, stage.id, "500")
    assert stage.estado_pago == EstadoPago.PARCIAL
    assert stage.monto_pagado_uf == Decimal("500.00")

    register_stage_payment(analyst_ctx, stage.id, "1200")
    assert stage.estado_pago == EstadoPago.PAGADO

    with pytest.raises(ValueError):
        register_stage_payment(analyst_ctx, stage.id, "-1")


def test_register_payment_without_cost_is_partial(app, demo_case, admin_ctx):
    stage = _stage(demo_case, 2)
    stage.costo_uf = None
    db.session.commit()
    register_stage_payment(admin_ctx, stage.id, "100")
    assert stage.estado_pago == EstadoPago.PARCIAL
    assert stage.requiere_pago is True


def test_mark_paid_requires_confirmation_for_short_payment(app, demo_case, admin_ctx):
    stage = _stage(demo_case, 1)
    register_stage_payment(admin_ctx, stage.id, "300")
    with pytest.raises(ValueError, match="Confirma"):
        mark_stage_paid(admin_ctx, stage.id)
    assert stage.estado_pago == EstadoPago.PARCIAL

    mark_stage_paid(admin_ctx, stage.id, confirm=True)
    assert stage.estado_pago == EstadoPago.PAGADO
    assert stage.monto_pagado_uf == Decimal("1200.00")


def test_payment_link_forces_payment_and_clears(app, demo_case, admin_ctx, client_ctx):
    stage = _stage(demo_case, 2)
    stage.requiere_pago = False
    db.session.commit()

    assign_payment_link(admin_ctx, stage.id, "https://pagos.example.com/etapa-2")
    assert stage.enlace_pago == "https://pagos.example.com/etapa-2"
    assert stage.requiere_pago is True

    with pytest.raises(ValueError, match="http"):
        assign_payment_link(admin_ctx, stage.id, "javascript:alert(1)")
    assert stage.enlace_pago == "https://pagos.example.com/etapa-2"

    assign_payment_link(admin_ctx, stage.id, "")
    assert stage.enlace_pago is None

    with pytest.raises(PermissionError):
        assign_payment_link(client_ctx, stage.id, "https://pagos.example.com")


def test_payment_changes_keep_completed_stage_paid(app, demo_case, admin_ctx, lawyer_ctx):
    first = _stage(demo_case, 1)
    register_stage_payment(admin_ctx, first.id, "1200")
    complete_stage(lawyer_ctx, first.id)

    with pytest.raises(ValueError, match=COMPLETION_BLOCKED):
        register_stage_payment(admin_ctx, first.id, "300")
    assert first.estado_pago == EstadoPago.PAGADO
    assert first.monto_pagado_uf == Decimal("1200.00")

    second = _stage(demo_case, 2)
    second.requiere_pago = False
    second.estado = StageEstado.COMPLETADO
    second.estado_pago = EstadoPago.PENDIENTE
    db.session.commit()
    with pytest.raises(ValueError, match=COMPLETION_BLOCKED):
        assign_payment_link(admin_ctx, second.id, "https://pagos.example.com/etapa-2")
    assert second.enlace_pago is None
    assert second.requiere_pago is False



def test_case_payment_summary(app, demo_case, admin_ctx, client_ctx):
    register_stage_payment(admin_ctx, _stage(demo_case, 1).id, "1200")
    summary = case_payment_summary(admin_ctx, demo_case.id)
    assert summary["total_costo"] == Decimal("6000.00")
    assert summary["total_pagado"] == Decimal("1200.00")
    assert summary["saldo_pendiente"] == Decimal("4800.00")
    assert summary["etapas_pagadas"] == 1
    assert summary["etapas_pendientes"] == 5

    _stage(demo_case, 6).es_publica = False
    db.session.commit()
    assert case_payment_summary(client_ctx, demo_case.id)["etapas_con_pago"] == 5


# --- stage CRUD ---------------------------------------------------------


def test_create_stage_rejects_duplicate_order(app, demo_case, lawyer_ctx, client_ctx):
    with pytest.raises(ValueError, match="orden"):
        create_stage(lawyer_ctx, {"case_id": demo_case.id, "etapa": "Extra", "orden": 2})

    stage = create_stage(lawyer_ctx, {"case_id": demo_case.id, "etapa": "Incidente", "orden": 7, "es_publica": False})
    assert stage.es_publica is False
    assert stage.estado == StageEstado.PENDIENTE

    with pytest.raises(PermissionError):
        create_stage(client_ctx, {"case_id": demo_case.id, "etapa": "Cliente", "orden": 8})


def test_lawyer_cannot_touch_other_lawyers_stages(app, demo_case, other_lawyer_ctx, lawyer_ctx):
    stage = _stage(demo_case, 2)
    with pytest.raises(PermissionError):
        update_stage(other_lawyer_ctx, stage.id, {"descripcion": "Cambio"})
    with pytest.raises(PermissionError):
        create_stage(other_lawyer_ctx, {"case_id": demo_case.id, "etapa": "Extra", "orden": 9})

    updated = update_stage(lawyer_ctx, stage.id, {"descripcion": "Cambio", "responsable_id": lawyer_ctx.user_id})
    assert updated.responsable_id == lawyer_ctx.user_id
    entry = AuditLog.query.filter_by(entity_type="case_stage", entity_id=str(stage.id)).first()
    assert entry.diff_json["descripcion"]["to"] == "Cambio"


def test_delete_stage_is_admin_only(app, demo_case, lawyer_ctx, admin_ctx):
    stage = _stage(demo_case, 6)
    with pytest.raises(PermissionError):
        delete_stage(lawyer_ctx, stage.id)
    delete_stage(admin_ctx, stage.id)
    assert CaseStage.query.filter_by(case_id=demo_case.id).count() == 5


def test_client_sees_only_public_stages(app, demo_case, client_ctx, lawyer_ctx):
    _stage(demo_case, 4).es_publica = False
    db.session.commit()

    page = get_stages(client_ctx, {"case_id": str(demo_case.id)})
    assert page.total == 5
    assert all(stage.es_publica for stage in page.items)
    assert len(get_case_by_id(client_ctx, demo_case.id).stages) == 5
    assert get_stages(lawyer_ctx, {"case_id": str(demo_case.id)}).total == 6


def test_get_stages_paginates_by_order(app, demo_case, admin_ctx):
    page = get_stages(admin_ctx, {"case_id": str(demo_case.id), "limit": "4", "page": "2"})
    assert page.total == 6
    assert [stage.orden for stage in page.items] == [5, 6]


# --- case CRUD ----------------------------------------------------------


def test_create_case_generates_stages_atomically(app, lawyer_ctx, new_case_payload):
    case = create_case(lawyer_ctx, {**new_case_payload, "audiencia_inicial_tipo": "preparatoria"})
    stages = CaseStage.query.filter_by(case_id=case.id).order_by(CaseStage.orden).all()
    assert len(stages) == 9
    assert sum(stage.costo_uf for stage in stages) == Decimal("10000.00")
    assert case.abogado_responsable_id == lawyer_ctx.user_id
    assert case.workflow_state == WorkflowState.PREPARACION
    assert case.etapa_actual == stages[0].etapa
    assert CaseClient.query.filter_by(case_id=case.id, client_id=case.cliente_principal_id).count() == 1

    hearing = [stage for stage in stages if stage.audiencia_tipo == AudienciaTipo.PREPARATORIA]
    assert [stage.etapa for stage in hearing] == ["Audiencia preliminar"]
    assert AuditLog.query.filter_by(action=AuditAction.CREATE, entity_type="case", entity_id=str(case.id)).count() == 1


def test_create_case_rejects_duplicate_numero_causa(app, lawyer_ctx, new_case_payload):
    before = Case.query.count()
    stages_before = CaseStage.query.count()
    with pytest.raises(ValueError, match="número de causa"):
        create_case(lawyer_ctx, {**new_case_payload, "numero_causa": "LP-2025-0001"})
    assert Case.query.count() == before
    assert CaseStage.query.count() == stages_before


def test_update_case_rejects_duplicate_numero_causa(app, lawyer_ctx, new_case_payload, demo_case):
    case = create_case(lawyer_ctx, new_case_payload)
    with pytest.raises(ValueError, match="número de causa"):
        update_case(lawyer_ctx, case.id, {"numero_causa": "LP-2025-0001"})
    db.session.refresh(case)
    assert case.numero_causa == "LP-2025-0100"


def test_duplicate_numero_causa_caught_by_constraint(app, lawyer_ctx, new_case_payload, monkeypatch):
    monkeypatch.setattr("lex.cases.services._ensure_unique_case_number", lambda *args, **kwargs: None)
    with pytest.raises(ValueError, match="número de causa"):
        create_case(lawyer_ctx, {**new_case_payload, "numero_causa": "LP-2025-0001"})


def test_create_case_propagates_unrelated_integrity_errors(app, lawyer_ctx, new_case_payload, monkeypatch):
    def broken_stages(case):
        raise IntegrityError("INSERT INTO case_stages", {}, Exception("FOREIGN KEY constraint failed"))

    monkeypatch.setattr("lex.cases.services.build_initial_stages", broken_stages)
    before = Case.query.count()
    with pytest.raises(IntegrityError):
        create_case(lawyer_ctx, new_case_payload)
    assert Case.query.count() == before


def test_duplicate_case_number_detection():
    assert is_duplicate_case_number(
        IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: cases.org_id, cases.numero_causa"))
    )
    assert is_duplicate_case_number(
        IntegrityError("INSERT", {}, Exception('duplicate key value violates unique constraint "uq_cases_org_numero_causa"'))
    )
    assert not is_duplicate_case_number(IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: cases.caratulado")))


def test_create_case_role_and_client_rules(app, admin_ctx, client_ctx, analyst_ctx, new_case_payload, lawyer_ctx):
    with pytest.raises(PermissionError):
        create_case(admin_ctx, new_case_payload)
    with pytest.raises(PermissionError):
        create_case(client_ctx, new_case_payload)
    with pytest.raises(ValueError, match="cliente"):
        create_case(analyst_ctx, {**new_case_payload, "cliente_principal_id": lawyer_ctx.user_id})

    case = create_case(analyst_ctx, new_case_payload)
    assert case.analista_id == analyst_ctx.user_id
    assert case.abogado_responsable_id is None


def test_validation_marks_workflow(app, lawyer_ctx, new_case_payload):
    case = create_case(lawyer_ctx, {**new_case_payload, "marcar_validado": True})
    assert case.workflow_state == WorkflowState.EN_REVISION
    assert case.validado_at is not None

    update_case(lawyer_ctx, case.id, {"marcar_validado": False})
    assert case.workflow_state == WorkflowState.PREPARACION
    assert case.validado_at is None

    update_case(lawyer_ctx, case.id, {"workflow_state": "cerrado"})
    update_case(lawyer_ctx, case.id, {"marcar_validado": True})
    assert case.workflow_state == WorkflowState.CERRADO
    assert case.validado_at is not None


def test_analyst_needs_lawyer_to_validate(app, analyst_ctx, new_case_payload):
    with pytest.raises(ValueError, match="abogado"):
        create_case(analyst_ctx, {**new_case_payload, "marcar_validado": "true"})


def test_update_case_permissions(app, demo_case, other_lawyer_ctx, analyst_ctx, client_ctx, admin_ctx):
    with pytest.raises(PermissionError):
        update_case(other_lawyer_ctx, demo_case.id, {"prioridad": "baja"})
    with pytest.raises(PermissionError):
        update_case(client_ctx, demo_case.id, {"prioridad": "baja"})

    update_case(analyst_ctx, demo_case.id, {"prioridad": "urgente"})
    assert demo_case.prioridad.value == "urgente"

    update_case(admin_ctx, demo_case.id, {"workflow_state": "cerrado"})
    with pytest.raises(PermissionError):
        update_case(analyst_ctx, demo_case.id, {"prioridad": "baja"})


def test_update_case_ignores_scope_counters(app, demo_case, admin_ctx):
    update_case(admin_ctx, demo_case.id, {"alcance_cliente_autorizado": 5, "contraparte": "Nueva SRL"})
    assert demo_case.alcance_cliente_autorizado == 0
    entry = AuditLog.query.filter_by(action=AuditAction.UPDATE, entity_id=str(demo_case.id)).first()
    assert entry.diff_json == {"contraparte": {"from": "Constructora Andina SRL", "to": "Nueva SRL"}}


def test_delete_case_removes_stages_and_links(app, demo_case, admin_ctx, lawyer_ctx):
    case_id = demo_case.id
    with pytest.raises(PermissionError):
        delete_case(lawyer_ctx, case_id)
    delete_case(admin_ctx, case_id)
    assert db.session.get(Case, case_id) is None
    assert CaseStage.query.filter_by(case_id=case_id).count() == 0
    assert CaseClient.query.filter_by(case_id=case_id).count() == 0
    assert AuditLog.query.filter_by(action=AuditAction.DELETE, entity_id=str(case_id)).count() == 1


def test_assign_lawyer(app, demo_case, analyst_ctx, lawyer_ctx, other_lawyer_ctx, client_ctx):
    with pytest.raises(ValueError, match="ya está asignado"):
        assign_lawyer(analyst_ctx, demo_case.id, lawyer_ctx.user_id)
    with pytest.raises(ValueError, match="no pertenece"):
        assign_lawyer(analyst_ctx, demo_case.id, client_ctx.user_id)
    with pytest.raises(PermissionError):
        assign_lawyer(lawyer_ctx, demo_case.id, other_lawyer_ctx.user_id)

    lawyer = assign_lawyer(analyst_ctx, demo_case.id, other_lawyer_ctx.user_id)
    assert lawyer == {
        "id": other_lawyer_ctx.user_id,
        "nombre": "Marco Quispe",
        "email": "abogado2@altius.local",
        "telefono": "+591 70000002",
    }
    assert demo_case.abogado_responsable_id == other_lawyer_ctx.user_id


def test_list_available_lawyers(app, admin_ctx, lawyer_ctx):
    names = [lawyer["nombre"] for lawyer in list_available_lawyers(admin_ctx)]
    assert names == ["Lucia Mamani", "Marco Quispe"]
    with pytest.raises(PermissionError):
        list_available_lawyers(lawyer_ctx)


def test_case_visibility_by_role(app, demo_case, lawyer_ctx, other_lawyer_ctx, client_ctx, second_org_case, admin_ctx):
    assert get_cases(lawyer_ctx).total == 1
    assert get_cases(other_lawyer_ctx).total == 0
    assert get_cases(client_ctx).total == 1
    assert get_cases(admin_ctx).total == 1

    with pytest.raises(PermissionError):
        get_case_by_id(other_lawyer_ctx, demo_case.id)
    with pytest.raises(NotFoundError):
        get_case_by_id(admin_ctx, second_org_case)


def test_get_cases_filters_and_order(app, lawyer_ctx, new_case_payload):
    create_case(lawyer_ctx, new_case_payload)
    page = get_cases(lawyer_ctx)
    assert page.limit == 10
    assert [case.numero_causa for case in page.items] == ["LP-2025-0100", "LP-2025-0001"]
    assert get_cases(lawyer_ctx, {"search": "inmobiliaria"}).total == 1
    assert get_cases(lawyer_ctx, {"materia": "laboral"}).total == 1
    assert get_cases(lawyer_ctx, {"fecha_inicio_desde": "2025-04-01"}).total == 1


def test_create_case_from_brief(app, lawyer_ctx, analyst_ctx, client_ctx):
    brief = "Caratulado: Rojas con Minera Norte\nCliente: Pedro Rojas\nDespido en faena, materia laboral urgente."
    case = create_case_from_brief(lawyer_ctx, brief, {"cliente_principal_id": client_ctx.user_id})
    assert case.caratulado == "Rojas con Minera Norte"
    assert case.nombre_cliente == "Pedro Rojas"
    assert case.materia == "Laboral"
    assert case.prioridad.value == "urgente"
    assert CaseStage.query.filter_by(case_id=case.id).count() == 6

    with pytest.raises(ValueError, match="cliente principal"):
        create_case_from_brief(lawyer_ctx, brief)
    with pytest.raises(PermissionError):
        create_case_from_brief(analyst_ctx, brief, {"cliente_principal_id": client_ctx.user_id})


# --- dashboard and audit ------------------------------------------------


def test_dashboard_summary_counts(app, demo_case, admin_ctx, client_ctx, other_lawyer_ctx):
    request_case_advance(client_ctx, demo_case.id, _stage(demo_case, 2).id)
    summary = dashboard_summary(admin_ctx, today=_stage(demo_case, 3).fecha_programada)
    assert summary["total_cases"] == 1
    assert summary["cases_by_estado"]["activo"] == 1
    assert summary["cases_by_workflow"]["activo"] == 1
    assert summary["stages_awaiting_authorization"] == 2
    assert summary["stages_overdue"] == 2
    assert summary["stages_due_soon"] == 1
    assert dashboard_summary(other_lawyer_ctx)["total_cases"] == 0


def test_audit_history_is_admin_only(app, demo_case, lawyer_ctx):
    with pytest.raises(PermissionError):
        audit_history(lawyer_ctx, "case", demo_case.id)
