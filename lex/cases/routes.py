from __future__ import annotations

import logging

from flask import jsonify, request
from flask_login import login_required

from lex.cases import cases_bp
from lex.cases.clients import create_client_profile, list_clients
from lex.cases.fees import LEGAL_FEE_CATEGORIES, find_fee_item
from lex.cases.info_requests import (
    close_info_request,
    create_info_request,
    get_info_request_by_id,
    get_info_requests,
    respond_info_request,
    update_info_request,
)
from lex.cases.notes import create_note, delete_note, get_note_by_id, get_notes, update_note
from lex.cases.serializers import (
    audit_to_dict,
    case_detail_to_dict,
    case_to_dict,
    client_to_dict,
    info_request_to_dict,
    note_to_dict,
    page_to_dict,
    stage_to_dict,
)
from lex.cases.services import (
    NotFoundError,
    assign_lawyer,
    authorize_case_advance,
    create_case,
    create_case_from_brief,
    dashboard_summary,
    delete_case,
    get_case_by_id,
    get_cases,
    list_available_lawyers,
    request_case_advance,
    update_case,
)
from lex.cases.stages import (
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
from lex.cases.templates import resolve_materia, stage_templates_for
from lex.cases.validators import parse_bool, parse_int
from lex.core.audit import audit_history
from lex.core.models import Role
from lex.core.permissions import require_membership, require_role
from lex.core.tenancy import current_context
from lex.core.utils import jsonable

logger = logging.getLogger(__name__)


def _payload() -> dict[str, object]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return {k: v for k, v in request.form.items()}


def _respond(action, status: int = 200):
    try:
        result = action()
    except PermissionError as exc:
        return jsonify({"success": False, "error": str(exc)}), 403
    except NotFoundError as exc:
        return jsonify({"success": False, "error": str(exc)}), 404
    except ValueError as exc:
        return jsonify({"success": False, "error": str(exc)}), 400
    except Exception:
        logger.exception("Unexpected error in %s %s", request.method, request.path)
        return jsonify({"success": False, "error": "Ocurrió un error inesperado. Intenta nuevamente."}), 500
    body = {"success": True}
    body.update(result or {})
    return jsonify(body), status


# --- cases --------------------------------------------------------------


@cases_bp.get("/cases")
@login_required
@require_membership
def cases_list():
    return _respond(lambda: page_to_dict(get_cases(current_context(), request.args), "cases", case_to_dict))


@cases_bp.post("/cases")
@login_required
@require_membership
def cases_create():
    return _respond(lambda: {"case": case_to_dict(create_case(current_context(), _payload()))}, 201)


@cases_bp.post("/cases/from-brief")
@login_required
@require_membership
def cases_create_from_brief():
    payload = _payload()
    overrides = payload.get("overrides") if isinstance(payload.get("overrides"), dict) else None

    def action():
        case = create_case_from_brief(current_context(), str(payload.get("brief") or ""), overrides)
        return {"case": case_to_dict(case)}

    return _respond(action, 201)


@cases_bp.get("/cases/<int:case_id>")
@login_required
@require_membership
def case_detail(case_id: int):
    return _respond(lambda: {"case": case_detail_to_dict(get_case_by_id(current_context(), case_id))})


@cases_bp.patch("/cases/<int:case_id>")
@login_required
@require_membership
def case_update(case_id: int):
    return _respond(lambda: {"case": case_to_dict(update_case(current_context(), case_id, _payload()))})


@cases_bp.delete("/cases/<int:case_id>")
@login_required
@require_membership
def case_delete(case_id: int):
    return _respond(lambda: delete_case(current_context(), case_id))


@cases_bp.post("/cases/<int:case_id>/lawyer")
@login_required
@require_membership
def case_assign_lawyer(case_id: int):
    payload = _payload()
    return _respond(lambda: {"abogado": assign_lawyer(current_context(), case_id, payload.get("abogado_id"))})


@cases_bp.get("/lawyers")
@login_required
@require_membership
def lawyers_list():
    return _respond(lambda: {"lawyers": list_available_lawyers(current_context())})


@cases_bp.post("/cases/<int:case_id>/advance/request")
@login_required
@require_membership
def case_request_advance(case_id: int):
    payload = _payload()

    def action():
        stage_id = parse_int(payload.get("stage_id"), "etapa", minimum=1)
        if stage_id is None:
            raise ValueError("ID de etapa inválido")
        return {"alcance_cliente_solicitado": request_case_advance(current_context(), case_id, stage_id)}

    return _respond(action)


@cases_bp.post("/cases/<int:case_id>/advance/authorize")
@login_required
@require_membership
def case_authorize_advance(case_id: int):
    payload = _payload()
    return _respond(
        lambda: {
            "alcance_cliente_autorizado": authorize_case_advance(
                current_context(), case_id, payload.get("target_order")
            )
        }
    )


@cases_bp.get("/cases/<int:case_id>/payments")
@login_required
@require_membership
def case_payments(case_id: int):
    return _respond(lambda: {"summary": jsonable(case_payment_summary(current_context(), case_id))})


@cases_bp.get("/cases/<int:case_id>/audit")
@login_required
@require_membership
@require_role(Role.ADMIN_FIRMA)
def case_audit(case_id: int):
    return _respond(
        lambda: {"entries": [audit_to_dict(e) for e in audit_history(current_context(), "case", case_id)]}
    )


@cases_bp.get("/dashboard")
@login_required
@require_membership
def dashboard():
    return _respond(lambda: {"summary": dashboard_summary(current_context())})


# --- stages -------------------------------------------------------------


@cases_bp.get("/stages")
@login_required
@require_membership
def stages_list():
    return _respond(lambda: page_to_dict(get_stages(current_context(), request.args), "stages", stage_to_dict))


@cases_bp.post("/stages")
@login_required
@require_membership
def stages_create():
    return _respond(lambda: {"stage": stage_to_dict(create_stage(current_context(), _payload()))}, 201)


@cases_bp.patch("/stages/<int:stage_id>")
@login_required
@require_membership
def stage_update(stage_id: int):
    return _respond(lambda: {"stage": stage_to_dict(update_stage(current_context(), stage_id, _payload()))})


@cases_bp.post("/stages/<int:stage_id>/complete")
@login_required
@require_membership
def stage_complete(stage_id: int):
    payload = _payload()

    def action():
        observaciones = payload.get("observaciones")
        stage = complete_stage(
            current_context(),
            stage_id,
            fecha_completada=payload.get("fecha_completada"),
            observaciones=str(observaciones) if observaciones is not None else None,
        )
        return {"stage": stage_to_dict(stage)}

    return _respond(action)


@cases_bp.delete("/stages/<int:stage_id>")
@login_required
@require_membership
def stage_delete(stage_id: int):
    return _respond(lambda: delete_stage(current_context(), stage_id))


@cases_bp.post("/stages/<int:stage_id>/payment-link")
@login_required
@require_membership
def stage_payment_link(stage_id: int):
    payload = _payload()
    return _respond(
        lambda: {"stage": stage_to_dict(assign_payment_link(current_context(), stage_id, payload.get("url")))}
    )


@cases_bp.post("/stages/<int:stage_id>/payments")
@login_required
@require_membership
def stage_register_payment(stage_id: int):
    payload = _payload()
    return _respond(
        lambda: {"stage": stage_to_dict(register_stage_payment(current_context(), stage_id, payload.get("amount")))}
    )


@cases_bp.post("/stages/<int:stage_id>/mark-paid")
@login_required
@require_membership
def stage_mark_paid(stage_id: int):
    payload = _payload()
    confirm = bool(parse_bool(payload.get("confirm")))
    return _respond(lambda: {"stage": stage_to_dict(mark_stage_paid(current_context(), stage_id, confirm))})


@cases_bp.get("/stages/<int:stage_id>/audit")
@login_required
@require_membership
@require_role(Role.ADMIN_FIRMA)
def stage_audit(stage_id: int):
    return _respond(
        lambda: {"entries": [audit_to_dict(e) for e in audit_history(current_context(), "case_stage", stage_id)]}
    )


# --- clients ------------------------------------------------------------


@cases_bp.get("/clients")
@login_required
@require_membership
def clients_list():
    search = request.args.get("search")
    return _respond(lambda: {"clients": [client_to_dict(u) for u in list_clients(current_context(), search)]})


@cases_bp.post("/clients")
@login_required
@require_membership
def clients_create():
    def action():
        created = create_client_profile(current_context(), _payload())
        body = {"client": client_to_dict(created.user)}
        if created.temporary_password:
            body["password_temporal"] = created.temporary_password
        return body

    return _respond(action, 201)


# --- notes --------------------------------------------------------------


@cases_bp.get("/notes")
@login_required
@require_membership
def notes_list():
    return _respond(lambda: page_to_dict(get_notes(current_context(), request.args), "notes", note_to_dict))


@cases_bp.post("/notes")
@login_required
@require_membership
def notes_create():
    return _respond(lambda: {"note": note_to_dict(create_note(current_context(), _payload()))}, 201)


@cases_bp.get("/notes/<int:note_id>")
@login_required
@require_membership
def note_detail(note_id: int):
    return _respond(lambda: {"note": note_to_dict(get_note_by_id(current_context(), note_id))})


@cases_bp.patch("/notes/<int:note_id>")
@login_required
@require_membership
def note_update(note_id: int):
    return _respond(lambda: {"note": note_to_dict(update_note(current_context(), note_id, _payload()))})


@cases_bp.delete("/notes/<int:note_id>")
@login_required
@require_membership
def note_delete(note_id: int):
    return _respond(lambda: delete_note(current_context(), note_id))


# --- info requests ------------------------------------------------------


@cases_bp.get("/info-requests")
@login_required
@require_membership
def info_requests_list():
    return _respond(
        lambda: page_to_dict(get_info_requests(current_context(), request.args), "requests", info_request_to_dict)
    )


@cases_bp.post("/info-requests")
@login_required
@require_membership
def info_requests_create():
    return _respond(
        lambda: {"request": info_request_to_dict(create_info_request(current_context(), _payload()))}, 201
    )


@cases_bp.get("/info-requests/<int:request_id>")
@login_required
@require_membership
def info_request_detail(request_id: int):
    return _respond(lambda: {"request": info_request_to_dict(get_info_request_by_id(current_context(), request_id))})


@cases_bp.patch("/info-requests/<int:request_id>")
@login_required
@require_membership
def info_request_update(request_id: int):
    return _respond(
        lambda: {"request": info_request_to_dict(update_info_request(current_context(), request_id, _payload()))}
    )


@cases_bp.post("/info-requests/<int:request_id>/respond")
@login_required
@require_membership
def info_request_respond(request_id: int):
    return _respond(
        lambda: {"request": info_request_to_dict(respond_info_request(current_context(), request_id, _payload()))}
    )


@cases_bp.post("/info-requests/<int:request_id>/close")
@login_required
@require_membership
def info_request_close(request_id: int):
    return _respond(lambda: {"request": info_request_to_dict(close_info_request(current_context(), request_id))})


# --- reference data -----------------------------------------------------


@cases_bp.get("/stage-templates")
@login_required
@require_membership
def stage_templates():
    materia = request.args.get("materia", "")
    templates = stage_templates_for(materia)
    return _respond(
        lambda: {
            "materia": resolve_materia(materia),
            "templates": [
                jsonable(
                    {
                        "orden": index + 1,
                        "etapa": t.etapa,
                        "descripcion": t.descripcion,
                        "dias_estimados": t.dias_estimados,
                        "porcentaje_honorario": t.porcentaje_honorario,
                    }
                )
                for index, t in enumerate(templates)
            ],
        }
    )


@cases_bp.get("/fees")
@login_required
@require_membership
def fees_catalogue():
    return _respond(
        lambda: {
            "categories": [
                jsonable(
                    {
                        "codigo": category.codigo,
                        "titulo": category.titulo,
                        "items": [{"id": item.id, "nombre": item.nombre, "monto_bs": item.monto_bs} for item in category.items],
                    }
                )
                for category in LEGAL_FEE_CATEGORIES
            ]
        }
    )


@cases_bp.get("/fees/<reference>")
@login_required
@require_membership
def fee_item(reference: str):
    def action():
        item = find_fee_item(reference)
        if item is None:
            raise NotFoundError("Tarifa no encontrada")
        return {
            "item": jsonable(
                {
                    "id": item.id,
                    "nombre": item.nombre,
                    "monto_bs": item.monto_bs,
                    "porcentaje": item.porcentaje,
                    "porcentaje_sobre": item.porcentaje_sobre,
                    "minimo_uf": item.minimo_uf,
                    "notas": item.notas,
                    "escalas": [
                        {"condicion": s.condicion, "monto_bs": s.monto_bs, "porcentaje": s.porcentaje}
                        for s in item.escalas
                    ],
                }
            )
        }

    return _respond(action)
