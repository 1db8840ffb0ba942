from __future__ import annotations

from lex.cases.services import CaseDetail, Page, public_profile_fields
from lex.core.models import AuditLog, Case, CaseNote, CaseStage, InfoRequest, User
from lex.core.utils import jsonable

CASE_FIELDS = (
    "id",
    "numero_causa",
    "caratulado",
    "materia",
    "tribunal",
    "region",
    "comuna",
    "rut_cliente",
    "nombre_cliente",
    "contraparte",
    "etapa_actual",
    "estado",
    "prioridad",
    "workflow_state",
    "fecha_inicio",
    "abogado_responsable_id",
    "analista_id",
    "cliente_principal_id",
    "valor_estimado",
    "honorario_total_uf",
    "honorario_pagado_uf",
    "honorario_variable_porcentaje",
    "honorario_variable_base",
    "honorario_moneda",
    "modalidad_cobro",
    "honorario_notas",
    "tarifa_referencia",
    "alcance_cliente_solicitado",
    "alcance_cliente_autorizado",
    "observaciones",
    "descripcion_inicial",
    "documentacion_recibida",
    "validado_at",
    "created_at",
    "updated_at",
)

STAGE_FIELDS = (
    "id",
    "case_id",
    "etapa",
    "descripcion",
    "orden",
    "estado",
    "es_publica",
    "responsable_id",
    "fecha_programada",
    "fecha_cumplida",
    "audiencia_tipo",
    "requiere_testigos",
    "requiere_pago",
    "costo_uf",
    "porcentaje_variable",
    "estado_pago",
    "enlace_pago",
    "notas_pago",
    "monto_variable_base",
    "monto_pagado_uf",
    "solicitado_por_id",
    "solicitado_at",
    "created_at",
)

NOTE_FIELDS = ("id", "case_id", "author_id", "tipo", "contenido", "created_at", "updated_at")

INFO_REQUEST_FIELDS = (
    "id",
    "case_id",
    "creador_id",
    "titulo",
    "descripcion",
    "tipo",
    "prioridad",
    "estado",
    "es_publica",
    "fecha_limite",
    "respuesta",
    "archivo_adjunto",
    "respondido_por_id",
    "respondido_at",
    "created_at",
    "updated_at",
)


def case_to_dict(case: Case) -> dict[str, object]:
    data = {name: getattr(case, name) for name in CASE_FIELDS}
    data["abogado_responsable"] = (
        public_profile_fields(case.abogado_responsable) if case.abogado_responsable is not None else None
    )
    return jsonable(data)


def stage_to_dict(stage: CaseStage) -> dict[str, object]:
    data = {name: getattr(stage, name) for name in STAGE_FIELDS}
    data["fecha_completada"] = data["fecha_cumplida"]
    return jsonable(data)


def client_to_dict(user: User) -> dict[str, object]:
    return {**public_profile_fields(user), "rut": user.rut}


def note_to_dict(note: CaseNote) -> dict[str, object]:
    data = {name: getattr(note, name) for name in NOTE_FIELDS}
    data["author"] = public_profile_fields(note.author) if note.author is not None else None
    return jsonable(data)


def info_request_to_dict(info_request: InfoRequest) -> dict[str, object]:
    return jsonable({name: getattr(info_request, name) for name in INFO_REQUEST_FIELDS})


def case_detail_to_dict(detail: CaseDetail) -> dict[str, object]:
    data = case_to_dict(detail.case)
    data["stages"] = [stage_to_dict(stage) for stage in detail.stages]
    data["clients"] = [client_to_dict(user) for user in detail.clients]
    return data


def page_to_dict(page: Page, key: str, item_serializer) -> dict[str, object]:
    return {
        key: [item_serializer(item) for item in page.items],
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
    }


def audit_to_dict(entry: AuditLog) -> dict[str, object]:
    return jsonable(
        {
            "id": entry.id,
            "action": entry.action,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "actor_id": entry.actor_id,
            "diff": entry.diff_json,
            "ip_address": entry.ip_address,
            "user_agent": entry.user_agent,
            "created_at": entry.created_at,
        }
    )
