from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Mapping

from lex.core.models import (
    AudienciaTipo,
    CaseEstado,
    CasePrioridad,
    EstadoPago,
    InfoRequestEstado,
    InfoRequestTipo,
    ModalidadCobro,
    Moneda,
    NoteTipo,
    StageEstado,
    WorkflowState,
)

IDENTITY_DOCUMENT_RE = re.compile(r"^[0-9]{4,12}( [A-Z]{1,2})?$")

# estado_pago values staff may set by hand; "solicitado" only comes from a client request.
MANUAL_PAYMENT_STATES = (
    EstadoPago.PENDIENTE,
    EstadoPago.EN_PROCESO,
    EstadoPago.PARCIAL,
    EstadoPago.PAGADO,
    EstadoPago.VENCIDO,
)

_CASE_TEXT_FIELDS: dict[str, tuple[str, int | None]] = {
    "tribunal": ("tribunal", 255),
    "region": ("región", 120),
    "comuna": ("comuna", 120),
    "contraparte": ("contraparte", 255),
    "etapa_actual": ("etapa actual", 1000),
    "honorario_variable_base": ("base variable", 1000),
    "honorario_notas": ("notas de honorarios", 2000),
    "tarifa_referencia": ("identificador de tarifa", 1000),
    "observaciones": ("observaciones", None),
    "documentacion_recibida": ("documentación recibida", 2000),
}


def normalize_identity_document(value: str) -> str:
    return re.sub(r"\s+", " ", value.strip()).replace("-", " ", 1).upper()


def validate_identity_document(value: object) -> bool:
    if value is None:
        return True
    if not isinstance(value, str):
        return False
    normalized = normalize_identity_document(value)
    if not normalized:
        return True
    return bool(IDENTITY_DOCUMENT_RE.match(normalized))


def _raw(payload: Mapping[str, object], key: str) -> object:
    value = payload.get(key)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _text(
    payload: Mapping[str, object],
    key: str,
    label: str,
    *,
    required: bool = False,
    min_len: int = 0,
    max_len: int | None = None,
) -> str | None:
    value = _raw(payload, key)
    if value is None:
        if required:
            raise ValueError(f"El campo {label} es requerido")
        return None
    text = str(value)
    if len(text) < min_len:
        raise ValueError(f"El campo {label} debe tener al menos {min_len} caracteres")
    if max_len is not None and len(text) > max_len:
        raise ValueError(f"El campo {label} no puede exceder {max_len} caracteres")
    return text


def parse_decimal(
    value: object,
    label: str,
    *,
    minimum: Decimal | None = None,
    maximum: Decimal | None = None,
    strictly_positive: bool = False,
) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError(f"Importe invalido en {label}")
    raw = str(value).strip().replace(",", ".")
    try:
        amount = Decimal(raw).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Importe invalido en {label}") from exc
    if strictly_positive and amount <= 0:
        raise ValueError(f"El campo {label} debe ser positivo")
    if minimum is not None and amount < minimum:
        raise ValueError(f"El campo {label} no puede ser menor que {minimum}")
    if maximum is not None and amount > maximum:
        raise ValueError(f"El campo {label} no puede exceder {maximum}")
    return amount


def parse_int(value: object, label: str, *, minimum: int | None = None, maximum: int | None = None) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError(f"El campo {label} debe ser un número entero")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"El campo {label} debe ser un número entero")
    try:
        number = int(str(value).strip()) if not isinstance(value, (int, float)) else int(value)
    except ValueError as exc:
        raise ValueError(f"El campo {label} debe ser un número entero") from exc
    if minimum is not None and number < minimum:
        raise ValueError(f"El campo {label} no puede ser menor que {minimum}")
    if maximum is not None and number > maximum:
        raise ValueError(f"El campo {label} no puede exceder {maximum}")
    return number


def parse_bool(value: object) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    raw = str(value).strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "si", "sí", "on"}


def parse_enum(enum_cls: type[Enum], value: object, label: str, allowed: tuple[Enum, ...] | None = None):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    raw = value.value if isinstance(value, Enum) else str(value).strip()
    try:
        member = enum_cls(raw)
    except ValueError as exc:
        raise ValueError(f"Valor invalido para {label}: {raw}") from exc
    if allowed is not None and member not in allowed:
        raise ValueError(f"Valor invalido para {label}: {raw}")
    return member


def parse_date(value: object, label: str) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValueError(f"Formato de fecha invalido para {label}") from exc


def parse_payment_link(value: object) -> str | None:
    raw = (str(value) if value is not None else "").strip()
    if not raw:
        return None
    if not raw.startswith(("http://", "https://")):
        raise ValueError("El enlace de pago debe comenzar con http:// o https://")
    return raw


def parse_case_payload(payload: Mapping[str, object], *, partial: bool = False) -> dict[str, object]:
    """Clean a case payload.

    With ``partial`` only keys present in the payload are returned, so callers
    can tell "not sent" from "sent empty".
    """
    data: dict[str, object] = {}

    def present(key: str) -> bool:
        return not partial or key in payload

    required = not partial
    if present("caratulado"):
        data["caratulado"] = _text(payload, "caratulado", "caratulado", required=True, min_len=1, max_len=500)
    if present("materia"):
        data["materia"] = _text(payload, "materia", "materia", required=True, min_len=1, max_len=1000)
    if present("nombre_cliente"):
        data["nombre_cliente"] = _text(
            payload, "nombre_cliente", "nombre del cliente", required=True, min_len=1, max_len=1000
        )
    if present("rut_cliente"):
        rut = _text(payload, "rut_cliente", "documento de identidad", max_len=16)
        if rut is not None:
            if len(rut) < 4 or not validate_identity_document(rut):
                raise ValueError("Documento de identidad inválido")
            rut = normalize_identity_document(rut)
        data["rut_cliente"] = rut
    if present("descripcion_inicial"):
        data["descripcion_inicial"] = _text(
            payload,
            "descripcion_inicial",
            "descripción inicial",
            required=required,
            min_len=20,
            max_len=2000,
        )
    if present("numero_causa"):
        data["numero_causa"] = _text(payload, "numero_causa", "número de causa", max_len=80)

    for key, (label, max_len) in _CASE_TEXT_FIELDS.items():
        if present(key):
            data[key] = _text(payload, key, label, max_len=max_len)

    if present("estado"):
        data["estado"] = parse_enum(CaseEstado, payload.get("estado"), "estado") or (
            None if partial else CaseEstado.ACTIVO
        )
    if present("prioridad"):
        data["prioridad"] = parse_enum(CasePrioridad, payload.get("prioridad"), "prioridad") or (
            None if partial else CasePrioridad.MEDIA
        )
    if present("workflow_state"):
        data["workflow_state"] = parse_enum(WorkflowState, payload.get("workflow_state"), "estado de flujo")
    if present("honorario_moneda"):
        data["honorario_moneda"] = parse_enum(Moneda, payload.get("honorario_moneda"), "moneda") or (
            None if partial else Moneda.BOB
        )
    if present("modalidad_cobro"):
        data["modalidad_cobro"] = parse_enum(ModalidadCobro, payload.get("modalidad_cobro"), "modalidad de cobro") or (
            None if partial else ModalidadCobro.PREPAGO
        )
    if present("fecha_inicio"):
        data["fecha_inicio"] = parse_date(payload.get("fecha_inicio"), "fecha de inicio")

    for key in ("abogado_responsable_id", "analista_id", "cliente_principal_id"):
        if present(key):
            data[key] = parse_int(payload.get(key), key, minimum=1)

    if present("valor_estimado"):
        data["valor_estimado"] = parse_decimal(payload.get("valor_estimado"), "valor estimado", strictly_positive=True)
    if present("honorario_total_uf"):
        data["honorario_total_uf"] = parse_decimal(
            payload.get("honorario_total_uf"), "honorario total", minimum=Decimal("0")
        )
    if present("honorario_pagado_uf"):
        data["honorario_pagado_uf"] = parse_decimal(
            payload.get("honorario_pagado_uf"), "monto pagado", minimum=Decimal("0")
        )
    if present("honorario_variable_porcentaje"):
        data["honorario_variable_porcentaje"] = parse_decimal(
            payload.get("honorario_variable_porcentaje"),
            "porcentaje variable",
            minimum=Decimal("0"),
            maximum=Decimal("100"),
        )
    for key in ("alcance_cliente_solicitado", "alcance_cliente_autorizado"):
        if present(key):
            data[key] = parse_int(payload.get(key), key.replace("_", " "), minimum=0, maximum=100)

    if present("marcar_validado"):
        data["marcar_validado"] = parse_bool(payload.get("marcar_validado"))
    if present("audiencia_inicial_tipo"):
        data["audiencia_inicial_tipo"] = parse_enum(
            AudienciaTipo, payload.get("audiencia_inicial_tipo"), "tipo de audiencia"
        )
    if present("audiencia_inicial_requiere_testigos"):
        data["audiencia_inicial_requiere_testigos"] = parse_bool(payload.get("audiencia_inicial_requiere_testigos"))

    total = data.get("honorario_total_uf")
    pagado = data.get("honorario_pagado_uf")
    if total is not None and pagado is not None and pagado > total:
        raise ValueError("El monto pagado no puede superar el honorario total.")

    solicitado = data.get("alcance_cliente_solicitado")
    autorizado = data.get("alcance_cliente_autorizado")
    if solicitado is not None and autorizado is not None and autorizado > solicitado:
        raise ValueError("El alcance autorizado no puede superar al alcance solicitado por el cliente.")
    return data


def parse_stage_payload(payload: Mapping[str, object], *, partial: bool = False) -> dict[str, object]:
    data: dict[str, object] = {}

    def present(key: str) -> bool:
        return not partial or key in payload

    if not partial:
        case_id = parse_int(payload.get("case_id"), "caso", minimum=1)
        if case_id is None:
            raise ValueError("ID de caso inválido")
        data["case_id"] = case_id
    if present("etapa"):
        data["etapa"] = _text(payload, "etapa", "nombre de la etapa", required=True, min_len=1, max_len=1000)
    if present("orden"):
        orden = parse_int(payload.get("orden"), "orden", minimum=1)
        if orden is None:
            raise ValueError("El orden debe ser un número positivo")
        data["orden"] = orden
    if present("descripcion"):
        data["descripcion"] = _text(payload, "descripcion", "descripción")
    if present("fecha_programada"):
        data["fecha_programada"] = parse_date(payload.get("fecha_programada"), "fecha programada")
    if present("fecha_completada"):
        data["fecha_cumplida"] = parse_date(payload.get("fecha_completada"), "fecha completada")
    if present("estado"):
        data["estado"] = parse_enum(StageEstado, payload.get("estado"), "estado") or (
            None if partial else StageEstado.PENDIENTE
        )
    if present("es_publica"):
        es_publica = parse_bool(payload.get("es_publica"))
        data["es_publica"] = True if es_publica is None and not partial else es_publica
    if present("responsable_id"):
        data["responsable_id"] = parse_int(payload.get("responsable_id"), "responsable", minimum=1)
    if present("audiencia_tipo"):
        data["audiencia_tipo"] = parse_enum(AudienciaTipo, payload.get("audiencia_tipo"), "tipo de audiencia")
    if present("requiere_testigos"):
        data["requiere_testigos"] = bool(parse_bool(payload.get("requiere_testigos")))
    if present("requiere_pago"):
        data["requiere_pago"] = bool(parse_bool(payload.get("requiere_pago")))
    if present("costo_uf"):
        data["costo_uf"] = parse_decimal(payload.get("costo_uf"), "costo", minimum=Decimal("0"))
    if present("porcentaje_variable"):
        data["porcentaje_variable"] = parse_decimal(
            payload.get("porcentaje_variable"), "porcentaje", minimum=Decimal("0"), maximum=Decimal("100")
        )
    if present("estado_pago"):
        data["estado_pago"] = parse_enum(
            EstadoPago, payload.get("estado_pago"), "estado de pago", MANUAL_PAYMENT_STATES
        ) or (None if partial else EstadoPago.PENDIENTE)
    if present("enlace_pago"):
        data["enlace_pago"] = parse_payment_link(payload.get("enlace_pago"))
    if present("notas_pago"):
        data["notas_pago"] = _text(payload, "notas_pago", "notas de pago", max_len=1000)
    if present("monto_variable_base"):
        data["monto_variable_base"] = _text(payload, "monto_variable_base", "base variable", max_len=1000)
    if present("monto_pagado_uf"):
        data["monto_pagado_uf"] = parse_decimal(
            payload.get("monto_pagado_uf"), "monto pagado", minimum=Decimal("0")
        ) or (None if partial else Decimal("0"))

    if partial:
        # Non-nullable columns keep their value when sent empty.
        for key in ("etapa", "orden", "estado", "es_publica", "estado_pago", "monto_pagado_uf"):
            if key in data and data[key] is None:
                del data[key]
    return data


def _paging(payload: Mapping[str, object], default_limit: int) -> tuple[int, int]:
    page = parse_int(payload.get("page"), "página", minimum=1) or 1
    limit = parse_int(payload.get("limit"), "límite", minimum=1, maximum=100) or default_limit
    return page, limit


def parse_case_filters(payload: Mapping[str, object]) -> dict[str, object]:
    page, limit = _paging(payload, 10)
    return {
        "estado": parse_enum(CaseEstado, payload.get("estado"), "estado"),
        "prioridad": parse_enum(CasePrioridad, payload.get("prioridad"), "prioridad"),
        "abogado_responsable_id": parse_int(payload.get("abogado_responsable_id"), "abogado", minimum=1),
        "materia": _text(payload, "materia", "materia"),
        "fecha_inicio_desde": parse_date(payload.get("fecha_inicio_desde"), "fecha desde"),
        "fecha_inicio_hasta": parse_date(payload.get("fecha_inicio_hasta"), "fecha hasta"),
        "search": _text(payload, "search", "búsqueda", max_len=200),
        "page": page,
        "limit": limit,
    }


def parse_stage_filters(payload: Mapping[str, object]) -> dict[str, object]:
    page, limit = _paging(payload, 20)
    return {
        "case_id": parse_int(payload.get("case_id"), "caso", minimum=1),
        "estado": parse_enum(StageEstado, payload.get("estado"), "estado"),
        "responsable_id": parse_int(payload.get("responsable_id"), "responsable", minimum=1),
        "es_publica": parse_bool(payload.get("es_publica")),
        "fecha_desde": parse_date(payload.get("fecha_desde"), "fecha desde"),
        "fecha_hasta": parse_date(payload.get("fecha_hasta"), "fecha hasta"),
        "page": page,
        "limit": limit,
    }


def parse_email(value: object) -> str:
    email = (str(value) if value is not None else "").strip().lower()
    if not email:
        raise ValueError("El correo es requerido")
    local, _, domain = email.partition("@")
    if not local or not domain or "." not in domain or " " in email:
        raise ValueError("Correo inválido")
    if len(email) > 255:
        raise ValueError("El correo no puede exceder 255 caracteres")
    return email


def parse_client_payload(payload: Mapping[str, object]) -> dict[str, object]:
    rut = _text(payload, "rut", "documento de identidad", max_len=16)
    if rut is not None:
        if not validate_identity_document(rut):
            raise ValueError("Documento de identidad inválido")
        rut = normalize_identity_document(rut)
    return {
        "full_name": _text(payload, "nombre", "nombre", required=True, min_len=2, max_len=120),
        "email": parse_email(payload.get("email")),
        "rut": rut,
        "telefono": _text(payload, "telefono", "teléfono", max_len=50),
        "password": _text(payload, "password", "contraseña", min_len=8, max_len=128),
    }


def parse_note_payload(payload: Mapping[str, object], *, partial: bool = False) -> dict[str, object]:
    data: dict[str, object] = {}
    if not partial:
        case_id = parse_int(payload.get("case_id"), "caso", minimum=1)
        if case_id is None:
            raise ValueError("ID de caso inválido")
        data["case_id"] = case_id
    if not partial or "tipo" in payload:
        tipo = parse_enum(NoteTipo, payload.get("tipo"), "tipo de nota")
        if tipo is not None or not partial:
            data["tipo"] = tipo or NoteTipo.PRIVADA
    if not partial or "contenido" in payload:
        data["contenido"] = _text(payload, "contenido", "contenido", required=True, min_len=1, max_len=10000)
    return data


def parse_note_filters(payload: Mapping[str, object]) -> dict[str, object]:
    page, limit = _paging(payload, 20)
    return {
        "case_id": parse_int(payload.get("case_id"), "caso", minimum=1),
        "tipo": parse_enum(NoteTipo, payload.get("tipo"), "tipo de nota"),
        "author_id": parse_int(payload.get("author_id"), "autor", minimum=1),
        "search": _text(payload, "search", "búsqueda", max_len=200),
        "page": page,
        "limit": limit,
    }


def parse_info_request_payload(payload: Mapping[str, object], *, partial: bool = False) -> dict[str, object]:
    data: dict[str, object] = {}

    def present(key: str) -> bool:
        return not partial or key in payload

    if not partial:
        case_id = parse_int(payload.get("case_id"), "caso", minimum=1)
        if case_id is None:
            raise ValueError("ID de caso inválido")
        data["case_id"] = case_id
    if present("titulo"):
        data["titulo"] = _text(payload, "titulo", "título", required=True, min_len=1, max_len=1000)
    if present("descripcion"):
        data["descripcion"] = _text(payload, "descripcion", "descripción", required=True, min_len=1, max_len=2000)
    if present("tipo"):
        data["tipo"] = parse_enum(InfoRequestTipo, payload.get("tipo"), "tipo de solicitud") or (
            None if partial else InfoRequestTipo.INFORMACION
        )
    if present("prioridad"):
        data["prioridad"] = parse_enum(CasePrioridad, payload.get("prioridad"), "prioridad") or (
            None if partial else CasePrioridad.MEDIA
        )
    if present("es_publica"):
        es_publica = parse_bool(payload.get("es_publica"))
        data["es_publica"] = True if es_publica is None and not partial else es_publica
    if present("fecha_limite"):
        data["fecha_limite"] = parse_date(payload.get("fecha_limite"), "fecha límite")

    if partial:
        for key in ("tipo", "prioridad", "es_publica"):
            if key in data and data[key] is None:
                del data[key]
    return data


def parse_info_request_response(payload: Mapping[str, object]) -> dict[str, object]:
    adjunto = _text(payload, "archivo_adjunto", "archivo adjunto", max_len=1000)
    if adjunto is not None and not adjunto.startswith(("http://", "https://")):
        raise ValueError("El archivo adjunto debe ser una URL http:// o https://")
    return {
        "respuesta": _text(payload, "respuesta", "respuesta", required=True, min_len=1, max_len=2000),
        "archivo_adjunto": adjunto,
    }


def parse_info_request_filters(payload: Mapping[str, object]) -> dict[str, object]:
    page, limit = _paging(payload, 20)
    return {
        "case_id": parse_int(payload.get("case_id"), "caso", minimum=1),
        "estado": parse_enum(InfoRequestEstado, payload.get("estado"), "estado"),
        "tipo": parse_enum(InfoRequestTipo, payload.get("tipo"), "tipo de solicitud"),
        "prioridad": parse_enum(CasePrioridad, payload.get("prioridad"), "prioridad"),
        "creador_id": parse_int(payload.get("creador_id"), "creador", minimum=1),
        "es_publica": parse_bool(payload.get("es_publica")),
        "search": _text(payload, "search", "búsqueda", max_len=200),
        "page": page,
        "limit": limit,
    }


def parse_search(value: object) -> str | None:
    return _text({"search": value}, "search", "búsqueda", max_len=200)
