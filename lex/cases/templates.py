from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from lex.cases.fees import default_fee_total
from lex.core.models import Case, EstadoPago, ModalidadCobro, Moneda, StageEstado

CENT = Decimal("0.01")


@dataclass(frozen=True)
class StageTemplate:
    etapa: str
    descripcion: str
    dias_estimados: int
    porcentaje_honorario: Decimal = Decimal("0")
    es_publica: bool = True


PROCEDURE_STAGE_TEMPLATES: dict[str, list[tuple[str, str, int]]] = {
    "Civil": [
        ("Presentación de demanda", "Ingreso de la demanda ante juzgado público civil y control de requisitos formales.", 0),
        ("Admisión y radicatoria", "Radicatoria en juzgado, sorteo y requerimientos iniciales.", 10),
        ("Notificación a demandados", "Notificación personal, por cédula o edictos a las partes demandadas.", 25),
        ("Contestación y excepciones", "Recepción de contestación, excepciones previas y reconvenciones.", 20),
        ("Audiencia preliminar", "Conciliación, fijación de puntos controvertidos y admisión de pruebas.", 30),
        ("Periodo probatorio", "Producción de prueba testimonial, pericial y documental.", 45),
        ("Audiencia complementaria y alegatos", "Presentación de conclusiones y alegatos orales previos a la sentencia.", 20),
        ("Sentencia de primera instancia", "Redacción, firma y notificación de la sentencia.", 60),
        ("Recursos y ejecución", "Interposición de apelación, compulsa o ejecución de sentencia.", 30),
    ],
    "Comercial": [
        ("Presentación de demanda comercial", "Ingreso de la acción monitoria, ejecutiva o concursal ante juzgado público comercial.", 0),
        ("Control de admisión y medidas cautelares", "Revisión formal y resolución de medidas precautorias solicitadas.", 7),
        ("Notificación a la parte demandada", "Notificación con la demanda y requerimientos de pago o entrega.", 20),
        ("Contestación y excepciones", "Recepción de la contestación, excepciones y reconvenciones.", 20),
        ("Audiencia preliminar", "Depuración de la litis, conciliación y ordenamiento de la prueba.", 25),
        ("Producción probatoria", "Práctica de prueba documental, pericial, contable y testifical.", 35),
        ("Audiencia complementaria y sentencia", "Alegatos finales y deliberación para la sentencia.", 45),
        ("Ejecución o recursos", "Demandas de cumplimiento, apelación o casación según corresponda.", 30),
    ],
    "Laboral": [
        ("Presentación de demanda laboral", "Ingreso de la demanda o denuncia ante el juez de trabajo y seguridad social.", 0),
        ("Conciliación administrativa previa", "Verificación de conciliación en el Ministerio de Trabajo o presentación de constancia.", 5),
        ("Notificación al empleador", "Notificación personal o por cédula al empleador y citación a audiencia.", 10),
        ("Audiencia preliminar", "Intento de conciliación judicial, fijación de hechos y admisión de prueba.", 15),
        ("Audiencia de juicio laboral", "Desahogo de prueba testifical, documental y pericial, con alegatos finales.", 20),
        ("Sentencia y ejecución", "Emisión de sentencia, recursos y ejecución laboral preferente.", 20),
    ],
    "Familia": [
        ("Presentación de solicitud o demanda familiar", "Ingreso de medidas de protección, asistencia familiar o procesos de guarda.", 0),
        ("Admisión y medidas urgentes", "Evaluación de competencia, medidas provisionales y señalamiento de audiencias.", 7),
        ("Notificación y trabajo social", "Notificación a partes, informes psicosociales y citaciones.", 12),
        ("Audiencia de conciliación y prueba anticipada", "Intento de conciliación, acuerdos y recepción de prueba imprescindible.", 15),
        ("Audiencia de juicio familiar", "Declaraciones, prueba interdisciplinaria y alegatos finales.", 20),
        ("Sentencia y seguimiento", "Notificación de sentencia, homologación de acuerdos y control de cumplimiento.", 25),
    ],
}

STAGE_PRICING_DISTRIBUTION: dict[str, list[str]] = {
    "Civil": ["0.15", "0.1", "0.1", "0.1", "0.15", "0.2", "0.1", "0.05", "0.05"],
    "Comercial": ["0.2", "0.15", "0.15", "0.2", "0.15", "0.1", "0.05"],
    "Laboral": ["0.2", "0.2", "0.2", "0.2", "0.1", "0.1"],
    "Familia": ["0.2", "0.15", "0.15", "0.15", "0.2", "0.15"],
}

DEFAULT_MATERIA = "Civil"

HEARING_STAGE_NAMES: dict[str, tuple[str, ...]] = {
    "preparatoria": ("Audiencia preparatoria", "Audiencia preliminar"),
    "juicio": ("Audiencia de juicio", "Audiencia juicio", "Juicio", "Alegatos y vista de la causa"),
}


def resolve_materia(materia: str | None) -> str:
    lower = (materia or "").strip().lower()
    for key in PROCEDURE_STAGE_TEMPLATES:
        if key.lower() == lower:
            return key
    return DEFAULT_MATERIA


def stage_templates_for(materia: str | None) -> list[StageTemplate]:
    key = resolve_materia(materia)
    distribution = STAGE_PRICING_DISTRIBUTION.get(key, [])
    templates: list[StageTemplate] = []
    for index, (etapa, descripcion, dias) in enumerate(PROCEDURE_STAGE_TEMPLATES[key]):
        share = Decimal(distribution[index]) if index < len(distribution) else Decimal("0")
        templates.append(StageTemplate(etapa, descripcion, dias, share))
    return templates


def resolve_fee_total(case: Case) -> Decimal | None:
    if case.honorario_total_uf is not None:
        return Decimal(case.honorario_total_uf)
    return default_fee_total(case.tarifa_referencia)


def distributes_costs(case: Case) -> bool:
    modalidad = case.modalidad_cobro or ModalidadCobro.PREPAGO
    return (
        modalidad == ModalidadCobro.PREPAGO
        and case.honorario_moneda == Moneda.BOB
        and resolve_fee_total(case) is not None
    )


def allocate_costs(total: Decimal, shares: list[Decimal]) -> list[Decimal | None]:
    """Split ``total`` by ``shares`` rounding to cents.

    The last stage takes whatever remains so the allocations always add up to
    ``total``. Intermediate stages with a zero share carry no cost.
    """
    total = Decimal(total).quantize(CENT, rounding=ROUND_HALF_UP)
    allocated = Decimal("0")
    costs: list[Decimal | None] = []
    last = len(shares) - 1
    for index, share in enumerate(shares):
        if index == last:
            costs.append((total - allocated).quantize(CENT, rounding=ROUND_HALF_UP))
        elif share > 0:
            cost = (total * share).quantize(CENT, rounding=ROUND_HALF_UP)
            allocated += cost
            costs.append(cost)
        else:
            costs.append(None)
    return costs


def scheduled_dates(start: date, templates: list[StageTemplate]) -> list[date]:
    dates: list[date] = []
    cumulative = 0
    for template in templates:
        cumulative += template.dias_estimados
        dates.append(start + timedelta(days=cumulative))
    return dates


def build_initial_stages(case: Case, today: date | None = None) -> list[dict[str, object]]:
    templates = stage_templates_for(case.materia)
    start = case.fecha_inicio or today or date.today()
    dates = scheduled_dates(start, templates)

    charge = distributes_costs(case)
    costs: list[Decimal | None] = [None] * len(templates)
    if charge:
        costs = allocate_costs(resolve_fee_total(case), [t.porcentaje_honorario for t in templates])

    rows: list[dict[str, object]] = []
    for index, template in enumerate(templates):
        rows.append(
            {
                "etapa": template.etapa,
                "descripcion": template.descripcion,
                "orden": index + 1,
                "estado": StageEstado.PENDIENTE,
                "es_publica": template.es_publica,
                "fecha_programada": dates[index],
                "requiere_pago": charge,
                "costo_uf": costs[index],
                "estado_pago": EstadoPago.PENDIENTE,
                "monto_pagado_uf": Decimal("0"),
            }
        )
    return rows
