from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class FeeScale:
    condicion: str
    monto_bs: Decimal | None = None
    porcentaje: Decimal | None = None
    porcentaje_sobre: str | None = None
    minimo_uf: Decimal | None = None


@dataclass(frozen=True)
class FeeItem:
    id: str
    nombre: str
    monto_bs: Decimal | None = None
    porcentaje: Decimal | None = None
    porcentaje_sobre: str | None = None
    minimo_uf: Decimal | None = None
    notas: str | None = None
    escalas: tuple[FeeScale, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FeeCategory:
    codigo: str
    titulo: str
    items: tuple[FeeItem, ...]


_OBTENIDO = "lo obtenido con la demanda o lo ahorrado por la defensa"

LEGAL_FEE_CATEGORIES: tuple[FeeCategory, ...] = (
    FeeCategory(
        codigo="consulta",
        titulo="Honorarios Profesionales - Consulta",
        items=(
            FeeItem(
                id="consulta_atencion_personal",
                nombre="Consulta profesional (atención personal)",
                monto_bs=Decimal("275"),
                notas="Se descuenta del honorario final si el cliente contrata el servicio asociado.",
            ),
            FeeItem(
                id="consulta_informe_escrito",
                nombre="Consulta con estudio documental e informe escrito",
                monto_bs=Decimal("550"),
            ),
        ),
    ),
    FeeCategory(
        codigo="constitucional",
        titulo="Materias Constitucionales",
        items=(
            FeeItem(
                id="recurso_proteccion",
                nombre="Recurso de protección",
                monto_bs=Decimal("8250"),
                notas="Bs 11.000 si se tramita apelación.",
            ),
            FeeItem(
                id="recurso_amparo",
                nombre="Recurso de amparo",
                monto_bs=Decimal("4125"),
                notas="Bs 5.500 si se tramita apelación.",
            ),
        ),
    ),
    FeeCategory(
        codigo="civil",
        titulo="Materias Civiles",
        items=(
            FeeItem(
                id="medidas_prejudiciales",
                nombre="Medidas prejudiciales",
                escalas=(
                    FeeScale(
                        condicion="Si con la medida se resuelve el conflicto que motivaba el juicio posterior",
                        monto_bs=Decimal("4125"),
                    ),
                    FeeScale(condicion="En caso contrario", monto_bs=Decimal("1375")),
                ),
            ),
            FeeItem(
                id="juicio_ordinario_mayor_cuantia",
                nombre="Juicio ordinario de mayor cuantía",
                monto_bs=Decimal("8250"),
                porcentaje=Decimal("10"),
                porcentaje_sobre=_OBTENIDO,
            ),
            FeeItem(
                id="juicio_ordinario_menor_cuantia",
                nombre="Juicio ordinario de menor cuantía",
                monto_bs=Decimal("5500"),
                porcentaje=Decimal("10"),
                porcentaje_sobre=_OBTENIDO,
            ),
            FeeItem(
                id="juicio_ordinario_minima_cuantia",
                nombre="Juicio ordinario de mínima cuantía",
                monto_bs=Decimal("2750"),
                porcentaje=Decimal("10"),
                porcentaje_sobre=_OBTENIDO,
            ),
            FeeItem(
                id="juicio_ejecutivo",
                nombre="Juicio ejecutivo (principal o incidental)",
                monto_bs=Decimal("5500"),
                porcentaje=Decimal("10"),
                porcentaje_sobre=_OBTENIDO,
            ),
            FeeItem(
                id="juicio_arrendamiento",
                nombre="Juicio especial de arrendamiento",
                escalas=(
                    FeeScale(condicion="Deuda hasta Bs 13.750", monto_bs=Decimal("2750")),
                    FeeScale(condicion="Deuda entre Bs 14.025 y Bs 27.500", monto_bs=Decimal("4125")),
                    FeeScale(condicion="Deuda superior a Bs 27.500", monto_bs=Decimal("5500")),
                ),
            ),
            FeeItem(
                id="transaccion_previa",
                nombre="Transacción antes del juicio",
                porcentaje=Decimal("25"),
                porcentaje_sobre="del arancel del juicio respectivo",
            ),
            FeeItem(id="cambio_nombre", nombre="Cambio de nombre", monto_bs=Decimal("5500")),
            FeeItem(
                id="posesion_efectiva_judicial",
                nombre="Posesión efectiva judicial",
                monto_bs=Decimal("5500"),
            ),
        ),
    ),
    FeeCategory(
        codigo="laboral",
        titulo="Materias Laborales",
        items=(
            FeeItem(
                id="juicio_laboral_ordinario",
                nombre="Juicio laboral ordinario (cobro prestaciones)",
                notas="Trabajador: Bs 2.750 + 10% de lo obtenido. Empleador: Bs 5.500 + 20% de lo ahorrado.",
            ),
            FeeItem(
                id="juicio_laboral_monitorio",
                nombre="Juicio monitorio laboral",
                notas="Trabajador: Bs 4.125. Empleador: Bs 6.875.",
            ),
            FeeItem(id="constitucion_sindicato", nombre="Constitución de sindicatos", monto_bs=Decimal("8250")),
            FeeItem(id="defensa_dirigente", nombre="Defensa de dirigente sindical", monto_bs=Decimal("4125")),
            FeeItem(id="reclamo_multas", nombre="Reclamo de multas", monto_bs=Decimal("4125")),
            FeeItem(id="cobranza_previsional", nombre="Cobranza previsional", monto_bs=Decimal("4125")),
        ),
    ),
    FeeCategory(
        codigo="familia",
        titulo="Materias de Familia",
        items=(
            FeeItem(id="cuidado_personal", nombre="Causas de cuidado personal", monto_bs=Decimal("5500")),
            FeeItem(
                id="alimentos",
                nombre="Causas de alimentos",
                monto_bs=Decimal("4125"),
                porcentaje=Decimal("50"),
                porcentaje_sobre="de la pensión demandada",
            ),
            FeeItem(id="guardas", nombre="Guardas", monto_bs=Decimal("4125")),
            FeeItem(id="filiacion", nombre="Acciones de filiación", monto_bs=Decimal("5500")),
            FeeItem(id="adopcion", nombre="Procedimiento de adopción", monto_bs=Decimal("5500")),
        ),
    ),
    FeeCategory(
        codigo="recursos",
        titulo="Recursos",
        items=(
            FeeItem(
                id="apelacion_casacion",
                nombre="Apelación o casación",
                porcentaje=Decimal("50"),
                porcentaje_sobre="del arancel de primera instancia",
            ),
            FeeItem(id="nulidad_penal", nombre="Recurso de nulidad penal", monto_bs=Decimal("13750")),
            FeeItem(
                id="unificacion_jurisprudencia",
                nombre="Recurso de unificación de jurisprudencia (laboral)",
                monto_bs=Decimal("5500"),
            ),
            FeeItem(id="revision", nombre="Recurso de revisión", monto_bs=Decimal("13750")),
        ),
    ),
)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _slug(value: str) -> str:
    return _SLUG_RE.sub("_", value.lower()).strip("_")


def find_fee_item(reference: str | None) -> FeeItem | None:
    """Look up a fee item by id, slugified id or slugified name.

    Accented characters are not transliterated, so ``"Recurso de protección"``
    slugs to ``recurso_de_protecci_n`` and only matches through its id.
    """
    if not reference:
        return None
    normalized = reference.strip().lower()
    if not normalized:
        return None
    slug = _slug(normalized)
    for category in LEGAL_FEE_CATEGORIES:
        for item in category.items:
            if item.id in (normalized, slug) or _slug(item.nombre) == slug:
                return item
    return None


def default_fee_total(reference: str | None) -> Decimal | None:
    # Only fixed amounts resolve; percentages and scales depend on the outcome.
    item = find_fee_item(reference)
    if item is None:
        return None
    return item.monto_bs
