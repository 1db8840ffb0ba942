from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import JSON, CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from lex.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    ADMIN_FIRMA = "admin_firma"
    ABOGADO = "abogado"
    ANALISTA = "analista"
    CLIENTE = "cliente"


STAFF_ROLES = (Role.ADMIN_FIRMA, Role.ABOGADO, Role.ANALISTA)


class CaseEstado(str, Enum):
    ACTIVO = "activo"
    SUSPENDIDO = "suspendido"
    ARCHIVADO = "archivado"
    TERMINADO = "terminado"


class CasePrioridad(str, Enum):
    BAJA = "baja"
    MEDIA = "media"
    ALTA = "alta"
    URGENTE = "urgente"


class WorkflowState(str, Enum):
    PREPARACION = "preparacion"
    EN_REVISION = "en_revision"
    ACTIVO = "activo"
    CERRADO = "cerrado"


class Moneda(str, Enum):
    BOB = "BOB"
    UFV = "UFV"
    USD = "USD"


class ModalidadCobro(str, Enum):
    PREPAGO = "prepago"
    POSTPAGO = "postpago"
    MIXTO = "mixto"


class StageEstado(str, Enum):
    PENDIENTE = "pendiente"
    EN_PROCESO = "en_proceso"
    COMPLETADO = "completado"


class EstadoPago(str, Enum):
    PENDIENTE = "pendiente"
    SOLICITADO = "solicitado"
    EN_PROCESO = "en_proceso"
    PARCIAL = "parcial"
    PAGADO = "pagado"
    VENCIDO = "vencido"


class AudienciaTipo(str, Enum):
    PREPARATORIA = "preparatoria"
    JUICIO = "juicio"


class NoteTipo(str, Enum):
    PRIVADA = "privada"
    PUBLICA = "publica"


class InfoRequestTipo(str, Enum):
    DOCUMENTO = "documento"
    INFORMACION = "informacion"
    REUNION = "reunion"
    OTRO = "otro"


class InfoRequestEstado(str, Enum):
    PENDIENTE = "pendiente"
    EN_REVISION = "en_revision"
    RESPONDIDA = "respondida"
    CERRADA = "cerrada"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    COMPLETE = "COMPLETE"
    ASSIGN_LAWYER = "ASSIGN_LAWYER"
    REQUEST_ADVANCE = "REQUEST_ADVANCE"
    AUTHORIZE_ADVANCE = "AUTHORIZE_ADVANCE"
    RESPOND = "RESPOND"
    CLOSE = "CLOSE"


class Organization(db.Model):
    # Firma (tenant)
    __tablename__ = "organization"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(120), unique=True, nullable=False)
    code: Mapped[str] = mapped_column(db.String(30), unique=True, nullable=False)
    plan: Mapped[str] = mapped_column(db.String(30), nullable=False, default="standard")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    memberships = relationship("Membership", back_populates="organization")


class User(UserMixin, db.Model):
    # Perfil de usuario; el rol vive en Membership
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    telefono: Mapped[str | None] = mapped_column(db.String(50), nullable=True)
    rut: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    memberships = relationship("Membership", back_populates="user")


class Membership(db.Model):
    __tablename__ = "membership"
    __table_args__ = (UniqueConstraint("user_id", "org_id", name="uq_membership_user_org"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False)
    role: Mapped[Role] = mapped_column(
        SAEnum(Role, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Role.ABOGADO,
    )

    user = relationship("User", back_populates="memberships")
    organization = relationship("Organization", back_populates="memberships")


def _enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


class Case(db.Model):
    __tablename__ = "cases"
    __table_args__ = (
        UniqueConstraint("org_id", "numero_causa", name="uq_cases_org_numero_causa"),
        CheckConstraint("alcance_cliente_solicitado >= 0", name="ck_cases_solicitado_non_negative"),
        CheckConstraint("alcance_cliente_autorizado >= 0", name="ck_cases_autorizado_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    numero_causa: Mapped[str | None] = mapped_column(db.String(80), nullable=True)
    caratulado: Mapped[str] = mapped_column(db.String(500), nullable=False)
    materia: Mapped[str] = mapped_column(db.String(1000), nullable=False, default="Civil")
    tribunal: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    region: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    comuna: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    rut_cliente: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    nombre_cliente: Mapped[str] = mapped_column(db.String(1000), nullable=False)
    contraparte: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    etapa_actual: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)
    estado: Mapped[CaseEstado] = mapped_column(
        _enum(CaseEstado, "case_estado"), nullable=False, default=CaseEstado.ACTIVO
    )
    prioridad: Mapped[CasePrioridad] = mapped_column(
        _enum(CasePrioridad, "case_prioridad"), nullable=False, default=CasePrioridad.MEDIA
    )
    workflow_state: Mapped[WorkflowState] = mapped_column(
        _enum(WorkflowState, "case_workflow_state"), nullable=False, default=WorkflowState.PREPARACION
    )
    fecha_inicio: Mapped[date | None] = mapped_column(nullable=True)
    abogado_responsable_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True, index=True)
    analista_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    cliente_principal_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)

    valor_estimado: Mapped[Decimal | None] = mapped_column(db.Numeric(14, 2), nullable=True)
    honorario_total_uf: Mapped[Decimal | None] = mapped_column(db.Numeric(14, 2), nullable=True)
    honorario_pagado_uf: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    honorario_variable_porcentaje: Mapped[Decimal | None] = mapped_column(db.Numeric(5, 2), nullable=True)
    honorario_variable_base: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)
    honorario_moneda: Mapped[Moneda] = mapped_column(_enum(Moneda, "honorario_moneda"), nullable=False, default=Moneda.BOB)
    modalidad_cobro: Mapped[ModalidadCobro] = mapped_column(
        _enum(ModalidadCobro, "modalidad_cobro"), nullable=False, default=ModalidadCobro.PREPAGO
    )
    honorario_notas: Mapped[str | None] = mapped_column(db.String(2000), nullable=True)
    tarifa_referencia: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)

    alcance_cliente_solicitado: Mapped[int] = mapped_column(nullable=False, default=0)
    alcance_cliente_autorizado: Mapped[int] = mapped_column(nullable=False, default=0)

    observaciones: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    descripcion_inicial: Mapped[str | None] = mapped_column(db.String(2000), nullable=True)
    documentacion_recibida: Mapped[str | None] = mapped_column(db.String(2000), nullable=True)
    validado_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    abogado_responsable = relationship("User", foreign_keys=[abogado_responsable_id])
    analista = relationship("User", foreign_keys=[analista_id])
    cliente_principal = relationship("User", foreign_keys=[cliente_principal_id])
    stages = relationship(
        "CaseStage",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="CaseStage.orden",
    )
    client_links = relationship("CaseClient", back_populates="case", cascade="all, delete-orphan")
    notes = relationship("CaseNote", back_populates="case", cascade="all, delete-orphan")
    info_requests = relationship("InfoRequest", back_populates="case", cascade="all, delete-orphan")


class CaseStage(db.Model):
    __tablename__ = "case_stages"
    __table_args__ = (
        UniqueConstraint("case_id", "orden", name="uq_case_stages_case_orden"),
        CheckConstraint("orden > 0", name="ck_case_stages_orden_positive"),
        Index("ix_case_stages_case_estado_pago", "case_id", "estado_pago"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("cases.id"), nullable=False, index=True)
    etapa: Mapped[str] = mapped_column(db.String(1000), nullable=False)
    descripcion: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    orden: Mapped[int] = mapped_column(nullable=False)
    estado: Mapped[StageEstado] = mapped_column(
        _enum(StageEstado, "stage_estado"), nullable=False, default=StageEstado.PENDIENTE
    )
    es_publica: Mapped[bool] = mapped_column(default=True, nullable=False)
    responsable_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    fecha_programada: Mapped[date | None] = mapped_column(nullable=True)
    fecha_cumplida: Mapped[date | None] = mapped_column(nullable=True)
    audiencia_tipo: Mapped[AudienciaTipo | None] = mapped_column(_enum(AudienciaTipo, "audiencia_tipo"), nullable=True)
    requiere_testigos: Mapped[bool] = mapped_column(default=False, nullable=False)

    requiere_pago: Mapped[bool] = mapped_column(default=False, nullable=False)
    costo_uf: Mapped[Decimal | None] = mapped_column(db.Numeric(14, 2), nullable=True)
    porcentaje_variable: Mapped[Decimal | None] = mapped_column(db.Numeric(5, 2), nullable=True)
    estado_pago: Mapped[EstadoPago] = mapped_column(
        _enum(EstadoPago, "estado_pago"), nullable=False, default=EstadoPago.PENDIENTE
    )
    enlace_pago: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)
    notas_pago: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)
    monto_variable_base: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)
    monto_pagado_uf: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    solicitado_por_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    solicitado_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    case = relationship("Case", back_populates="stages")
    responsable = relationship("User", foreign_keys=[responsable_id])

    @validates("enlace_pago")
    def _validate_enlace_pago(self, _key: str, value: str | None) -> str | None:
        if value and not value.startswith(("http://", "https://")):
            raise ValueError("El enlace de pago debe comenzar con http:// o https://")
        return value or None

    @property
    def blocks_completion(self) -> bool:
        return bool(self.requiere_pago) and self.estado_pago != EstadoPago.PAGADO


class CaseClient(db.Model):
    __tablename__ = "case_clients"
    __table_args__ = (UniqueConstraint("case_id", "client_id", name="uq_case_clients_case_client"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("cases.id"), nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    case = relationship("Case", back_populates="client_links")
    client = relationship("User")


class CaseNote(db.Model):
    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("cases.id"), nullable=False, index=True)
    author_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    tipo: Mapped[NoteTipo] = mapped_column(_enum(NoteTipo, "note_tipo"), nullable=False, default=NoteTipo.PRIVADA)
    contenido: Mapped[str] = mapped_column(db.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    case = relationship("Case", back_populates="notes")
    author = relationship("User")

    @property
    def es_publica(self) -> bool:
        return self.tipo == NoteTipo.PUBLICA


class InfoRequest(db.Model):
    # Solicitud de la firma que el cliente responde
    __tablename__ = "info_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("cases.id"), nullable=False, index=True)
    creador_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    titulo: Mapped[str] = mapped_column(db.String(1000), nullable=False)
    descripcion: Mapped[str] = mapped_column(db.String(2000), nullable=False)
    tipo: Mapped[InfoRequestTipo] = mapped_column(
        _enum(InfoRequestTipo, "request_type"), nullable=False, default=InfoRequestTipo.INFORMACION
    )
    prioridad: Mapped[CasePrioridad] = mapped_column(
        _enum(CasePrioridad, "request_prioridad"), nullable=False, default=CasePrioridad.MEDIA
    )
    estado: Mapped[InfoRequestEstado] = mapped_column(
        _enum(InfoRequestEstado, "request_status"), nullable=False, default=InfoRequestEstado.PENDIENTE
    )
    es_publica: Mapped[bool] = mapped_column(default=True, nullable=False)
    fecha_limite: Mapped[date | None] = mapped_column(nullable=True)
    respuesta: Mapped[str | None] = mapped_column(db.String(2000), nullable=True)
    archivo_adjunto: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)
    respondido_por_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    respondido_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    case = relationship("Case", back_populates="info_requests")
    creador = relationship("User", foreign_keys=[creador_id])
    respondido_por = relationship("User", foreign_keys=[respondido_por_id])


class AuditLog(db.Model):
    # Append-only
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    action: Mapped[AuditAction] = mapped_column(SAEnum(AuditAction, name="audit_action"), nullable=False)
    entity_type: Mapped[str] = mapped_column(db.String(40), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    diff_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str] = mapped_column(db.String(64), nullable=False, default="unknown")
    user_agent: Mapped[str] = mapped_column(db.String(255), nullable=False, default="unknown")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    actor = relationship("User")


def seed_demo_data(session) -> None:
    from lex.cases.templates import build_initial_stages

    org = Organization(name="Estudio Altius Demo", code="ALTIUS")
    session.add(org)
    session.flush()

    admin = User(
        email="admin@altius.local",
        full_name="Admin Firma",
        password_hash=generate_password_hash("admin123"),
    )
    abogado = User(
        email="abogado@altius.local",
        full_name="Lucia Mamani",
        telefono="+591 70000001",
        password_hash=generate_password_hash("abogado123"),
    )
    abogado_2 = User(
        email="abogado2@altius.local",
        full_name="Marco Quispe",
        telefono="+591 70000002",
        password_hash=generate_password_hash("abogado123"),
    )
    analista = User(
        email="analista@altius.local",
        full_name="Andrea Rojas",
        password_hash=generate_password_hash("analista123"),
    )
    cliente = User(
        email="cliente@altius.local",
        full_name="Juan Perez",
        password_hash=generate_password_hash("cliente123"),
    )
    session.add_all([admin, abogado, abogado_2, analista, cliente])
    session.flush()

    session.add_all(
        [
            Membership(user_id=admin.id, org_id=org.id, role=Role.ADMIN_FIRMA),
            Membership(user_id=abogado.id, org_id=org.id, role=Role.ABOGADO),
            Membership(user_id=abogado_2.id, org_id=org.id, role=Role.ABOGADO),
            Membership(user_id=analista.id, org_id=org.id, role=Role.ANALISTA),
            Membership(user_id=cliente.id, org_id=org.id, role=Role.CLIENTE),
        ]
    )

    case = Case(
        org_id=org.id,
        numero_causa="LP-2025-0001",
        caratulado="Perez con Constructora Andina",
        materia="Laboral",
        tribunal="Juzgado de Trabajo 2 de La Paz",
        region="La Paz",
        rut_cliente="4567890 LP",
        nombre_cliente=cliente.full_name,
        contraparte="Constructora Andina SRL",
        estado=CaseEstado.ACTIVO,
        prioridad=CasePrioridad.ALTA,
        workflow_state=WorkflowState.ACTIVO,
        fecha_inicio=date(2025, 3, 3),
        abogado_responsable_id=abogado.id,
        analista_id=analista.id,
        cliente_principal_id=cliente.id,
        honorario_total_uf=Decimal("6000.00"),
        honorario_moneda=Moneda.BOB,
        modalidad_cobro=ModalidadCobro.PREPAGO,
        descripcion_inicial="Despido injustificado tras ocho anos de servicio en obra.",
    )
    session.add(case)
    session.flush()
    session.add(CaseClient(org_id=org.id, case_id=case.id, client_id=cliente.id))
    rows = build_initial_stages(case)
    for row in rows:
        session.add(CaseStage(org_id=org.id, case_id=case.id, **row))
    case.etapa_actual = rows[0]["etapa"] if rows else None
    session.commit()
