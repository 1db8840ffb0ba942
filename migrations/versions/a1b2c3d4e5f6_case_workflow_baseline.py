"""case workflow baseline

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


USER_ROLE = sa.Enum("admin_firma", "abogado", "analista", "cliente", name="user_role")
CASE_ESTADO = sa.Enum("activo", "suspendido", "archivado", "terminado", name="case_estado")
CASE_PRIORIDAD = sa.Enum("baja", "media", "alta", "urgente", name="case_prioridad")
WORKFLOW_STATE = sa.Enum("preparacion", "en_revision", "activo", "cerrado", name="case_workflow_state")
MONEDA = sa.Enum("BOB", "UFV", "USD", name="honorario_moneda")
MODALIDAD = sa.Enum("prepago", "postpago", "mixto", name="modalidad_cobro")
STAGE_ESTADO = sa.Enum("pendiente", "en_proceso", "completado", name="stage_estado")
ESTADO_PAGO = sa.Enum("pendiente", "solicitado", "en_proceso", "parcial", "pagado", "vencido", name="estado_pago")
AUDIENCIA_TIPO = sa.Enum("preparatoria", "juicio", name="audiencia_tipo")
NOTE_TIPO = sa.Enum("privada", "publica", name="note_tipo")
REQUEST_TYPE = sa.Enum("documento", "informacion", "reunion", "otro", name="request_type")
REQUEST_PRIORIDAD = sa.Enum("baja", "media", "alta", "urgente", name="request_prioridad")
REQUEST_STATUS = sa.Enum("pendiente", "en_revision", "respondida", "cerrada", name="request_status")
AUDIT_ACTION = sa.Enum(
    "CREATE",
    "UPDATE",
    "DELETE",
    "COMPLETE",
    "ASSIGN_LAWYER",
    "REQUEST_ADVANCE",
    "AUTHORIZE_ADVANCE",
    "RESPOND",
    "CLOSE",
    name="audit_action",
)


def upgrade():
    op.create_table(
        "organization",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=30), nullable=False),
        sa.Column("plan", sa.String(length=30), nullable=False, server_default="standard"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("telefono", sa.String(length=50), nullable=True),
        sa.Column("rut", sa.String(length=20), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "membership",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("role", USER_ROLE, nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "org_id", name="uq_membership_user_org"),
    )

    op.create_table(
        "cases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("numero_causa", sa.String(length=80), nullable=True),
        sa.Column("caratulado", sa.String(length=500), nullable=False),
        sa.Column("materia", sa.String(length=1000), nullable=False),
        sa.Column("tribunal", sa.String(length=255), nullable=True),
        sa.Column("region", sa.String(length=120), nullable=True),
        sa.Column("comuna", sa.String(length=120), nullable=True),
        sa.Column("rut_cliente", sa.String(length=20), nullable=True),
        sa.Column("nombre_cliente", sa.String(length=1000), nullable=False),
        sa.Column("contraparte", sa.String(length=255), nullable=True),
        sa.Column("etapa_actual", sa.String(length=1000), nullable=True),
        sa.Column("estado", CASE_ESTADO, nullable=False),
        sa.Column("prioridad", CASE_PRIORIDAD, nullable=False),
        sa.Column("workflow_state", WORKFLOW_STATE, nullable=False),
        sa.Column("fecha_inicio", sa.Date(), nullable=True),
        sa.Column("abogado_responsable_id", sa.Integer(), nullable=True),
        sa.Column("analista_id", sa.Integer(), nullable=True),
        sa.Column("cliente_principal_id", sa.Integer(), nullable=True),
        sa.Column("valor_estimado", sa.Numeric(14, 2), nullable=True),
        sa.Column("honorario_total_uf", sa.Numeric(14, 2), nullable=True),
        sa.Column("honorario_pagado_uf", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("honorario_variable_porcentaje", sa.Numeric(5, 2), nullable=True),
        sa.Column("honorario_variable_base", sa.String(length=1000), nullable=True),
        sa.Column("honorario_moneda", MONEDA, nullable=False),
        sa.Column("modalidad_cobro", MODALIDAD, nullable=False),
        sa.Column("honorario_notas", sa.String(length=2000), nullable=True),
        sa.Column("tarifa_referencia", sa.String(length=1000), nullable=True),
        sa.Column("alcance_cliente_solicitado", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("alcance_cliente_autorizado", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("observaciones", sa.Text(), nullable=True),
        sa.Column("descripcion_inicial", sa.String(length=2000), nullable=True),
        sa.Column("documentacion_recibida", sa.String(length=2000), nullable=True),
        sa.Column("validado_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("alcance_cliente_solicitado >= 0", name="ck_cases_solicitado_non_negative"),
        sa.CheckConstraint("alcance_cliente_autorizado >= 0", name="ck_cases_autorizado_non_negative"),
        sa.ForeignKeyConstraint(["abogado_responsable_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["analista_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["cliente_principal_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "numero_causa", name="uq_cases_org_numero_causa"),
    )
    with op.batch_alter_table("cases", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_cases_org_id"), ["org_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_cases_abogado_responsable_id"), ["abogado_responsable_id"], unique=False)

    op.create_table(
        "case_stages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("etapa", sa.String(length=1000), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=True),
        sa.Column("orden", sa.Integer(), nullable=False),
        sa.Column("estado", STAGE_ESTADO, nullable=False),
        sa.Column("es_publica", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("responsable_id", sa.Integer(), nullable=True),
        sa.Column("fecha_programada", sa.Date(), nullable=True),
        sa.Column("fecha_cumplida", sa.Date(), nullable=True),
        sa.Column("audiencia_tipo", AUDIENCIA_TIPO, nullable=True),
        sa.Column("requiere_testigos", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("requiere_pago", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("costo_uf", sa.Numeric(14, 2), nullable=True),
        sa.Column("porcentaje_variable", sa.Numeric(5, 2), nullable=True),
        sa.Column("estado_pago", ESTADO_PAGO, nullable=False),
        sa.Column("enlace_pago", sa.String(length=1000), nullable=True),
        sa.Column("notas_pago", sa.String(length=1000), nullable=True),
        sa.Column("monto_variable_base", sa.String(length=1000), nullable=True),
        sa.Column("monto_pagado_uf", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("solicitado_por_id", sa.Integer(), nullable=True),
        sa.Column("solicitado_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("orden > 0", name="ck_case_stages_orden_positive"),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.ForeignKeyConstraint(["responsable_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["solicitado_por_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("case_id", "orden", name="uq_case_stages_case_orden"),
    )
    with op.batch_alter_table("case_stages", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_stages_org_id"), ["org_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_case_stages_case_id"), ["case_id"], unique=False)
        batch_op.create_index("ix_case_stages_case_estado_pago", ["case_id", "estado_pago"], unique=False)

    op.create_table(
        "case_clients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("case_id", "client_id", name="uq_case_clients_case_client"),
    )
    with op.batch_alter_table("case_clients", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_clients_org_id"), ["org_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_case_clients_case_id"), ["case_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_case_clients_client_id"), ["client_id"], unique=False)

    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("tipo", NOTE_TIPO, nullable=False),
        sa.Column("contenido", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["author_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("notes", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_notes_org_id"), ["org_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_notes_case_id"), ["case_id"], unique=False)

    op.create_table(
        "info_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("creador_id", sa.Integer(), nullable=False),
        sa.Column("titulo", sa.String(length=1000), nullable=False),
        sa.Column("descripcion", sa.String(length=2000), nullable=False),
        sa.Column("tipo", REQUEST_TYPE, nullable=False),
        sa.Column("prioridad", REQUEST_PRIORIDAD, nullable=False),
        sa.Column("estado", REQUEST_STATUS, nullable=False),
        sa.Column("es_publica", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("fecha_limite", sa.Date(), nullable=True),
        sa.Column("respuesta", sa.String(length=2000), nullable=True),
        sa.Column("archivo_adjunto", sa.String(length=1000), nullable=True),
        sa.Column("respondido_por_id", sa.Integer(), nullable=True),
        sa.Column("respondido_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["cases.id"]),
        sa.ForeignKeyConstraint(["creador_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.ForeignKeyConstraint(["respondido_por_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("info_requests", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_info_requests_org_id"), ["org_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_info_requests_case_id"), ["case_id"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("action", AUDIT_ACTION, nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=40), nullable=True),
        sa.Column("diff_json", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=False, server_default="unknown"),
        sa.Column("user_agent", sa.String(length=255), nullable=False, server_default="unknown"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["actor_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_audit_logs_org_id"), ["org_id"], unique=False)


def downgrade():
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_audit_logs_org_id"))
    op.drop_table("audit_logs")

    with op.batch_alter_table("info_requests", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_info_requests_case_id"))
        batch_op.drop_index(batch_op.f("ix_info_requests_org_id"))
    op.drop_table("info_requests")

    with op.batch_alter_table("notes", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_notes_case_id"))
        batch_op.drop_index(batch_op.f("ix_notes_org_id"))
    op.drop_table("notes")

    with op.batch_alter_table("case_clients", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_case_clients_client_id"))
        batch_op.drop_index(batch_op.f("ix_case_clients_case_id"))
        batch_op.drop_index(batch_op.f("ix_case_clients_org_id"))
    op.drop_table("case_clients")

    with op.batch_alter_table("case_stages", schema=None) as batch_op:
        batch_op.drop_index("ix_case_stages_case_estado_pago")
        batch_op.drop_index(batch_op.f("ix_case_stages_case_id"))
        batch_op.drop_index(batch_op.f("ix_case_stages_org_id"))
    op.drop_table("case_stages")

    with op.batch_alter_table("cases", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_cases_abogado_responsable_id"))
        batch_op.drop_index(batch_op.f("ix_cases_org_id"))
    op.drop_table("cases")

    op.drop_table("membership")
    op.drop_table("user_account")
    op.drop_table("organization")

    bind = op.get_bind()
    for enum in (
        AUDIT_ACTION,
        REQUEST_STATUS,
        REQUEST_PRIORIDAD,
        REQUEST_TYPE,
        NOTE_TIPO,
        AUDIENCIA_TIPO,
        ESTADO_PAGO,
        STAGE_ESTADO,
        MODALIDAD,
        MONEDA,
        WORKFLOW_STATE,
        CASE_PRIORIDAD,
        CASE_ESTADO,
        USER_ROLE,
    ):
        enum.drop(bind, checkfirst=True)
