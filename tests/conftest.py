from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from lex import create_app
from lex.core.config import Config
from lex.core.extensions import db
from lex.core.models import Case, Membership, Organization, Role, User, seed_demo_data
from lex.core.tenancy import RequestContext

DEMO_PASSWORDS = {
    "admin@altius.local": "admin123",
    "abogado@altius.local": "abogado123",
    "abogado2@altius.local": "abogado123",
    "analista@altius.local": "analista123",
    "cliente@altius.local": "cliente123",
}


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _login_as(client, email: str):
    return client.post("/auth/login", json={"email": email, "password": DEMO_PASSWORDS[email]})


@pytest.fixture
def login_admin(client):
    return lambda: _login_as(client, "admin@altius.local")


@pytest.fixture
def login_lawyer(client):
    return lambda: _login_as(client, "abogado@altius.local")


@pytest.fixture
def login_other_lawyer(client):
    return lambda: _login_as(client, "abogado2@altius.local")


@pytest.fixture
def login_analyst(client):
    return lambda: _login_as(client, "analista@altius.local")


@pytest.fixture
def login_client(client):
    return lambda: _login_as(client, "cliente@altius.local")


@pytest.fixture
def context_for(app):
    def _context(email: str) -> RequestContext:
        user = User.query.filter_by(email=email).first()
        membership = Membership.query.filter_by(user_id=user.id).first()
        return RequestContext(user=user, org=membership.organization, role=membership.role)

    return _context


@pytest.fixture
def admin_ctx(context_for):
    return context_for("admin@altius.local")


@pytest.fixture
def lawyer_ctx(context_for):
    return context_for("abogado@altius.local")


@pytest.fixture
def other_lawyer_ctx(context_for):
    return context_for("abogado2@altius.local")


@pytest.fixture
def analyst_ctx(context_for):
    return context_for("analista@altius.local")


@pytest.fixture
def client_ctx(context_for):
    return context_for("cliente@altius.local")


@pytest.fixture
def demo_case(app):
    return Case.query.filter_by(numero_causa="LP-2025-0001").first()


@pytest.fixture
def second_org_case(app):
    org2 = Organization(name="Org Two", code="ORG2")
    user2 = User(email="org2@example.com", full_name="User Org2", password_hash="x")
    db.session.add_all([org2, user2])
    db.session.flush()
    db.session.add(Membership(user_id=user2.id, org_id=org2.id, role=Role.ADMIN_FIRMA))
    case = Case(
        org_id=org2.id,
        numero_causa="LP-2025-0001",
        caratulado="Otra firma con Otro",
        materia="Civil",
        nombre_cliente="Cliente Externo",
    )
    db.session.add(case)
    db.session.commit()
    return case.id


@pytest.fixture
def new_case_payload(app):
    cliente = User.query.filter_by(email="cliente@altius.local").first()
    return {
        "caratulado": "Perez con Inmobiliaria Sur",
        "materia": "Civil",
        "nombre_cliente": "Juan Perez",
        "rut_cliente": "4567890-LP",
        "cliente_principal_id": cliente.id,
        "descripcion_inicial": "Incumplimiento de contrato de compraventa de inmueble.",
        "numero_causa": "LP-2025-0100",
        "honorario_total_uf": "10000",
        "honorario_moneda": "BOB",
        "modalidad_cobro": "prepago",
        "fecha_inicio": "2025-04-01",
    }
