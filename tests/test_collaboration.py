from __future__ import annotations

import pytest
from werkzeug.security import check_password_hash

from lex.cases.clients import DUPLICATE_EMAIL, create_client_profile, list_clients
from lex.cases.info_requests import (
    REQUEST_CLOSED,
    close_info_request,
    create_info_request,
    get_info_request_by_id,
    get_info_requests,
    respond_info_request,
    update_info_request,
)
from lex.cases.notes import create_note, delete_note, get_note_by_id, get_notes, update_note
from lex.cases.serializers import client_to_dict
from lex.cases.services import NotFoundError, delete_case
from lex.core.models import (
    AuditAction,
    AuditLog,
    CaseNote,
    InfoRequestEstado,
    Membership,
    NoteTipo,
    Role,
    User,
)


def _request(ctx, case, **overrides):
    payload = {"case_id": case.id, "titulo": "Contrato de trabajo", "descripcion": "Adjuntar copia firmada."}
    payload.update(overrides)
    return create_info_request(ctx, payload)


# --- client profiles ----------------------------------------------------


def test_staff_creates_client_profile(app, analyst_ctx):
    created = create_client_profile(
        analyst_ctx,
        {"nombre": "Rosa Choque", "email": " Rosa@Example.com ", "rut": "1234567-lp", "password": "secreta123"},
    )
    user = created.user
    assert user.email == "rosa@example.com"
    assert user.rut == "1234567 LP"
    assert created.temporary_password is None
    assert check_password_hash(user.password_hash, "secreta123")

    membership = Membership.query.filter_by(user_id=user.id, org_id=analyst_ctx.org_id).one()
    assert membership.role == Role.CLIENTE
    entry = AuditLog.query.filter_by(entity_type="client", entity_id=str(user.id)).one()
    assert entry.action == AuditAction.CREATE
    assert entry.diff_json["email"] == "rosa@example.com"


def test_client_profile_rules(app, admin_ctx, client_ctx):
    with pytest.raises(PermissionError):
        create_client_profile(client_ctx, {"nombre": "Otro Cliente", "email": "otro@example.com"})
    with pytest.raises(ValueError, match=DUPLICATE_EMAIL):
        create_client_profile(admin_ctx, {"nombre": "Juan Perez", "email": "CLIENTE@altius.local"})
    with pytest.raises(ValueError, match="Correo inválido"):
        create_client_profile(admin_ctx, {"nombre": "Sin Correo", "email": "sin-arroba"})
    with pytest.raises(ValueError, match="Documento de identidad"):
        create_client_profile(admin_ctx, {"nombre": "Rut Malo", "email": "rut@example.com", "rut": "12-XYZ"})
    assert User.query.filter_by(email="otro@example.com").first() is None


def test_client_password_falls_back_to_generated(app, admin_ctx):
    app.config["DEFAULT_CLIENT_PASSWORD"] = None
    created = create_client_profile(admin_ctx, {"nombre": "Ana Flores", "email": "ana@example.com"})
    assert created.temporary_password
    assert check_password_hash(created.user.password_hash, created.temporary_password)

    app.config["DEFAULT_CLIENT_PASSWORD"] = "bienvenido2025"
    configured = create_client_profile(admin_ctx, {"nombre": "Luis Flores", "email": "luis@example.com"})
    assert configured.temporary_password is None
    assert check_password_hash(configured.user.password_hash, "bienvenido2025")


def test_list_clients_searches_org_clients(app, lawyer_ctx, client_ctx):
    create_client_profile(lawyer_ctx, {"nombre": "Rosa Choque", "email": "rosa@example.com", "rut": "7654321"})
    assert [u.full_name for u in list_clients(lawyer_ctx)] == ["Juan Perez", "Rosa Choque"]
    assert [u.email for u in list_clients(lawyer_ctx, "7654")] == ["rosa@example.com"]
    assert [u.email for u in list_clients(lawyer_ctx, "PEREZ")] == ["cliente@altius.local"]
    with pytest.raises(PermissionError):
        list_clients(client_ctx)


def test_client_serializer_carries_identity_document(app, admin_ctx):
    user = create_client_profile(
        admin_ctx, {"nombre": "Rosa Choque", "email": "rosa@example.com", "rut": "1234567 LP", "telefono": "+591 7"}
    ).user
    assert client_to_dict(user) == {
        "id": user.id,
        "nombre": "Rosa Choque",
        "email": "rosa@example.com",
        "telefono": "+591 7",
        "rut": "1234567 LP",
    }


# --- notes --------------------------------------------------------------


def test_notes_visibility_follows_client_rule(app, demo_case, lawyer_ctx, client_ctx, admin_ctx):
    private = create_note(lawyer_ctx, {"case_id": demo_case.id, "contenido": "Estrategia interna"})
    public = create_note(lawyer_ctx, {"case_id": demo_case.id, "contenido": "Audiencia fijada", "tipo": "publica"})
    assert private.tipo == NoteTipo.PRIVADA
    assert private.author_id == lawyer_ctx.user_id

    assert [n.id for n in get_notes(client_ctx, {"case_id": demo_case.id}).items] == [public.id]
    assert get_notes(admin_ctx).total == 2
    assert get_note_by_id(client_ctx, public.id).contenido == "Audiencia fijada"
    with pytest.raises(PermissionError):
        get_note_by_id(client_ctx, private.id)
    with pytest.raises(PermissionError):
        create_note(client_ctx, {"case_id": demo_case.id, "contenido": "Hola"})


def test_note_edit_and_delete_by_author_or_admin(app, demo_case, lawyer_ctx, analyst_ctx, admin_ctx):
    note = create_note(lawyer_ctx, {"case_id": demo_case.id, "contenido": "Borrador"})
    with pytest.raises(PermissionError):
        update_note(analyst_ctx, note.id, {"contenido": "Cambio ajeno"})

    update_note(lawyer_ctx, note.id, {"contenido": "Version final", "tipo": "publica"})
    assert note.contenido == "Version final"
    assert note.es_publica
    update_entry = AuditLog.query.filter_by(entity_type="note", action=AuditAction.UPDATE).one()
    assert update_entry.diff_json["contenido"] == {"from": "Borrador", "to": "Version final"}

    with pytest.raises(ValueError):
        update_note(lawyer_ctx, note.id, {"contenido": ""})

    delete_note(admin_ctx, note.id)
    assert CaseNote.query.count() == 0
    assert AuditLog.query.filter_by(entity_type="note", action=AuditAction.DELETE).count() == 1
    with pytest.raises(NotFoundError):
        get_note_by_id(admin_ctx, note.id)


def test_other_lawyer_cannot_reach_case_notes(app, demo_case, lawyer_ctx, other_lawyer_ctx):
    create_note(lawyer_ctx, {"case_id": demo_case.id, "contenido": "Nota", "tipo": "publica"})
    assert get_notes(other_lawyer_ctx).total == 0
    with pytest.raises(PermissionError):
        get_notes(other_lawyer_ctx, {"case_id": demo_case.id})
    with pytest.raises(PermissionError):
        create_note(other_lawyer_ctx, {"case_id": demo_case.id, "contenido": "Intruso"})


def test_notes_are_removed_with_their_case(app, demo_case, lawyer_ctx, admin_ctx):
    create_note(lawyer_ctx, {"case_id": demo_case.id, "contenido": "Nota"})
    delete_case(admin_ctx, demo_case.id)
    assert CaseNote.query.count() == 0


# --- info requests ------------------------------------------------------


def test_info_request_lifecycle(app, demo_case, lawyer_ctx, client_ctx):
    info_request = _request(lawyer_ctx, demo_case, tipo="documento", fecha_limite="2025-05-01")
    assert info_request.estado == InfoRequestEstado.PENDIENTE
    assert info_request.creador_id == lawyer_ctx.user_id

    respond_info_request(
        client_ctx,
        info_request.id,
        {"respuesta": "Adjunto el contrato", "archivo_adjunto": "https://files.example.com/contrato.pdf"},
    )
    assert info_request.estado == InfoRequestEstado.RESPONDIDA
    assert info_request.respondido_por_id == client_ctx.user_id
    assert info_request.respondido_at is not None

    close_info_request(lawyer_ctx, info_request.id)
    assert info_request.estado == InfoRequestEstado.CERRADA
    with pytest.raises(ValueError, match=REQUEST_CLOSED):
        respond_info_request(client_ctx, info_request.id, {"respuesta": "Otra cosa"})
    with pytest.raises(ValueError, match=REQUEST_CLOSED):
        close_info_request(lawyer_ctx, info_request.id)

    actions = [
        entry.action
        for entry in AuditLog.query.filter_by(entity_type="info_request", entity_id=str(info_request.id))
        .order_by(AuditLog.id)
        .all()
    ]
    assert actions == [AuditAction.CREATE, AuditAction.RESPOND, AuditAction.CLOSE]


def test_info_request_permissions(app, demo_case, lawyer_ctx, analyst_ctx, client_ctx, other_lawyer_ctx):
    with pytest.raises(PermissionError):
        _request(client_ctx, demo_case)
    with pytest.raises(PermissionError):
        _request(other_lawyer_ctx, demo_case)

    info_request = _request(analyst_ctx, demo_case)
    # The case's lawyer may manage a request someone else created.
    update_info_request(lawyer_ctx, info_request.id, {"prioridad": "alta"})
    assert info_request.prioridad.value == "alta"
    with pytest.raises(PermissionError):
        close_info_request(client_ctx, info_request.id)
    with pytest.raises(PermissionError):
        respond_info_request(other_lawyer_ctx, info_request.id, {"respuesta": "No"})
    with pytest.raises(ValueError, match="http"):
        respond_info_request(client_ctx, info_request.id, {"respuesta": "Listo", "archivo_adjunto": "ftp://x"})
    assert info_request.estado == InfoRequestEstado.PENDIENTE


def test_client_sees_only_public_requests(app, demo_case, lawyer_ctx, client_ctx):
    visible = _request(lawyer_ctx, demo_case, titulo="Certificado laboral")
    hidden = _request(lawyer_ctx, demo_case, titulo="Revisión interna", es_publica=False)

    assert [r.id for r in get_info_requests(client_ctx).items] == [visible.id]
    assert get_info_requests(lawyer_ctx, {"search": "interna"}).items == [hidden]
    assert get_info_request_by_id(client_ctx, visible.id).titulo == "Certificado laboral"
    with pytest.raises(PermissionError):
        get_info_request_by_id(client_ctx, hidden.id)
    with pytest.raises(PermissionError):
        respond_info_request(client_ctx, hidden.id, {"respuesta": "Hola"})


# --- over HTTP ----------------------------------------------------------


def test_client_endpoints(client, login_analyst, app):
    app.config["DEFAULT_CLIENT_PASSWORD"] = None
    login_analyst()
    response = client.post("/api/clients", json={"nombre": "Rosa Choque", "email": "rosa@example.com"})
    assert response.status_code == 201
    body = response.get_json()
    assert body["client"]["email"] == "rosa@example.com"
    assert body["password_temporal"]

    duplicate = client.post("/api/clients", json={"nombre": "Rosa Choque", "email": "rosa@example.com"})
    assert duplicate.status_code == 400

    listed = client.get("/api/clients?search=rosa").get_json()
    assert [c["nombre"] for c in listed["clients"]] == ["Rosa Choque"]


def test_client_endpoints_forbidden_for_clients(client, login_client):
    login_client()
    assert client.get("/api/clients").status_code == 403
    assert client.post("/api/clients", json={"nombre": "X Y", "email": "x@example.com"}).status_code == 403


def test_note_endpoints(client, login_lawyer, login_client, demo_case):
    case_id = demo_case.id
    login_lawyer()
    created = client.post("/api/notes", json={"case_id": case_id, "contenido": "Privada"})
    assert created.status_code == 201
    note_id = created.get_json()["note"]["id"]
    assert created.get_json()["note"]["author"]["email"] == "abogado@altius.local"

    patched = client.patch(f"/api/notes/{note_id}", json={"tipo": "publica"})
    assert patched.get_json()["note"]["tipo"] == "publica"
    client.post("/api/notes", json={"case_id": case_id, "contenido": "Solo equipo"})

    client.post("/auth/logout")
    login_client()
    listed = client.get(f"/api/notes?case_id={case_id}").get_json()
    assert [n["id"] for n in listed["notes"]] == [note_id]
    assert client.delete(f"/api/notes/{note_id}").status_code == 403


def test_info_request_endpoints(client, login_lawyer, login_client, demo_case):
    case_id = demo_case.id
    login_lawyer()
    created = client.post(
        "/api/info-requests", json={"case_id": case_id, "titulo": "Boletas", "descripcion": "Ultimas 3 boletas"}
    )
    assert created.status_code == 201
    request_id = created.get_json()["request"]["id"]
    assert created.get_json()["request"]["estado"] == "pendiente"

    client.post("/auth/logout")
    login_client()
    answered = client.post(f"/api/info-requests/{request_id}/respond", json={"respuesta": "Enviadas"})
    assert answered.get_json()["request"]["estado"] == "respondida"
    assert client.post(f"/api/info-requests/{request_id}/close").status_code == 403

    client.post("/auth/logout")
    login_lawyer()
    closed = client.post(f"/api/info-requests/{request_id}/close")
    assert closed.get_json()["request"]["estado"] == "cerrada"
    assert client.get("/api/info-requests/9999").status_code == 404
    listed = client.get("/api/info-requests?estado=cerrada").get_json()
    assert listed["total"] == 1
