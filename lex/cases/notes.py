from __future__ import annotations

from typing import Mapping

from lex.cases.services import NotFoundError, Page, accessible_case, case_scope_criteria
from lex.cases.validators import parse_note_filters, parse_note_payload
from lex.core.audit import log_audit_action
from lex.core.extensions import atomic, db
from lex.core.models import STAFF_ROLES, AuditAction, Case, CaseNote, NoteTipo, Role
from lex.core.permissions import ensure_role
from lex.core.tenancy import RequestContext


def _note_by_id(ctx: RequestContext, note_id: int) -> CaseNote:
    note = CaseNote.query.filter_by(id=note_id, org_id=ctx.org_id).first()
    if note is None:
        raise NotFoundError("Nota no encontrada")
    return note


def _ensure_author(ctx: RequestContext, note: CaseNote, message: str) -> None:
    if ctx.role != Role.ADMIN_FIRMA and note.author_id != ctx.user_id:
        raise PermissionError(message)
    accessible_case(ctx, note.case_id)


def create_note(ctx: RequestContext, payload: Mapping[str, object]) -> CaseNote:
    ensure_role(ctx, *STAFF_ROLES, message="Sin permisos para crear notas")
    data = parse_note_payload(payload)
    case = accessible_case(ctx, data.pop("case_id"))
    with atomic():
        note = CaseNote(org_id=ctx.org_id, case_id=case.id, author_id=ctx.user_id, **data)
        db.session.add(note)
        db.session.flush()
        log_audit_action(ctx, AuditAction.CREATE, "note", note.id, {"case_id": case.id, **data})
    return note


def update_note(ctx: RequestContext, note_id: int, payload: Mapping[str, object]) -> CaseNote:
    note = _note_by_id(ctx, note_id)
    _ensure_author(ctx, note, "Sin permisos para editar esta nota")
    data = parse_note_payload(payload, partial=True)
    changes: dict[str, dict[str, object]] = {}
    with atomic():
        for key, value in data.items():
            before = getattr(note, key)
            if before != value:
                changes[key] = {"from": before, "to": value}
                setattr(note, key, value)
        if changes:
            log_audit_action(ctx, AuditAction.UPDATE, "note", note.id, changes)
    return note


def delete_note(ctx: RequestContext, note_id: int) -> None:
    note = _note_by_id(ctx, note_id)
    _ensure_author(ctx, note, "Sin permisos para eliminar esta nota")
    with atomic():
        log_audit_action(
            ctx,
            AuditAction.DELETE,
            "note",
            note.id,
            {"case_id": note.case_id, "tipo": note.tipo, "contenido": note.contenido},
        )
        db.session.delete(note)


def get_note_by_id(ctx: RequestContext, note_id: int) -> CaseNote:
    note = _note_by_id(ctx, note_id)
    accessible_case(ctx, note.case_id)
    if ctx.role == Role.CLIENTE and not note.es_publica:
        raise PermissionError("Sin permisos para ver esta nota")
    return note


def get_notes(ctx: RequestContext, payload: Mapping[str, object] | None = None) -> Page:
    """Notes visible to the caller, newest first.

    Clients only ever see public notes of their own cases.
    """
    filters = parse_note_filters(payload or {})
    query = CaseNote.query.join(Case, Case.id == CaseNote.case_id).filter(
        CaseNote.org_id == ctx.org_id, *case_scope_criteria(ctx)
    )
    if ctx.role == Role.CLIENTE:
        query = query.filter(CaseNote.tipo == NoteTipo.PUBLICA)
    if filters["case_id"] is not None:
        accessible_case(ctx, filters["case_id"])
        query = query.filter(CaseNote.case_id == filters["case_id"])
    if filters["tipo"] is not None:
        query = query.filter(CaseNote.tipo == filters["tipo"])
    if filters["author_id"] is not None:
        query = query.filter(CaseNote.author_id == filters["author_id"])
    if filters["search"]:
        query = query.filter(CaseNote.contenido.ilike(f"%{filters['search']}%"))

    total = query.count()
    page, limit = filters["page"], filters["limit"]
    items = (
        query.order_by(CaseNote.created_at.desc(), CaseNote.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, total=total, page=page, limit=limit)
