from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from lex.core.models import Membership, User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _credentials() -> tuple[str, str]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = request.form
    return (str(data.get("email") or "").strip().lower(), str(data.get("password") or ""))


@auth_bp.post("/login")
def login_post():
    email, password = _credentials()
    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        logger.info("Failed login for %s", email or "<empty>")
        return jsonify({"success": False, "error": "Credenciales inválidas"}), 401
    login_user(user)
    membership = Membership.query.filter_by(user_id=user.id).order_by(Membership.id.asc()).first()
    return jsonify(
        {
            "success": True,
            "user": {"id": user.id, "email": user.email, "nombre": user.full_name},
            "role": membership.role.value if membership else None,
        }
    )


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@auth_bp.get("/whoami")
@login_required
def whoami():
    membership = getattr(g, "membership", None)
    return jsonify(
        {
            "success": True,
            "user": {"id": current_user.id, "email": current_user.email, "nombre": current_user.full_name},
            "org": {"id": g.org.id, "code": g.org.code, "name": g.org.name} if g.org else None,
            "role": membership.role.value if membership else None,
        }
    )
