from flask import Blueprint

cases_bp = Blueprint("cases", __name__, url_prefix="/api")

from lex.cases import routes  # noqa: E402,F401
