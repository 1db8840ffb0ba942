from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///lex.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_CLIENT_PASSWORD = os.getenv("DEFAULT_CLIENT_PASSWORD")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
