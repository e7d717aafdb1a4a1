from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///astana.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    APP_ENV = os.getenv("APP_ENV", "production")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    PAGE_SIZE = int(os.getenv("ASTANA_PAGE_SIZE", "10"))
    RECENT_YEARS = int(os.getenv("ASTANA_RECENT_YEARS", "5"))
    FOUNDATION_NAME = os.getenv("ASTANA_FOUNDATION_NAME", "Yayasan Wakaf Makam")
    EXPORT_DIR = os.getenv("ASTANA_EXPORT_DIR", "exports")
