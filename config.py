"""
Application configuration.

Settings come from environment variables with development defaults.
In production set SECRET_KEY, DATABASE_URL and the XERO_* credentials.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production (also signs the session-token JWT)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'ampere.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection for forms and JSON mutations (X-CSRFToken header)
    WTF_CSRF_ENABLED = True

    APP_NAME = "Ampere Business Management"
    COMPANY_NAME = os.environ.get("COMPANY_NAME", "Ampere Engineering")

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    LOG_FILE = os.environ.get("LOG_FILE")

    # Fallback JWT session cookie
    SESSION_TOKEN_COOKIE = "session-token"
    SESSION_TOKEN_TTL_HOURS = int(os.environ.get("SESSION_TOKEN_TTL_HOURS", "24"))
    SESSION_TOKEN_ALGORITHM = "HS256"

    # Service documents are stored on the NAS; only paths are recorded
    NAS_BASE_PATH = os.environ.get("NAS_BASE_PATH", "/NAS/Ampere")

    # Xero accounting integration
    XERO_CLIENT_ID = os.environ.get("XERO_CLIENT_ID", "")
    XERO_CLIENT_SECRET = os.environ.get("XERO_CLIENT_SECRET", "")
    XERO_REDIRECT_URI = os.environ.get(
        "XERO_REDIRECT_URI", "http://localhost:5000/api/xero/callback"
    )
    XERO_SCOPES = [
        "openid",
        "profile",
        "email",
        "offline_access",
        "accounting.transactions",
        "accounting.contacts",
        "accounting.settings",
    ]
    XERO_HTTP_TIMEOUT = 30


class TestingConfig(Config):
    """In-memory database, CSRF off."""

    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = "WARNING"
    XERO_CLIENT_ID = "test-client-id"
    XERO_CLIENT_SECRET = "test-client-secret"
