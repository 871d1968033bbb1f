"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
upload folder and workflow limits. It uses environment variables for sensitive information and defaults for development.
In production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
import tempfile
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'wms.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection for session-authenticated mutations (X-CSRFToken header)
    WTF_CSRF_ENABLED = True

    # App UI name
    APP_NAME = "Heritage Monument Restoration Portal"

    # Uploads (photos, bills, inspection reports)
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", str(BASE_DIR / "uploads"))
    MAX_CONTENT_LENGTH = 50 * 1024 * 1024
    ALLOWED_UPLOAD_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif", "pdf", "doc", "docx", "xls", "xlsx"}

    # Demo OTP accepted for every mobile login
    DEMO_OTP = os.environ.get("DEMO_OTP", "123456")

    # Dashboard limits
    RECENT_ACTIVITY_LIMIT = 7
    WORKER_ACTIVITY_LIMIT = 15
    UPCOMING_ALERT_LIMIT = 5

    # Compare-and-swap retries for document writes
    DOCUMENT_WRITE_RETRIES = 3

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_JSON = os.environ.get("LOG_JSON", "0") == "1"


class TestConfig(Config):
    """Configuration used by the test-suite."""

    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    UPLOAD_FOLDER = os.path.join(tempfile.gettempdir(), "wms-test-uploads")
    LOG_LEVEL = "DEBUG"
