"""
Configuration for Print Emporium.

The catalog JSON and the order database are required.
Application will fail-fast if either cannot be opened.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    UPLOAD_FOLDER = os.environ.get(
        "UPLOAD_FOLDER", str(BASE_DIR / "static" / "uploads")
    )
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB uploads
    SESSION_COOKIE_NAME = "print_emporium_session"
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # Order database (SQLAlchemy URL)
    DATABASE_URL = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'print_emporium.db'}"
    )

    # Service/option catalog, reloaded by the catalog thread
    CATALOG_PATH = os.environ.get(
        "CATALOG_PATH", str(BASE_DIR / "data" / "catalog.json")
    )
    CATALOG_REFRESH_SECONDS = float(
        os.environ.get("CATALOG_REFRESH_SECONDS", "30")
    )

    # ==========================================================================
    # Document conversion
    # ==========================================================================
    # Non-PDF documents (docx, odt, rtf, txt) are converted with LibreOffice
    # before page counting. If the binary is missing those uploads fail with
    # a per-file error; PDFs and images are unaffected.
    # ==========================================================================
    LIBREOFFICE_PATH = os.environ.get("LIBREOFFICE_PATH", "soffice")
    CONVERSION_TIMEOUT_SECONDS = float(
        os.environ.get("CONVERSION_TIMEOUT_SECONDS", "60")
    )

    # ==========================================================================
    # Orders
    # ==========================================================================
    # Order numbers: PREFIX + YYMMDD + 4-digit daily sequence (PE2410170001)
    #
    # PRICE_VALIDATION_ENABLED: recompute each submitted item against the live
    #   catalog and reject the order when it differs by more than
    #   PRICE_TOLERANCE (currency units)
    # ==========================================================================
    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "PE")
    ORDER_NUMBER_MAX_ATTEMPTS = int(
        os.environ.get("ORDER_NUMBER_MAX_ATTEMPTS", "3")
    )
    PRICE_VALIDATION_ENABLED = os.environ.get("PRICE_VALIDATION_ENABLED", "1") == "1"
    PRICE_TOLERANCE = float(os.environ.get("PRICE_TOLERANCE", "0.01"))
    ESTIMATED_DELIVERY_DAYS = int(os.environ.get("ESTIMATED_DELIVERY_DAYS", "5"))


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hour


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    DATABASE_URL = "sqlite://"
    CATALOG_REFRESH_SECONDS = 3600.0
