"""
Print Emporium - Flask Application Entry Point.

This is a slim app factory that:
1. Opens the order database (fail-fast)
2. Loads the service catalog and starts its reload thread (fail-fast)
3. Creates the file processing service (thread-per-file)
4. Creates the wizard store and order service
5. Registers route blueprints and JSON error handlers

ARCHITECTURE:
    Main Thread
    ├── Database initialization (SQLAlchemy engine)
    ├── Flask request handling
    └── Cleanup on shutdown

    Catalog Thread (background)
    └── Periodic reload of the catalog JSON, atomic snapshot swap

    File Threads (one per upload)
    └── Page count, converting documents to PDF first

Request threads never block on page counting: they poll results and apply
them to the customer's wizard.
"""

from __future__ import annotations

import atexit
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from flask import Flask
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from logging_config import setup_logging, get_logger
from core.database import DatabaseManager
from core.exceptions import (
    CatalogNotFoundError,
    DatabaseUnavailableError,
    OptionPricingConflictError,
    PrintEmporiumError,
)
from modules.page_counter import PageCounter
from modules.previews import PreviewRegistry
from services import CatalogService, FileProcessingService, OrderService, WizardStore
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


ENV_FILE = Path(__file__).parent / ".env"


def create_app(
    config_object: str = "config.Config",
    overrides: Optional[Dict[str, Any]] = None,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    FAIL-FAST: If the database or the catalog cannot be opened, the app
    will not start.

    Args:
        config_object: Import path of the config class
        overrides: Config values applied after the config class (tests)

    Returns:
        Configured Flask application

    Raises:
        DatabaseUnavailableError: If the order database cannot be opened
        CatalogNotFoundError: If the catalog file is missing or invalid
        OptionPricingConflictError: If a catalog option sets both pricing modes
    """
    # .env values win over the shell environment
    load_dotenv(ENV_FILE if ENV_FILE.exists() else None, override=True)

    app = Flask(__name__)
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    app_logger = setup_logging(
        log_level=log_level,
        enable_file_logging=app.config.get("ENVIRONMENT") == "production",
    )
    # Flask's own messages go through the same handlers
    app.logger.handlers = app_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting Print Emporium in {app.config.get('ENVIRONMENT')} mode")

    # Ensure upload folder exists
    upload_folder = Path(app.config["UPLOAD_FOLDER"])
    upload_folder.mkdir(parents=True, exist_ok=True)

    # =========================================================================
    # CORE INITIALIZATION (FAIL-FAST)
    # =========================================================================

    database = DatabaseManager(app.config["DATABASE_URL"])
    try:
        database.initialize()
    except DatabaseUnavailableError as e:
        logger.error(f"FATAL: Cannot start application - {e}")
        raise
    app.config["DATABASE"] = database

    catalog_service = CatalogService(
        app.config["CATALOG_PATH"],
        refresh_interval_seconds=app.config["CATALOG_REFRESH_SECONDS"],
    )
    try:
        catalog_service.load()
    except (CatalogNotFoundError, OptionPricingConflictError) as e:
        logger.error(f"FATAL: Cannot start application - {e}")
        database.cleanup()
        raise

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    catalog_service.start()
    app.config["CATALOG_SERVICE"] = catalog_service
    logger.info("Catalog service started")

    page_counter = PageCounter(
        app.config["LIBREOFFICE_PATH"],
        timeout_seconds=app.config["CONVERSION_TIMEOUT_SECONDS"],
    )
    file_service = FileProcessingService(page_counter)
    app.config["FILE_SERVICE"] = file_service

    app.config["WIZARD_STORE"] = WizardStore(
        previews=PreviewRegistry(),
        on_discard=file_service.discard_uploads,
    )

    app.config["ORDER_SERVICE"] = OrderService(
        database,
        prefix=app.config["ORDER_NUMBER_PREFIX"],
        max_attempts=app.config["ORDER_NUMBER_MAX_ATTEMPTS"],
        price_validation=app.config["PRICE_VALIDATION_ENABLED"],
        tolerance=app.config["PRICE_TOLERANCE"],
        estimated_delivery_days=app.config["ESTIMATED_DELIVERY_DAYS"],
    )
    logger.info("Order service initialized")

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    stopped = False

    def cleanup():
        """Cleanup on application shutdown. Safe to call more than once."""
        nonlocal stopped
        if stopped:
            return
        stopped = True
        atexit.unregister(cleanup)
        logger.info("Shutting down...")

        # Stop catalog reloads
        catalog_service.stop()

        # Wait for page-count threads
        file_service.shutdown()

        # Close database connections
        database.cleanup()

        logger.info("Shutdown complete")

    atexit.register(cleanup)
    app.extensions["print_emporium_cleanup"] = cleanup

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(PrintEmporiumError)
    def handle_app_error(e):
        if e.status_code >= 500:
            logger.error(f"{type(e).__name__}: {e}")
        else:
            logger.info(f"Request rejected ({e.status_code}): {e.message}")
        return e.to_dict(), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_file_too_large(e):
        max_mb = app.config.get("MAX_CONTENT_LENGTH", 16 * 1024 * 1024) / (1024 * 1024)
        return {
            "success": False,
            "error": f"File too large. Maximum upload size is {max_mb:.0f} MB.",
            "details": {},
        }, 413

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return {"success": False, "error": e.description, "details": {}}, e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return {
            "success": False,
            "error": "An unexpected error occurred. Please try again.",
            "details": {},
        }, 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode)
