"""
API routes (AJAX endpoints).

Handles:
- /status - Poll page-count progress of the cart's files
- /preview/<token> - Stream an uploaded (or converted) file for preview
- /health - Health check endpoint
"""

from flask import Blueprint, current_app, send_file

from core.exceptions import OrderItemNotFoundError
from logging_config import get_logger

from .helpers import current_wizard, service


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/status", methods=["GET"])
def status():
    """
    AJAX endpoint to check page-count progress.

    Reads finished results from the file service and applies them to the
    wizard. Results of files removed meanwhile are ignored by the wizard.
    """
    wizard = current_wizard()
    file_service = service("FILE_SERVICE")

    for file_id in wizard.pending_file_ids():
        result = file_service.get_result(file_id)
        if result:
            logger.info(f"File {file_id[:8]} finished: {result.status.value}")
            wizard.apply_file_result(result)

    pending = wizard.pending_file_ids()
    return {
        "success": True,
        "pending": len(pending),
        "complete": not pending,
        "wizard": wizard.to_dict(),
    }


@api_bp.route("/preview/<token>", methods=["GET"])
def preview(token: str):
    """Serve a file by its preview token. Released tokens answer 404."""
    path = service("WIZARD_STORE").previews.resolve(token)
    if path is None:
        raise OrderItemNotFoundError(token)
    return send_file(path, conditional=True)


@api_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    # Check database
    database = current_app.config.get("DATABASE")
    if database and database.is_initialized:
        health_status["checks"]["database"] = "initialized"
    else:
        health_status["checks"]["database"] = "not_initialized"
        health_status["status"] = "degraded"

    # Check catalog service
    catalog_service = current_app.config.get("CATALOG_SERVICE")
    if catalog_service:
        snapshot = catalog_service.get_snapshot()
        if snapshot.is_empty:
            health_status["checks"]["catalog"] = "empty"
            health_status["status"] = "degraded"
        else:
            health_status["checks"]["catalog"] = "stale" if snapshot.is_stale else "fresh"
            health_status["checks"]["catalog_age_seconds"] = round(snapshot.age_seconds, 1)
            health_status["checks"]["catalog_thread"] = (
                "running" if catalog_service.is_running else "stopped"
            )
    else:
        health_status["checks"]["catalog"] = "unavailable"
        health_status["status"] = "degraded"

    # Check file service and wizards
    health_status["checks"]["file_service"] = (
        "available" if current_app.config.get("FILE_SERVICE") else "unavailable"
    )
    wizard_store = current_app.config.get("WIZARD_STORE")
    if wizard_store is not None:
        health_status["checks"]["active_wizards"] = len(wizard_store)
        health_status["checks"]["active_previews"] = wizard_store.previews.active_count()

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code
