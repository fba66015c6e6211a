"""
File upload routes.

Handles upload, removal, and the service used for new uploads.
Each stored file gets its own page-count thread; the client polls /status.
"""

import uuid
from pathlib import Path

from flask import Blueprint, current_app, request
from werkzeug.utils import secure_filename

from core.exceptions import (
    CustomQuotationError,
    OrderItemNotFoundError,
    OrderValidationError,
    UnsupportedFileTypeError,
)
from models.file_result import FileStatus
from models.order import UploadedFile
from modules.page_counter import ALLOWED_EXTENSIONS, is_allowed
from logging_config import get_logger

from .helpers import _sanitize_text, catalog_snapshot, current_wizard, json_body, service


# Module logger
logger = get_logger(__name__)

upload_bp = Blueprint("upload", __name__)

# Constants
MAX_FILENAME_LENGTH = 255


@upload_bp.route("/upload", methods=["POST"])
def upload():
    """
    Add uploaded files to the cart.

    Form fields:
        files: One or more files (multipart)
        serviceId: Optional service for these files (defaults to the wizard's)

    Every file is checked before any is stored, so a rejected batch leaves
    the cart unchanged.
    """
    wizard = current_wizard()

    service_id = request.form.get("serviceId")
    chosen = catalog_snapshot().require_service(service_id) if service_id else wizard.service
    if chosen.custom_quotation:
        raise CustomQuotationError(chosen.name)

    files = [f for f in request.files.getlist("files") if f and f.filename]
    if not files:
        raise OrderValidationError("Please choose at least one file to upload.", "files")

    for storage in files:
        if len(storage.filename) > MAX_FILENAME_LENGTH:
            raise OrderValidationError(
                f"Filename too long. Maximum {MAX_FILENAME_LENGTH} characters.", "files"
            )
        if not is_allowed(storage.filename):
            raise UnsupportedFileTypeError(storage.filename, sorted(ALLOWED_EXTENSIONS))

    upload_folder = Path(current_app.config["UPLOAD_FOLDER"])
    file_service = service("FILE_SERVICE")
    added = []

    for storage in files:
        file_id = uuid.uuid4().hex
        display_name = _sanitize_text(storage.filename, MAX_FILENAME_LENGTH)
        safe_name = secure_filename(storage.filename) or f"upload{Path(storage.filename).suffix.lower()}"
        stored_path = upload_folder / f"{file_id}_{safe_name}"

        logger.info(f"Saving uploaded file: {stored_path.name}")
        storage.save(stored_path)

        uploaded = UploadedFile(
            id=file_id,
            filename=display_name or safe_name,
            stored_path=str(stored_path),
            size=stored_path.stat().st_size,
            content_type=storage.mimetype or "",
            status=FileStatus.UPLOADING,
        )
        item = wizard.add_file(uploaded, chosen)
        file_service.submit(file_id, stored_path)
        added.append(item.to_dict())

    return {"success": True, "items": added, "wizard": wizard.to_dict()}, 201


@upload_bp.route("/upload/<file_id>", methods=["DELETE"])
def remove_upload(file_id: str):
    """Remove a file from the cart. A page count still running is discarded."""
    wizard = current_wizard()
    item = wizard.find_by_file(file_id)
    if item is None:
        raise OrderItemNotFoundError(file_id)

    wizard.remove_file(file_id)
    service("FILE_SERVICE").discard_uploads([item.file])
    return {"success": True, "wizard": wizard.to_dict()}


@upload_bp.route("/upload/service", methods=["POST"])
def select_service():
    """Use another service for the next uploads. Items already in the cart keep theirs."""
    wizard = current_wizard()
    chosen = catalog_snapshot().require_service(str(json_body().get("serviceId") or ""))
    if chosen.custom_quotation:
        raise CustomQuotationError(chosen.name)

    wizard.select_service(chosen)
    return {"success": True, "wizard": wizard.to_dict()}
