"""
Order wizard entry routes.

Handles:
- /order/<service_id> - Start a new order for a service
- /order - Current wizard state
- /step/<step> - Move between wizard steps

The Flask session stores only the wizard id; the wizard itself lives in
the WizardStore.
"""

from flask import Blueprint, session

from core.exceptions import CustomQuotationError, OrderValidationError
from modules.wizard import WizardStep
from logging_config import get_logger

from .helpers import catalog_snapshot, current_wizard, service


# Module logger
logger = get_logger(__name__)

main_bp = Blueprint("main", __name__)


@main_bp.route("/order/<service_id>", methods=["POST"])
def start_order(service_id: str):
    """
    Start a fresh wizard for a service.

    Any wizard already in the session is discarded along with its uploads.
    """
    chosen = catalog_snapshot().require_service(service_id)
    if chosen.custom_quotation:
        raise CustomQuotationError(chosen.name)

    store = service("WIZARD_STORE")
    store.discard(session.get("wizard_id"))

    wizard = store.create(chosen)
    session["wizard_id"] = wizard.id
    return {"success": True, "wizard": wizard.to_dict()}, 201


@main_bp.route("/order", methods=["GET"])
def order_state():
    return {"success": True, "wizard": current_wizard().to_dict()}


@main_bp.route("/order", methods=["DELETE"])
def abandon_order():
    store = service("WIZARD_STORE")
    discarded = store.discard(session.pop("wizard_id", None))
    return {"success": True, "discarded": discarded}


@main_bp.route("/step/<step>", methods=["POST"])
def go_to_step(step: str):
    """
    Navigate the wizard. Backward moves always succeed; forward moves
    answer 409 while the step guard fails.
    """
    try:
        target = WizardStep(step)
    except ValueError:
        raise OrderValidationError(f"Unknown step: {step}", "step", status_code=404)

    wizard = current_wizard()
    wizard.go_to(target)
    logger.debug(f"Wizard {wizard.id[:8]} now at {target.value}")
    return {"success": True, "wizard": wizard.to_dict()}
