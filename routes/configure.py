"""
Item configuration route.

Clients send camelCase option names (printType, bindingOption, copies, ...);
the wizard validates the values against the item's service and reprices.
"""

from flask import Blueprint

from core.exceptions import InvalidOptionError
from models.catalog import ALL_CATEGORIES
from .helpers import current_wizard, json_body


configure_bp = Blueprint("configure", __name__)

FIELD_NAMES = {c.name: c.config_field for c in ALL_CATEGORIES}
FIELD_NAMES["copies"] = "copies"


@configure_bp.route("/configure/<item_id>", methods=["POST"])
def configure_item(item_id: str):
    """
    Update one item's configuration.

    Returns the repriced item and the wizard totals.
    """
    changes = {}
    for key, value in json_body().items():
        if key not in FIELD_NAMES:
            raise InvalidOptionError("field", key, sorted(FIELD_NAMES))
        changes[FIELD_NAMES[key]] = value

    wizard = current_wizard()
    item = wizard.update_configuration(item_id, **changes)
    return {
        "success": True,
        "item": item.to_dict(),
        "subtotal": wizard.subtotal,
        "total": wizard.total,
    }
