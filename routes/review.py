"""
Order review route.

Moves the wizard to the review step and returns the cart with its
delivery, packing and coupon amounts.
"""

from flask import Blueprint, request

from modules.wizard import WizardStep

from .helpers import checkout_for, current_wizard


review_bp = Blueprint("review", __name__)


@review_bp.route("/review", methods=["GET"])
def review():
    """
    Order summary before submission.

    Query:
        coupon: Optional coupon code to preview

    Answers 409 while any item still lacks a page count or a required option.
    """
    wizard = current_wizard()
    wizard.go_to(WizardStep.REVIEW)

    summary = checkout_for(wizard.subtotal, request.args.get("coupon") or None)
    return {"success": True, "wizard": wizard.to_dict(), "summary": summary}
