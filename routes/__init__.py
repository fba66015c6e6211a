"""
Flask route blueprints for Print Emporium.

This module contains all route handlers organized by functionality:
- catalog: Services, options, pricing settings, coupons, price quotes
- main: Start an order, wizard state and step navigation
- upload: File upload and removal
- configure: Per-item option changes
- review: Checkout summary
- submit: Order placement from the wizard
- orders: Order API (create, list, cancel, payment, status, stats)
- api: AJAX endpoints (status polling, previews, health)

Each blueprint is registered with the Flask app in create_app().
"""

from .catalog import catalog_bp
from .main import main_bp
from .upload import upload_bp
from .configure import configure_bp
from .review import review_bp
from .submit import submit_bp
from .orders import orders_bp
from .api import api_bp

__all__ = [
    "catalog_bp",
    "main_bp",
    "upload_bp",
    "configure_bp",
    "review_bp",
    "submit_bp",
    "orders_bp",
    "api_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(catalog_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(upload_bp)
    app.register_blueprint(configure_bp)
    app.register_blueprint(review_bp)
    app.register_blueprint(submit_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(api_bp)
