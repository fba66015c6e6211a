"""
Shared fixtures for the Print Emporium test suite.
"""

import json
import shutil
from datetime import datetime, timezone
from pathlib import Path

import pytest

from core.database import DatabaseManager
from models.catalog import CatalogSnapshot, Service, ServiceConfiguration


SAMPLE_CATALOG = Path(__file__).parent.parent / "data" / "catalog.json"

FIXED_NOW = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)


def _document_service_data():
    return {
        "id": "doc",
        "name": "Document Printing",
        "basePricePerPage": 2,
        "printTypes": [
            {"value": "black-white"},
            {"value": "color", "pricePerPage": 5},
        ],
        "paperSizes": [
            {"value": "a4"},
            {"value": "a3", "pricePerPage": 3},
        ],
        "paperTypes": [
            {"value": "normal"},
            {"value": "glossy", "pricePerCopy": 10},
        ],
        "gsmOptions": [
            {"value": "70"},
        ],
        "printSides": [
            {"value": "single-side"},
            {"value": "double-side"},
        ],
        "bindingOptions": [
            {"value": "none"},
            {"value": "staple", "pricePerCopy": 5, "minPages": 2},
            {"value": "spiral", "pricePerCopy": 50, "minPages": 20},
            {"value": "hard-bound", "pricePerCopy": 150, "minPages": 50},
        ],
    }


# Fixtures

@pytest.fixture
def service_data():
    """Raw catalog JSON for a document printing service."""
    return _document_service_data()


@pytest.fixture
def make_service():
    """Build a Service from the document service JSON with top-level overrides."""
    def _make(**overrides):
        data = _document_service_data()
        data.update(overrides)
        return Service.from_dict(data)
    return _make


@pytest.fixture
def doc_service(make_service):
    return make_service()


@pytest.fixture
def color_spiral_config():
    """Color print with spiral binding, 3 copies."""
    return ServiceConfiguration(
        print_type="color",
        paper_size="a4",
        paper_type="normal",
        gsm="70",
        print_side="single-side",
        binding_option="spiral",
        copies=3,
    )


@pytest.fixture
def catalog_data(service_data):
    return {
        "services": [
            service_data,
            {"id": "quote", "name": "Banners", "customQuotation": True},
        ],
        "options": [
            {"id": "o1", "category": "printType", "label": "Color", "value": "color", "pricePerPage": 5},
            {"id": "o2", "category": "bindingOption", "label": "Spiral", "value": "spiral",
             "pricePerCopy": 50, "minPages": 20},
        ],
        "pricingSettings": {
            "deliveryThresholds": [
                {"minAmount": 0, "charge": 50},
                {"minAmount": 200, "charge": 30},
                {"minAmount": 500, "charge": 0},
            ],
            "packingThresholds": [
                {"minAmount": 0, "charge": 20},
                {"minAmount": 1000, "charge": 0},
            ],
        },
        "coupons": [
            {"code": "SAVE10", "type": "percentage", "value": 10, "maxDiscountAmount": 100},
            {"code": "FLAT50", "type": "fixed", "value": 50, "minOrderAmount": 500},
            {"code": "LIMITED", "type": "fixed", "value": 20, "usageLimit": 1},
        ],
    }


@pytest.fixture
def snapshot(catalog_data):
    return CatalogSnapshot.from_dict(catalog_data, source="test")


@pytest.fixture
def catalog_file(tmp_path, catalog_data):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(catalog_data), encoding="utf-8")
    return path


@pytest.fixture
def sample_catalog_file(tmp_path):
    """Copy of the catalog shipped in data/."""
    path = tmp_path / "sample_catalog.json"
    shutil.copy(SAMPLE_CATALOG, path)
    return path


@pytest.fixture
def database():
    """Initialized in-memory order database."""
    manager = DatabaseManager("sqlite://")
    manager.initialize()
    yield manager
    manager.cleanup()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
