"""
Unit tests for the catalog service (background reload with snapshot swap).
"""

import json

import pytest

from core.exceptions import CatalogNotFoundError, OptionPricingConflictError
from services.catalog_service import CatalogService


# Fixtures

@pytest.fixture
def catalog_service(catalog_file):
    service = CatalogService(catalog_file, refresh_interval_seconds=3600)
    yield service
    service.stop()


# Tests for Loading

class TestCatalogLoad:
    """Synchronous startup load."""

    def test_load_returns_snapshot(self, catalog_service, catalog_file):
        snapshot = catalog_service.load()
        assert snapshot.require_service("doc").base_price_per_page == 2
        assert snapshot.source == str(catalog_file)
        assert catalog_service.get_snapshot() is snapshot

    def test_empty_before_load(self, catalog_service):
        assert catalog_service.get_snapshot().is_empty
        with pytest.raises(CatalogNotFoundError):
            catalog_service.get_snapshot_or_raise()

    def test_missing_file(self, tmp_path):
        with pytest.raises(CatalogNotFoundError, match="not found"):
            CatalogService(tmp_path / "missing.json").load()

    def test_invalid_json(self, catalog_file):
        catalog_file.write_text("{not json", encoding="utf-8")
        with pytest.raises(CatalogNotFoundError, match="unreadable"):
            CatalogService(catalog_file).load()

    def test_invalid_service_data(self, catalog_file, catalog_data):
        catalog_data["services"][0]["name"] = ""
        catalog_file.write_text(json.dumps(catalog_data), encoding="utf-8")
        with pytest.raises(CatalogNotFoundError, match="invalid"):
            CatalogService(catalog_file).load()

    def test_duplicate_option_value_rejected(self, catalog_file, catalog_data):
        doc = next(s for s in catalog_data["services"] if s["id"] == "doc")
        doc["paperSizes"].append({"value": "a4", "pricePerPage": 1})
        catalog_file.write_text(json.dumps(catalog_data), encoding="utf-8")
        with pytest.raises(CatalogNotFoundError, match="invalid"):
            CatalogService(catalog_file).load()

    def test_pricing_conflict_propagates(self, catalog_file, catalog_data):
        catalog_data["services"][0]["printTypes"][1]["pricePerCopy"] = 3
        catalog_file.write_text(json.dumps(catalog_data), encoding="utf-8")
        with pytest.raises(OptionPricingConflictError):
            CatalogService(catalog_file).load()

    def test_sample_catalog_loads(self, sample_catalog_file):
        snapshot = CatalogService(sample_catalog_file).load()
        assert snapshot.require_service("document-printing").base_price_per_page == 2
        assert snapshot.require_service("banners").custom_quotation
        assert snapshot.find_coupon("welcome10") is not None


# Tests for Reloading

class TestCatalogReload:
    """Background refresh behavior."""

    def test_refresh_swaps_snapshot(self, catalog_service, catalog_file, catalog_data):
        first = catalog_service.load()
        catalog_data["services"][0]["basePricePerPage"] = 3
        catalog_file.write_text(json.dumps(catalog_data), encoding="utf-8")

        assert catalog_service.force_refresh()

        second = catalog_service.get_snapshot()
        assert second is not first
        assert second.require_service("doc").base_price_per_page == 3
        # Old snapshot is untouched
        assert first.require_service("doc").base_price_per_page == 2

    def test_failed_refresh_keeps_last_good_snapshot(self, catalog_service, catalog_file):
        good = catalog_service.load()
        catalog_file.write_text("{broken", encoding="utf-8")

        assert not catalog_service.force_refresh()
        assert not catalog_service.force_refresh()
        assert catalog_service.get_snapshot() is good
        assert catalog_service._consecutive_failures == 2

    def test_recovery_resets_failure_count(self, catalog_service, catalog_file, catalog_data):
        catalog_service.load()
        catalog_file.write_text("{broken", encoding="utf-8")
        catalog_service.force_refresh()

        catalog_file.write_text(json.dumps(catalog_data), encoding="utf-8")
        assert catalog_service.force_refresh()
        assert catalog_service._consecutive_failures == 0

    def test_start_and_stop(self, catalog_service):
        catalog_service.start()
        assert catalog_service.is_running
        catalog_service.start()
        catalog_service.stop()
        assert not catalog_service.is_running
        catalog_service.stop()
