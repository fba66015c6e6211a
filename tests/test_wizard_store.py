"""
Unit tests for the in-process wizard store.
"""

from unittest.mock import Mock

import pytest

from models.file_result import FileStatus
from models.order import UploadedFile
from services.wizard_store import WizardStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# Fixtures

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def on_discard():
    return Mock()


@pytest.fixture
def store(clock, on_discard):
    return WizardStore(expiry_seconds=60, on_discard=on_discard, clock=clock)


def _add_file(wizard, file_id="f1"):
    return wizard.add_file(UploadedFile(
        id=file_id, filename="a.pdf", stored_path=f"/uploads/{file_id}.pdf", status=FileStatus.UPLOADING,
    ))


# Tests for Wizard Store

class TestWizardStore:
    """Lookup, expiry and cleanup of wizards."""

    def test_create_and_get(self, store, doc_service):
        wizard = store.create(doc_service)
        assert store.get(wizard.id) is wizard
        assert len(store) == 1

    def test_unknown_or_empty_id(self, store):
        assert store.get("missing") is None
        assert store.get(None) is None

    def test_idle_wizard_expires(self, store, clock, doc_service, on_discard):
        wizard = store.create(doc_service)
        _add_file(wizard)

        clock.now += 61
        assert store.get(wizard.id) is None
        assert len(store) == 0
        assert store.previews.active_count() == 0
        files = on_discard.call_args[0][0]
        assert [f.id for f in files] == ["f1"]

    def test_access_keeps_wizard_alive(self, store, clock, doc_service):
        wizard = store.create(doc_service)
        clock.now += 50
        assert store.get(wizard.id) is wizard
        clock.now += 50
        assert store.get(wizard.id) is wizard

    def test_discard_deletes_files(self, store, doc_service, on_discard):
        wizard = store.create(doc_service)
        _add_file(wizard)
        assert store.discard(wizard.id)
        on_discard.assert_called_once()
        assert not store.discard(wizard.id)

    def test_discard_after_submit_keeps_files(self, store, doc_service, on_discard):
        wizard = store.create(doc_service)
        _add_file(wizard)
        store.discard(wizard.id, keep_files=True)
        on_discard.assert_not_called()
        assert store.previews.active_count() == 0

    def test_empty_wizard_skips_callback(self, store, doc_service, on_discard):
        wizard = store.create(doc_service)
        store.discard(wizard.id)
        on_discard.assert_not_called()
