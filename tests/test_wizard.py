"""
Unit tests for the order wizard and preview registry.
"""

import itertools

import pytest

from core.exceptions import (
    CustomQuotationError,
    InvalidOptionError,
    OrderItemNotFoundError,
    StepGuardError,
)
from models.file_result import FileStatus, PageCountResult
from models.order import UploadedFile
from modules.previews import PreviewRegistry
from modules.wizard import OrderWizard, WizardStep


# Fixtures

@pytest.fixture
def previews():
    return PreviewRegistry()


@pytest.fixture
def wizard(doc_service, previews):
    counter = itertools.count(1)
    return OrderWizard(doc_service, previews=previews, id_factory=lambda: f"id-{next(counter)}")


def _upload(file_id="file-1", name="thesis.pdf", path=None):
    return UploadedFile(
        id=file_id,
        filename=name,
        stored_path=path or f"/uploads/{file_id}_{name}",
        size=2048,
        content_type="application/pdf",
        status=FileStatus.UPLOADING,
    )


# Tests for Preview Registry

class TestPreviewRegistry:
    """Token lifecycle."""

    def test_create_and_resolve(self, previews):
        token = previews.create("/uploads/a.pdf")
        assert previews.resolve(token) == "/uploads/a.pdf"
        assert previews.active_count() == 1

    def test_release_is_one_shot(self, previews):
        token = previews.create("/uploads/a.pdf")
        assert previews.release(token)
        assert not previews.release(token)
        assert previews.resolve(token) is None
        assert previews.active_count() == 0

    def test_release_of_none_is_noop(self, previews):
        assert not previews.release(None)


# Tests for Items

class TestWizardItems:
    """Adding, configuring and removing files."""

    def test_add_file_starts_processing_with_defaults(self, wizard, previews):
        item = wizard.add_file(_upload())
        assert item.file.status == FileStatus.PROCESSING
        assert item.file.preview_token is not None
        assert item.configuration.print_type == "black-white"
        assert item.configuration.binding_option == "none"
        assert item.pricing.subtotal == 0
        assert previews.active_count() == 1
        assert wizard.pending_file_ids() == ["file-1"]

    def test_custom_quotation_service_rejected(self, wizard, make_service):
        quotation = make_service(id="quote", name="Banners", customQuotation=True)
        with pytest.raises(CustomQuotationError):
            wizard.add_file(_upload(), quotation)
        assert wizard.items == []

    def test_ready_result_prices_item(self, wizard):
        item = wizard.add_file(_upload())
        wizard.update_configuration(item.id, print_type="color", copies=3)

        updated = wizard.apply_file_result(PageCountResult.create_ready("file-1", 25))

        assert updated.file.status == FileStatus.READY
        assert updated.file.page_count == 25
        assert updated.pricing.subtotal == 7 * 25 * 3
        assert wizard.pending_file_ids() == []

    def test_failed_result_marks_file(self, wizard):
        wizard.add_file(_upload())
        item = wizard.apply_file_result(PageCountResult.create_failed("file-1", "Corrupt PDF"))
        assert item.file.status == FileStatus.ERROR
        assert item.file.error == "Corrupt PDF"
        assert not wizard.can_proceed_to_configure()

    def test_result_for_removed_file_ignored(self, wizard, previews):
        wizard.add_file(_upload())
        assert wizard.remove_file("file-1")
        assert wizard.apply_file_result(PageCountResult.create_ready("file-1", 10)) is None
        assert wizard.items == []
        assert previews.active_count() == 0

    def test_converted_pdf_replaces_preview(self, wizard, previews):
        item = wizard.add_file(_upload(name="report.docx", path="/uploads/report.docx"))
        old_token = item.file.preview_token

        wizard.apply_file_result(PageCountResult.create_ready("file-1", 4, "/uploads/report.pdf"))

        assert item.file.stored_path == "/uploads/report.pdf"
        assert item.file.original_path == "/uploads/report.docx"
        assert previews.resolve(old_token) is None
        assert previews.resolve(item.file.preview_token) == "/uploads/report.pdf"
        assert previews.active_count() == 1

    def test_binding_repaired_when_pages_arrive(self, wizard):
        item = wizard.add_file(_upload())
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 25))
        wizard.update_configuration(item.id, binding_option="spiral")

        # Same file re-counted with fewer pages
        item.file.status = FileStatus.PROCESSING
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 10))

        assert item.configuration.binding_option == "staple"

    def test_update_rejects_unknown_value(self, wizard):
        item = wizard.add_file(_upload())
        with pytest.raises(InvalidOptionError):
            wizard.update_configuration(item.id, print_type="holographic")

    def test_update_rejects_unknown_field(self, wizard):
        item = wizard.add_file(_upload())
        with pytest.raises(InvalidOptionError):
            wizard.update_configuration(item.id, ink="blue")

    def test_binding_above_page_count_rejected(self, wizard):
        item = wizard.add_file(_upload())
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 10))
        with pytest.raises(InvalidOptionError):
            wizard.update_configuration(item.id, binding_option="spiral")
        wizard.update_configuration(item.id, binding_option="none")

    def test_copies_clamped_to_one(self, wizard):
        item = wizard.add_file(_upload())
        assert wizard.update_configuration(item.id, copies=0).configuration.copies == 1
        assert wizard.update_configuration(item.id, copies="4").configuration.copies == 4
        with pytest.raises(InvalidOptionError):
            wizard.update_configuration(item.id, copies="many")

    def test_unknown_item(self, wizard):
        with pytest.raises(OrderItemNotFoundError):
            wizard.update_configuration("missing", copies=2)

    def test_mixed_services_keep_their_own_pricing(self, wizard, make_service):
        cards = make_service(id="cards", name="Cards", basePricePerPage=1, bindingOptions=[])
        doc_item = wizard.add_file(_upload("f1"))
        card_item = wizard.add_file(_upload("f2", "cards.pdf"), cards)

        wizard.apply_file_result(PageCountResult.create_ready("f1", 10))
        wizard.apply_file_result(PageCountResult.create_ready("f2", 10))

        assert doc_item.pricing.subtotal == 20
        assert card_item.pricing.subtotal == 10
        assert card_item.configuration.binding_option == ""
        assert wizard.subtotal == 30
        assert wizard.total == 30

    def test_selected_service_used_for_new_uploads(self, wizard, make_service):
        cards = make_service(id="cards", name="Cards", basePricePerPage=1, bindingOptions=[])
        first = wizard.add_file(_upload("f1"))
        wizard.select_service(cards)
        second = wizard.add_file(_upload("f2"))
        assert first.service_id == "doc"
        assert second.service_id == "cards"

    def test_discard_releases_everything(self, wizard, previews):
        wizard.add_file(_upload("f1"))
        wizard.add_file(_upload("f2"))
        files = wizard.discard()
        assert [f.id for f in files] == ["f1", "f2"]
        assert wizard.items == []
        assert previews.active_count() == 0
        assert wizard.step == WizardStep.UPLOAD

    def test_freeze_items(self, wizard):
        item = wizard.add_file(_upload())
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 25))
        frozen = wizard.freeze_items()[0]
        assert frozen.service_id == "doc"
        assert frozen.file_name == "thesis.pdf"
        assert frozen.page_count == 25
        assert frozen.pricing == item.pricing


# Tests for Navigation

class TestWizardNavigation:
    """Step guards."""

    def test_cannot_configure_without_files(self, wizard):
        with pytest.raises(StepGuardError):
            wizard.go_to(WizardStep.CONFIGURE)

    def test_cannot_configure_while_processing(self, wizard):
        wizard.add_file(_upload())
        with pytest.raises(StepGuardError):
            wizard.go_to(WizardStep.CONFIGURE)

    def test_forward_when_ready(self, wizard):
        wizard.add_file(_upload())
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 3))
        assert wizard.go_to(WizardStep.CONFIGURE) == WizardStep.CONFIGURE
        assert wizard.go_to(WizardStep.REVIEW) == WizardStep.REVIEW

    def test_review_requires_print_type(self, wizard):
        item = wizard.add_file(_upload())
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 3))
        wizard.update_configuration(item.id, print_type="")
        with pytest.raises(StepGuardError):
            wizard.go_to(WizardStep.REVIEW)

    def test_review_cannot_skip_configure_guard(self, wizard):
        wizard.add_file(_upload())
        with pytest.raises(StepGuardError):
            wizard.go_to(WizardStep.REVIEW)

    def test_going_back_always_allowed(self, wizard):
        wizard.add_file(_upload())
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 3))
        wizard.go_to(WizardStep.REVIEW)
        wizard.add_file(_upload("file-2"))
        assert wizard.go_to(WizardStep.UPLOAD) == WizardStep.UPLOAD

    def test_to_dict_reports_binding_message(self, wizard, make_service):
        spiral_only = make_service(bindingOptions=[{"value": "spiral", "pricePerCopy": 50, "minPages": 20}])
        wizard.add_file(_upload(), spiral_only)
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 5))
        data = wizard.to_dict()
        assert data["items"][0]["availableBindingOptions"] == []
        assert data["items"][0]["bindingMessage"] == "No binding options available for 5 pages."
        assert data["canProceedToConfigure"] is True

    def test_new_upload_at_review_returns_to_upload(self, wizard):
        wizard.add_file(_upload())
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 3))
        wizard.go_to(WizardStep.REVIEW)

        wizard.add_file(_upload("file-2"))

        assert wizard.step == WizardStep.UPLOAD
        with pytest.raises(StepGuardError):
            wizard.ensure_ready_for_submit()

    def test_failed_file_at_review_returns_to_upload(self, wizard):
        wizard.add_file(_upload())
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 3))
        wizard.go_to(WizardStep.REVIEW)

        wizard.add_file(_upload("file-2"))
        wizard.apply_file_result(PageCountResult.create_failed("file-2", "PDF has no pages"))

        assert wizard.step == WizardStep.UPLOAD
        wizard.remove_file("file-2")
        assert wizard.step == WizardStep.UPLOAD
        wizard.ensure_ready_for_submit()

    def test_cleared_option_at_review_returns_to_configure(self, wizard):
        item = wizard.add_file(_upload())
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 3))
        wizard.go_to(WizardStep.REVIEW)

        wizard.update_configuration(item.id, paper_size="")

        assert wizard.step == WizardStep.CONFIGURE
        with pytest.raises(StepGuardError) as exc_info:
            wizard.ensure_ready_for_submit()
        assert exc_info.value.target_step == "submit"

        wizard.update_configuration(item.id, paper_size="a4")
        assert wizard.step == WizardStep.CONFIGURE
        wizard.ensure_ready_for_submit()

    def test_empty_cart_is_not_ready_for_submit(self, wizard):
        with pytest.raises(StepGuardError):
            wizard.ensure_ready_for_submit()

    def test_binding_default_picked_at_real_page_count(self, wizard, make_service):
        spiral_only = make_service(bindingOptions=[{"value": "spiral", "pricePerCopy": 50, "minPages": 20}])
        item = wizard.add_file(_upload(), spiral_only)
        assert item.configuration.binding_option == ""

        wizard.apply_file_result(PageCountResult.create_ready("file-1", 25))

        assert item.configuration.binding_option == "spiral"
        assert item.pricing.binding_price == 50
        assert item.pricing.subtotal == 2 * 25 + 50

    def test_explicit_no_binding_kept_when_pages_arrive(self, wizard):
        item = wizard.add_file(_upload())
        wizard.update_configuration(item.id, binding_option="none")
        wizard.apply_file_result(PageCountResult.create_ready("file-1", 25))
        assert item.configuration.binding_option == "none"
