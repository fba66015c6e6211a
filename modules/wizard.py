"""
Order wizard state machine.

The wizard holds one customer's cart while they move through
upload -> configure -> review. It owns the order items, keeps every
item's pricing in step with its configuration and page count, and
releases each item's preview token when the item goes away.

Thread Safety:
    One wizard is shared by the requests of one browser session (status
    polls run alongside configuration posts), so every public method runs
    under the wizard's own lock.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.exceptions import (
    CustomQuotationError,
    InvalidOptionError,
    OrderItemNotFoundError,
    StepGuardError,
)
from logging_config import get_logger
from models.catalog import ALL_CATEGORIES, Service, ServiceConfiguration
from models.file_result import FileStatus, PageCountResult
from models.order import FrozenOrderItem, OrderItem, UploadedFile
from modules.previews import PreviewRegistry
from modules.pricing import (
    allowed_values,
    binding_choices,
    calculate_item_pricing,
    calculate_order_totals,
    repair_binding,
)


logger = get_logger(__name__)


class WizardStep(Enum):
    UPLOAD = "upload"
    CONFIGURE = "configure"
    REVIEW = "review"

    @property
    def position(self) -> int:
        return list(WizardStep).index(self)


CONFIG_FIELDS = {c.config_field: c for c in ALL_CATEGORIES}


def _new_id() -> str:
    return uuid.uuid4().hex


class OrderWizard:
    """
    Server-side order wizard for one customer.

    Attributes:
        id: Wizard id (stored in the Flask session)
        service: Service used for new uploads
        step: Current WizardStep
    """

    def __init__(
        self,
        service: Service,
        previews: Optional[PreviewRegistry] = None,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._id_factory = id_factory
        self._previews = previews or PreviewRegistry()
        self._items: List[OrderItem] = []
        self._lock = threading.RLock()

        self.id = id_factory()
        self.service = service
        self.step = WizardStep.UPLOAD

    # =========================================================================
    # ITEMS
    # =========================================================================

    @property
    def items(self) -> List[OrderItem]:
        with self._lock:
            return list(self._items)

    def get_item(self, item_id: str) -> OrderItem:
        """
        Raises:
            OrderItemNotFoundError: If no item has this id
        """
        with self._lock:
            for item in self._items:
                if item.id == item_id:
                    return item
        raise OrderItemNotFoundError(item_id)

    def find_by_file(self, file_id: str) -> Optional[OrderItem]:
        with self._lock:
            for item in self._items:
                if item.file.id == file_id:
                    return item
        return None

    def pending_file_ids(self) -> List[str]:
        """Ids of files still waiting for their page count."""
        with self._lock:
            return [
                item.file.id for item in self._items
                if item.file.status in (FileStatus.UPLOADING, FileStatus.PROCESSING)
            ]

    def select_service(self, service: Service) -> None:
        """Use another service for future uploads. Existing items keep theirs."""
        with self._lock:
            self.service = service
        logger.debug(f"Wizard {self.id[:8]} switched to service '{service.name}'")

    def add_file(self, uploaded_file: UploadedFile, service: Optional[Service] = None) -> OrderItem:
        """
        Add an uploaded file as a new order item.

        The item starts in PROCESSING with default options and is priced at
        zero pages until its page count arrives.

        Raises:
            CustomQuotationError: If the service is quotation-only
        """
        with self._lock:
            service = service or self.service
            if service.custom_quotation:
                raise CustomQuotationError(service.name)

            if uploaded_file.status == FileStatus.UPLOADING:
                uploaded_file.status = FileStatus.PROCESSING
            if uploaded_file.preview_token is None:
                uploaded_file.preview_token = self._previews.create(uploaded_file.stored_path)

            configuration = ServiceConfiguration.default_for(service, 0)
            item = OrderItem(
                id=self._id_factory(),
                service=service,
                file=uploaded_file,
                configuration=configuration,
                pricing=calculate_item_pricing(service, configuration, 0),
            )
            self._items.append(item)
            self._settle_step()

        logger.info(f"Wizard {self.id[:8]}: added '{uploaded_file.filename}' as item {item.id[:8]}")
        return item

    def apply_file_result(self, result: PageCountResult) -> Optional[OrderItem]:
        """
        Apply a finished page count to its item.

        Returns:
            The updated item, or None when the file was removed meanwhile
            (the result is then ignored)
        """
        with self._lock:
            item = self.find_by_file(result.file_id)
            if item is None:
                logger.debug(f"Wizard {self.id[:8]}: dropped result for removed file {result.file_id[:8]}")
                return None

            uploaded = item.file
            if not result.is_ready:
                uploaded.status = FileStatus.ERROR
                uploaded.error = result.error
                logger.warning(f"Wizard {self.id[:8]}: '{uploaded.filename}' failed: {result.error}")
                self._settle_step()
                return item

            uploaded.page_count = result.page_count
            uploaded.status = FileStatus.READY
            uploaded.error = ""

            if result.pdf_path and result.pdf_path != uploaded.stored_path:
                # Converted PDF supersedes the original upload's preview
                uploaded.original_path = uploaded.stored_path
                uploaded.stored_path = result.pdf_path
                self._previews.release(uploaded.preview_token)
                uploaded.preview_token = self._previews.create(result.pdf_path)

            configuration = item.configuration
            if not configuration.binding_option:
                # Page-0 default: pick the first binding offered at the real count
                default = ServiceConfiguration.default_for(item.service, uploaded.page_count)
                configuration = replace(configuration, binding_option=default.binding_option)
            item.configuration = repair_binding(configuration, item.service, uploaded.page_count)
            item.pricing = calculate_item_pricing(item.service, item.configuration, uploaded.page_count)
            self._settle_step()

        logger.info(
            f"Wizard {self.id[:8]}: '{uploaded.filename}' ready, "
            f"{uploaded.page_count} pages, subtotal {item.pricing.subtotal:.2f}"
        )
        return item

    def update_configuration(self, item_id: str, **changes: Any) -> OrderItem:
        """
        Change an item's options or copies and reprice it.

        Args:
            item_id: Order item id
            **changes: ServiceConfiguration field names (print_type, copies, ...)

        Raises:
            OrderItemNotFoundError: If no item has this id
            InvalidOptionError: If a value is not offered for this item
        """
        with self._lock:
            item = self.get_item(item_id)
            page_count = item.file.page_count
            values: Dict[str, Any] = {}

            for name, value in changes.items():
                if name == "copies":
                    values["copies"] = self._clamp_copies(value)
                    continue

                category = CONFIG_FIELDS.get(name)
                if category is None:
                    raise InvalidOptionError("field", name, sorted(CONFIG_FIELDS) + ["copies"])

                value = "" if value is None else str(value)
                if value:
                    allowed = allowed_values(item.service, category.name, page_count)
                    if value not in allowed:
                        raise InvalidOptionError(category.name, value, allowed)
                values[name] = value

            item.configuration = replace(item.configuration, **values)
            item.pricing = calculate_item_pricing(item.service, item.configuration, page_count)
            self._settle_step()

        logger.debug(f"Wizard {self.id[:8]}: item {item_id[:8]} reconfigured {sorted(values)}")
        return item

    @staticmethod
    def _clamp_copies(value: Any) -> int:
        try:
            copies = int(value)
        except (TypeError, ValueError) as e:
            raise InvalidOptionError("copies", value) from e
        return max(1, copies)

    def remove_file(self, file_id: str) -> bool:
        """
        Remove the item for a file and release its preview.

        Returns:
            False if no item holds this file
        """
        with self._lock:
            item = self.find_by_file(file_id)
            if item is None:
                return False
            self._previews.release(item.file.preview_token)
            item.file.preview_token = None
            self._items.remove(item)
            self._settle_step()

        logger.info(f"Wizard {self.id[:8]}: removed '{item.file.filename}'")
        return True

    def discard(self) -> List[UploadedFile]:
        """
        Release every preview and empty the cart.

        Returns:
            The files that were in the cart, for the caller to clean up
        """
        with self._lock:
            files = [item.file for item in self._items]
            for uploaded in files:
                self._previews.release(uploaded.preview_token)
                uploaded.preview_token = None
            self._items.clear()
            self.step = WizardStep.UPLOAD
        return files

    def freeze_items(self) -> List[FrozenOrderItem]:
        with self._lock:
            return [item.freeze() for item in self._items]

    # =========================================================================
    # TOTALS
    # =========================================================================

    @property
    def subtotal(self) -> float:
        return calculate_order_totals(item.pricing.subtotal for item in self.items)[0]

    @property
    def total(self) -> float:
        return calculate_order_totals(item.pricing.subtotal for item in self.items)[1]

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    def can_proceed_to_configure(self) -> bool:
        items = self.items
        return bool(items) and all(item.file.is_ready for item in items)

    def can_proceed_to_review(self) -> bool:
        return all(
            item.configuration.print_type
            and item.configuration.paper_size
            and item.configuration.copies > 0
            for item in self.items
        )

    def _guard_failure(self, target: WizardStep) -> Optional[str]:
        if target.position >= WizardStep.CONFIGURE.position and not self.can_proceed_to_configure():
            if not self.items:
                return "Upload at least one file"
            return "Wait until every file is processed, or remove files that failed"
        if target == WizardStep.REVIEW and not self.can_proceed_to_review():
            return "Choose a print type, paper size and at least one copy for every file"
        return None

    def _settle_step(self) -> None:
        # Fall back to the furthest step whose guards still hold
        while self.step != WizardStep.UPLOAD and self._guard_failure(self.step):
            self.step = list(WizardStep)[self.step.position - 1]

    def ensure_ready_for_submit(self) -> None:
        """
        Check the review guards against the cart as it is now.

        Raises:
            StepGuardError: If any file is not ready or not fully configured
        """
        with self._lock:
            reason = self._guard_failure(WizardStep.REVIEW)
            if reason:
                self._settle_step()
                raise StepGuardError(self.step.value, "submit", reason)

    def go_to(self, step: WizardStep) -> WizardStep:
        """
        Move to another step. Going back is always allowed.

        Raises:
            StepGuardError: If a forward move is blocked
        """
        with self._lock:
            if step.position > self.step.position:
                reason = self._guard_failure(step)
                if reason:
                    raise StepGuardError(self.step.value, step.value, reason)
            self.step = step
        return step

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            items = []
            for item in self._items:
                data = item.to_dict()
                data.update(binding_choices(item.service, item.file.page_count))
                if not item.file.is_ready:
                    data["bindingMessage"] = None
                items.append(data)

            return {
                "id": self.id,
                "step": self.step.value,
                "service": {"id": self.service.id, "name": self.service.name},
                "items": items,
                "subtotal": self.subtotal,
                "total": self.total,
                "canProceedToConfigure": self.can_proceed_to_configure(),
                "canProceedToReview": self.can_proceed_to_review(),
            }
