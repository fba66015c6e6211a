"""
In-process store of active order wizards.

The Flask session only carries the wizard id; the wizard itself (items,
services, previews) lives here. Wizards idle for longer than the
expiry are dropped on the next access, and their previews released.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from logging_config import get_logger
from models.catalog import Service
from models.order import UploadedFile
from modules.previews import PreviewRegistry
from modules.wizard import OrderWizard


logger = get_logger(__name__)


class WizardStore:
    """
    Thread-safe registry of OrderWizard instances keyed by wizard id.

    Attributes:
        previews: PreviewRegistry shared by every wizard
    """

    def __init__(
        self,
        previews: Optional[PreviewRegistry] = None,
        expiry_seconds: float = 4 * 60 * 60,
        on_discard: Optional[Callable[[List[UploadedFile]], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.previews = previews or PreviewRegistry()
        self._expiry = expiry_seconds
        self._on_discard = on_discard
        self._clock = clock
        self._wizards: Dict[str, Tuple[OrderWizard, float]] = {}
        self._lock = threading.Lock()

    def create(self, service: Service) -> OrderWizard:
        wizard = OrderWizard(service, previews=self.previews)
        with self._lock:
            self._wizards[wizard.id] = (wizard, self._clock())
        logger.info(f"Wizard {wizard.id[:8]} started for '{service.name}'")
        self._expire()
        return wizard

    def get(self, wizard_id: Optional[str]) -> Optional[OrderWizard]:
        """Return the wizard and mark it as used, or None if unknown or expired."""
        if not wizard_id:
            return None
        self._expire()
        with self._lock:
            entry = self._wizards.get(wizard_id)
            if entry is None:
                return None
            self._wizards[wizard_id] = (entry[0], self._clock())
            return entry[0]

    def discard(self, wizard_id: Optional[str], keep_files: bool = False) -> bool:
        """
        Remove a wizard and release its previews.

        Args:
            wizard_id: Wizard to remove
            keep_files: True after a submit, when the stored files belong to the order
        """
        with self._lock:
            entry = self._wizards.pop(wizard_id, None) if wizard_id else None
        if entry is None:
            return False
        self._release(entry[0], keep_files)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._wizards)

    def _expire(self) -> None:
        cutoff = self._clock() - self._expiry
        with self._lock:
            expired = [wid for wid, (_, used) in self._wizards.items() if used < cutoff]
            wizards = [self._wizards.pop(wid)[0] for wid in expired]
        for wizard in wizards:
            logger.info(f"Wizard {wizard.id[:8]} expired")
            self._release(wizard)

    def _release(self, wizard: OrderWizard, keep_files: bool = False) -> None:
        files = wizard.discard()
        if self._on_discard and files and not keep_files:
            self._on_discard(files)
