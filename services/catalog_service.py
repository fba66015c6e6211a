"""
Catalog service with background reload thread.

This service owns the service catalog: services, option catalog, pricing
settings and coupons, all read from the JSON file at CATALOG_PATH. A
background thread reloads the file so admin edits show up without a
restart.

Thread Safety:
    - Background thread builds a new CatalogSnapshot on each reload
    - Request threads read the current snapshot via an atomic reference
    - Snapshots are frozen, so no locks are needed for reads

Cache invalidation lives here only. Pricing code receives a snapshot (or a
Service taken from one) and never looks the catalog up itself.

Usage:
    # At app startup
    catalog_service = CatalogService("data/catalog.json")
    catalog_service.load()      # fail fast on a missing or broken catalog
    catalog_service.start()

    # In routes
    snapshot = catalog_service.get_snapshot_or_raise()
    service = snapshot.require_service(service_id)

    # At app shutdown
    catalog_service.stop()
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Optional

from core.exceptions import CatalogNotFoundError, InvalidOptionError, OptionPricingConflictError
from logging_config import get_logger, set_thread_name
from models.catalog import CatalogSnapshot


# Module logger
logger = get_logger(__name__)


class CatalogService:
    """
    Background service for catalog reloads.

    Attributes:
        catalog_path: JSON catalog file
        refresh_interval_seconds: Time between reloads (default 30)
        is_running: Whether the background thread is active
    """

    def __init__(self, catalog_path: str | Path, refresh_interval_seconds: float = 30.0):
        self._catalog_path = Path(catalog_path)
        self._refresh_interval = refresh_interval_seconds

        # Thread control
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._is_running = False

        # Start with empty snapshot so get_snapshot() never returns None
        self._current_snapshot: CatalogSnapshot = CatalogSnapshot.create_empty()

        self._consecutive_failures = 0

        logger.info(
            f"CatalogService initialized ({self._catalog_path}, "
            f"refresh interval: {refresh_interval_seconds}s)"
        )

    @property
    def catalog_path(self) -> Path:
        return self._catalog_path

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def refresh_interval_seconds(self) -> float:
        return self._refresh_interval

    def load(self) -> CatalogSnapshot:
        """
        Load the catalog in the calling thread.

        Call once at startup; unlike background reloads, failures propagate.

        Raises:
            CatalogNotFoundError: If the file is missing, unreadable or invalid
            OptionPricingConflictError: If an option sets both pricing modes
        """
        snapshot = self._read_catalog()
        self._current_snapshot = snapshot
        logger.info(
            f"Catalog loaded: {len(snapshot.services)} services, "
            f"{len(snapshot.options)} options, {len(snapshot.coupons)} coupons"
        )
        return snapshot

    def start(self) -> None:
        """
        Start the background reload thread.

        Safe to call multiple times - only starts if not already running.
        """
        if self._is_running:
            logger.warning("CatalogService already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._refresh_loop,
            name="Catalog",
            daemon=True
        )
        self._is_running = True
        self._thread.start()

        logger.info("Catalog reload thread started")

    def stop(self) -> None:
        """
        Stop the background reload thread. Safe to call multiple times.
        """
        if not self._is_running:
            return

        logger.info("Stopping catalog reload thread...")
        self._stop_event.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("Catalog thread did not stop cleanly")

        self._is_running = False
        self._thread = None

        logger.info("Catalog reload thread stopped")

    def get_snapshot(self) -> CatalogSnapshot:
        """
        Get the current catalog snapshot.

        Returns:
            Current CatalogSnapshot (never None, possibly empty before the first load)
        """
        return self._current_snapshot

    def get_snapshot_or_raise(self) -> CatalogSnapshot:
        """
        Get the current snapshot, raising if no catalog has loaded yet.

        Raises:
            CatalogNotFoundError: If the snapshot holds no services
        """
        snapshot = self._current_snapshot
        if snapshot.is_empty:
            raise CatalogNotFoundError(
                "Service catalog not yet loaded. Please try again shortly.",
                str(self._catalog_path),
            )
        return snapshot

    def force_refresh(self) -> bool:
        """
        Reload the catalog now, in the calling thread.

        Returns:
            True if the reload succeeded, False otherwise
        """
        logger.info("Forcing catalog reload...")
        return self._do_refresh()

    def _refresh_loop(self) -> None:
        set_thread_name("Catalog")

        logger.info("Catalog reload loop starting")

        while not self._stop_event.wait(timeout=self._refresh_interval):
            self._do_refresh()

        logger.info("Catalog reload loop exiting")

    def _read_catalog(self) -> CatalogSnapshot:
        path = self._catalog_path
        if not path.is_file():
            raise CatalogNotFoundError(f"Catalog file not found: {path}", str(path))

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogNotFoundError(f"Catalog file unreadable: {e}", str(path)) from e

        try:
            return CatalogSnapshot.from_dict(data, source=str(path))
        except OptionPricingConflictError:
            raise
        except (InvalidOptionError, KeyError, TypeError, ValueError) as e:
            raise CatalogNotFoundError(f"Catalog file invalid: {e}", str(path)) from e

    def _do_refresh(self) -> bool:
        """
        Perform a single reload, keeping the last good snapshot on failure.

        Returns:
            True if the reload succeeded, False otherwise
        """
        logger.debug("Reloading catalog...")

        try:
            new_snapshot = self._read_catalog()
        except Exception as e:
            self._consecutive_failures += 1

            # Log with increasing severity based on consecutive failures
            if self._consecutive_failures == 1:
                logger.warning(f"Catalog reload failed: {e}")
            elif self._consecutive_failures <= 3:
                logger.error(f"Catalog reload failed ({self._consecutive_failures} consecutive): {e}")
            elif self._consecutive_failures % 5 == 0:
                logger.error(
                    f"Catalog reload still failing ({self._consecutive_failures} consecutive): {e}"
                )
            return False

        # Atomic reference swap
        self._current_snapshot = new_snapshot

        if self._consecutive_failures > 0:
            logger.info(f"Catalog reload recovered after {self._consecutive_failures} failures")
        self._consecutive_failures = 0

        logger.debug(
            f"Catalog reloaded: {len(new_snapshot.services)} services, "
            f"{len(new_snapshot.options)} options"
        )
        return True
