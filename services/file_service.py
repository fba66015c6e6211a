"""
File processing service with thread-per-file architecture.

Each uploaded file gets its own thread that counts its pages (converting
documents to PDF first). Files are independent: several can be processing
at once and they finish in any order.

Thread Safety:
    - A file thread only touches its own file on disk
    - PageCountResult is created by the file thread, consumed by a request thread
    - PageCountResultStore uses threading.Lock for thread-safe access

Flow:
    1. /upload stores the file and calls file_service.submit(file_id, path)
    2. The file thread counts pages and stores a PageCountResult
    3. /status calls file_service.get_result(file_id) for pending files
    4. The request thread applies the result to the wizard, which ignores
       results for files that were removed meanwhile

Cancellation:
    Removing a file mid-flight calls cancel(file_id). The thread still runs
    to completion, but its result is dropped and any converted PDF deleted.

Usage:
    # At app startup
    file_service = FileProcessingService(PageCounter("soffice"))

    # On upload
    file_service.submit(file_id, stored_path)

    # Polling
    result = file_service.get_result(file_id)

    # At app shutdown
    file_service.shutdown()
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Iterable, Optional, Set

from core.exceptions import FileProcessingError
from logging_config import get_file_logger, get_logger, set_thread_name
from models.file_result import PageCountResult
from models.order import UploadedFile
from modules.page_counter import PageCounter


# Module logger
logger = get_logger(__name__)


class PageCountResultStore:
    """
    Thread-safe storage for page-count results.

    File threads WRITE results here, request threads READ (and remove) them.

    Thread Safety:
        - Uses threading.Lock for all operations
        - Results are stored by file_id
        - get_result() removes the result (consume-once pattern)
    """

    def __init__(self):
        self._results: Dict[str, PageCountResult] = {}
        self._lock = threading.Lock()

    def put_result(self, result: PageCountResult) -> None:
        with self._lock:
            self._results[result.file_id] = result
            logger.debug(f"Stored result for file {result.file_id[:8]}")

    def get_result(self, file_id: str) -> Optional[PageCountResult]:
        """
        Get and remove a result. Returns None if none is available yet.
        """
        with self._lock:
            result = self._results.pop(file_id, None)
            if result:
                logger.debug(f"Retrieved result for file {file_id[:8]}")
            return result

    def peek_result(self, file_id: str) -> Optional[PageCountResult]:
        with self._lock:
            return self._results.get(file_id)

    def clear(self) -> int:
        """
        Remove all stored results.

        Returns:
            Number of results removed
        """
        with self._lock:
            count = len(self._results)
            self._results.clear()
            logger.info(f"Cleared {count} page-count results from store")
            return count


class FileProcessingService:
    """
    Service for page counting uploaded files in background threads.

    Attributes:
        result_store: PageCountResultStore for reading results
    """

    def __init__(self, page_counter: PageCounter):
        self._page_counter = page_counter
        self._result_store = PageCountResultStore()

        # Track active file threads for cleanup
        self._active_threads: Dict[str, threading.Thread] = {}
        self._cancelled: Set[str] = set()
        self._threads_lock = threading.Lock()

        logger.info("FileProcessingService initialized")

    @property
    def result_store(self) -> PageCountResultStore:
        return self._result_store

    def submit(self, file_id: str, path: str | Path) -> str:
        """
        Start page counting for a stored file.

        Returns immediately. Poll get_result(file_id) for the outcome.

        Returns:
            file_id
        """
        logger.info(f"Counting pages of file {file_id[:8]} ({Path(path).name})")

        thread = threading.Thread(
            target=self._file_thread_main,
            args=(file_id, Path(path)),
            name=f"File-{file_id[:8]}",
            daemon=True
        )

        with self._threads_lock:
            self._cancelled.discard(file_id)
            self._active_threads[file_id] = thread

        thread.start()
        return file_id

    def get_result(self, file_id: str) -> Optional[PageCountResult]:
        """
        Get a file's result (consumes on read).

        Returns:
            PageCountResult if finished, None if still processing or cancelled
        """
        return self._result_store.get_result(file_id)

    def is_pending(self, file_id: str) -> bool:
        with self._threads_lock:
            thread = self._active_threads.get(file_id)
            return thread is not None and thread.is_alive()

    def cancel(self, file_id: str) -> None:
        """
        Drop the result of a removed file.

        A finished result is discarded now; a running thread discards its own
        result when it finishes.
        """
        with self._threads_lock:
            if file_id in self._active_threads:
                self._cancelled.add(file_id)

        result = self._result_store.get_result(file_id)
        if result is not None:
            self._discard(result)
        logger.info(f"File {file_id[:8]} cancelled")

    def discard_uploads(self, files: Iterable[UploadedFile]) -> None:
        """Cancel processing of removed uploads and delete them from disk."""
        for uploaded in files:
            self.cancel(uploaded.id)
            for path in (uploaded.stored_path, uploaded.original_path):
                if path:
                    Path(path).unlink(missing_ok=True)

    def shutdown(self, timeout_per_thread: float = 5.0) -> None:
        """
        Wait for all active file threads to complete.

        Args:
            timeout_per_thread: Max seconds to wait per thread
        """
        with self._threads_lock:
            active = list(self._active_threads.items())

        if not active:
            logger.info("No active file threads to wait for")
            return

        logger.info(f"Waiting for {len(active)} file threads to complete...")

        for file_id, thread in active:
            if thread.is_alive():
                thread.join(timeout=timeout_per_thread)
                if thread.is_alive():
                    logger.warning(f"File thread {file_id[:8]} did not complete in time")

        logger.info("File processing service shutdown complete")

    def _file_thread_main(self, file_id: str, path: Path) -> None:
        set_thread_name(f"File-{file_id[:8]}")
        file_logger = get_file_logger(file_id)

        file_logger.debug(f"File thread starting for {path.name}")

        try:
            outcome = self._page_counter.count(path, logger=file_logger)
            result = PageCountResult.create_ready(file_id, outcome.page_count, outcome.pdf_path)
            file_logger.info(f"{outcome.page_count} pages detected")

        except FileProcessingError as e:
            file_logger.warning(f"Page count failed: {e.message}")
            result = PageCountResult.create_failed(file_id, e.message)

        except Exception as e:
            file_logger.error(f"Unexpected page count failure: {e}", exc_info=True)
            result = PageCountResult.create_failed(file_id, "Could not process this file")

        with self._threads_lock:
            self._active_threads.pop(file_id, None)
            cancelled = file_id in self._cancelled
            self._cancelled.discard(file_id)

        if cancelled:
            file_logger.info("File was removed while processing, dropping result")
            self._discard(result)
        else:
            self._result_store.put_result(result)

        file_logger.debug("File thread exiting")

    @staticmethod
    def _discard(result: PageCountResult) -> None:
        if result.pdf_path:
            Path(result.pdf_path).unlink(missing_ok=True)
