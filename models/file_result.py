"""
Page-count result data models.

These models carry the outcome of page-count detection from a file
processing thread back to the request thread.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class FileStatus(Enum):
    """
    Status of an uploaded file.

    Lifecycle:
        UPLOADING -> PROCESSING -> (READY | ERROR)

    ERROR is terminal: the user removes the file and uploads it again.
    """

    UPLOADING = "uploading"
    """Bytes are still being received."""

    PROCESSING = "processing"
    """Page count detection (and conversion) in progress."""

    READY = "ready"
    """Page count known, file can be priced and ordered."""

    ERROR = "error"
    """Detection or conversion failed."""


@dataclass(frozen=True)
class PageCountResult:
    """
    Result of page-count detection for one file.

    Thread Safety:
        - The file thread WRITES one result to the PageCountResultStore
        - The request thread READS it (removes on read)
        - Instances are immutable
    """

    file_id: str
    """Id of the uploaded file this result belongs to."""

    finished_at: datetime

    status: FileStatus
    """READY or ERROR."""

    page_count: int = 0

    pdf_path: Optional[str] = None
    """Converted PDF, when the upload was not a PDF."""

    error: str = ""

    @property
    def is_ready(self) -> bool:
        return self.status == FileStatus.READY

    @classmethod
    def create_ready(cls, file_id: str, page_count: int, pdf_path: Optional[str] = None) -> "PageCountResult":
        """
        Create a result for a file whose pages were counted.

        Args:
            file_id: Uploaded file id
            page_count: Detected number of pages
            pdf_path: Converted PDF path, if a conversion happened

        Returns:
            PageCountResult in READY status
        """
        return cls(
            file_id=file_id,
            finished_at=datetime.now(timezone.utc),
            status=FileStatus.READY,
            page_count=page_count,
            pdf_path=pdf_path,
        )

    @classmethod
    def create_failed(cls, file_id: str, error_message: str) -> "PageCountResult":
        return cls(
            file_id=file_id,
            finished_at=datetime.now(timezone.utc),
            status=FileStatus.ERROR,
            error=error_message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileId": self.file_id,
            "finishedAt": self.finished_at.isoformat(),
            "status": self.status.value,
            "pageCount": self.page_count,
            "pdfPath": self.pdf_path,
            "error": self.error,
        }
