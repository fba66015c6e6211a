"""Page counting for uploaded files, with office-to-PDF conversion."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from core.exceptions import ConversionUnavailableError, FileProcessingError


PDF_EXTENSIONS = frozenset({".pdf"})
DOCUMENT_EXTENSIONS = frozenset({".doc", ".docx", ".odt", ".rtf", ".txt"})
IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
ALLOWED_EXTENSIONS = PDF_EXTENSIONS | DOCUMENT_EXTENSIONS | IMAGE_EXTENSIONS


def is_allowed(filename: str) -> bool:
    return Path(filename).suffix.lower() in ALLOWED_EXTENSIONS


@dataclass(frozen=True)
class PageCountOutcome:
    page_count: int
    pdf_path: Optional[str] = None
    """Converted PDF, set only when a conversion happened."""


class PageCounter:
    """
    Count printable pages of an uploaded file.

    PDFs are read directly. Documents are converted with LibreOffice first
    and the converted PDF is counted; images are always a single page.
    """

    def __init__(
        self,
        libreoffice_path: str = "soffice",
        timeout_seconds: float = 60.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.libreoffice_path = libreoffice_path
        self.timeout_seconds = timeout_seconds
        self._logger = logger or logging.getLogger("print_emporium.modules.page_counter")

    def count(self, path: str | Path, logger: Optional[logging.Logger] = None) -> PageCountOutcome:
        """
        Raises:
            FileProcessingError: If the file cannot be read or has no pages
            ConversionUnavailableError: If a document needs LibreOffice and it is missing
        """
        log = logger or self._logger
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix in PDF_EXTENSIONS:
            return PageCountOutcome(self.count_pdf(path))

        if suffix in IMAGE_EXTENSIONS:
            log.debug(f"{path.name}: image, counted as one page")
            return PageCountOutcome(1)

        if suffix in DOCUMENT_EXTENSIONS:
            pdf_path = self.convert_to_pdf(path, log)
            return PageCountOutcome(self.count_pdf(pdf_path), str(pdf_path))

        raise FileProcessingError(f"Unsupported file type: {suffix or 'none'}", path.name)

    def count_pdf(self, path: Path) -> int:
        try:
            reader = PdfReader(str(path))
            pages = len(reader.pages)
        except (PyPdfError, OSError, ValueError) as e:
            raise FileProcessingError(f"Could not read PDF: {e}", path.name) from e

        if pages < 1:
            raise FileProcessingError("PDF has no pages", path.name)
        return pages

    def convert_to_pdf(self, path: Path, logger: Optional[logging.Logger] = None) -> Path:
        """
        Convert a document to PDF next to the original.

        Returns:
            Path of the converted PDF
        """
        log = logger or self._logger
        binary = shutil.which(self.libreoffice_path)
        if binary is None:
            raise ConversionUnavailableError(self.libreoffice_path, path.name)

        out_dir = path.parent
        command = [
            binary, "--headless", "--convert-to", "pdf",
            "--outdir", str(out_dir), str(path),
        ]
        log.info(f"Converting {path.name} to PDF")

        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise FileProcessingError(
                f"Conversion timed out after {self.timeout_seconds:g}s", path.name
            ) from e

        pdf_path = out_dir / f"{path.stem}.pdf"
        if completed.returncode != 0 or not pdf_path.is_file():
            detail = (completed.stderr or completed.stdout or "").strip()
            raise FileProcessingError(
                f"Conversion to PDF failed: {detail or f'exit code {completed.returncode}'}",
                path.name,
            )

        log.debug(f"Converted {path.name} -> {pdf_path.name}")
        return pdf_path
