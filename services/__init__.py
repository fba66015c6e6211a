"""
Services layer for Print Emporium.

This module contains the business logic services:
- CatalogService: Background catalog refresh thread
- FileProcessingService: Page-count threads and result store
- OrderService: Order persistence, numbering and status machines
- WizardStore: Active order wizards keyed by session

Thread Model:
    Main Thread (Flask)
    ├── CatalogService thread (periodic catalog reload)
    └── FileProcessingService threads (one per uploaded file)
"""

from .catalog_service import CatalogService
from .file_service import FileProcessingService, PageCountResultStore
from .order_service import OrderService
from .wizard_store import WizardStore

__all__ = [
    "CatalogService",
    "FileProcessingService",
    "PageCountResultStore",
    "OrderService",
    "WizardStore",
]
