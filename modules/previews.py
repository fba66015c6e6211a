"""Preview tokens for stored upload files."""

from __future__ import annotations

import secrets
import threading
from pathlib import Path
from typing import Dict, Optional

from logging_config import get_logger


logger = get_logger(__name__)


class PreviewRegistry:
    """
    Issues opaque tokens that let the browser fetch a stored file.

    Every token is owned by exactly one order item and must be released when
    the item is removed or its file is replaced by a converted version.
    active_count() exposes leaks to tests and the health endpoint.
    """

    def __init__(self):
        self._paths: Dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, path: str | Path) -> str:
        token = secrets.token_urlsafe(16)
        with self._lock:
            self._paths[token] = str(path)
        logger.debug(f"Preview {token[:8]} issued for {Path(path).name}")
        return token

    def resolve(self, token: str) -> Optional[str]:
        with self._lock:
            return self._paths.get(token)

    def release(self, token: Optional[str]) -> bool:
        """Release a token. Returns False if it was unknown or already released."""
        if not token:
            return False
        with self._lock:
            released = self._paths.pop(token, None) is not None
        if released:
            logger.debug(f"Preview {token[:8]} released")
        return released

    def active_count(self) -> int:
        with self._lock:
            return len(self._paths)
