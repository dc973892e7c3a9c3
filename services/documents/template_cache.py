"""
Template Cache

Owns the cover sheet template bytes. The template is read once, on
first use, from a local path or a URL, and then shared by reference
between every assembly call. Bytes are immutable so no caller can
alter the shared copy.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

import requests

from .exceptions import TemplateError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class TemplateCache:
    """
    Lazily loaded, process-wide template holder.

    Usage:
        cache = TemplateCache(path='templates/cover_sheet.pdf')
        template = cache.get()
    """

    def __init__(self, path: str = None, url: str = None, timeout: int = DEFAULT_TIMEOUT):
        if not path and not url:
            raise TemplateError("No template source configured (set TRANSACTION_TEMPLATE_PATH or TRANSACTION_TEMPLATE_URL)")
        self.path = Path(path) if path else None
        self.url = url
        self.timeout = timeout
        self._data: Optional[bytes] = None
        self._lock = threading.Lock()

    @property
    def source(self) -> str:
        return str(self.path) if self.path else self.url

    @property
    def is_loaded(self) -> bool:
        return self._data is not None

    def get(self) -> bytes:
        """
        Return the template bytes, loading them on first call.

        Raises:
            TemplateError: if the template cannot be read
        """
        if self._data is None:
            with self._lock:
                if self._data is None:
                    self._data = self._load()
        return self._data

    def clear(self) -> None:
        """Drop the cached bytes so the next get() reloads. Mainly for testing."""
        with self._lock:
            self._data = None

    def _load(self) -> bytes:
        if self.path:
            try:
                data = self.path.read_bytes()
            except OSError as e:
                raise TemplateError(f"Cannot read template {self.path}: {e}")
        else:
            try:
                response = requests.get(self.url, timeout=self.timeout)
                response.raise_for_status()
            except requests.exceptions.RequestException as e:
                raise TemplateError(f"Cannot fetch template from {self.url}: {e}")
            data = response.content

        if not data:
            raise TemplateError(f"Template {self.source} is empty")

        logger.info(f"Loaded template from {self.source} ({len(data)} bytes)")
        return bytes(data)
