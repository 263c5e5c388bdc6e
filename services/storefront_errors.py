"""Error taxonomy shared by the ingestion, cache and order layers."""
from __future__ import annotations

from typing import Any, List, Optional


class StorefrontError(Exception):
    """Base class for storefront failures."""


class ConfigurationError(StorefrontError):
    """Missing or invalid source/endpoint configuration, or a misconfigured sheet."""


class FetchError(StorefrontError):
    """The product sheet could not be retrieved (network, non-2xx, or HTML page)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(StorefrontError):
    """A single CSV row could not be mapped. Always recovered by skipping the row."""

    def __init__(self, message: str, row_index: Optional[int] = None):
        super().__init__(message)
        self.row_index = row_index


class StaleDataWarning(StorefrontError):
    """Fresh data was unavailable; the last cached catalog is being served instead."""

    def __init__(self, message: str, stale_products: Optional[List[Any]] = None):
        super().__init__(message)
        self.stale_products = list(stale_products or [])


class SubmissionError(StorefrontError):
    """The order automation endpoint rejected or never received the order."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
