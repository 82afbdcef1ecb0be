"""
Download error taxonomy.

Each error is terminal for its request and maps to exactly one HTTP status
and one JSON body.
"""

from typing import Any, Dict, List, Optional


class DownloadError(Exception):
    """Base class for request-scoped download failures."""

    status_code = 500
    message = "Download failed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        """JSON body sent to the caller."""
        return {"error": self.message}


class InvalidSession(DownloadError):
    status_code = 400
    message = "Invalid or missing session"


class SessionNotFound(DownloadError):
    status_code = 403
    message = "Invalid session"


class VerificationFailed(DownloadError):
    status_code = 500
    message = "Verification failed"


class PaymentIncomplete(DownloadError):
    status_code = 402
    message = "Payment not completed"


class UnknownProduct(DownloadError):
    """Carries the valid slugs so API consumers can correct the request."""

    status_code = 400
    message = "Unknown product"

    def __init__(self, available: List[str], detail: Optional[str] = None):
        super().__init__(detail)
        self.available = list(available)

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "available": self.available}


class ProductNotFound(DownloadError):
    status_code = 404
    message = "Product file not found"


class StorageUnavailable(DownloadError):
    status_code = 503
    message = "Storage unavailable"
