"""
Exception classes and connectivity classification.

Offline/unavailable failures are expected on a device and are answered with
degraded local behaviour; everything else propagates to the caller.
"""

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions

# Message fragments the Firebase SDKs use for connectivity failures
OFFLINE_MESSAGE_MARKERS = (
    "offline",
    "client is offline",
    "failed to get document",
    "network",
)

_OFFLINE_TYPES: tuple[type[BaseException], ...] = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    auth_exceptions.TransportError,
    ConnectionError,
    TimeoutError,
)


class LinkstoreException(Exception):
    """Base exception class for the Linkstore sync layer"""

    error_code = "LINKSTORE_ERROR"

    def __init__(self, detail: str, error_code: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if error_code:
            self.error_code = error_code


class ValidationException(LinkstoreException):
    """Precondition failed; raised synchronously, nothing was written"""

    error_code = "VALIDATION_ERROR"


class OwnerRequiredException(ValidationException):
    """Operation needs the authenticated owner id"""

    error_code = "OWNER_REQUIRED"

    def __init__(self, operation: str) -> None:
        super().__init__(f"An owner id is required to {operation}")


class OfflineException(LinkstoreException):
    """Remote service is unreachable"""

    error_code = "OFFLINE"


class DocumentExistsException(LinkstoreException):
    """Conditional create found an existing document"""

    error_code = "DOCUMENT_EXISTS"

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} already exists")
        self.collection = collection
        self.doc_id = doc_id


class ProductNotFoundException(LinkstoreException):
    """Product id is not part of the loaded catalogue"""

    error_code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class CacheTierUnavailableException(LinkstoreException):
    """A local cache tier cannot operate on this device"""

    error_code = "CACHE_TIER_UNAVAILABLE"


def is_offline_error(exc: BaseException) -> bool:
    """Return True for connectivity-class failures."""
    if isinstance(exc, OfflineException):
        return True
    if isinstance(exc, _OFFLINE_TYPES):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in OFFLINE_MESSAGE_MARKERS)
