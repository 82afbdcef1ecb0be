"""Domain models shared by the download gateway."""

from .catalog import PRODUCT_CATALOG, STORAGE_PREFIX, available_slugs, resolve_filename, storage_key
from .payment_session import PaymentSession, PaymentStatus

__all__ = [
    'PRODUCT_CATALOG',
    'STORAGE_PREFIX',
    'available_slugs',
    'resolve_filename',
    'storage_key',
    'PaymentSession',
    'PaymentStatus',
]
