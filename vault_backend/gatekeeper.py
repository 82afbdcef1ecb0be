"""
Download gatekeeper.

Verifies a checkout session with the payment processor, resolves the
purchased product to an archive and streams it from object storage. The
pipeline is linear; the first failing step ends the request.
"""

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from starlette.responses import JSONResponse, Response, StreamingResponse

from vault_backend.errors import (
    DownloadError,
    InvalidSession,
    PaymentIncomplete,
    ProductNotFound,
    SessionNotFound,
    StorageUnavailable,
    UnknownProduct,
    VerificationFailed,
)
from vault_backend.payment_client import PaymentClient, PaymentProcessorError
from vault_backend.storage_client import ObjectStore, StorageBackendError
from vault_shared.models.catalog import PRODUCT_CATALOG, available_slugs, resolve_filename, storage_key
from vault_shared.models.payment_session import PaymentSession

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"cs_(test|live)_[A-Za-z0-9]{10,}")

ARCHIVE_MEDIA_TYPE = "application/zip"
ERROR_MEDIA_TYPE = "application/json"


def is_valid_session_id(session_id: Optional[str]) -> bool:
    """Check a checkout session ID against the cs_test_/cs_live_ format."""
    return bool(session_id) and SESSION_ID_PATTERN.fullmatch(session_id) is not None


def session_mode(session_id: str) -> str:
    """Log-safe label for a session ID: its test/live prefix only."""
    return "live" if session_id.startswith("cs_live_") else "test"


def select_product_slug(session: PaymentSession, requested: Optional[str]) -> Optional[str]:
    """
    Pick the effective product slug.

    A slug pinned in the session metadata always wins over the requested one,
    so a paid session cannot be replayed against a different product. The
    requested slug applies only when the session carries no slug.
    """
    pinned = session.product_slug
    if pinned:
        if requested and requested != pinned:
            logger.warning(f"Requested product {requested!r} overridden by session product {pinned!r}")
        return pinned
    return requested


@dataclass(frozen=True)
class ResolvedProduct:
    """Outcome of a fully verified request."""
    slug: str
    filename: str
    storage_key: str


class DownloadGatekeeper:
    """Payment-verified download handler, safe to share across requests."""

    def __init__(self, payment_client: PaymentClient, object_store: ObjectStore,
                 catalog: Mapping[str, str] = PRODUCT_CATALOG):
        self.payment_client = payment_client
        self.object_store = object_store
        self.catalog = catalog

    async def verify_session(self, session_id: Optional[str]) -> PaymentSession:
        """Validate the session ID format and confirm the payment remotely."""
        if not is_valid_session_id(session_id):
            raise InvalidSession()

        try:
            session = await self.payment_client.retrieve_checkout_session(session_id)
        except PaymentProcessorError as e:
            logger.error(f"Session verification failed ({session_mode(session_id)} mode): {e}")
            raise VerificationFailed(str(e)) from e

        if session is None:
            raise SessionNotFound()

        if not session.is_paid:
            logger.warning(f"Session not paid ({session_mode(session_id)} mode): status={session.payment_status!r}")
            raise PaymentIncomplete()

        return session

    def resolve_product(self, session: PaymentSession, requested: Optional[str]) -> ResolvedProduct:
        """Map the effective slug to its archive and storage key."""
        slug = select_product_slug(session, requested)
        filename = resolve_filename(slug, self.catalog)
        if filename is None:
            raise UnknownProduct(available_slugs(self.catalog), detail=f"Unknown product slug {slug!r}")

        return ResolvedProduct(slug=slug, filename=filename, storage_key=storage_key(filename))

    async def authorize(self, session_id: Optional[str], product: Optional[str]) -> ResolvedProduct:
        """Run every check short of touching storage."""
        session = await self.verify_session(session_id)
        return self.resolve_product(session, product)

    async def open_download(self, resolved: ResolvedProduct) -> StreamingResponse:
        """Fetch the archive from storage and wrap it in a streaming response."""
        try:
            stored = await self.object_store.get(resolved.storage_key)
        except StorageBackendError as e:
            logger.error(f"Storage read failed for {resolved.storage_key}: {e}")
            raise StorageUnavailable(str(e)) from e

        if stored is None:
            logger.error(f"Paid download missing from storage: {resolved.storage_key}")
            raise ProductNotFound()

        headers = {
            "Content-Disposition": f'attachment; filename="{resolved.filename}"',
            "Cache-Control": "no-store",
        }
        if stored.size is not None:
            headers["Content-Length"] = str(stored.size)

        logger.info(f"Streaming {resolved.storage_key} for product {resolved.slug!r}")
        return StreamingResponse(stored.body, media_type=ARCHIVE_MEDIA_TYPE, headers=headers)

    async def handle(self, session_id: Optional[str], product: Optional[str],
                     metadata_only: bool = False) -> Response:
        """
        Serve one download request.

        Args:
            session_id: Checkout session ID from the query string
            product: Requested product slug from the query string
            metadata_only: True for HEAD checks, which validate everything
                but never read storage and never return a body

        Returns:
            The archive stream, an empty 200 for metadata-only checks, or an
            error response.
        """
        try:
            resolved = await self.authorize(session_id, product)
            if metadata_only:
                return Response(status_code=200, media_type=ARCHIVE_MEDIA_TYPE)
            return await self.open_download(resolved)
        except DownloadError as e:
            if e.status_code < 500:
                logger.warning(f"Download rejected with {e.status_code}: {e}")
            return render_error(e, metadata_only)


def render_error(error: DownloadError, metadata_only: bool = False) -> Response:
    """Render a download error; metadata-only checks get an empty body."""
    if metadata_only:
        return Response(status_code=error.status_code, media_type=ERROR_MEDIA_TYPE)
    return JSONResponse(content=error.to_payload(), status_code=error.status_code)
