"""
Payment processor HTTP client.

Looks up checkout sessions on the payment processor's REST API using a
long-lived connection pool and a fixed verification timeout.
"""

import httpx
import json
from typing import Dict, Any, Optional
import logging
from pydantic import ValidationError

from vault_shared.models.payment_session import PaymentSession

logger = logging.getLogger(__name__)


class PaymentProcessorError(Exception):
    """Raised when the payment processor cannot be reached or answers garbage."""
    pass


class PaymentClient:
    """
    HTTP client for checkout session verification.

    One outbound GET per lookup, no retries: a failed lookup is reported to
    the caller, who may retry the whole download.
    """

    SESSION_PATH = "/v1/checkout/sessions/{session_id}"

    def __init__(self, config_manager, http_client: Optional[httpx.AsyncClient] = None):
        """Initialize payment client with configuration."""
        self.config_manager = config_manager
        self._api_base = config_manager.stripe_api_base
        self._secret_key = config_manager.stripe_secret_key
        self._timeout = config_manager.verification_timeout

        self._stats = {
            "total_lookups": 0,
            "verified_sessions": 0,
            "rejected_sessions": 0,
            "failed_lookups": 0
        }

        self._http_client = http_client or self._create_http_client()
        self._initialized = True

        logger.info(f"PaymentClient initialized for {self._api_base} (timeout={self._timeout}s)")

    def _create_http_client(self) -> httpx.AsyncClient:
        """Create HTTP client for payment processor communication."""
        limits = httpx.Limits(
            max_connections=50,
            max_keepalive_connections=10
        )

        return httpx.AsyncClient(
            base_url=self._api_base,
            limits=limits,
            timeout=httpx.Timeout(self._timeout),
            follow_redirects=False
        )

    def is_initialized(self) -> bool:
        """Check if client is properly initialized."""
        return self._initialized and not self._http_client.is_closed

    def get_http_client(self) -> httpx.AsyncClient:
        """Get the HTTP client for testing."""
        return self._http_client

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._secret_key}"}

    async def retrieve_checkout_session(self, session_id: str) -> Optional[PaymentSession]:
        """
        Fetch a checkout session from the payment processor.

        Args:
            session_id: Checkout session identifier, already format-validated

        Returns:
            PaymentSession when the processor answers with a success status,
            None when it answers with any other status.

        Raises:
            PaymentProcessorError: on transport failure, timeout or an
                unparsable response body
        """
        path = self.SESSION_PATH.format(session_id=session_id)
        self._stats["total_lookups"] += 1

        try:
            response = await self._http_client.get(path, headers=self._auth_headers())
        except httpx.TimeoutException as e:
            self._stats["failed_lookups"] += 1
            raise PaymentProcessorError(f"Payment processor timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            self._stats["failed_lookups"] += 1
            raise PaymentProcessorError(f"Payment processor unreachable: {e}") from e

        if not response.is_success:
            self._stats["rejected_sessions"] += 1
            logger.info(f"Payment processor rejected session lookup with HTTP {response.status_code}")
            return None

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self._stats["failed_lookups"] += 1
            raise PaymentProcessorError("Payment processor returned an invalid JSON body") from e

        if not isinstance(payload, dict):
            self._stats["failed_lookups"] += 1
            raise PaymentProcessorError("Payment processor returned an unexpected session record")

        try:
            session = PaymentSession.model_validate(payload)
        except ValidationError as e:
            self._stats["failed_lookups"] += 1
            raise PaymentProcessorError(f"Payment processor returned a malformed session record: {e}") from e

        self._stats["verified_sessions"] += 1
        return session

    def get_lookup_stats(self) -> Dict[str, Any]:
        """Get session lookup statistics."""
        return self._stats.copy()

    async def cleanup(self):
        """Clean up resources."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()
        self._initialized = False
        logger.info("PaymentClient cleanup completed")
