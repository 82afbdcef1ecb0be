"""
Centralized test configuration and fixtures for the download gateway.

This module provides shared test fixtures that:
1. Provide consistent mocking for the payment processor and object storage
2. Build gatekeepers and API clients around those mocks
3. Keep the environment isolated from the developer's .env files
"""

import pytest
import logging
from unittest.mock import Mock, AsyncMock
from typing import List, Optional
from fastapi.testclient import TestClient

from vault_backend.payment_client import PaymentClient
from vault_backend.storage_client import ObjectStore, StoredObject
from vault_backend.gatekeeper import DownloadGatekeeper
from vault_shared.models.payment_session import PaymentSession

# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

VALID_SESSION_ID = "cs_test_a1B2c3D4e5F6g7H8"
LIVE_SESSION_ID = "cs_live_Z9y8X7w6V5u4T3s2"
ARCHIVE_CHUNKS = [b"PK\x03\x04", b"archive-body-", b"end"]


async def stream_chunks(chunks: List[bytes]):
    """Async byte stream standing in for a storage object body."""
    for chunk in chunks:
        yield chunk


def make_session(payment_status: str = "paid", product_slug: Optional[str] = None,
                 session_id: str = VALID_SESSION_ID) -> PaymentSession:
    """Build a checkout session snapshot as the processor would return it."""
    metadata = {"product_slug": product_slug} if product_slug is not None else {}
    return PaymentSession(id=session_id, payment_status=payment_status, metadata=metadata)


def make_stored_object(key: str, chunks: Optional[List[bytes]] = None) -> StoredObject:
    chunks = ARCHIVE_CHUNKS if chunks is None else chunks
    return StoredObject(key=key, body=stream_chunks(chunks), size=sum(len(c) for c in chunks))


@pytest.fixture
def session_id():
    """A well-formed test-mode checkout session ID."""
    return VALID_SESSION_ID


@pytest.fixture
def session_factory():
    """Factory for PaymentSession snapshots."""
    return make_session


@pytest.fixture
def stored_object_factory():
    """Factory for StoredObject instances with an async body."""
    return make_stored_object


@pytest.fixture
def archive_bytes():
    """Full body produced by the default stored object."""
    return b"".join(ARCHIVE_CHUNKS)


@pytest.fixture
def mock_config_manager():
    """
    Mock ConfigManager with payment processor and storage settings.
    """
    config = Mock()
    config.stripe_api_base = "https://api.stripe.test"
    config.stripe_secret_key = "sk_test_secret_123"
    config.has_stripe_secret_key = True
    config.verification_timeout = 5.0
    config.storage_backend = "local"
    return config


@pytest.fixture
def payment_client():
    """Mock payment processor client that reports a paid session by default."""
    client = AsyncMock(spec=PaymentClient)
    client.retrieve_checkout_session.return_value = make_session()
    return client


@pytest.fixture
def object_store():
    """Mock object store that holds every key it is asked for."""
    store = AsyncMock(spec=ObjectStore)
    store.get.side_effect = lambda key: make_stored_object(key)
    return store


@pytest.fixture
def gatekeeper(payment_client, object_store):
    """DownloadGatekeeper wired to the mock processor and store."""
    return DownloadGatekeeper(payment_client=payment_client, object_store=object_store)


@pytest.fixture
def api_client(gatekeeper):
    """FastAPI TestClient with the gatekeeper dependency overridden."""
    from vault_backend.main import app
    from vault_backend.dependencies import get_download_gatekeeper

    app.dependency_overrides[get_download_gatekeeper] = lambda: gatekeeper
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
