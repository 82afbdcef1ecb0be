"""
Unit tests for the download gatekeeper pipeline.

Covers session ID validation, remote verification outcomes, payment status,
product slug precedence, catalog lookup, metadata-only checks and storage
retrieval, calling the gatekeeper directly with mocked collaborators.
"""

import json
import pytest

from vault_backend.errors import (
    InvalidSession,
    PaymentIncomplete,
    SessionNotFound,
    UnknownProduct,
    VerificationFailed,
)
from vault_backend.gatekeeper import (
    is_valid_session_id,
    render_error,
    select_product_slug,
    session_mode,
)
from vault_backend.payment_client import PaymentProcessorError
from vault_backend.storage_client import StorageBackendError
from vault_shared.models.catalog import available_slugs
from vault_shared.models.payment_session import PaymentSession


async def read_body(response):
    chunks = []
    async for chunk in response.body_iterator:
        chunks.append(chunk)
    return b"".join(chunks)


class TestSessionIdValidation:
    """Test the cs_test_/cs_live_ session ID format"""

    @pytest.mark.parametrize("session_id", [
        "cs_test_a1B2c3D4e5",
        "cs_live_0123456789",
        "cs_test_a1B2c3D4e5F6g7H8i9J0kLmNoPqRsTuVwXyZ",
    ])
    def test_valid_session_ids(self, session_id):
        """Test that well-formed IDs pass"""
        assert is_valid_session_id(session_id) is True

    @pytest.mark.parametrize("session_id", [
        None,
        "",
        "cs_test_",
        "cs_test_short",
        "cs_test_123456789",
        "cs_prod_a1B2c3D4e5F6",
        "CS_TEST_a1B2c3D4e5F6",
        "pi_test_a1B2c3D4e5F6",
        "cs_test_a1B2c3D4e5F6\n",
        "cs_test_a1B2c3D4e5-F6",
        "cs_test_a1B2c3D4e5F6/../../v1/charges",
        " cs_test_a1B2c3D4e5F6",
        "cs_test_ａ1B2c3D4e5F6g7",
    ])
    def test_invalid_session_ids(self, session_id):
        """Test that malformed IDs fail, including unicode and path characters"""
        assert is_valid_session_id(session_id) is False

    def test_session_mode(self):
        """Test that only the mode prefix is used for logging"""
        assert session_mode("cs_live_0123456789") == "live"
        assert session_mode("cs_test_0123456789") == "test"


class TestProductSlugPrecedence:
    """Test that session metadata overrides the requested product"""

    def test_metadata_slug_wins_over_request(self, session_factory):
        """Test that a pinned slug replaces a different requested slug"""
        session = session_factory(product_slug="full-platinum-vault")

        assert select_product_slug(session, "platinum-sample-pack") == "full-platinum-vault"

    def test_metadata_slug_used_when_request_omits_product(self, session_factory):
        """Test that a pinned slug is used without a requested slug"""
        session = session_factory(product_slug="enterprise-annual")

        assert select_product_slug(session, None) == "enterprise-annual"

    def test_request_slug_used_without_metadata(self, session_factory):
        """Test fallback to the requested slug when nothing is pinned"""
        session = session_factory()

        assert select_product_slug(session, "specialty-oncology") == "specialty-oncology"

    def test_empty_metadata_slug_falls_back_to_request(self, session_factory):
        """Test that an empty pinned slug does not override the request"""
        session = session_factory(product_slug="")

        assert select_product_slug(session, "specialty-oncology") == "specialty-oncology"

    def test_no_slug_anywhere(self, session_factory):
        """Test that no slug at all resolves to None"""
        assert select_product_slug(session_factory(), None) is None


class TestGatekeeperVerification:
    """Test the verification steps that precede storage"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [None, "", "cs_test_short", "sess_123"])
    async def test_invalid_session_never_contacts_processor(self, gatekeeper, payment_client, bad_id):
        """Test that malformed IDs are rejected before any outbound call"""
        with pytest.raises(InvalidSession):
            await gatekeeper.verify_session(bad_id)

        payment_client.retrieve_checkout_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_session(self, gatekeeper, payment_client, session_id):
        """Test that a processor rejection maps to SessionNotFound"""
        payment_client.retrieve_checkout_session.return_value = None

        with pytest.raises(SessionNotFound):
            await gatekeeper.verify_session(session_id)

    @pytest.mark.asyncio
    async def test_processor_failure(self, gatekeeper, payment_client, session_id):
        """Test that processor failures map to VerificationFailed"""
        payment_client.retrieve_checkout_session.side_effect = PaymentProcessorError("unreachable")

        with pytest.raises(VerificationFailed):
            await gatekeeper.verify_session(session_id)

    @pytest.mark.asyncio
    async def test_unpaid_session(self, gatekeeper, payment_client, session_id, session_factory):
        """Test that unpaid sessions map to PaymentIncomplete"""
        payment_client.retrieve_checkout_session.return_value = session_factory(payment_status="unpaid")

        with pytest.raises(PaymentIncomplete):
            await gatekeeper.verify_session(session_id)

    @pytest.mark.asyncio
    async def test_authorize_resolves_storage_key(self, gatekeeper, session_id):
        """Test that a paid session with a known slug resolves to its storage key"""
        resolved = await gatekeeper.authorize(session_id, "enterprise-annual")

        assert resolved.slug == "enterprise-annual"
        assert resolved.filename == "Enterprise_Annual.zip"
        assert resolved.storage_key == "products/Enterprise_Annual.zip"

    @pytest.mark.asyncio
    async def test_authorize_unknown_product_lists_catalog(self, gatekeeper, session_id):
        """Test that unknown slugs raise UnknownProduct with the catalog slugs"""
        with pytest.raises(UnknownProduct) as exc_info:
            await gatekeeper.authorize(session_id, "free-stuff")

        assert exc_info.value.available == available_slugs()


class TestGatekeeperHandle:
    """Test full request handling and response rendering"""

    @pytest.mark.asyncio
    async def test_download_streams_archive(self, gatekeeper, object_store, session_id, archive_bytes):
        """Test a successful download response"""
        response = await gatekeeper.handle(session_id, "enterprise-annual")

        assert response.status_code == 200
        assert response.media_type == "application/zip"
        assert response.headers["content-disposition"] == 'attachment; filename="Enterprise_Annual.zip"'
        assert response.headers["cache-control"] == "no-store"
        assert response.headers["content-length"] == str(len(archive_bytes))
        assert await read_body(response) == archive_bytes
        object_store.get.assert_awaited_once_with("products/Enterprise_Annual.zip")

    @pytest.mark.asyncio
    async def test_metadata_slug_controls_download(self, gatekeeper, payment_client, object_store,
                                                   session_id, session_factory):
        """Test that the pinned product is served even when another is requested"""
        payment_client.retrieve_checkout_session.return_value = session_factory(product_slug="full-platinum-vault")

        response = await gatekeeper.handle(session_id, "platinum-sample-pack")

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="Full_Platinum_Vault.zip"'
        object_store.get.assert_awaited_once_with("products/Full_Platinum_Vault.zip")

    @pytest.mark.asyncio
    async def test_metadata_only_check_skips_storage(self, gatekeeper, object_store, session_id):
        """Test that metadata-only checks succeed with an empty body and no storage read"""
        response = await gatekeeper.handle(session_id, "enterprise-annual", metadata_only=True)

        assert response.status_code == 200
        assert response.body == b""
        assert response.headers["content-type"] == "application/zip"
        object_store.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_archive_returns_404(self, gatekeeper, object_store, session_id):
        """Test that a paid download missing from storage returns 404"""
        object_store.get.side_effect = None
        object_store.get.return_value = None

        response = await gatekeeper.handle(session_id, "enterprise-annual")

        assert response.status_code == 404
        assert json.loads(response.body) == {"error": "Product file not found"}

    @pytest.mark.asyncio
    async def test_storage_failure_returns_503(self, gatekeeper, object_store, session_id):
        """Test that storage transport failures return 503"""
        object_store.get.side_effect = StorageBackendError("bucket unreachable")

        response = await gatekeeper.handle(session_id, "enterprise-annual")

        assert response.status_code == 503
        assert json.loads(response.body) == {"error": "Storage unavailable"}

    @pytest.mark.asyncio
    async def test_unpaid_wins_over_unknown_product(self, gatekeeper, payment_client, object_store,
                                                    session_id, session_factory):
        """Test that payment status is checked before the product"""
        payment_client.retrieve_checkout_session.return_value = session_factory(payment_status="unpaid")

        response = await gatekeeper.handle(session_id, "no-such-product")

        assert response.status_code == 402
        assert json.loads(response.body) == {"error": "Payment not completed"}
        object_store.get.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("record", [
        {"id": 12345, "payment_status": "unpaid"},
        {"payment_status": 1},
        {"payment_status": False},
    ])
    async def test_odd_typed_records_are_unpaid(self, gatekeeper, payment_client, object_store,
                                                session_id, record):
        """Test that records with unexpected field types return 402 instead of failing verification"""
        payment_client.retrieve_checkout_session.return_value = PaymentSession.model_validate(record)

        response = await gatekeeper.handle(session_id, "enterprise-annual")

        assert response.status_code == 402
        assert json.loads(response.body) == {"error": "Payment not completed"}
        object_store.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_object_metadata_falls_back_to_request(self, gatekeeper, payment_client, object_store,
                                                             session_id, archive_bytes):
        """Test that metadata which is not an object leaves the requested product in charge"""
        payment_client.retrieve_checkout_session.return_value = PaymentSession.model_validate(
            {"payment_status": "paid", "metadata": "none"}
        )

        response = await gatekeeper.handle(session_id, "enterprise-annual")

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="Enterprise_Annual.zip"'
        assert await read_body(response) == archive_bytes
        object_store.get.assert_awaited_once_with("products/Enterprise_Annual.zip")


class TestRenderError:
    """Test error response rendering"""

    def test_unknown_product_payload_lists_slugs(self):
        """Test that UnknownProduct renders the available slugs"""
        response = render_error(UnknownProduct(["a", "b"]))

        assert response.status_code == 400
        assert json.loads(response.body) == {"error": "Unknown product", "available": ["a", "b"]}

    def test_metadata_only_errors_have_empty_body(self):
        """Test that metadata-only errors keep the status but drop the body"""
        response = render_error(UnknownProduct(["a"]), metadata_only=True)

        assert response.status_code == 400
        assert response.body == b""
        assert response.headers["content-type"] == "application/json"

    @pytest.mark.parametrize("error, status_code, message", [
        (InvalidSession(), 400, "Invalid or missing session"),
        (SessionNotFound(), 403, "Invalid session"),
        (VerificationFailed(), 500, "Verification failed"),
        (PaymentIncomplete(), 402, "Payment not completed"),
    ])
    def test_error_status_mapping(self, error, status_code, message):
        """Test the status and message of each error"""
        response = render_error(error)

        assert response.status_code == status_code
        assert json.loads(response.body) == {"error": message}
