"""
FastAPI endpoint for payment-verified product downloads.
GET streams the purchased archive; HEAD runs the same checks without a body.
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from typing import Optional
import logging

from vault_backend.dependencies import get_download_gatekeeper
from vault_backend.gatekeeper import DownloadGatekeeper

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["downloads"])


@router.api_route(
    "/download",
    methods=["GET", "HEAD"],
    response_class=Response,
    responses={
        200: {"content": {"application/zip": {}}, "description": "Archive stream"},
        400: {"description": "Invalid session or unknown product"},
        402: {"description": "Payment not completed"},
        403: {"description": "Session rejected by the payment processor"},
        404: {"description": "Product file not found"},
        500: {"description": "Verification failed"},
        503: {"description": "Storage unavailable"},
    },
)
async def download_product(
    request: Request,
    session_id: Optional[str] = Query(None, description="Checkout session ID (cs_test_... or cs_live_...)"),
    product: Optional[str] = Query(None, description="Product slug, ignored when the session pins one"),
    gatekeeper: DownloadGatekeeper = Depends(get_download_gatekeeper),
):
    """Verify the checkout session and stream the purchased archive."""
    metadata_only = request.method == "HEAD"
    return await gatekeeper.handle(session_id, product, metadata_only=metadata_only)
