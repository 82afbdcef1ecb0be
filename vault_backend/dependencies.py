"""
Dependency injection for the download gateway.

This module provides providers for:
- Configuration management
- The payment processor client
- The object store
- The download gatekeeper
"""

from fastapi import Request
from typing import Optional
import logging

from vault_backend.gatekeeper import DownloadGatekeeper
from vault_backend.payment_client import PaymentClient
from vault_backend.storage_client import ObjectStore, create_object_store
from vault_shared.config.config_manager import ConfigManager

logger = logging.getLogger(__name__)


def get_config_manager() -> ConfigManager:
    """Get configuration manager instance."""
    return ConfigManager(validate_storage=True)


def build_download_gatekeeper(
    config: Optional[ConfigManager] = None,
    payment_client: Optional[PaymentClient] = None,
    object_store: Optional[ObjectStore] = None
) -> DownloadGatekeeper:
    """
    Build a DownloadGatekeeper with its collaborators.

    Args:
        config: Configuration manager (loaded from the environment if None)
        payment_client: Payment processor client
        object_store: Object store for product archives

    Returns:
        DownloadGatekeeper with injected dependencies
    """
    if config is None:
        config = get_config_manager()
    if payment_client is None:
        payment_client = PaymentClient(config)
    if object_store is None:
        object_store = create_object_store(config)

    return DownloadGatekeeper(payment_client=payment_client, object_store=object_store)


# FastAPI dependency functions for HTTP endpoints
async def get_download_gatekeeper(request: Request) -> DownloadGatekeeper:
    """
    FastAPI dependency for the download gatekeeper.

    Returns the gatekeeper created during application startup.
    """
    return request.app.state.gatekeeper
