"""
Vault Download Gateway - FastAPI service
Verifies checkout sessions and streams purchased product archives
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Dict, Any

from vault_backend import __version__
from vault_backend.dependencies import build_download_gatekeeper, get_config_manager
from vault_backend.endpoints.download import router as download_router
from vault_backend.middleware.request_context import RequestContextMiddleware
from vault_shared.config.config_manager import ConfigManager

logger = logging.getLogger(__name__)


def configure_logging(config: ConfigManager):
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle events."""
    # Startup
    config = get_config_manager()
    configure_logging(config)

    gatekeeper = build_download_gatekeeper(config)
    app.state.config = config
    app.state.gatekeeper = gatekeeper
    logger.info(
        f"Download gateway ready (env={config.environment}, "
        f"storage={config.storage_backend})"
    )

    yield

    # Shutdown
    try:
        await gatekeeper.payment_client.cleanup()
    except Exception as e:
        logger.error(f"Error closing payment client: {e}")

    try:
        await gatekeeper.object_store.cleanup()
    except Exception as e:
        logger.error(f"Error closing object store: {e}")


openapi_tags = [
    {"name": "downloads", "description": "Payment-verified product downloads"},
]

app = FastAPI(
    title="Vault Download Gateway",
    version=__version__,
    lifespan=lifespan,
    openapi_tags=openapi_tags
)

app.add_middleware(RequestContextMiddleware)

app.include_router(download_router)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ConfigManager().allowed_cors,
    allow_credentials=False,
    allow_methods=["GET", "HEAD"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)


class HealthResponse(BaseModel):
    service: str
    status: str
    version: str
    environment: Dict[str, Any]
    message: str


@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": "Vault Download Gateway", "status": "ready"}


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint showing service configuration"""
    config = ConfigManager()
    return HealthResponse(
        service="download-gateway",
        status="ready",
        version=config.version,
        environment={
            "env": config.environment,
            "storage_backend": config.storage_backend,
            "payment_processor": config.stripe_api_base,
            "payment_key_configured": config.has_stripe_secret_key,
            "verification_timeout": config.verification_timeout,
        },
        message="Download gateway is ready and configured"
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=ConfigManager().api_port)
