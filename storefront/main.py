from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.routing import Mount

from storefront.config import get_settings
from storefront.dependencies.services import get_backend_client_cached

from storefront.health import router as health_router
from storefront.mcp_server import mcp
from storefront.mock_data_view import router as mock_data_router
from storefront.tools.appointment import router as appointment_router
from storefront.tools.events import router as events_router
from storefront.tools.notifications import router as notifications_router
from storefront.tools.slots import router as slots_router
from storefront.tools.wallet import router as wallet_router


def configure_logging() -> None:
    """Ensure application logs use the INFO level by default."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    else:
        root_logger.setLevel(logging.INFO)


configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    settings_snapshot = settings.model_dump(exclude={"ledger_service_token"})
    logger.info("Application settings on startup: %s", settings_snapshot)

    has_mcp = any(isinstance(r, Mount) and r.path == "/mcp" for r in app.routes)
    logger.debug("MCP mount present: %s", has_mcp)

    client = get_backend_client_cached()
    logger.info(
        "Application startup complete (mock data: %s, atomic reservations: %s).",
        client.use_mock_data,
        settings.atomic_reservations,
    )

    try:
        yield
    finally:
        logger.info("Closing ledger client connection.")
        await client.close()
        logger.info("Application shutdown complete.")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(appointment_router, prefix="/appointments")
app.include_router(slots_router, prefix="/slots")
app.include_router(wallet_router, prefix="/wallets")
app.include_router(notifications_router, prefix="/notifications")
app.include_router(events_router, prefix="/events")
app.include_router(health_router)
app.include_router(mock_data_router)

# Streamable HTTP transport for the AI front desk
app.mount("/mcp", mcp.streamable_http_app())
