# Load environment variables FIRST, before any module imports that need them
from dotenv import load_dotenv
load_dotenv()

import logging
import uuid

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from . import config
from .errors import OrderBotError
from .logging_config import setup_logging
from .routes import (
    admin_deliveries_router,
    admin_orders_router,
    admin_pharmacies_router,
    webhooks_router,
)
from .routes.webhooks import limiter

# Configure logging at module load time
setup_logging()

logger = logging.getLogger(__name__)

# Database migrations are handled by Alembic.
# Run `alembic upgrade head` to apply migrations before starting the server.

app = FastAPI(
    title="Pharmacy Bot API",
    description="WhatsApp order intake, lifecycle and delivery for pharmacies",
    version="1.0.0",
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Webhooks", "description": "Chat transport and courier callbacks"},
        {"name": "Admin - Orders", "description": "Pharmacist order management"},
        {"name": "Admin - Deliveries", "description": "Courier delivery management"},
        {"name": "Admin - Pharmacies", "description": "Pharmacy settings"},
    ],
)


# ---------- Request ID Middleware ----------
# Adds a unique request ID to each request for log correlation


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request.
    The ID is available in request.state.request_id and returned in X-Request-ID header.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestIDMiddleware)

# Add rate limit exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# In production, set CORS_ORIGINS to the dashboard origin(s)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OrderBotError)
async def order_bot_error_handler(request: Request, exc: OrderBotError) -> JSONResponse:
    """Domain errors become {"detail": message} with the class status code."""
    if exc.status_code >= 500:
        logger.error("Unhandled domain error on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ---------- Health ----------

@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "ok"}


# ---------- Routers ----------

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(webhooks_router)
api_v1_router.include_router(admin_orders_router)
api_v1_router.include_router(admin_deliveries_router)
api_v1_router.include_router(admin_pharmacies_router)
app.include_router(api_v1_router)

# Also mount at root; Twilio and the courier post to these paths
app.include_router(webhooks_router)
app.include_router(admin_orders_router)
app.include_router(admin_deliveries_router)
app.include_router(admin_pharmacies_router)

logger.info(
    "Pharmacy Bot started (env=%s, courier=%s)",
    config.APP_ENV, "enabled" if config.is_courier_enabled() else "disabled",
)
