"""FastAPI application wiring for the detailing shop conversation service.

This module bootstraps the HTTP API used by the project:

- Configures logging, CORS (optional for the admin dashboard), Prometheus
  metrics and rate limiting.
- Builds the shared service registry (live broadcast hub, AI responder,
  Twilio gateway and owner alerts) and stores it on ``app.state.services``.
- Mounts the dashboard conversation API, the inbound SMS/web chat webhooks
  and the monitoring WebSocket.

Conversations are stored in PostgreSQL when ``DATABASE_URL`` is set and in
process memory otherwise, which is handy for local demos and tests.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .core.db import database_url
from .core.rate_limit import limiter
from .core.services import build_registry
from .routers import conversations, realtime, webhooks

load_dotenv()

logger = logging.getLogger(__name__)

app = FastAPI(title="Detailing Conversations", version=__version__)
init_logging(app)
app.state.limiter = limiter
app.state.services = build_registry()
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
# Optional CORS for the admin dashboard
admin_ui_origins = os.getenv("ADMIN_UI_ORIGINS")
if admin_ui_origins:
    origins = [o.strip() for o in admin_ui_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.include_router(conversations.router)
app.include_router(webhooks.router)
app.include_router(realtime.router)

# Expose Prometheus metrics
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)

if not database_url():
    logger.warning("DATABASE_URL not set; conversations are kept in memory only")


@app.get("/api/health")
async def health():
    """Liveness/readiness probe with a minimal JSON body."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Return version information for the application."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }
