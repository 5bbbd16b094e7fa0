"""FastAPI application initialization."""

import os
from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration

from chat_widget.api import health, widget
from chat_widget.config import get_settings
from chat_widget.logging_config import setup_logfire
from chat_widget.storage.repository import get_widget_storage

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    settings = get_settings()

    # Initialize Logfire for observability
    setup_logfire(app)

    # Initialize Sentry if DSN is provided
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            send_default_pii=False,
            integrations=[FastApiIntegration()],
        )

    # Initialize widget storage for the configured backend
    app.state.widget_storage = get_widget_storage()

    logfire.info(
        "Application startup complete",
        storage_backend=settings.storage_backend,
        environment=settings.env,
    )

    yield

    logfire.info("Application shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Chat Widget Session API",
    description="Anonymous visitor identity and popup trigger planning for the embeddable chat widget",
    version=API_VERSION,
    lifespan=lifespan,
)

# The widget is embedded on arbitrary customer sites
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health.router, tags=["health"])
app.include_router(widget.router, prefix="/widget", tags=["widget"])


@app.get("/")
def root():
    """Root endpoint."""
    settings = get_settings()
    return {
        "message": "Chat Widget Session API",
        "storage_backend": settings.storage_backend,
        "version": API_VERSION,
    }


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "chat_widget.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "local",
    )
