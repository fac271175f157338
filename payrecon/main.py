import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from payrecon.core.db import init_db, close_db
from payrecon.api.v1.webhooks import router as webhooks_router
from payrecon.api.v1.admin import router as admin_router
from payrecon.api.v1.payments import router as payments_router
from payrecon.core.config import PROJECT_NAME, VERSION
from payrecon.core.exception_handlers import setup_exception_handlers
from payrecon.core.logging import setup_logging
from payrecon.core.rate_limit import build_rate_limiter
from payrecon.services.provider import PaystackClient

setup_logging()
log = logging.getLogger("payrecon")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db()  # Connect to DB and generate schemas
    yield
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")


app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Collaborators the routes reach through app.state; tests swap them out
app.state.rate_limiter = build_rate_limiter()
app.state.provider_client = PaystackClient()

app.include_router(webhooks_router, prefix="/webhook", tags=["Provider Webhooks"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["Admin"])
app.include_router(payments_router, prefix="/api/v1/payments", tags=["Payments"])


setup_exception_handlers(app)


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
