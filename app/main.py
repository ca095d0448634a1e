import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core import config
from app.core.logging_config import setup_logging
from app.core.dependencies import build_container

# ✅ Import All API Routes
from app.api.routes import premium, admin_premium, payment_webhook, health

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: logging, schema, services and the reconciliation worker."""
    setup_logging(config.LOG_LEVEL)
    logger.info("Starting premium subscriptions API...")

    if config.RUN_MIGRATIONS:
        from app.db.migrate import run_migrations
        run_migrations()
    else:
        from app.db.init_db import init_db
        init_db()

    container = getattr(app.state, "container", None) or build_container()
    app.state.container = container

    if config.RUN_RECONCILIATION_WORKER:
        container.reconciliation.start()
    else:
        logger.info("RUN_RECONCILIATION_WORKER=0 -> reconciliation worker disabled")

    yield

    await container.reconciliation.stop()
    container.subscriptions.shutdown()
    logger.info("Premium subscriptions API stopped")


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Seller Premium Subscriptions", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(health.router)
app.include_router(premium.router)
app.include_router(admin_premium.router)
app.include_router(payment_webhook.router)


@app.get("/")
def root():
    return {"status": "Premium subscriptions API running"}
