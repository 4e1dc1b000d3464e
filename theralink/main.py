import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from theralink.core import config
from theralink.core.config import FRONTEND_URL, LOG_LEVEL, RUN_MIGRATIONS
from theralink.core.logging_config import sanitize_log_data, setup_logging
from theralink.core.plan_catalog import build_plan_catalog
from theralink.api.routes import billing, billing_webhook, entitlements, system

setup_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if RUN_MIGRATIONS:
        from theralink.db.migrate import run_migrations
        run_migrations()
    settings = sanitize_log_data({
        "database_url": config.DATABASE_URL,
        "stripe_secret_key": config.STRIPE_SECRET_KEY,
        "stripe_webhook_secret": config.STRIPE_WEBHOOK_SECRET,
        "frontend_url": FRONTEND_URL,
        "run_migrations": RUN_MIGRATIONS,
    })
    logger.info(f"Theralink billing API started: plans={app.state.plan_catalog.plan_keys}, settings={settings}")
    yield


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Theralink Billing API", lifespan=lifespan)

# Built once per process; routes get it through api.deps.get_plan_catalog
app.state.plan_catalog = build_plan_catalog()

# ✅ CORS LOCKDOWN: ONLY ALLOW THE FRONTEND
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        FRONTEND_URL,
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

# Stripe posts here without auth; the signature is the credential
app.include_router(billing_webhook.router)
app.include_router(billing.router)
app.include_router(entitlements.router)
app.include_router(system.router)


@app.get("/")
def root():
    return {"status": "Theralink billing API running"}
