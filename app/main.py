from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.metrics import metrics_middleware
from app.core.rate_limit import rate_limit_middleware
from app.db import mongo
from app.routers import (
    auth,
    bills,
    budgets,
    calendar,
    health,
    insights,
    recurring,
    reports,
    rules,
    transactions,
    users,
)
from app.utils.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: indexes, then the scheduler
    mongo.ensure_indexes()
    if settings.SCHEDULER_ENABLED:
        logger.info("Starting scheduler...")
        start_scheduler()
    yield
    # Shutdown
    if settings.SCHEDULER_ENABLED:
        logger.info("Stopping scheduler...")
        stop_scheduler()
    mongo.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan
)

# CORS is added last so it wraps the rest; metrics also see rate-limited responses
app.middleware("http")(rate_limit_middleware)
app.middleware("http")(metrics_middleware)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    max_age=3600,
)

register_exception_handlers(app)


# Root endpoint
@app.get("/")
def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}


# Register routers
app.include_router(health.probe_router, tags=["Health"])  # /healthz, /readyz
app.include_router(health.router, prefix=f"{settings.API_PREFIX}", tags=["Health"])  # /api/health
app.include_router(auth.router, prefix=f"{settings.API_PREFIX}/auth", tags=["Auth"])
app.include_router(users.router, prefix=f"{settings.API_PREFIX}", tags=["Users"])
app.include_router(transactions.router, prefix=f"{settings.API_PREFIX}/transactions", tags=["Transactions"])
app.include_router(budgets.router, prefix=f"{settings.API_PREFIX}/budgets", tags=["Budgets"])
app.include_router(bills.router, prefix=f"{settings.API_PREFIX}/bills", tags=["Bills"])
app.include_router(recurring.router, prefix=f"{settings.API_PREFIX}/recurring-expenses", tags=["Recurring"])
app.include_router(rules.router, prefix=f"{settings.API_PREFIX}/rules", tags=["Rules"])
app.include_router(insights.router, prefix=f"{settings.API_PREFIX}/ai", tags=["Insights"])
app.include_router(calendar.router, prefix=f"{settings.API_PREFIX}/calendar", tags=["Calendar"])
app.include_router(reports.router, prefix=f"{settings.API_PREFIX}/reports", tags=["Reports"])
