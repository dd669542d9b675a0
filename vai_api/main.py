import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vai_api.api.v1.router import api_router
from vai_api.core.config import settings
from vai_api.core.exceptions import BillingError

# Register every model on Base.metadata so string relationships resolve.
from vai_api.models import (  # noqa: F401
    plan, company, user, company_plan, subscription, financial_movement, webhook_event, plan_audit_log,
)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="VAI Billing API",
    description="Back-office subscriptions, plan changes, payment webhooks and cashflow for VAI",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s (%s)", type(exc).__name__, request.url.path, exc.message, exc.detail)
    body = {"detail": exc.message}
    if exc.detail:
        body["info"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=body)


app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "ledger_mode": settings.LEDGER_MODE, "env": settings.APP_ENV}
