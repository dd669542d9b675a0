from fastapi import APIRouter
from vai_api.api.v1.endpoints import auth, billing, webhooks, companies, admin_plans, cashflow

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(companies.router, prefix="/companies", tags=["companies"])
api_router.include_router(admin_plans.router, prefix="/admin/plans", tags=["admin"])
api_router.include_router(cashflow.router, prefix="/admin/cashflow", tags=["admin"])
