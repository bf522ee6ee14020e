# app/api/api.py

from fastapi import APIRouter

from app.api.endpoints import payment_rules, payment_schedules, refunds

api_router = APIRouter()

api_router.include_router(payment_rules.router, prefix="/payment-rules", tags=["Payment Rules"])
api_router.include_router(
    payment_schedules.router, prefix="/payment-schedules", tags=["Payment Schedules"]
)
api_router.include_router(refunds.router, prefix="/refunds", tags=["Refunds"])
