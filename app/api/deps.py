# app/api/deps.py
"""
FastAPI dependencies for LodgePay.

Provides dependency functions for database sessions, actor authentication
and service injection for API routes.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core import security
from app.core.exceptions import AuthenticationException
from app.core.security import Actor
from app.db.session import get_db
from app.services.payment_provider import ManualPaymentProvider, PaymentProvider
from app.services.payment_rule_service import PaymentRuleService
from app.services.payment_schedule_service import PaymentScheduleService
from app.services.refund_activity_service import RefundActivityService
from app.services.refund_document_service import RefundDocumentService
from app.services.refund_service import RefundService

logger = logging.getLogger(__name__)

# --- Authentication ---
bearer_scheme = HTTPBearer(auto_error=False)

_payment_provider: PaymentProvider = ManualPaymentProvider()


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """Get the authenticated actor from the bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return security.decode_access_token(credentials.credentials)
    except AuthenticationException as e:
        logger.warning(f"Token validation failed: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def require_staff(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Require a staff role (admin, property manager or system)."""
    if not actor.is_staff:
        logger.warning(f"User {actor.id} with role '{actor.role}' denied staff endpoint")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Staff access required"
        )
    return actor


# --- Services ---


def get_payment_provider() -> PaymentProvider:
    return _payment_provider


def get_payment_rule_service(db: Session = Depends(get_db)) -> PaymentRuleService:
    return PaymentRuleService(db)


def get_payment_schedule_service(db: Session = Depends(get_db)) -> PaymentScheduleService:
    return PaymentScheduleService(db)


def get_refund_service(
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
) -> RefundService:
    return RefundService(db, payment_provider=provider)


def get_refund_activity_service(
    db: Session = Depends(get_db),
    refund_service: RefundService = Depends(get_refund_service),
) -> RefundActivityService:
    return RefundActivityService(db, refund_service=refund_service)


def get_refund_document_service(
    db: Session = Depends(get_db),
    refund_service: RefundService = Depends(get_refund_service),
) -> RefundDocumentService:
    return RefundDocumentService(db, refund_service=refund_service)
