# app/api/errors.py
"""
HTTP mapping for LodgePay domain exceptions.

Services raise coded ``LodgePayException`` subclasses; the handler
registered in ``app.main`` turns them into JSON responses carrying the
exception's ``to_dict`` payload.
"""

import logging

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.exceptions import (
    AuthenticationException,
    BusinessRuleException,
    ConcurrentModificationException,
    DocumentLockedException,
    EditLockedException,
    EntityNotFoundException,
    ForbiddenException,
    InvalidStatusTransitionException,
    LodgePayException,
    NoApplicableRuleException,
    PaymentRuleNotFoundException,
    RefundNotFoundException,
    RuleInUseException,
    ValidationException,
)

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins
STATUS_CODES = (
    (EntityNotFoundException, status.HTTP_404_NOT_FOUND),
    (PaymentRuleNotFoundException, status.HTTP_404_NOT_FOUND),
    (RefundNotFoundException, status.HTTP_404_NOT_FOUND),
    (NoApplicableRuleException, status.HTTP_404_NOT_FOUND),
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (EditLockedException, status.HTTP_409_CONFLICT),
    (RuleInUseException, status.HTTP_409_CONFLICT),
    (InvalidStatusTransitionException, status.HTTP_409_CONFLICT),
    (ConcurrentModificationException, status.HTTP_409_CONFLICT),
    (DocumentLockedException, status.HTTP_409_CONFLICT),
    (AuthenticationException, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenException, status.HTTP_403_FORBIDDEN),
    (BusinessRuleException, status.HTTP_400_BAD_REQUEST),
)


def status_code_for(exc: LodgePayException) -> int:
    for exc_class, code in STATUS_CODES:
        if isinstance(exc, exc_class):
            return code
    return status.HTTP_400_BAD_REQUEST


async def lodgepay_exception_handler(request: Request, exc: LodgePayException) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.info(
        f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}"
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": jsonable_encoder(exc.to_dict())},
    )
