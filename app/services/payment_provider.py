# File: app/services/payment_provider.py
"""
Payment provider boundary.

The refund service talks to whatever moves the money through the narrow
``PaymentProvider`` protocol. Gateway protocols live behind it.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderRefundRequest:
    request_id: int
    approved_amount: Decimal
    original_payment_reference: Optional[str]
    currency: str


@dataclass(frozen=True)
class ProviderRefundResult:
    """
    Synchronous answer to a refund request.

    ``accepted=False`` is a decline and moves the request to ``failed``.
    An accepted refund normally settles later through the provider
    callback; a provider that settles immediately also returns
    ``refunded_amount`` and ``credit_memo_id``.
    """

    accepted: bool
    gateway_refund_id: Optional[str] = None
    reason: Optional[str] = None
    refunded_amount: Optional[Decimal] = None
    credit_memo_id: Optional[str] = None

    @property
    def settled(self) -> bool:
        return self.accepted and self.refunded_amount is not None and bool(self.credit_memo_id)


class PaymentProvider(Protocol):
    """Anything that can be asked to return money for a refund request."""

    def request_refund(self, request: ProviderRefundRequest) -> ProviderRefundResult:
        ...


class ManualPaymentProvider:
    """
    Provider for properties that pay refunds out by hand.

    Accepts every request and leaves completion to an operator, who reports
    the outcome through the provider callback endpoint.
    """

    def request_refund(self, request: ProviderRefundRequest) -> ProviderRefundResult:
        logger.info(
            f"Manual refund queued for request {request.request_id}: "
            f"{request.approved_amount} {request.currency} "
            f"(payment {request.original_payment_reference})"
        )
        return ProviderRefundResult(
            accepted=True, gateway_refund_id=f"manual-{request.request_id}"
        )
