# File: app/api/endpoints/payment_rules.py
"""
Payment rule API endpoints for LodgePay.

This module provides endpoints for defining payment rules, assigning them
to rooms, resolving the rule that applies to a booking and expanding a
rule into payment lines.
"""

from datetime import date
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from app.api.deps import get_current_actor, get_payment_rule_service, require_staff
from app.core.security import Actor
from app.schemas.payment_rule import (
    EditPermissionResponse,
    PaymentRuleCreate,
    PaymentRuleResponse,
    PaymentRuleUpdate,
    ResolvedRuleResponse,
    RoomAssignmentRequest,
    RoomAssignmentResponse,
)
from app.schemas.payment_schedule import BookingFacts, ScheduleLineResponse
from app.services.payment_rule_service import PaymentRuleService
from app.services.payment_schedule_service import BookingContext, expand

router = APIRouter()


@router.post("/", response_model=PaymentRuleResponse, status_code=status.HTTP_201_CREATED)
def create_payment_rule(
    *,
    rule_in: PaymentRuleCreate,
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    """
    Create a payment rule.

    Args:
        rule_in: Rule definition
        service: Payment rule service
        actor: Authenticated staff member

    Returns:
        The created rule
    """
    return service.create_rule(rule_in.model_dump(exclude_unset=True), user_id=actor.id)


@router.get("/", response_model=List[PaymentRuleResponse])
def list_payment_rules(
    *,
    property_id: int = Query(..., description="Property whose rules to list"),
    include_inactive: bool = Query(False, description="Include deactivated rules"),
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """List a property's rules in resolution order."""
    return service.list_rules(property_id, include_inactive=include_inactive)


@router.get("/resolve", response_model=ResolvedRuleResponse)
def resolve_payment_rule(
    *,
    property_id: int = Query(..., description="Property of the room"),
    room_id: Optional[int] = Query(None, description="Room being booked"),
    as_of: date = Query(..., description="Date the rule must apply on, usually check-in"),
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """
    Resolve the rule that applies to a room on a date.

    A 404 tells the caller to fall back to its platform default.
    """
    rule = service.resolve_rule(property_id, room_id, as_of)
    return ResolvedRuleResponse(
        property_id=property_id,
        room_id=room_id,
        as_of=as_of,
        rule=PaymentRuleResponse.model_validate(rule),
    )


@router.get("/{rule_id}", response_model=PaymentRuleResponse)
def get_payment_rule(
    *,
    rule_id: int = Path(..., ge=1, description="The ID of the rule"),
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    return service.get_rule(rule_id)


@router.get("/{rule_id}/edit-permission", response_model=EditPermissionResponse)
def get_edit_permission(
    *,
    rule_id: int = Path(..., ge=1, description="The ID of the rule"),
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    """Report whether structural fields can change and which rooms block them."""
    return service.get_edit_permission(rule_id)


@router.patch("/{rule_id}", response_model=PaymentRuleResponse)
def update_payment_rule(
    *,
    rule_id: int = Path(..., ge=1, description="The ID of the rule"),
    rule_in: PaymentRuleUpdate,
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    """
    Partially update a rule.

    Structural changes to a rule that is assigned to rooms fail with 409 and
    the names of the blocking rooms.

    Args:
        rule_id: ID of the rule to update
        rule_in: Fields to change and an optional expected_version
        service: Payment rule service
        actor: Authenticated staff member

    Returns:
        The updated rule
    """
    patch = rule_in.model_dump(exclude_unset=True)
    expected_version = patch.pop("expected_version", None)
    return service.update_rule(
        rule_id, patch, user_id=actor.id, expected_version=expected_version
    )


@router.post("/{rule_id}/deactivate", response_model=PaymentRuleResponse)
def deactivate_payment_rule(
    *,
    rule_id: int = Path(..., ge=1, description="The ID of the rule"),
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    """Stop a rule from being selected. Allowed while it is assigned."""
    return service.deactivate_rule(rule_id, user_id=actor.id)


@router.post("/{rule_id}/activate", response_model=PaymentRuleResponse)
def activate_payment_rule(
    *,
    rule_id: int = Path(..., ge=1, description="The ID of the rule"),
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    return service.activate_rule(rule_id, user_id=actor.id)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment_rule(
    *,
    rule_id: int = Path(..., ge=1, description="The ID of the rule"),
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(require_staff),
) -> None:
    """Delete a rule that no booking schedule references."""
    service.delete_rule(rule_id, user_id=actor.id)


@router.post("/{rule_id}/rooms", response_model=RoomAssignmentResponse)
def assign_payment_rule(
    *,
    rule_id: int = Path(..., ge=1, description="The ID of the rule"),
    assignment_in: RoomAssignmentRequest,
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    room_names = service.assign_rooms(rule_id, assignment_in.room_ids, user_id=actor.id)
    return RoomAssignmentResponse(rule_id=rule_id, room_names=room_names)


@router.delete("/{rule_id}/rooms/{room_id}", response_model=RoomAssignmentResponse)
def unassign_payment_rule(
    *,
    rule_id: int = Path(..., ge=1, description="The ID of the rule"),
    room_id: int = Path(..., ge=1, description="The ID of the room"),
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(require_staff),
) -> Any:
    room_names = service.unassign_room(rule_id, room_id, user_id=actor.id)
    return RoomAssignmentResponse(rule_id=rule_id, room_names=room_names)


@router.post("/{rule_id}/expand", response_model=List[ScheduleLineResponse])
def expand_payment_rule(
    *,
    rule_id: int = Path(..., ge=1, description="The ID of the rule"),
    booking_in: BookingFacts,
    service: PaymentRuleService = Depends(get_payment_rule_service),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """
    Expand a specific rule into payment lines for a booking.

    Unlike a schedule preview, no resolution happens: the rule is used even
    when it is inactive or outside its date window.
    """
    rule = service.get_rule(rule_id)
    return expand(
        rule,
        BookingContext(
            total_price=booking_in.total_price,
            booking_date=booking_in.booking_date,
            checkin_date=booking_in.checkin_date,
            currency=booking_in.currency,
        ),
    )
