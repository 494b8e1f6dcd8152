"""Quote lifecycle routes: request, revise, status changes, rating, history."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.app.routes.auth import get_current_user_dep, require_role
from printshop.app.routes.common import STAFF_ROLES, not_found, to_http_exception
from printshop.domain.enums import QuoteStatus, UserRole
from printshop.domain.errors import PrintShopError
from printshop.domain.models import User
from printshop.domain.schemas import (
    QuoteCreate,
    QuoteRejectRequest,
    QuoteResponse,
    QuoteStatusUpdate,
    RatingRequest,
)
from printshop.infra.database import get_db
from printshop.services.quote_lifecycle import QuoteLifecycleService
from printshop.services.quote_state_machine import InvalidTransitionError, QuoteStateMachine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


def _check_visible(user: User, quote) -> None:
    """Customers only see their own quotes."""
    if user.role == UserRole.CUSTOMER.value and quote.customer_id != user.id:
        raise not_found("Quote")


@router.post("", response_model=QuoteResponse, status_code=201)
async def request_quote(
    body: QuoteCreate,
    user: User = Depends(require_role(*STAFF_ROLES, "customer")),
    db: AsyncSession = Depends(get_db),
):
    """Create a new draft quote (version 1)."""
    customer_id = user.id if user.role == UserRole.CUSTOMER.value else body.customer_id
    employee_id = body.employee_id if user.role == UserRole.CUSTOMER.value else (body.employee_id or user.id)
    try:
        quote = await QuoteLifecycleService(db).request_quote(customer_id, body.items, employee_id)
    except PrintShopError as e:
        raise to_http_exception(e)
    if quote is None:
        raise not_found("Customer")
    return quote


@router.get("/{quote_id}")
async def get_quote(
    quote_id: int,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    quote = await QuoteLifecycleService(db).get_quote(quote_id)
    if quote is None:
        raise not_found("Quote")
    _check_visible(user, quote)
    allowed = QuoteStateMachine().get_allowed_transitions(
        QuoteStatus(quote.status), UserRole(user.role),
    )
    return {
        **QuoteResponse.model_validate(quote).model_dump(),
        "allowed_transitions": [s.value for s in allowed],
    }


@router.get("/{quote_id}/history", response_model=list[QuoteResponse])
async def get_quote_history(
    quote_id: int,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """All versions of the quote's chain, oldest first."""
    history = await QuoteLifecycleService(db).get_quote_history(quote_id)
    if not history:
        raise not_found("Quote")
    _check_visible(user, history[0])
    return history


@router.post("/{quote_id}/revise", response_model=QuoteResponse, status_code=201)
async def revise_quote(
    quote_id: int,
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Supersede the quote and return its new draft version."""
    try:
        new_quote = await QuoteLifecycleService(db).revise_quote(quote_id, employee_id=user.id)
    except (PrintShopError, InvalidTransitionError) as e:
        raise to_http_exception(e)
    if new_quote is None:
        raise not_found("Quote")
    return new_quote


@router.patch("/{quote_id}/status", response_model=QuoteResponse)
async def update_quote_status(
    quote_id: int,
    body: QuoteStatusUpdate,
    user: User = Depends(require_role(*STAFF_ROLES, "customer")),
    db: AsyncSession = Depends(get_db),
):
    service = QuoteLifecycleService(db)
    if user.role == UserRole.CUSTOMER.value:
        existing = await service.get_quote(quote_id)
        if existing is None:
            raise not_found("Quote")
        _check_visible(user, existing)
    try:
        quote = await service.update_status(quote_id, body.status, UserRole(user.role), body.reason)
    except (PrintShopError, InvalidTransitionError) as e:
        raise to_http_exception(e)
    if quote is None:
        raise not_found("Quote")
    logger.info("User %s (%s) set quote %s to %s", user.id, user.role, quote_id, quote.status)
    return quote


@router.post("/{quote_id}/reject", response_model=QuoteResponse)
async def reject_quote(
    quote_id: int,
    body: QuoteRejectRequest,
    user: User = Depends(require_role(*STAFF_ROLES, "customer")),
    db: AsyncSession = Depends(get_db),
):
    service = QuoteLifecycleService(db)
    if user.role == UserRole.CUSTOMER.value:
        existing = await service.get_quote(quote_id)
        if existing is None:
            raise not_found("Quote")
        _check_visible(user, existing)
    try:
        quote = await service.reject_quote(quote_id, body.reason, UserRole(user.role))
    except (PrintShopError, InvalidTransitionError) as e:
        raise to_http_exception(e)
    if quote is None:
        raise not_found("Quote")
    return quote


@router.post("/{quote_id}/send", response_model=QuoteResponse)
async def send_quote(
    quote_id: int,
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Send a fully priced draft to the customer."""
    try:
        quote = await QuoteLifecycleService(db).send_to_customer(quote_id, UserRole(user.role))
    except (PrintShopError, InvalidTransitionError) as e:
        raise to_http_exception(e)
    if quote is None:
        raise not_found("Quote")
    return quote


@router.post("/{quote_id}/rate", response_model=QuoteResponse)
async def rate_deal(
    quote_id: int,
    body: RatingRequest,
    user: User = Depends(require_role(*STAFF_ROLES, "customer")),
    db: AsyncSession = Depends(get_db),
):
    service = QuoteLifecycleService(db)
    if user.role == UserRole.CUSTOMER.value:
        existing = await service.get_quote(quote_id)
        if existing is None:
            raise not_found("Quote")
        _check_visible(user, existing)
    try:
        quote = await service.rate_deal(quote_id, body.rating)
    except PrintShopError as e:
        raise to_http_exception(e)
    if quote is None:
        raise not_found("Quote")
    return quote
