"""Checkout session API routes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..core.session import CheckoutSession, CheckoutSessionManager
from ..core.config import settings
from ..errors import GatewayModeError, SessionNotFoundError
from ..models.cart import CartTotals, UpdateCartItemRequest
from ..models.checkout import (
    CheckoutState,
    CreateCheckoutRequest,
    PaymentMethod,
    ShippingAddress,
    ValidationResult,
)
from ..models.order import Order
from ..models.payment import PaymentSheetParams, PaymentSheetResult
from ..services.purchase import PurchaseOutcome, PurchaseStatus
from .dependencies import get_session_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/checkout", tags=["Checkout"])


class CheckoutSessionResponse(BaseModel):
    """Checkout session API response"""
    session_id: str
    user_id: str
    state: CheckoutState
    totals: CartTotals
    item_count: int


class PurchaseResponse(BaseModel):
    """Result of a payment submission"""
    status: PurchaseStatus
    message: Optional[str] = None
    retryable: bool = False
    order: Optional[Order] = None
    state: CheckoutState


def _mask_card(method: Optional[PaymentMethod]) -> Optional[PaymentMethod]:
    if method is None:
        return None
    digits = method.card_number.replace(" ", "").replace("-", "")
    masked = f"**** {digits[-4:]}" if len(digits) >= 4 else ""
    return method.model_copy(update={"card_number": masked, "cvv": ""})


def _public_state(state: CheckoutState) -> CheckoutState:
    return state.model_copy(update={"payment_method": _mask_card(state.payment_method)})


def _session_response(session: CheckoutSession, state: Optional[CheckoutState] = None) -> CheckoutSessionResponse:
    session.touch()
    machine = session.machine
    return CheckoutSessionResponse(
        session_id=session.session_id,
        user_id=session.user_id,
        state=_public_state(state or machine.get_state()),
        totals=machine.calculate_totals(),
        item_count=machine.get_cart_item_count(),
    )


def _purchase_response(outcome: PurchaseOutcome) -> PurchaseResponse:
    return PurchaseResponse(
        status=outcome.status,
        message=outcome.message,
        retryable=outcome.retryable,
        order=outcome.order,
        state=_public_state(outcome.state),
    )


def get_checkout_session(
    session_id: str,
    manager: CheckoutSessionManager = Depends(get_session_manager),
) -> CheckoutSession:
    """Resolve a session from the path"""
    return manager.require_session(session_id)


@router.post("/sessions", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    manager: CheckoutSessionManager = Depends(get_session_manager),
):
    """Start a checkout seeded with the user's cart items"""
    expired = manager.cleanup_old_sessions(settings.session_max_age_hours)
    if expired:
        logger.info(f"Removed {expired} idle checkout sessions")
    session = manager.create_session(request.user_id)
    state = session.machine.initialize_checkout(request.items)
    logger.info(
        f"Checkout session {session.session_id} started for {request.user_id} "
        f"with {len(request.items)} items"
    )
    return _session_response(session, state)


@router.get("/sessions/{session_id}", response_model=CheckoutSessionResponse)
async def get_checkout(session: CheckoutSession = Depends(get_checkout_session)):
    """Get checkout state"""
    return _session_response(session)


@router.delete("/sessions/{session_id}")
async def delete_checkout(
    session_id: str,
    manager: CheckoutSessionManager = Depends(get_session_manager),
):
    """Abandon a checkout session"""
    if not manager.delete_session(session_id):
        raise SessionNotFoundError(session_id)
    return {"message": "Checkout session deleted"}


# ==================== Cart ====================

@router.put("/sessions/{session_id}/items/{product_id}", response_model=CheckoutSessionResponse)
async def update_cart_item(
    product_id: str,
    request: UpdateCartItemRequest,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """Update item quantity; zero removes the item"""
    state = session.machine.update_cart_item(product_id, request.quantity)
    return _session_response(session, state)


@router.delete("/sessions/{session_id}/items/{product_id}", response_model=CheckoutSessionResponse)
async def remove_cart_item(
    product_id: str,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """Remove an item from the checkout cart"""
    state = session.machine.remove_cart_item(product_id)
    return _session_response(session, state)


@router.get("/sessions/{session_id}/totals", response_model=CartTotals)
async def get_totals(session: CheckoutSession = Depends(get_checkout_session)):
    """Subtotal, tax, shipping and total for the cart"""
    return session.machine.calculate_totals()


# ==================== Steps ====================

@router.put("/sessions/{session_id}/shipping-address", response_model=CheckoutSessionResponse)
async def set_shipping_address(
    address: ShippingAddress,
    session: CheckoutSession = Depends(get_checkout_session),
):
    state = session.machine.set_shipping_address(address)
    return _session_response(session, state)


@router.put("/sessions/{session_id}/payment-method", response_model=CheckoutSessionResponse)
async def set_payment_method(
    method: PaymentMethod,
    session: CheckoutSession = Depends(get_checkout_session),
):
    state = session.machine.set_payment_method(method)
    return _session_response(session, state)


@router.get("/sessions/{session_id}/validation", response_model=ValidationResult)
async def validate_step(session: CheckoutSession = Depends(get_checkout_session)):
    """Validate the current step without advancing"""
    return session.machine.validate_current_step()


@router.post("/sessions/{session_id}/next", response_model=CheckoutSessionResponse)
async def next_step(session: CheckoutSession = Depends(get_checkout_session)):
    """Advance to the next step if the current one is valid"""
    state = session.machine.proceed_to_next_step()
    return _session_response(session, state)


@router.post("/sessions/{session_id}/previous", response_model=CheckoutSessionResponse)
async def previous_step(session: CheckoutSession = Depends(get_checkout_session)):
    state = session.machine.go_to_previous_step()
    return _session_response(session, state)


@router.post("/sessions/{session_id}/reset", response_model=CheckoutSessionResponse)
async def reset_checkout(session: CheckoutSession = Depends(get_checkout_session)):
    state = session.machine.reset_checkout()
    return _session_response(session, state)


# ==================== Payment ====================

@router.post("/sessions/{session_id}/pay", response_model=PurchaseResponse)
async def pay_with_card(
    method: PaymentMethod,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """Pay with card details entered in the app (direct payment mode)"""
    try:
        outcome = await session.flow.pay_with_card(method)
    except GatewayModeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    session.touch()
    return _purchase_response(outcome)


@router.post("/sessions/{session_id}/payment-sheet", response_model=PaymentSheetParams)
async def start_payment_sheet(session: CheckoutSession = Depends(get_checkout_session)):
    """Create a hosted payment session for the sheet UI (hosted payment mode)"""
    try:
        params = await session.flow.start_hosted_payment()
    except GatewayModeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if params is None:
        state = session.machine.get_state()
        status_code = 409 if state.is_processing or state.save_failed else 400
        raise HTTPException(status_code=status_code, detail=state.error or "Payment unavailable")
    session.touch()
    return params


@router.post("/sessions/{session_id}/payment-sheet/result", response_model=PurchaseResponse)
async def finish_payment_sheet(
    result: PaymentSheetResult,
    session: CheckoutSession = Depends(get_checkout_session),
):
    """Report the hosted payment sheet outcome"""
    outcome = await session.flow.finish_hosted_payment(result)
    session.touch()
    return _purchase_response(outcome)


@router.post("/sessions/{session_id}/retry-save", response_model=PurchaseResponse)
async def retry_save(session: CheckoutSession = Depends(get_checkout_session)):
    """Save an order whose payment succeeded but whose save failed"""
    outcome = await session.flow.retry_save()
    session.touch()
    return _purchase_response(outcome)
