"""
Purchase flow

Runs the payment step of a checkout: guards against duplicate submission,
calls the payment gateway, and turns a successful payment into a stored
order. A failed save after a successful payment is kept visible so the
order can be saved again without charging the customer twice.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..database.orders import OrderRepository, generate_order_id
from ..errors import GatewayModeError, OrderPersistenceError, PaymentGatewayError
from ..models.checkout import CheckoutState, CheckoutStep, PaymentMethod
from ..models.order import Order
from ..models.payment import PaymentResult, PaymentSheetParams, PaymentSheetResult
from .checkout import CheckoutStateMachine
from .payment_gateway import (
    DEFAULT_PAYMENT_ERROR,
    PaymentGateway,
    PaymentSheetPresenter,
    user_facing_error,
)

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = (
    "Your payment went through but your order may not have saved. "
    "Please try saving it again before leaving checkout."
)


class PurchaseStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    INVALID = "invalid"
    IN_PROGRESS = "in_progress"
    SAVE_FAILED = "save_failed"


@dataclass
class PurchaseOutcome:
    """Result of a purchase attempt, as reported to the UI and alerting"""
    status: PurchaseStatus
    state: CheckoutState
    message: Optional[str] = None
    retryable: bool = False
    order: Optional[Order] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PurchaseStatus.COMPLETED


@dataclass
class _PendingHostedPayment:
    order_id: str
    snapshot: CheckoutState


class PurchaseFlow:
    """Drives one checkout from the payment step to a saved order"""

    def __init__(
        self,
        machine: CheckoutStateMachine,
        gateway: PaymentGateway,
        repository: OrderRepository,
        user_id: str,
    ):
        self.machine = machine
        self.gateway = gateway
        self.repository = repository
        self.user_id = user_id
        self._pending: Optional[_PendingHostedPayment] = None

    def _outcome(
        self,
        status: PurchaseStatus,
        message: Optional[str] = None,
        retryable: bool = False,
        order: Optional[Order] = None,
    ) -> PurchaseOutcome:
        return PurchaseOutcome(
            status=status,
            state=self.machine.get_state(),
            message=message,
            retryable=retryable,
            order=order,
        )

    def _check_ready(self) -> Optional[PurchaseOutcome]:
        state = self.machine.get_state()
        if state.is_processing:
            logger.warning(f"Ignoring duplicate payment submission for {self.user_id}")
            return self._outcome(PurchaseStatus.IN_PROGRESS, "Payment is already in progress")
        if state.save_failed:
            return self._outcome(
                PurchaseStatus.SAVE_FAILED, SAVE_FAILED_MESSAGE, retryable=True, order=state.order
            )
        if state.current_step != CheckoutStep.PAYMENT:
            message = "Checkout is not at the payment step"
            self.machine.set_error(message)
            return self._outcome(PurchaseStatus.INVALID, message)
        return None

    def _payment_failed(self, message: str, retryable: bool) -> PurchaseOutcome:
        self.machine.set_processing(False)
        self.machine.set_error(message)
        return self._outcome(PurchaseStatus.FAILED, message, retryable=retryable)

    async def _complete(self, order_id: str) -> PurchaseOutcome:
        """Payment succeeded: move to confirmation, then store the order"""
        totals = self.machine.calculate_totals()
        state = self.machine.proceed_to_next_step()

        order = self.repository.create_order(
            state.cart_items,
            state.shipping_address,
            totals.subtotal,
            totals.tax,
            totals.shipping,
            self.user_id,
            order_id=order_id,
        )
        self.machine.set_order(order)
        return await self._save(order)

    async def _save(self, order: Order) -> PurchaseOutcome:
        try:
            await self.repository.save_order(order)
        except OrderPersistenceError as e:
            logger.error(f"Order {order.order_id} paid but not saved: {e}")
            self.machine.mark_save_failed(SAVE_FAILED_MESSAGE)
            return self._outcome(
                PurchaseStatus.SAVE_FAILED, SAVE_FAILED_MESSAGE, retryable=True, order=order
            )

        self.machine.reset_checkout()
        logger.info(f"Checkout completed for {self.user_id}: order {order.order_id}")
        return self._outcome(PurchaseStatus.COMPLETED, order=order)

    # ==================== Direct mode ====================

    async def pay_with_card(self, method: PaymentMethod) -> PurchaseOutcome:
        """Validate and charge card details entered in the app"""
        if self.gateway.is_hosted:
            raise GatewayModeError("pay_with_card", self.gateway.mode.name)
        blocked = self._check_ready()
        if blocked:
            return blocked

        self.machine.set_payment_method(method)
        validation = self.machine.validate_current_step()
        if not validation.is_valid:
            state = self.machine.set_error(validation.first_error)
            return PurchaseOutcome(PurchaseStatus.INVALID, state, validation.first_error)

        self.machine.set_processing(True)
        order_id = generate_order_id()
        try:
            result: PaymentResult = await self.gateway.process_payment(
                method, self.machine.get_total(), order_id
            )
        except PaymentGatewayError as e:
            return self._payment_failed(user_facing_error(str(e)), e.retryable)
        except Exception:
            self._payment_failed(DEFAULT_PAYMENT_ERROR, retryable=True)
            raise

        if not result.success:
            return self._payment_failed(
                result.error or "Payment processing failed", result.retryable
            )
        return await self._complete(order_id)

    # ==================== Hosted mode ====================

    async def start_hosted_payment(self) -> Optional[PaymentSheetParams]:
        """
        Create a payment intent and return what the sheet needs.

        Returns None when the checkout cannot take a payment right now; the
        reason is left in the checkout state's error.
        """
        if not self.gateway.is_hosted:
            raise GatewayModeError("start_hosted_payment", self.gateway.mode.name)
        if self._check_ready():
            return None

        snapshot = self.machine.get_state()
        self.machine.set_processing(True)
        order_id = generate_order_id()
        try:
            intent = await self.gateway.create_payment_intent(
                order_id, self.machine.get_total()
            )
        except PaymentGatewayError as e:
            logger.error(f"Unable to start hosted payment: {e}")
            self._payment_failed("Unable to start secure checkout. Please try again.", e.retryable)
            return None
        except Exception:
            self._payment_failed("Unable to start secure checkout. Please try again.", retryable=True)
            raise

        self._pending = _PendingHostedPayment(order_id=order_id, snapshot=snapshot)
        return self.gateway.payment_sheet_params(intent)

    async def finish_hosted_payment(self, result: PaymentSheetResult) -> PurchaseOutcome:
        """Apply what the hosted sheet reported"""
        pending = self._pending
        if pending is None:
            message = "No hosted payment is in progress"
            return self._outcome(PurchaseStatus.INVALID, message)
        self._pending = None

        payment = self.gateway.settle_hosted_payment(pending.order_id, result)
        if payment.success:
            self.machine.set_payment_method(PaymentMethod.hosted_placeholder())
            return await self._complete(pending.order_id)

        if payment.error is None:
            # Cancelled by the user: nothing changed
            state = self.machine.restore_state(pending.snapshot)
            return PurchaseOutcome(PurchaseStatus.CANCELLED, state, retryable=True)

        return self._payment_failed(payment.error, payment.retryable)

    async def pay_with_sheet(self, presenter: PaymentSheetPresenter) -> PurchaseOutcome:
        """Run the hosted flow end to end with the given presenter"""
        blocked = self._check_ready()
        if blocked:
            return blocked

        params = await self.start_hosted_payment()
        if params is None:
            state = self.machine.get_state()
            return PurchaseOutcome(PurchaseStatus.FAILED, state, state.error, retryable=True)

        try:
            result = await presenter.present(params)
        except Exception:
            pending, self._pending = self._pending, None
            if pending:
                self.machine.restore_state(pending.snapshot)
            raise
        return await self.finish_hosted_payment(result)

    # ==================== Recovery ====================

    async def retry_save(self) -> PurchaseOutcome:
        """Save an order whose payment succeeded but whose save failed"""
        state = self.machine.get_state()
        if not state.save_failed or state.order is None:
            return self._outcome(PurchaseStatus.INVALID, "No unsaved order to retry")

        self.machine.set_processing(True)
        return await self._save(state.order)
