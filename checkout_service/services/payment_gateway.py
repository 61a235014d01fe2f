"""
Payment Gateway

Adapter over the two ways a checkout can be paid:

- Hosted mode: the payment backend creates a payment intent and a
  gateway-controlled sheet collects the card outside the app.
- Direct mode: card details entered in the app are charged through a
  CardProcessor.

The mode is fixed when the gateway is constructed. Each order ID gets at most
one payment attempt; callers mint a new ID for every retry.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import httpx

from ..core.config import PaymentModeName, Settings
from ..errors import GatewayModeError, PaymentGatewayError
from ..models.checkout import PaymentMethod
from ..models.payment import (
    PaymentIntent,
    PaymentResult,
    PaymentSheetParams,
    PaymentSheetResult,
    PaymentSheetStatus,
)
from .calculator import to_minor_units
from .validators import is_valid_card_number, is_valid_cvv, is_valid_expiration_date

logger = logging.getLogger(__name__)

TRANSIENT_ERROR_MARKERS = ("timeout", "network", "temporarily", "try again")

USER_FACING_ERRORS = {
    "card declined": "Your card was declined. Please check your card details and try again.",
    "invalid card": "Invalid card number. Please check and try again.",
    "expired card": "Your card has expired. Please use a different card.",
    "insufficient funds": "Insufficient funds. Please use a different card.",
    "network": "Network error. Please check your connection and try again.",
    "timeout": "Request timed out. Please try again.",
}
DEFAULT_PAYMENT_ERROR = "Payment processing failed. Please try again or contact support."


def is_transient_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in TRANSIENT_ERROR_MARKERS)


def user_facing_error(message: str) -> str:
    lowered = message.lower()
    for key, friendly in USER_FACING_ERRORS.items():
        if key in lowered:
            return friendly
    return DEFAULT_PAYMENT_ERROR


# ==================== Modes ====================

@dataclass(frozen=True)
class HostedPaymentConfig:
    """Settings for the hosted payment sheet"""
    payment_sheet_url: str
    merchant_display_name: str
    return_url: str
    currency: str = "USD"
    timeout: float = 30.0


@dataclass(frozen=True)
class HostedMode:
    config: HostedPaymentConfig

    @property
    def name(self) -> str:
        return PaymentModeName.HOSTED.value


@dataclass(frozen=True)
class DirectMode:
    currency: str = "USD"

    @property
    def name(self) -> str:
        return PaymentModeName.DIRECT.value


PaymentMode = Union[HostedMode, DirectMode]


# ==================== Collaborators ====================

class CardProcessor(Protocol):
    """Charges a card; returns the processor's charge reference"""

    async def charge(
        self,
        method: PaymentMethod,
        amount_minor: int,
        currency: str,
        order_id: str,
    ) -> str:
        ...


class PaymentSheetPresenter(Protocol):
    """Presentation layer that shows the hosted sheet and reports the outcome"""

    async def present(self, params: PaymentSheetParams) -> PaymentSheetResult:
        ...


def _json_object(action: str, response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body, or raise a non-retryable gateway error"""
    try:
        data = response.json()
    except ValueError as e:
        raise PaymentGatewayError(
            f"Failed to {action}: response is not valid JSON", retryable=False
        ) from e
    if not isinstance(data, dict):
        raise PaymentGatewayError(
            f"Failed to {action}: expected a JSON object", retryable=False
        )
    return data


def _http_error(action: str, response: httpx.Response) -> PaymentGatewayError:
    try:
        data = response.json()
    except ValueError:
        data = None
    detail = (data.get("error") if isinstance(data, dict) else None) or response.text
    retryable = response.status_code >= 500 or response.status_code == 429
    if retryable:
        detail = f"{detail} (service temporarily unavailable)"
    return PaymentGatewayError(
        f"Failed to {action} ({response.status_code}): {detail}",
        retryable=retryable,
    )


class HostedPaymentClient:
    """HTTP client for the backend that creates hosted payment sessions"""

    def __init__(
        self,
        payment_sheet_url: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.payment_sheet_url = payment_sheet_url
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._http_client.aclose()

    async def create_payment_sheet(
        self,
        order_id: str,
        amount: Decimal,
        currency: str,
    ) -> dict[str, Any]:
        body = {
            "orderId": order_id,
            "amount": str(amount),
            "amountInCents": to_minor_units(amount),
            "currency": currency.lower(),
        }
        try:
            response = await self._http_client.post(self.payment_sheet_url, json=body)
        except httpx.TimeoutException as e:
            raise PaymentGatewayError(f"Payment session request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Payment session network error: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Payment sheet request failed: {response.status_code} - {response.text}")
            raise _http_error("create payment session", response)

        return _json_object("create payment session", response)


class HttpCardProcessor:
    """CardProcessor that posts charges to a payment backend"""

    def __init__(
        self,
        charge_url: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.charge_url = charge_url
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._http_client.aclose()

    async def charge(
        self,
        method: PaymentMethod,
        amount_minor: int,
        currency: str,
        order_id: str,
    ) -> str:
        month, _, year = method.expiration_date.partition("/")
        body = {
            "orderId": order_id,
            "amountInCents": amount_minor,
            "currency": currency.lower(),
            "card": {
                "number": method.card_number.replace(" ", "").replace("-", ""),
                "expMonth": month,
                "expYear": year,
                "cvc": method.cvv,
                "name": method.cardholder_name,
            },
        }
        try:
            response = await self._http_client.post(self.charge_url, json=body)
        except httpx.TimeoutException as e:
            raise PaymentGatewayError(f"Charge request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Charge network error: {e}") from e

        if response.status_code == 402:
            raise PaymentGatewayError(f"Card declined: {response.text}", retryable=False)
        if response.status_code >= 400:
            raise _http_error("charge card", response)

        data = _json_object("charge card", response)
        charge_id = data.get("chargeId") or data.get("id")
        if not charge_id:
            raise PaymentGatewayError("Charge response is missing a charge ID", retryable=False)
        return charge_id


# ==================== Gateway ====================

class PaymentGateway:
    """Single entry point for payments in either mode"""

    def __init__(
        self,
        mode: PaymentMode,
        card_processor: Optional[CardProcessor] = None,
        hosted_client: Optional[HostedPaymentClient] = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if isinstance(mode, HostedMode) and hosted_client is None:
            hosted_client = HostedPaymentClient(
                mode.config.payment_sheet_url, mode.config.timeout
            )
        if isinstance(mode, DirectMode) and card_processor is None:
            raise ValueError("Direct payment mode needs a card processor")

        self.mode = mode
        self.card_processor = card_processor
        self.hosted_client = hosted_client
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._intents: dict[str, PaymentIntent] = {}
        self._outcomes: dict[str, PaymentResult] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaymentGateway":
        """Build the gateway for the configured payment mode"""
        timeout = settings.gateway_timeout
        if settings.payment_mode == PaymentModeName.HOSTED:
            if not settings.payment_sheet_url:
                raise ValueError("Hosted payment mode requires PAYMENT_SHEET_URL")
            mode: PaymentMode = HostedMode(
                HostedPaymentConfig(
                    payment_sheet_url=settings.payment_sheet_url,
                    merchant_display_name=settings.merchant_display_name,
                    return_url=settings.payment_return_url,
                    currency=settings.currency,
                    timeout=timeout,
                )
            )
            return cls(
                mode,
                hosted_client=HostedPaymentClient(settings.payment_sheet_url, timeout),
                max_retries=settings.payment_max_retries,
                retry_base_delay=settings.payment_retry_base_delay,
            )

        if not settings.charge_url:
            raise ValueError("Direct payment mode requires CHARGE_URL")
        return cls(
            DirectMode(currency=settings.currency),
            card_processor=HttpCardProcessor(settings.charge_url, timeout),
            max_retries=settings.payment_max_retries,
            retry_base_delay=settings.payment_retry_base_delay,
        )

    @property
    def is_hosted(self) -> bool:
        return isinstance(self.mode, HostedMode)

    async def close(self) -> None:
        for client in (self.hosted_client, self.card_processor):
            close = getattr(client, "close", None)
            if close:
                await close()

    # ==================== Hosted mode ====================

    async def create_payment_intent(self, order_id: str, amount: Decimal) -> PaymentIntent:
        """
        Ask the payment backend for a hosted payment session.

        Raises:
            GatewayModeError: The gateway runs in direct mode
            PaymentGatewayError: The backend call failed, or the order ID was
                already used for an attempt
        """
        if not isinstance(self.mode, HostedMode):
            raise GatewayModeError("create_payment_intent", self.mode.name)
        if order_id in self._intents or order_id in self._outcomes:
            raise PaymentGatewayError(
                f"Order ID {order_id} was already used for a payment attempt",
                retryable=False,
            )

        data = await self.hosted_client.create_payment_sheet(
            order_id, amount, self.mode.config.currency
        )
        if not data.get("clientSecret"):
            raise PaymentGatewayError(
                "Payment session is missing client secret", retryable=False
            )

        intent = PaymentIntent(
            client_secret=data["clientSecret"],
            customer_id=data.get("customerId"),
            ephemeral_key=data.get("ephemeralKey"),
            merchant_display_name=data.get("merchantDisplayName"),
            payment_intent_id=data.get("paymentIntentId"),
            order_id=order_id,
            amount=amount,
        )
        self._intents[order_id] = intent
        logger.info(f"Created payment intent for order {order_id}: ${amount}")
        return intent

    def payment_sheet_params(self, intent: PaymentIntent) -> PaymentSheetParams:
        """Parameters the presentation layer needs to show the sheet"""
        if not isinstance(self.mode, HostedMode):
            raise GatewayModeError("payment_sheet_params", self.mode.name)
        config = self.mode.config
        return PaymentSheetParams(
            merchant_display_name=intent.merchant_display_name or config.merchant_display_name,
            client_secret=intent.client_secret,
            customer_id=intent.customer_id,
            ephemeral_key=intent.ephemeral_key,
            return_url=config.return_url,
        )

    def settle_hosted_payment(self, order_id: str, result: PaymentSheetResult) -> PaymentResult:
        """
        Record what the hosted sheet reported for an order.

        A cancelled sheet is not an error and leaves no error message.
        """
        if not isinstance(self.mode, HostedMode):
            raise GatewayModeError("settle_hosted_payment", self.mode.name)
        if order_id in self._outcomes:
            return self._outcomes[order_id]

        self._intents.pop(order_id, None)
        if result.status == PaymentSheetStatus.SUCCESS:
            outcome = PaymentResult(success=True, order_id=order_id)
        elif result.status == PaymentSheetStatus.USER_CANCELLED:
            logger.info(f"Payment sheet cancelled for order {order_id}")
            outcome = PaymentResult(success=False, order_id=order_id, retryable=True)
        else:
            reason = result.reason or "Payment failed"
            logger.warning(f"Payment sheet failed for order {order_id}: {reason}")
            outcome = PaymentResult(
                success=False,
                order_id=order_id,
                error=reason,
                retryable=True,
            )
        self._outcomes[order_id] = outcome
        return outcome

    # ==================== Direct mode ====================

    def validate_payment_method(self, method: PaymentMethod) -> Optional[str]:
        """First problem with the card details, if any"""
        if not is_valid_card_number(method.card_number):
            return "Invalid card number"
        if not is_valid_expiration_date(method.expiration_date):
            return "Invalid expiration date"
        if not is_valid_cvv(method.cvv):
            return "Invalid CVV"
        if not method.cardholder_name or not method.cardholder_name.strip():
            return "Cardholder name is required"
        return None

    async def process_payment(
        self,
        method: PaymentMethod,
        amount: Decimal,
        order_id: str,
    ) -> PaymentResult:
        """
        Charge a card for an order.

        Transient failures are retried with exponential backoff. Calling
        again for an order that already succeeded returns the recorded
        result without charging; reusing an order ID after a failure is
        refused.

        Raises:
            GatewayModeError: The gateway runs in hosted mode
        """
        if not isinstance(self.mode, DirectMode):
            raise GatewayModeError("process_payment", self.mode.name)

        previous = self._outcomes.get(order_id)
        if previous is not None:
            if previous.success:
                logger.info(f"Order {order_id} already paid, not charging again")
                return previous
            return PaymentResult(
                success=False,
                order_id=order_id,
                error="This payment attempt already failed. Please start a new attempt.",
                retryable=False,
            )

        validation_error = self.validate_payment_method(method)
        if validation_error:
            return PaymentResult(success=False, order_id=order_id, error=validation_error)

        amount_minor = to_minor_units(amount)
        attempt = 0
        while True:
            try:
                charge_id = await self.card_processor.charge(
                    method, amount_minor, self.mode.currency, order_id
                )
                break
            except PaymentGatewayError as e:
                message = str(e)
                if e.retryable and is_transient_error(message) and attempt < self.max_retries:
                    attempt += 1
                    delay = self.retry_base_delay * (2 ** attempt)
                    logger.info(
                        f"Retrying payment for {order_id} "
                        f"(attempt {attempt}/{self.max_retries}) in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                    continue

                logger.error(f"Payment processing error for {order_id}: {message}")
                outcome = PaymentResult(
                    success=False,
                    order_id=order_id,
                    error=user_facing_error(message),
                    retryable=e.retryable,
                )
                self._outcomes[order_id] = outcome
                return outcome

        outcome = PaymentResult(
            success=True,
            order_id=order_id,
            confirmation_number=charge_id,
        )
        self._outcomes[order_id] = outcome
        logger.info(f"Payment succeeded for order {order_id}: ${amount}")
        return outcome
