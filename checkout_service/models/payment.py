"""Payment gateway models"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PaymentIntent(BaseModel):
    """Hosted payment session created by the payment backend"""
    client_secret: str
    customer_id: Optional[str] = None
    ephemeral_key: Optional[str] = None
    merchant_display_name: Optional[str] = None
    payment_intent_id: Optional[str] = None
    order_id: str
    amount: Decimal


class PaymentSheetParams(BaseModel):
    """Parameters handed to the hosted payment sheet UI"""
    merchant_display_name: str
    client_secret: str
    customer_id: Optional[str] = None
    ephemeral_key: Optional[str] = None
    return_url: str


class PaymentSheetStatus(str, Enum):
    SUCCESS = "success"
    USER_CANCELLED = "user_cancelled"
    FAILED = "failed"


class PaymentSheetResult(BaseModel):
    """What the hosted payment sheet reported back"""
    status: PaymentSheetStatus
    reason: Optional[str] = None


class PaymentResult(BaseModel):
    """Result of a direct card payment"""
    success: bool
    order_id: Optional[str] = None
    confirmation_number: Optional[str] = None
    error: Optional[str] = None
    retryable: bool = False
