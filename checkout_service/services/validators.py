"""
Checkout step validators

Each validator returns a ValidationResult with one message per failing field
and never raises, so bad input from a form always ends up as an inline error.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from ..models.cart import CartItem
from ..models.checkout import PaymentMethod, ShippingAddress, ValidationResult

_CARD_SEPARATORS = re.compile(r"[\s-]")
_EXPIRATION = re.compile(r"^(\d{2})/(\d{2})$")

_POSTAL_CODE_FORMATS = {
    "US": re.compile(r"^\d{5}(-\d{4})?$"),
    "CA": re.compile(r"^[A-Z]\d[A-Z]\s?\d[A-Z]\d$", re.IGNORECASE),
    "UK": re.compile(r"^[A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2}$", re.IGNORECASE),
    "GB": re.compile(r"^[A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2}$", re.IGNORECASE),
}
_GENERIC_POSTAL_CODE = re.compile(r"^[A-Z0-9\s\-]{3,}$", re.IGNORECASE)


def _is_blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


# ==================== Cart ====================

def validate_cart_items(items: Iterable[CartItem]) -> ValidationResult:
    """Validate the cart before moving on to shipping"""
    items = list(items or [])
    if not items:
        return ValidationResult.from_errors({"cart": "Cart is empty"})

    errors: dict[str, str] = {}
    for index, item in enumerate(items):
        quantity = item.quantity
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            errors[f"items[{index}].quantity"] = (
                f"Quantity for {item.title or item.product_id} must be a positive integer"
            )

        try:
            negative_price = Decimal(str(item.price)) < 0
        except (InvalidOperation, ValueError):
            negative_price = True
        if negative_price:
            errors[f"items[{index}].price"] = (
                f"Price for {item.title or item.product_id} cannot be negative"
            )

    return ValidationResult.from_errors(errors)


# ==================== Shipping ====================

def is_valid_postal_code(postal_code: str, country: str) -> bool:
    """Check postal code format for the given country"""
    pattern = _POSTAL_CODE_FORMATS.get(country.strip().upper(), _GENERIC_POSTAL_CODE)
    return bool(pattern.match(postal_code.strip()))


def validate_shipping_address(
    address: ShippingAddress,
    supported_countries: Iterable[str],
) -> ValidationResult:
    """Validate a shipping address against the supported countries"""
    errors: dict[str, str] = {}

    if _is_blank(address.street):
        errors["street"] = "Street address is required"
    if _is_blank(address.city):
        errors["city"] = "City is required"
    if _is_blank(address.state):
        errors["state"] = "State is required"

    if _is_blank(address.country):
        errors["country"] = "Country is required"
    else:
        supported = {country.strip().upper() for country in supported_countries}
        if address.country.strip().upper() not in supported:
            errors["country"] = "Country is not supported"

    if _is_blank(address.postal_code):
        errors["postal_code"] = "Postal code is required"
    elif not _is_blank(address.country) and not is_valid_postal_code(
        address.postal_code, address.country
    ):
        errors["postal_code"] = "Invalid postal code format"

    return ValidationResult.from_errors(errors)


# ==================== Payment ====================

def _passes_luhn(digits: str) -> bool:
    total = 0
    for position, char in enumerate(reversed(digits)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def is_valid_card_number(card_number: str) -> bool:
    """13-19 digits once spaces and dashes are removed, with a valid Luhn checksum"""
    cleaned = _CARD_SEPARATORS.sub("", card_number or "")
    if not re.fullmatch(r"\d{13,19}", cleaned):
        return False
    return _passes_luhn(cleaned)


def is_valid_expiration_date(expiration_date: str, today: Optional[date] = None) -> bool:
    """MM/YY that is not before the current month"""
    match = _EXPIRATION.match((expiration_date or "").strip())
    if not match:
        return False

    month = int(match.group(1))
    year = int(match.group(2))
    if month < 1 or month > 12:
        return False

    today = today or date.today()
    current_year = today.year % 100
    if year < current_year:
        return False
    if year == current_year and month < today.month:
        return False
    return True


def is_valid_cvv(cvv: str) -> bool:
    """3 or 4 digits"""
    return bool(re.fullmatch(r"\d{3,4}", (cvv or "").strip()))


def validate_payment_method(
    method: PaymentMethod,
    today: Optional[date] = None,
) -> ValidationResult:
    """Validate card details entered for a direct payment"""
    errors: dict[str, str] = {}

    if _is_blank(method.cardholder_name):
        errors["cardholder_name"] = "Cardholder name is required"

    if _is_blank(method.card_number):
        errors["card_number"] = "Card number is required"
    elif not is_valid_card_number(method.card_number):
        errors["card_number"] = "Invalid card number"

    if _is_blank(method.expiration_date):
        errors["expiration_date"] = "Expiration date is required"
    elif not is_valid_expiration_date(method.expiration_date, today):
        errors["expiration_date"] = "Invalid expiration date (use MM/YY format)"

    if _is_blank(method.cvv):
        errors["cvv"] = "CVV is required"
    elif not is_valid_cvv(method.cvv):
        errors["cvv"] = "Invalid CVV (3-4 digits)"

    return ValidationResult.from_errors(errors)
