"""
Card validation shared by the demo and production engines.

- Luhn checksum over the digits of the card number (13 to 19 digits)
- ``MM/YY`` expiry that must fall in a strictly future month
- 3 or 4 digit CVV
- Brand inference from the leading digit
"""
import re
from datetime import datetime, timezone
from typing import Dict, Optional

from .models import PaymentMethod, PaymentMethodValidation

_NON_DIGIT = re.compile(r"\D")
_EXPIRY = re.compile(r"^(\d{2})/(\d{2})$")
_CVV = re.compile(r"^\d{3,4}$")


def digits_only(card_number: str) -> str:
    return _NON_DIGIT.sub("", card_number)


def luhn_check(card_number: str) -> bool:
    """
    Validate a card number with the Luhn algorithm.

    Args:
        card_number: Card number, separators allowed

    Returns:
        bool: True when the length is in range and the checksum holds
    """
    digits = digits_only(card_number)
    if len(digits) < 13 or len(digits) > 19:
        return False

    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit

    return total % 10 == 0


def validate_expiry_date(expiry_date: str, now: Optional[datetime] = None) -> bool:
    """
    Check an ``MM/YY`` expiry against the current month.

    A card expiring in the current month is treated as expired.
    """
    match = _EXPIRY.match(expiry_date.strip())
    if not match:
        return False

    month = int(match.group(1))
    year = 2000 + int(match.group(2))
    if month < 1 or month > 12:
        return False

    now = now or datetime.now(timezone.utc)
    return (year, month) > (now.year, now.month)


def validate_cvv(cvv: str) -> bool:
    return bool(_CVV.match(cvv))


def get_card_brand(card_number: str) -> str:
    digits = digits_only(card_number)
    if digits.startswith("4"):
        return "Visa"
    if digits.startswith(("5", "2")):
        return "Mastercard"
    if digits.startswith("3"):
        return "American Express"
    if digits.startswith("6"):
        return "Discover"
    return "Unknown"


def get_last4(card_number: Optional[str]) -> Optional[str]:
    if not card_number:
        return None
    return digits_only(card_number)[-4:]


def validate_payment_method(
    method: PaymentMethod, now: Optional[datetime] = None
) -> PaymentMethodValidation:
    """
    Validate a payment method field by field.

    Only card payments carry fields to validate; other types pass.

    Args:
        method: Submitted payment method
        now: Reference time for the expiry check

    Returns:
        PaymentMethodValidation: Verdict and per-field messages
    """
    errors: Dict[str, str] = {}

    if method.type == "card":
        card_number = (method.card_number or "").strip()
        if not card_number:
            errors["card_number"] = "Card number is required"
        elif not luhn_check(card_number):
            errors["card_number"] = "Please enter a valid card number"

        expiry_date = (method.expiry_date or "").strip()
        if not expiry_date:
            errors["expiry_date"] = "Expiry date is required"
        elif not validate_expiry_date(expiry_date, now):
            errors["expiry_date"] = "Please enter a valid expiry date (MM/YY)"

        cvv = (method.cvv or "").strip()
        if not cvv:
            errors["cvv"] = "CVV is required"
        elif not validate_cvv(cvv):
            errors["cvv"] = "Please enter a valid CVV"

        if not (method.cardholder_name or "").strip():
            errors["cardholder_name"] = "Cardholder name is required"

    return PaymentMethodValidation(valid=not errors, errors=errors)
