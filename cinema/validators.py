from typing import List

from django.core.exceptions import ValidationError
from django.core.validators import URLValidator, validate_email

from .constants import ALLOWED_CURRENCIES, PAYMENT_METHODS
from .utils import parse_amount

_url_validator = URLValidator(schemes=["http", "https"])


def is_valid_email(value) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        validate_email(value)
    except ValidationError:
        return False
    return True


def is_valid_url(value) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        _url_validator(value)
    except ValidationError:
        return False
    return True


def validate_deposit(data: dict) -> List[str]:
    """Return a list of problems with a deposit request (empty when valid)."""
    errors = []

    if not is_valid_email(data.get("email")):
        errors.append("Invalid or missing email address")

    if parse_amount(data.get("amount")) is None:
        errors.append("Invalid or missing amount")

    if data.get("currency") not in ALLOWED_CURRENCIES:
        errors.append(f"Invalid currency. Allowed currencies: {', '.join(ALLOWED_CURRENCIES)}")

    if not is_valid_url(data.get("callback_url")):
        errors.append("Invalid or missing callback URL")

    if data.get("return_url") and not is_valid_url(data.get("return_url")):
        errors.append("Invalid return URL")

    if not data.get("reference"):
        errors.append("Missing transaction reference")

    payment_method = data.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        errors.append("Invalid payment method")

    if not data.get("account_number"):
        errors.append("Missing account number or phone number")

    if not data.get("account_name"):
        errors.append("Missing account name")

    if payment_method == "bank" and not data.get("bank_code"):
        errors.append("Missing bank code for bank payment")

    return errors
