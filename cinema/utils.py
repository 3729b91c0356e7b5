from decimal import Decimal, InvalidOperation

from django.utils import timezone


def parse_amount(value):
    """Parse a positive monetary amount, returning None when invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def status_entry(status: str, detail: str) -> dict:
    return {
        "status": status,
        "timestamp": timezone.now(),
        "detail": detail,
    }
