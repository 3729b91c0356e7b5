"""
Payment status transitions and balance bookkeeping.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from django.utils import timezone

from .chapa_client import verification_data
from .constants import DEPOSIT_FEE_RATE, STATUS_FAILED, STATUS_SUCCESS, TYPE_DEPOSIT
from .firebase_service import firestore_service

logger = logging.getLogger("cinema")


def resolve_status(gateway_status: Optional[str], current: Optional[str]) -> Optional[str]:
    """Map a gateway status onto ours; anything unsettled keeps the current one."""
    if gateway_status == STATUS_SUCCESS:
        return STATUS_SUCCESS
    if gateway_status == STATUS_FAILED:
        return STATUS_FAILED
    return current


def deposit_fee(amount) -> str:
    fee = Decimal(str(amount)) * DEPOSIT_FEE_RATE
    return str(fee.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _confirmed_amount(data: Dict[str, Any], record: Dict[str, Any]) -> Optional[float]:
    for value in (data.get("amount"), record.get("amount")):
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def settle_transaction(
    doc_id: str,
    record: Dict[str, Any],
    verification: Dict[str, Any],
    detail: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Apply a gateway verify response to a stored transaction.

    Writes the resolved status and verification fields, appends a history
    entry, and credits the depositor's balance on the first transition of a
    deposit into success.

    Returns the updated record, or None if the Firestore write failed.
    """
    data = verification_data(verification)
    gateway_status = data.get("status")
    previous = record.get("status")
    new_status = resolve_status(gateway_status, previous)
    now = timezone.now()

    fields = {
        "last_verified": now,
        "verification_response": verification,
        "chapa_transaction_id": data.get("transaction_id"),
        "amount_confirmed": data.get("amount"),
        "currency_confirmed": data.get("currency"),
    }
    ok = firestore_service.append_status(
        doc_id,
        new_status,
        detail or f"Chapa verification: {gateway_status}",
        **fields
    )
    if not ok:
        return None

    updated = {**record, **fields, "status": new_status, "updated_at": now}

    if (
        new_status == STATUS_SUCCESS
        and previous != STATUS_SUCCESS
        and record.get("type", TYPE_DEPOSIT) == TYPE_DEPOSIT
    ):
        email = record.get("userEmail")
        amount = _confirmed_amount(data, record)
        if email and amount is not None:
            if firestore_service.reserve_balance_credit(doc_id) is not True:
                logger.info(f"[LEDGER] Balance credit for {doc_id} already claimed, skipping")
            elif not firestore_service.credit_owner_balance(email, amount):
                logger.error(f"[LEDGER] Failed to credit {amount} to {email} for {doc_id}")
                firestore_service.release_balance_credit(doc_id)
        else:
            logger.warning(f"[LEDGER] Cannot credit {doc_id}: email={email}, amount={amount}")

    logger.info(f"[LEDGER] Transaction {doc_id}: {previous} -> {new_status}")
    return updated
