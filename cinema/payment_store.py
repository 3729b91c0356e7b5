"""
In-memory payment records keyed by tx_ref.

Process-local placeholder for a real datastore: records are lost on restart
and are not shared between server instances.
"""
import logging
import threading
from typing import Any, Dict, Optional

from django.utils import timezone

from .chapa_client import verification_data
from .constants import STATUS_PENDING
from .ledger import resolve_status

logger = logging.getLogger("cinema")


class PaymentStore:

    def __init__(self):
        self._payments: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, tx_ref: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            payment = self._payments.get(tx_ref)
            return dict(payment) if payment is not None else None

    def create(self, tx_ref: str, amount, currency: str, status: str = STATUS_PENDING) -> Optional[Dict[str, Any]]:
        """Register a new payment. Returns None if tx_ref is already taken."""
        now = timezone.now()
        payment = {
            "tx_ref": tx_ref,
            "amount": amount,
            "currency": currency,
            "status": status,
            "created_at": now,
            "updated_at": now,
            "last_verified": None,
        }
        with self._lock:
            if tx_ref in self._payments:
                return None
            self._payments[tx_ref] = payment
        logger.info(f"[PAYMENT_STORE] Created payment {tx_ref} ({amount} {currency})")
        return dict(payment)

    def apply_verification(self, tx_ref: str, response: dict) -> Optional[Dict[str, Any]]:
        """Apply a gateway verify response to the stored payment."""
        data = verification_data(response)
        now = timezone.now()
        with self._lock:
            payment = self._payments.get(tx_ref)
            if payment is None:
                return None
            updated = {
                **payment,
                "status": resolve_status(data.get("status"), payment.get("status")),
                "last_verified": now,
                "verification_response": response,
                "chapa_transaction_id": data.get("transaction_id"),
                "amount_confirmed": data.get("amount"),
                "currency_confirmed": data.get("currency"),
                "updated_at": now,
            }
            self._payments[tx_ref] = updated
        return dict(updated)

    def set_status(self, tx_ref: str, status: str, updated_by: str = "manual-update") -> Optional[Dict[str, Any]]:
        with self._lock:
            payment = self._payments.get(tx_ref)
            if payment is None:
                return None
            updated = {
                **payment,
                "status": status,
                "updated_at": timezone.now(),
                "updated_by": updated_by,
            }
            self._payments[tx_ref] = updated
        return dict(updated)

    def clear(self) -> None:
        with self._lock:
            self._payments.clear()


# Singleton instance
payment_store = PaymentStore()
