from .health import health
from .payments import payment_create, payment_detail
from .transactions import transaction_detail, transaction_list, transaction_reconcile
from .deposit import deposit, deposit_callback
from .withdraw import withdraw
from .payouts import payouts

__all__ = [
    "health",
    "payment_create",
    "payment_detail",
    "transaction_detail",
    "transaction_list",
    "transaction_reconcile",
    "deposit",
    "deposit_callback",
    "withdraw",
    "payouts",
]
