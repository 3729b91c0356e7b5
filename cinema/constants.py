from decimal import Decimal

# Gateway timeouts (seconds)
VERIFY_TIMEOUT_SECONDS = 30
CALLBACK_VERIFY_TIMEOUT_SECONDS = 10
INITIALIZE_TIMEOUT_SECONDS = 15
TRANSFER_TIMEOUT_SECONDS = 30
LIST_TIMEOUT_SECONDS = 30

# Fixed attempt count and delay, no backoff
VERIFY_MAX_RETRIES = 3
VERIFY_RETRY_DELAY_SECONDS = 1.0

STATUS_INITIATED = "initiated"
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_COMPLETED = "completed"

PAYMENT_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_SUCCESS, STATUS_FAILED)
UNSETTLED_STATUSES = (STATUS_PENDING, STATUS_PROCESSING)

TYPE_DEPOSIT = "deposit"
TYPE_WITHDRAW = "withdraw"

ALLOWED_CURRENCIES = ("ETB", "USD")
PAYMENT_METHODS = ("bank", "telebirr")

DEPOSIT_FEE_RATE = Decimal("0.03")

# Account numbers with this prefix are mobile money wallets
MOBILE_MONEY_PREFIX = "251"
DEFAULT_BANK_CODE = "001"

RECONCILE_DEFAULT_AGE_SECONDS = 300
