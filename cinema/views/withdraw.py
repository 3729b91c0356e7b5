import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from ..chapa_client import ChapaError, chapa_client
from ..constants import (
    DEFAULT_BANK_CODE,
    MOBILE_MONEY_PREFIX,
    STATUS_COMPLETED,
    STATUS_SUCCESS,
    TYPE_WITHDRAW,
)
from ..firebase_service import FirestoreService, firestore_service
from ..http import firestore_unavailable, json_body, require_api_secret
from ..utils import parse_amount

logger = logging.getLogger("cinema")

REQUIRED_FIELDS = ["amount", "currency", "account_number", "account_name", "reference", "userEmail"]


def _transfer_payload(data, amount):
    account_number = str(data["account_number"])
    payload = {
        "account_name": data["account_name"],
        "account_number": account_number,
        "amount": str(amount),
        "currency": data["currency"],
        "reference": data["reference"],
    }
    if account_number.startswith(MOBILE_MONEY_PREFIX):
        payload["beneficiary_phone"] = account_number
    else:
        payload["bank_code"] = data.get("bank_code") or DEFAULT_BANK_CODE
    return payload


@csrf_exempt
def withdraw(request):
    """
    Pay out an owner's balance through a Chapa transfer.

    The balance is reserved in Firestore before the transfer and released
    again if the transfer does not succeed.
    """
    logger.info(f"[WITHDRAW] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    unauthorized = require_api_secret(request)
    if unauthorized:
        return unauthorized

    data, error = json_body(request)
    if error:
        return error

    user_id = request.headers.get("X-User-Id")
    amount = parse_amount(data.get("amount"))
    missing = [field for field in REQUIRED_FIELDS if not data.get(field)]

    if missing or amount is None or user_id != data.get("userEmail"):
        return JsonResponse({
            "error": "Invalid request",
            "message": "Missing or invalid fields",
            "missing": missing,
        }, status=400)

    if not firestore_service.is_available():
        return firestore_unavailable()

    email = data["userEmail"]
    reservation = firestore_service.reserve_withdrawal(email, float(amount))
    if reservation is None:
        return JsonResponse({"error": "Internal server error"}, status=500)

    outcome, balance = reservation
    if outcome == FirestoreService.WITHDRAWAL_OWNER_NOT_FOUND:
        return JsonResponse({
            "error": "User not found",
            "message": "Owner account does not exist",
        }, status=404)
    if outcome == FirestoreService.WITHDRAWAL_ALREADY_WITHDRAWN:
        return JsonResponse({
            "error": "Withdrawal not allowed",
            "message": "Balance has already been withdrawn",
        }, status=400)
    if outcome == FirestoreService.WITHDRAWAL_INSUFFICIENT_FUNDS:
        return JsonResponse({
            "error": "Insufficient funds",
            "message": f"Your balance is {balance} {data['currency']}",
        }, status=400)

    try:
        response = chapa_client.transfer(_transfer_payload(data, amount))
    except ChapaError as exc:
        logger.error(f"[WITHDRAW] Payout error for {email}: {exc}")
        firestore_service.release_withdrawal(email, float(amount))
        return JsonResponse({"error": exc.message}, status=exc.status_code or 500)

    if response.get("status") != STATUS_SUCCESS:
        logger.warning(f"[WITHDRAW] Payout rejected for {email}: {response.get('message')}")
        firestore_service.release_withdrawal(email, float(amount))
        return JsonResponse({
            "error": "Payout failed",
            "message": response.get("message") or "Unknown error",
        }, status=400)

    recorded = firestore_service.record_withdrawal({
        "userEmail": email,
        "amount": float(amount),
        "reference": str(data["reference"]),
        "status": STATUS_COMPLETED,
        "timestamp": timezone.now().isoformat(),
        "type": TYPE_WITHDRAW,
        "currency": data["currency"],
        "account_number": str(data["account_number"]),
        "account_name": data["account_name"],
        "bank_code": data.get("bank_code"),
    })
    if not recorded:
        logger.error(f"[WITHDRAW] Payout {data['reference']} succeeded but was not recorded")

    logger.info(f"[WITHDRAW] Payout {data['reference']} completed for {email}, new balance {balance}")
    return JsonResponse({
        "success": True,
        "data": response,
        "newBalance": balance,
    })
