import logging
import time
import uuid

from django.conf import settings
from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from ..chapa_client import ChapaError, chapa_client
from ..constants import (
    CALLBACK_VERIFY_TIMEOUT_SECONDS,
    STATUS_INITIATED,
    STATUS_PENDING,
    TYPE_DEPOSIT,
)
from ..firebase_service import FirestoreService, firestore_service
from ..http import firestore_unavailable, json_body, require_env
from ..ledger import deposit_fee, settle_transaction
from ..utils import parse_amount, status_entry
from ..validators import validate_deposit

logger = logging.getLogger("cinema")


def _with_request_id(response, request_id):
    response["X-Request-ID"] = request_id
    return response


def _chapa_payload(deposit):
    payload = {
        "amount": str(deposit["amount"]),
        "currency": deposit["currency"],
        "email": deposit["email"],
        "first_name": deposit["first_name"],
        "last_name": deposit["last_name"],
        "tx_ref": deposit["reference"],
        "callback_url": deposit["callback_url"],
        "return_url": deposit["return_url"],
        "customization[title]": "Deposit Transaction",
        "customization[description]": f"Deposit of {deposit['amount']} {deposit['currency']}",
    }
    if deposit["payment_method"] == "telebirr":
        payload["payment_method"] = "telebirr"
    return payload


@csrf_exempt
def deposit(request):
    """
    Initialize a deposit with Chapa and record it in Firestore.
    """
    started = time.monotonic()
    request_id = str(uuid.uuid4())
    logger.info(f"[DEPOSIT] [{request_id}] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    missing_env = require_env("CHAPA_SECRET_KEY")
    if missing_env:
        return missing_env

    data, error = json_body(request)
    if error:
        return error

    logger.info(f"[DEPOSIT] [{request_id}] Deposit request for reference={data.get('reference')}")

    user_email = request.headers.get("X-User-Id") or data.get("email")
    if not user_email:
        return JsonResponse({"error": "Missing user email"}, status=400)

    if not firestore_service.is_available():
        return firestore_unavailable()

    user = firestore_service.find_app_user(user_email)
    if user is None:
        return JsonResponse({"error": "Failed to look up user"}, status=500)
    if not user.get("exists"):
        return JsonResponse({"error": "User not found"}, status=404)

    base_url = settings.CINEMA_BASE_URL.rstrip("/")
    deposit_data = {
        **data,
        "email": user_email,
        "first_name": user.get("firstName") or "Guest",
        "last_name": user.get("lastName") or "User",
        "callback_url": data.get("callback_url") or f"{base_url}/api/deposit/callback",
        "return_url": data.get("return_url") or f"{base_url}/dashboard/finance?tab=transaction",
    }

    errors = validate_deposit(deposit_data)
    if errors:
        return JsonResponse({
            "error": "Validation failed",
            "message": "Invalid deposit data provided",
            "details": errors,
        }, status=400)

    reference = str(deposit_data["reference"])
    deposit_data["reference"] = reference

    exists = firestore_service.reference_exists(reference)
    if exists is None:
        return JsonResponse({"error": "Failed to check transaction reference"}, status=500)
    if exists:
        return JsonResponse({
            "error": "Duplicate transaction",
            "message": "This transaction reference already exists",
        }, status=409)

    amount = parse_amount(deposit_data["amount"])
    fee = deposit_fee(amount)
    is_mobile_money = deposit_data["payment_method"] == "telebirr"
    now = timezone.now()

    record = {
        "type": TYPE_DEPOSIT,
        "amount": float(amount),
        "currency": deposit_data["currency"],
        "account_number": deposit_data["account_number"],
        "account_name": deposit_data["account_name"],
        "bank_code": None if is_mobile_money else deposit_data.get("bank_code"),
        "reference": reference,
        "userEmail": user_email,
        "date": now.isoformat(),
        "created_at": now,
        "isMobileMoney": is_mobile_money,
        "payment_method": deposit_data["payment_method"],
        "status": STATUS_INITIATED,
        "payment_status": {
            "current": STATUS_INITIATED,
            "history": [status_entry(STATUS_INITIATED, "Deposit initialization started")],
        },
        "three_percent_value": fee,
        "chapa_data": None,
    }

    created = firestore_service.create_transaction(reference, record)
    if created == FirestoreService.TRANSACTION_DUPLICATE:
        return JsonResponse({
            "error": "Duplicate transaction",
            "message": "This transaction reference already exists",
        }, status=409)
    if created != FirestoreService.TRANSACTION_CREATED:
        return _with_request_id(JsonResponse({
            "error": "Deposit initialization failed",
            "message": "Could not store transaction",
            "request_id": request_id,
            "status": "failed",
        }, status=500), request_id)

    try:
        response = chapa_client.initialize(_chapa_payload(deposit_data))
    except ChapaError as exc:
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.error(f"[DEPOSIT] [{request_id}] Initialization failed after {elapsed_ms}ms: {exc}")
        firestore_service.mark_transaction_failed(reference, exc.message)
        return _with_request_id(JsonResponse({
            "error": "Deposit initialization failed",
            "message": exc.message,
            "request_id": request_id,
            "status": "failed",
        }, status=exc.status_code or 500), request_id)

    checkout_url = None
    if isinstance(response.get("data"), dict):
        checkout_url = response["data"].get("checkout_url")

    pending_ok = firestore_service.append_status(
        reference,
        STATUS_PENDING,
        "Deposit initialized with Chapa",
        chapa_data={
            "checkout_url": checkout_url,
            "initialization_response": response,
            "initialization_date": timezone.now(),
        },
    )
    if not pending_ok:
        logger.error(f"[DEPOSIT] [{request_id}] Deposit {reference} initialized but status was not updated")

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info(f"[DEPOSIT] [{request_id}] Deposit initialized successfully in {elapsed_ms}ms")

    return _with_request_id(JsonResponse({
        **response,
        "tx_ref": reference,
        "request_id": request_id,
        "status": STATUS_PENDING,
        "three_percent_value": fee,
    }), request_id)


@csrf_exempt
def deposit_callback(request):
    """
    Chapa callback: verify the reported transaction and settle it.

    Chapa calls back with GET query parameters (trx_ref, ref_id, status);
    a JSON body with tx_ref is accepted too.
    """
    logger.info(f"[DEPOSIT/CALLBACK] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method == "GET":
        data = request.GET.dict()
    elif request.method == "POST":
        data, error = json_body(request)
        if error:
            return error
    else:
        return HttpResponseNotAllowed(["GET", "POST"])

    tx_ref = data.get("tx_ref") or data.get("trx_ref")
    logger.info(f"[DEPOSIT/CALLBACK] Callback received for {tx_ref}, status={data.get('status')}")
    if not tx_ref:
        return JsonResponse(
            {"status": "error", "message": "Missing transaction reference"},
            status=400,
        )

    if not firestore_service.is_available():
        return firestore_unavailable()

    try:
        verification = chapa_client.verify(tx_ref, timeout=CALLBACK_VERIFY_TIMEOUT_SECONDS)
    except ChapaError as exc:
        logger.error(f"[DEPOSIT/CALLBACK] Verification failed for {tx_ref}: {exc}")
        return JsonResponse(
            {"status": "error", "message": exc.message},
            status=exc.status_code or 500,
        )

    found = firestore_service.find_transaction(tx_ref)
    if not found:
        return JsonResponse(
            {"status": "error", "message": "Transaction not found"},
            status=404,
        )

    doc_id, transaction = found
    updated = settle_transaction(doc_id, transaction, verification)
    if updated is None:
        return JsonResponse(
            {"status": "error", "message": "Failed to update transaction"},
            status=500,
        )

    return JsonResponse({"status": "success", "message": "Callback processed"})
