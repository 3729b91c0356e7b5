import logging

from django.http import JsonResponse, HttpResponseNotAllowed
from django.views.decorators.csrf import csrf_exempt

from ..chapa_client import ChapaError, chapa_client
from ..constants import ALLOWED_CURRENCIES, PAYMENT_STATUSES, UNSETTLED_STATUSES
from ..http import json_body
from ..payment_store import payment_store
from ..utils import parse_amount

logger = logging.getLogger("cinema")


def _not_found():
    return JsonResponse(
        {"error": "Payment not found", "code": "PAYMENT_NOT_FOUND"},
        status=404,
    )


@csrf_exempt
def payment_create(request):
    """
    Register a pending payment in the in-memory store.
    """
    logger.info(f"[PAYMENT/CREATE] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    data, error = json_body(request)
    if error:
        return error

    tx_ref = data.get("tx_ref")
    amount = parse_amount(data.get("amount"))
    currency = data.get("currency")

    if not isinstance(tx_ref, str) or not tx_ref.strip():
        return JsonResponse(
            {"error": "Invalid transaction reference", "code": "INVALID_TX_REF"},
            status=400,
        )
    if amount is None:
        return JsonResponse({"error": "Invalid amount", "code": "INVALID_AMOUNT"}, status=400)
    if currency not in ALLOWED_CURRENCIES:
        return JsonResponse({
            "error": "Invalid currency",
            "code": "INVALID_CURRENCY",
            "valid": list(ALLOWED_CURRENCIES),
        }, status=400)

    payment = payment_store.create(tx_ref.strip(), str(amount), currency)
    if payment is None:
        return JsonResponse(
            {"error": "Payment already exists", "code": "DUPLICATE_TX_REF"},
            status=409,
        )

    return JsonResponse({"payment": payment}, status=201)


@csrf_exempt
def payment_detail(request, tx_ref):
    if request.method == "GET":
        return _get_payment(request, tx_ref)
    if request.method == "PATCH":
        return _update_payment(request, tx_ref)
    return HttpResponseNotAllowed(["GET", "PATCH"])


def _get_payment(request, tx_ref):
    """
    Return a payment, verifying it with Chapa first while it is unsettled.
    """
    logger.info(f"[PAYMENT/GET] {tx_ref} from {request.META.get('REMOTE_ADDR')}")

    if not tx_ref or not tx_ref.strip():
        logger.error(f"[PAYMENT/GET] Invalid txRef: {tx_ref!r}")
        return JsonResponse(
            {"error": "Invalid transaction reference", "code": "INVALID_TX_REF"},
            status=400,
        )

    try:
        payment = payment_store.get(tx_ref)
        if payment is None:
            logger.warning(f"[PAYMENT/GET] Payment not found for txRef: {tx_ref}")
            return _not_found()

        if payment.get("status") in UNSETTLED_STATUSES:
            try:
                verification = chapa_client.verify_with_retry(tx_ref)
            except ChapaError as exc:
                logger.error(f"[PAYMENT/GET] Chapa verification failed for txRef {tx_ref}: {exc}")
                return JsonResponse({
                    "payment": payment,
                    "verified": False,
                    "verification_error": "Could not verify payment status with provider",
                    "code": "VERIFICATION_FAILED",
                })

            updated = payment_store.apply_verification(tx_ref, verification)
            if updated is None:
                return _not_found()

            logger.info(f"[PAYMENT/GET] Payment updated for txRef: {tx_ref}, status: {updated['status']}")
            return JsonResponse({
                "payment": updated,
                "verified": True,
                "last_verified": updated["last_verified"],
            })

        logger.info(f"[PAYMENT/GET] Returning cached payment for txRef: {tx_ref}, status: {payment.get('status')}")
        return JsonResponse({
            "payment": payment,
            "verified": True,
            "last_verified": payment.get("last_verified"),
        })
    except Exception as exc:
        logger.exception(f"[PAYMENT/GET] Error fetching payment for txRef {tx_ref}")
        return JsonResponse({
            "error": "Failed to fetch payment details",
            "message": str(exc) or "Unknown error occurred",
            "code": "INTERNAL_SERVER_ERROR",
        }, status=500)


def _update_payment(request, tx_ref):
    """
    Manually override a payment status.
    """
    logger.info(f"[PAYMENT/PATCH] {tx_ref} from {request.META.get('REMOTE_ADDR')}")

    data, error = json_body(request)
    if error:
        return error

    status = data.get("status")
    if status not in PAYMENT_STATUSES:
        logger.error(f"[PAYMENT/PATCH] Invalid status provided: {status!r}")
        return JsonResponse({
            "error": "Invalid status provided",
            "code": "INVALID_STATUS",
            "valid": list(PAYMENT_STATUSES),
        }, status=400)

    try:
        updated = payment_store.set_status(tx_ref, status)
        if updated is None:
            logger.warning(f"[PAYMENT/PATCH] Payment not found for txRef: {tx_ref}")
            return _not_found()

        logger.info(f"[PAYMENT/PATCH] Payment status updated for txRef: {tx_ref}, new status: {status}")
        return JsonResponse({
            "message": "Payment status updated successfully",
            "payment": updated,
        })
    except Exception as exc:
        logger.exception(f"[PAYMENT/PATCH] Error updating payment for txRef {tx_ref}")
        return JsonResponse({
            "error": "Failed to update payment status",
            "message": str(exc) or "Unknown error",
            "code": "INTERNAL_SERVER_ERROR",
        }, status=500)
