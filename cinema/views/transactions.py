import logging
from datetime import timedelta

from django.http import JsonResponse, HttpResponseNotAllowed
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt

from ..chapa_client import ChapaError, chapa_client
from ..constants import (
    CALLBACK_VERIFY_TIMEOUT_SECONDS,
    RECONCILE_DEFAULT_AGE_SECONDS,
    UNSETTLED_STATUSES,
)
from ..firebase_service import firestore_service
from ..http import firestore_unavailable, json_body, require_api_secret
from ..ledger import settle_transaction

logger = logging.getLogger("cinema")


@csrf_exempt
def transaction_detail(request, tx_ref):
    """
    Get a Firestore transaction, verifying it with Chapa while unsettled.
    """
    logger.info(f"[TRANSACTION/GET] {tx_ref} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "GET":
        return HttpResponseNotAllowed(["GET"])

    if not tx_ref or not tx_ref.strip():
        return JsonResponse({"error": "Invalid transaction reference"}, status=400)

    if not firestore_service.is_available():
        return firestore_unavailable()

    found = firestore_service.find_transaction(tx_ref)
    if not found:
        return JsonResponse({"error": "Transaction not found"}, status=404)

    doc_id, transaction = found

    if transaction.get("status") not in UNSETTLED_STATUSES:
        return JsonResponse({
            "transaction": transaction,
            "verified": True,
            "last_verified": transaction.get("last_verified"),
        })

    try:
        verification = chapa_client.verify(tx_ref, timeout=CALLBACK_VERIFY_TIMEOUT_SECONDS)
    except ChapaError as exc:
        logger.error(f"[TRANSACTION/GET] Chapa verification error for {tx_ref}: {exc}")
        return JsonResponse({
            "transaction": transaction,
            "verified": False,
            "verification_error": "Could not verify transaction status with provider",
        })

    updated = settle_transaction(doc_id, transaction, verification)
    if updated is None:
        return JsonResponse({"error": "Failed to fetch transaction details"}, status=500)

    return JsonResponse({
        "transaction": updated,
        "verified": True,
        "last_verified": updated["last_verified"],
    })


@csrf_exempt
def transaction_list(request):
    """
    List transactions recorded by the payment gateway.
    """
    if request.method != "GET":
        return JsonResponse({"success": False, "message": "Method not allowed"}, status=405)

    try:
        response = chapa_client.list_transactions()
    except ChapaError as exc:
        logger.error(f"[TRANSACTIONS] Failed to fetch transactions: {exc}")
        return JsonResponse({
            "success": False,
            "message": exc.message or "Failed to fetch transactions",
        }, status=500)

    return JsonResponse({
        "success": True,
        "data": response.get("data") if isinstance(response, dict) else None,
    })


@csrf_exempt
def transaction_reconcile(request):
    """
    Verify unsettled transactions older than `older_than_seconds` and settle them.
    """
    logger.info(f"[TRANSACTIONS/RECONCILE] {request.method} from {request.META.get('REMOTE_ADDR')}")

    if request.method != "POST":
        return HttpResponseNotAllowed(["POST"])

    unauthorized = require_api_secret(request)
    if unauthorized:
        return unauthorized

    data, error = json_body(request)
    if error:
        return error

    older_than = data.get("older_than_seconds", RECONCILE_DEFAULT_AGE_SECONDS)
    try:
        older_than = int(older_than)
    except (TypeError, ValueError):
        return JsonResponse({"error": "invalid_older_than_seconds"}, status=400)
    if older_than < 0:
        return JsonResponse({"error": "invalid_older_than_seconds"}, status=400)

    if not firestore_service.is_available():
        return firestore_unavailable()

    cutoff = timezone.now() - timedelta(seconds=older_than)
    pending = firestore_service.list_unsettled_transactions(cutoff)
    if pending is None:
        return JsonResponse({"error": "failed_to_list_transactions"}, status=500)

    settled = 0
    unverified = []
    for doc_id, transaction in pending:
        reference = transaction.get("reference") or doc_id
        try:
            verification = chapa_client.verify(reference, timeout=CALLBACK_VERIFY_TIMEOUT_SECONDS)
        except ChapaError as exc:
            logger.warning(f"[TRANSACTIONS/RECONCILE] Could not verify {reference}: {exc}")
            unverified.append(reference)
            continue

        updated = settle_transaction(doc_id, transaction, verification, "Reconciliation sweep")
        if updated is None:
            unverified.append(reference)
        elif updated.get("status") not in UNSETTLED_STATUSES:
            settled += 1

    logger.info(
        f"[TRANSACTIONS/RECONCILE] checked={len(pending)} settled={settled} unverified={len(unverified)}"
    )
    return JsonResponse({
        "success": True,
        "olderThanSeconds": older_than,
        "checked": len(pending),
        "settled": settled,
        "unverified": unverified,
    })
