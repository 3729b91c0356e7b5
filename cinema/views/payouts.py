from datetime import timedelta

from django.conf import settings
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt


def _mock_payouts(now):
    one_day_ago = now - timedelta(days=1)
    two_days_ago = now - timedelta(days=2)
    return [
        {
            "reference": f"payout-{int(one_day_ago.timestamp() * 1000)}",
            "amount": 500,
            "currency": "ETB",
            "account_name": "Test Mobile",
            "account_number": "251912345678",
            "isMobileMoney": True,
            "status": "completed",
            "created_at": one_day_ago.isoformat(),
        },
        {
            "reference": f"payout-{int(two_days_ago.timestamp() * 1000)}",
            "amount": 1000,
            "currency": "ETB",
            "account_name": "Test User",
            "account_number": "251900000000",
            "bank_code": "001",
            "isMobileMoney": False,
            "status": "pending",
            "created_at": two_days_ago.isoformat(),
        },
    ]


@csrf_exempt
def payouts(request):
    """List payouts. Only the test-mode fixtures are available for now."""
    if request.method != "GET":
        return JsonResponse({"success": False, "message": "Method not allowed"}, status=405)

    if not settings.CHAPA_TEST_MODE:
        return JsonResponse({
            "success": False,
            "message": "Live mode not implemented yet",
        }, status=501)

    return JsonResponse({
        "success": True,
        "data": _mock_payouts(timezone.now()),
    })
