import hmac
import json
import os
from typing import Tuple

from django.http import JsonResponse


def json_body(request) -> Tuple[dict, JsonResponse]:
    try:
        body = request.body.decode("utf-8") if request.body else "{}"
        data = json.loads(body)
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data, None
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
        return None, JsonResponse({"error": f"invalid_json: {exc}"}, status=400)


def require_env(*keys):
    missing = [key for key in keys if not os.environ.get(key)]
    if missing:
        return JsonResponse({"error": "missing_env", "missing": missing}, status=500)
    return None


def require_api_secret(request):
    """Check the Authorization header against API_SECRET."""
    missing_env = require_env("API_SECRET")
    if missing_env:
        return missing_env

    expected = f"Bearer {os.environ['API_SECRET']}"
    provided = request.headers.get("Authorization", "")
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        return JsonResponse({"error": "Unauthorized"}, status=401)
    return None


def firestore_unavailable():
    return JsonResponse({
        "error": "firestore_unavailable",
        "message": "Firebase Firestore is not configured",
    }, status=503)
