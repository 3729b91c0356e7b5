"""
Chapa payment gateway client.

Wraps the REST endpoints used by the payment flows:
- GET  /transaction/verify/{tx_ref}
- POST /transaction/initialize
- POST /transfers
- GET  /transactions
"""
import logging
import os
import time
from typing import Any, Dict, Optional

import requests
from django.conf import settings

from .constants import (
    INITIALIZE_TIMEOUT_SECONDS,
    LIST_TIMEOUT_SECONDS,
    TRANSFER_TIMEOUT_SECONDS,
    VERIFY_MAX_RETRIES,
    VERIFY_RETRY_DELAY_SECONDS,
    VERIFY_TIMEOUT_SECONDS,
)

logger = logging.getLogger("cinema")


class ChapaError(Exception):
    """Raised when the gateway cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ChapaClient:
    """Thin HTTP client for the Chapa REST API"""

    def __init__(self, base_url: Optional[str] = None, secret_key: Optional[str] = None):
        self._base_url = base_url
        self._secret_key = secret_key

    @property
    def base_url(self) -> str:
        base = self._base_url or getattr(settings, "CHAPA_API_BASE_URL", "https://api.chapa.co/v1")
        return base.rstrip("/")

    @property
    def secret_key(self) -> Optional[str]:
        return self._secret_key or os.environ.get("CHAPA_SECRET_KEY")

    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, timeout: float, payload: Optional[dict] = None) -> Dict[str, Any]:
        if not self.is_configured():
            raise ChapaError("missing CHAPA_SECRET_KEY", status_code=500)

        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = requests.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise ChapaError("chapa_timeout", status_code=504) from exc
        except requests.exceptions.ConnectionError as exc:
            raise ChapaError("chapa_unavailable", status_code=503) from exc
        except requests.exceptions.RequestException as exc:
            raise ChapaError(str(exc), status_code=502) from exc

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.status_code >= 400:
            message = body.get("message")
            if not isinstance(message, str) or not message:
                message = f"Chapa responded with HTTP {response.status_code}"
            raise ChapaError(message, status_code=response.status_code, payload=body)

        return body

    # =========================================================================
    # Verification
    # =========================================================================

    def verify(self, tx_ref: str, timeout: float = VERIFY_TIMEOUT_SECONDS) -> Dict[str, Any]:
        return self._request("GET", f"transaction/verify/{tx_ref}", timeout)

    def verify_with_retry(
        self,
        tx_ref: str,
        max_retries: int = VERIFY_MAX_RETRIES,
        delay: float = VERIFY_RETRY_DELAY_SECONDS,
    ) -> Dict[str, Any]:
        """
        Verify a transaction, retrying a fixed number of times.

        Waits `delay` seconds between attempts. Raises ChapaError once every
        attempt has failed.
        """
        last_error = None
        for attempt in range(1, max_retries + 1):
            try:
                result = self.verify(tx_ref)
                logger.info(f"[CHAPA/VERIFY] Attempt {attempt} for txRef {tx_ref} succeeded")
                return result
            except ChapaError as exc:
                last_error = exc
                logger.error(f"[CHAPA/VERIFY] Attempt {attempt} for txRef {tx_ref} failed: {exc}")
                if attempt < max_retries:
                    time.sleep(delay)

        raise ChapaError(
            f"Verification failed after {max_retries} attempts",
            status_code=last_error.status_code if last_error else None,
        ) from last_error

    # =========================================================================
    # Payments and transfers
    # =========================================================================

    def initialize(self, payload: dict) -> Dict[str, Any]:
        return self._request("POST", "transaction/initialize", INITIALIZE_TIMEOUT_SECONDS, payload)

    def transfer(self, payload: dict) -> Dict[str, Any]:
        return self._request("POST", "transfers", TRANSFER_TIMEOUT_SECONDS, payload)

    def list_transactions(self) -> Dict[str, Any]:
        return self._request("GET", "transactions", LIST_TIMEOUT_SECONDS)


def verification_data(response: Optional[dict]) -> Dict[str, Any]:
    """Return the `data` object of a verify response, or an empty dict."""
    if not isinstance(response, dict):
        return {}
    data = response.get("data")
    return data if isinstance(data, dict) else {}


# Singleton instance
chapa_client = ChapaClient()
