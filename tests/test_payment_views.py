import json
from unittest.mock import patch

from django.test import Client, SimpleTestCase
from django.urls import reverse

from cinema.chapa_client import ChapaError
from cinema.payment_store import payment_store

VIEWS_MODULE_PATH = "cinema.views.payments"


class PaymentViewsTest(SimpleTestCase):
    def setUp(self):
        self.client = Client()
        payment_store.clear()
        self.addCleanup(payment_store.clear)
        self.url = reverse("payment_detail", args=["tx-100"])

    def _create(self, tx_ref="tx-100", amount="150", currency="ETB"):
        return self.client.post(
            reverse("payment_create"),
            data=json.dumps({"tx_ref": tx_ref, "amount": amount, "currency": currency}),
            content_type="application/json",
        )

    def _patch(self, payload, url=None):
        body = payload if isinstance(payload, str) else json.dumps(payload)
        return self.client.patch(url or self.url, data=body, content_type="application/json")

    def test_create_payment(self):
        response = self._create()

        self.assertEqual(response.status_code, 201)
        payment = response.json()["payment"]
        self.assertEqual(payment["tx_ref"], "tx-100")
        self.assertEqual(payment["status"], "pending")
        self.assertEqual(payment["amount"], "150")

    def test_create_duplicate_is_rejected(self):
        self._create()
        response = self._create()

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "DUPLICATE_TX_REF")

    def test_create_with_invalid_currency(self):
        response = self._create(currency="EUR")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_CURRENCY")

    def test_get_unknown_payment_returns_404(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "PAYMENT_NOT_FOUND")

    @patch(f"{VIEWS_MODULE_PATH}.chapa_client")
    def test_get_pending_payment_verifies_with_gateway(self, mock_chapa):
        self._create()
        mock_chapa.verify_with_retry.return_value = {
            "status": "success",
            "data": {
                "transaction_id": "APx100",
                "tx_ref": "tx-100",
                "amount": "150.00",
                "currency": "ETB",
                "status": "success",
            },
        }

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["verified"])
        self.assertIsNotNone(body["last_verified"])
        self.assertEqual(body["payment"]["status"], "success")
        self.assertEqual(body["payment"]["chapa_transaction_id"], "APx100")
        self.assertEqual(body["payment"]["amount_confirmed"], "150.00")
        mock_chapa.verify_with_retry.assert_called_once_with("tx-100")
        self.assertEqual(payment_store.get("tx-100")["status"], "success")

    @patch(f"{VIEWS_MODULE_PATH}.chapa_client")
    def test_verification_failure_returns_cached_payment(self, mock_chapa):
        self._create()
        mock_chapa.verify_with_retry.side_effect = ChapaError("Verification failed after 3 attempts")

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["verified"])
        self.assertEqual(body["code"], "VERIFICATION_FAILED")
        self.assertEqual(body["payment"]["status"], "pending")

    @patch(f"{VIEWS_MODULE_PATH}.chapa_client")
    def test_settled_payment_is_not_reverified(self, mock_chapa):
        self._create()
        payment_store.set_status("tx-100", "failed")

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payment"]["status"], "failed")
        mock_chapa.verify_with_retry.assert_not_called()

    def test_patch_updates_status(self):
        self._create()

        response = self._patch({"status": "processing"})

        self.assertEqual(response.status_code, 200)
        payment = response.json()["payment"]
        self.assertEqual(payment["status"], "processing")
        self.assertEqual(payment["updated_by"], "manual-update")

    def test_patch_invalid_status(self):
        self._create()

        response = self._patch({"status": "refunded"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_STATUS")

    def test_patch_missing_status(self):
        self._create()

        response = self._patch({})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_STATUS")

    def test_patch_unknown_payment(self):
        response = self._patch({"status": "success"}, url=reverse("payment_detail", args=["nope"]))

        self.assertEqual(response.status_code, 404)

    def test_patch_invalid_json(self):
        response = self._patch("{not json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("invalid_json", response.json()["error"])

    def test_method_not_allowed(self):
        response = self.client.delete(self.url)

        self.assertEqual(response.status_code, 405)
