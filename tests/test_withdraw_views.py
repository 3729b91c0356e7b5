import json
import os
from unittest.mock import patch

from django.test import Client, SimpleTestCase
from django.urls import reverse

from cinema.chapa_client import ChapaError
from cinema.firebase_service import FirestoreService

VIEWS_MODULE_PATH = "cinema.views.withdraw"


@patch.dict(os.environ, {"API_SECRET": "s3cret"})
class WithdrawViewTest(SimpleTestCase):
    def setUp(self):
        self.client = Client()
        self.url = reverse("withdraw")
        self.payload = {
            "amount": 400,
            "currency": "ETB",
            "account_number": "251911223344",
            "account_name": "Selam Cinema",
            "reference": "wd-0001",
            "userEmail": "owner@cinema.et",
        }

        service_patcher = patch(f"{VIEWS_MODULE_PATH}.firestore_service")
        self.mock_service = service_patcher.start()
        self.addCleanup(service_patcher.stop)
        self.mock_service.is_available.return_value = True
        self.mock_service.reserve_withdrawal.return_value = (FirestoreService.WITHDRAWAL_RESERVED, 600.0)
        self.mock_service.record_withdrawal.return_value = True

        chapa_patcher = patch(f"{VIEWS_MODULE_PATH}.chapa_client")
        self.mock_chapa = chapa_patcher.start()
        self.addCleanup(chapa_patcher.stop)
        self.mock_chapa.transfer.return_value = {
            "message": "Transfer Queued Successfully",
            "status": "success",
            "data": "wd-0001",
        }

    def _post(self, payload=None, auth="Bearer s3cret", user="owner@cinema.et"):
        headers = {}
        if auth is not None:
            headers["HTTP_AUTHORIZATION"] = auth
        if user is not None:
            headers["HTTP_X_USER_ID"] = user
        return self.client.post(
            self.url,
            data=json.dumps(payload if payload is not None else self.payload),
            content_type="application/json",
            **headers,
        )

    def test_requires_api_secret(self):
        response = self._post(auth="Bearer wrong")

        self.assertEqual(response.status_code, 401)
        self.mock_service.reserve_withdrawal.assert_not_called()

    def test_missing_authorization_header(self):
        response = self._post(auth=None)

        self.assertEqual(response.status_code, 401)

    def test_user_header_must_match_body(self):
        response = self._post(user="someone@else.et")

        self.assertEqual(response.status_code, 400)
        self.mock_service.reserve_withdrawal.assert_not_called()

    def test_invalid_amount(self):
        response = self._post(dict(self.payload, amount=0))

        self.assertEqual(response.status_code, 400)

    def test_mobile_money_payout(self):
        response = self._post()

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["newBalance"], 600.0)

        self.mock_service.reserve_withdrawal.assert_called_once_with("owner@cinema.et", 400.0)
        transfer = self.mock_chapa.transfer.call_args[0][0]
        self.assertEqual(transfer["beneficiary_phone"], "251911223344")
        self.assertNotIn("bank_code", transfer)
        self.assertEqual(transfer["amount"], "400")

        record = self.mock_service.record_withdrawal.call_args[0][0]
        self.assertEqual(record["type"], "withdraw")
        self.assertEqual(record["status"], "completed")
        self.mock_service.release_withdrawal.assert_not_called()

    def test_bank_transfer_defaults_bank_code(self):
        self._post(dict(self.payload, account_number="1000123456789"))

        transfer = self.mock_chapa.transfer.call_args[0][0]
        self.assertEqual(transfer["bank_code"], "001")
        self.assertNotIn("beneficiary_phone", transfer)

    def test_owner_not_found(self):
        self.mock_service.reserve_withdrawal.return_value = (FirestoreService.WITHDRAWAL_OWNER_NOT_FOUND, None)

        response = self._post()

        self.assertEqual(response.status_code, 404)
        self.mock_chapa.transfer.assert_not_called()

    def test_already_withdrawn(self):
        self.mock_service.reserve_withdrawal.return_value = (FirestoreService.WITHDRAWAL_ALREADY_WITHDRAWN, 600.0)

        response = self._post()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Withdrawal not allowed")
        self.mock_chapa.transfer.assert_not_called()

    def test_insufficient_funds(self):
        self.mock_service.reserve_withdrawal.return_value = (FirestoreService.WITHDRAWAL_INSUFFICIENT_FUNDS, 100.0)

        response = self._post()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Your balance is 100.0 ETB")

    def test_rejected_payout_releases_reservation(self):
        self.mock_chapa.transfer.return_value = {"status": "failed", "message": "Insufficient merchant balance"}

        response = self._post()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Insufficient merchant balance")
        self.mock_service.release_withdrawal.assert_called_once_with("owner@cinema.et", 400.0)
        self.mock_service.record_withdrawal.assert_not_called()

    def test_gateway_error_releases_reservation(self):
        self.mock_chapa.transfer.side_effect = ChapaError("chapa_unavailable", status_code=503)

        response = self._post()

        self.assertEqual(response.status_code, 503)
        self.mock_service.release_withdrawal.assert_called_once_with("owner@cinema.et", 400.0)

    def test_missing_api_secret_env(self):
        with patch.dict(os.environ, {"API_SECRET": ""}):
            response = self._post()

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "missing_env")
