from decimal import Decimal

from django.test import SimpleTestCase

from cinema.utils import parse_amount
from cinema.validators import is_valid_email, is_valid_url, validate_deposit


class ParseAmountTest(SimpleTestCase):
    def test_valid_amounts(self):
        self.assertEqual(parse_amount("100"), Decimal("100"))
        self.assertEqual(parse_amount(" 12.50 "), Decimal("12.50"))
        self.assertEqual(parse_amount(7), Decimal("7"))

    def test_invalid_amounts(self):
        for value in (None, "", "abc", "0", "-1", "NaN", "Infinity", True):
            with self.subTest(value=value):
                self.assertIsNone(parse_amount(value))


class DepositValidationTest(SimpleTestCase):
    def setUp(self):
        self.deposit = {
            "email": "owner@cinema.et",
            "amount": "250",
            "currency": "USD",
            "callback_url": "http://localhost:3000/api/deposit/callback",
            "reference": "dep-1",
            "payment_method": "bank",
            "account_number": "1000123456789",
            "account_name": "Selam Cinema",
            "bank_code": "946",
        }

    def test_valid_deposit(self):
        self.assertEqual(validate_deposit(self.deposit), [])

    def test_every_problem_is_reported(self):
        errors = validate_deposit({"payment_method": "bank"})

        self.assertIn("Invalid or missing email address", errors)
        self.assertIn("Invalid or missing callback URL", errors)
        self.assertIn("Missing transaction reference", errors)
        self.assertIn("Missing account name", errors)
        self.assertIn("Missing bank code for bank payment", errors)

    def test_return_url_checked_only_when_given(self):
        self.deposit["return_url"] = "not a url"

        self.assertEqual(validate_deposit(self.deposit), ["Invalid return URL"])

    def test_unknown_payment_method(self):
        self.deposit["payment_method"] = "cash"

        self.assertEqual(validate_deposit(self.deposit), ["Invalid payment method"])

    def test_helpers(self):
        self.assertTrue(is_valid_email("a.b+c@cinema.et"))
        self.assertFalse(is_valid_email("not-an-email"))
        self.assertTrue(is_valid_url("https://cinema.example.com/return"))
        self.assertFalse(is_valid_url("ftp://cinema.example.com"))
