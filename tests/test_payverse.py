import json
import unittest
from datetime import datetime, timezone
from unittest import mock

import requests

from core.config import Config
from core.errors import ConfigurationError, PaymentProviderError, PaymentRequestError
from core.payverse import (
    PAYVERSE_PRODUCTION_URL,
    PAYVERSE_SANDBOX_URL,
    PaymentInitiator,
    PaymentSettings,
)
from core.signature import build_request_signature

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _settings(**kwargs):
    values = {
        "secret_key": "sk",
        "mid": "M1",
        "client_key": "ck",
        "site_url": "https://lukato.example",
        "webhook_url": "https://api.lukato.example/api/v1/payment/webhook",
    }
    values.update(kwargs)
    return PaymentSettings(**values)


def _response(status_code=200, data=None, text=None):
    resp = mock.Mock(spec=requests.Response)
    resp.status_code = status_code
    resp.ok = status_code < 400
    if data is None:
        resp.json.side_effect = ValueError("no json")
        resp.text = text or ""
    else:
        resp.json.return_value = data
        resp.text = json.dumps(data)
    return resp


class PaymentInitiatorTestCase(unittest.TestCase):
    def setUp(self):
        self.http = mock.Mock(spec=requests.Session)
        self.initiator = PaymentInitiator(_settings(), http=self.http, clock=lambda: NOW)

    def test_build_request(self):
        body = self.initiator.build_request("abcd1234-5678", "learner@example.com", "premium", 6)
        order_id = f"ORDER_{int(NOW.timestamp() * 1000)}_abcd1234"
        self.assertEqual(body["orderId"], order_id)
        self.assertEqual(body["amount"], 1500000)
        self.assertEqual(body["mid"], "M1")
        self.assertEqual(body["buyerName"], "learner")
        self.assertEqual(body["buyerEmail"], "learner@example.com")
        self.assertEqual(body["goodsName"], "TOPIKBOT Premium 6개월")
        self.assertEqual(body["returnUrl"], "https://lukato.example/pricing?payment=complete")
        self.assertEqual(body["webhookUrl"], "https://api.lukato.example/api/v1/payment/webhook")
        self.assertEqual(json.loads(body["mallReserved"]), {"tier": "premium", "months": 6, "userId": "abcd1234-5678"})
        self.assertEqual(body["signature"], build_request_signature("M1", order_id, 1500000, "sk"))

    def test_buyer_name_fallback(self):
        body = self.initiator.build_request("u-1", "", "premium", 1)
        self.assertEqual(body["buyerName"], "User")

    def test_invalid_tier_or_months(self):
        for tier, months in (("pro", 1), ("premium", 3), ("premium", 0), ("premium", True), ("premium", "6")):
            with self.subTest(tier=tier, months=months):
                with self.assertRaises(PaymentRequestError):
                    self.initiator.build_request("u-1", "a@b.c", tier, months)
        self.http.post.assert_not_called()

    def test_missing_credentials(self):
        for field in ("mid", "client_key", "secret_key"):
            with self.subTest(field=field):
                initiator = PaymentInitiator(_settings(**{field: ""}), http=self.http, clock=lambda: NOW)
                with self.assertRaises(ConfigurationError):
                    initiator.create_payment("u-1", "a@b.c", "premium", 1)
        self.http.post.assert_not_called()

    def test_create_payment_success(self):
        self.http.post.return_value = _response(data={"resultCode": "0000", "paymentUrl": "https://pay.example/x"})
        result = self.initiator.create_payment("u-1", "a@b.c", "premium", 12)
        self.assertTrue(result["success"])
        self.assertEqual(result["paymentUrl"], "https://pay.example/x")
        self.assertTrue(result["orderId"].startswith("ORDER_"))

        args, kwargs = self.http.post.call_args
        self.assertEqual(args[0], PAYVERSE_SANDBOX_URL)
        self.assertEqual(kwargs["headers"]["X-Client-Key"], "ck")
        self.assertEqual(kwargs["json"]["amount"], 2500000)
        self.assertEqual(kwargs["timeout"], 20)

    def test_production_url(self):
        self.http.post.return_value = _response(data={"resultCode": "0000", "paymentUrl": "u"})
        PaymentInitiator(_settings(production=True), http=self.http, clock=lambda: NOW).create_payment(
            "u-1", "a@b.c", "premium", 1
        )
        self.assertEqual(self.http.post.call_args[0][0], PAYVERSE_PRODUCTION_URL)

    def test_provider_rejection(self):
        self.http.post.return_value = _response(data={"resultCode": "E001", "resultMsg": "Invalid merchant"})
        with self.assertRaises(PaymentProviderError) as ctx:
            self.initiator.create_payment("u-1", "a@b.c", "premium", 1)
        self.assertEqual(str(ctx.exception), "Invalid merchant")
        self.assertEqual(ctx.exception.result_code, "E001")

    def test_provider_http_error(self):
        self.http.post.return_value = _response(status_code=502, text="<html>bad gateway</html>")
        with self.assertRaises(PaymentProviderError) as ctx:
            self.initiator.create_payment("u-1", "a@b.c", "premium", 1)
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(str(ctx.exception), "Payment creation failed")

    def test_network_error(self):
        self.http.post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(PaymentProviderError):
            self.initiator.create_payment("u-1", "a@b.c", "premium", 1)


class PaymentSettingsTestCase(unittest.TestCase):
    def test_from_config(self):
        config = Config(config_path="")
        config.config = {
            "site": {"url": "https://lukato.example/"},
            "payverse": {
                "mid": "M1",
                "client_key": "ck",
                "secret_key": "${LUKATO_TEST_PAYVERSE_SECRET:-fallback}",
                "production": "true",
                "timeout_seconds": 5,
            },
            "billing": {"renewal_policy": "extend"},
        }
        with mock.patch.dict("os.environ", {"LUKATO_TEST_PAYVERSE_SECRET": "from-env"}):
            settings = PaymentSettings.from_config(config)
        self.assertEqual(settings.secret_key, "from-env")
        self.assertTrue(settings.production)
        self.assertEqual(settings.api_url, PAYVERSE_PRODUCTION_URL)
        self.assertEqual(settings.return_url, "https://lukato.example/pricing?payment=complete")
        self.assertEqual(settings.timeout_seconds, 5)
        self.assertEqual(settings.renewal_policy, "extend")

    def test_defaults(self):
        config = Config(config_path="")
        settings = PaymentSettings.from_config(config)
        self.assertEqual(settings.secret_key, "")
        self.assertFalse(settings.production)
        self.assertEqual(settings.renewal_policy, "overwrite")


if __name__ == "__main__":
    unittest.main()
