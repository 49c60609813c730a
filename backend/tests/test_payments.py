# -*- coding: utf-8 -*-
"""
Tests for Razorpay top-up verification. The gateway is mocked at requests.get.
"""
import hashlib
import hmac
from decimal import Decimal
from unittest import mock

import pytest
import requests

from coinvault.managers.CoinTransactionManager import CoinTransactionManager
from coinvault.managers.PaymentManager import PaymentManager
from coinvault.models.CoinTransaction import CoinTransaction, TYPE_TOPUP
from coinvault.models.NotificationEvent import NotificationEvent, EVENT_TOPUP_COMPLETED
from coinvault.models.PaymentOrder import PaymentOrder
from coinvault.models.typings import (
    InternalFailureException, TransientFailureException, ValidationException,
)

KEY_SECRET = "rzp-test-secret"


def sign(order_id, payment_id, secret=KEY_SECRET):
    return hmac.new(secret.encode('utf-8'), f"{order_id}|{payment_id}".encode('utf-8'), hashlib.sha256).hexdigest()


def gateway_response(status_code=200, **payment):
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payment
    return response


@pytest.fixture(autouse=True)
def razorpay_keys(config_values):
    config_values(RAZORPAY_KEY_ID="rzp_test_key", RAZORPAY_KEY_SECRET=KEY_SECRET, recharge_rate=20)


@pytest.fixture
def gateway():
    with mock.patch("coinvault.managers.PaymentManager.requests.get") as get:
        get.return_value = gateway_response(order_id="order_1", status="captured", amount=5000)
        yield get


class TestSignature:

    def test_valid_signature(self):
        assert PaymentManager.instance().verify_signature("order_1", "pay_1", sign("order_1", "pay_1")) is True

    def test_tampered_signature(self):
        assert PaymentManager.instance().verify_signature("order_1", "pay_2", sign("order_1", "pay_1")) is False

    def test_missing_secret(self, config_values):
        config_values(RAZORPAY_KEY_SECRET="")
        with pytest.raises(InternalFailureException):
            PaymentManager.instance().verify_signature("order_1", "pay_1", "sig")

    def test_singleton_reads_current_keys(self, config_values):
        manager = PaymentManager.instance()
        assert manager is PaymentManager.instance()
        config_values(RAZORPAY_KEY_SECRET="rotated-secret")
        assert manager.verify_signature("order_1", "pay_1", sign("order_1", "pay_1", secret="rotated-secret")) is True


class TestVerifyAndCredit:

    def test_credits_coins_from_gateway_amount(self, buyer, gateway):
        result = PaymentManager.instance().verify_and_credit(buyer, "order_1", "pay_1", sign("order_1", "pay_1"))

        # 5000 paise = ₹50 -> 1000 coins at 20 coins per rupee
        assert result["coinsAdded"] == 1000
        assert result["newBalance"] == 1000
        order = PaymentOrder.query.one()
        assert order.rupee_amount == Decimal("50.00")
        assert order.paid_status is True
        transaction = CoinTransaction.query.filter_by(user_id=buyer.id).one()
        assert transaction.transaction_type == TYPE_TOPUP
        assert transaction.payment_id == "pay_1"
        assert NotificationEvent.query.filter_by(event_type=EVENT_TOPUP_COMPLETED).count() == 1
        gateway.assert_called_once()
        assert gateway.call_args.kwargs["auth"] == ("rzp_test_key", KEY_SECRET)

    def test_same_payment_credited_once(self, buyer, gateway):
        manager = PaymentManager.instance()
        manager.verify_and_credit(buyer, "order_1", "pay_1", sign("order_1", "pay_1"))
        again = manager.verify_and_credit(buyer, "order_1", "pay_1", sign("order_1", "pay_1"))

        assert again["coinsAdded"] == 0
        assert again["newBalance"] == 1000
        assert CoinTransaction.query.count() == 1

    def test_payment_of_other_user(self, buyer, make_user, gateway):
        PaymentManager.instance().verify_and_credit(buyer, "order_1", "pay_1", sign("order_1", "pay_1"))
        with pytest.raises(ValidationException):
            PaymentManager.instance().verify_and_credit(make_user(), "order_1", "pay_1", sign("order_1", "pay_1"))

    def test_bad_signature_never_calls_gateway(self, buyer, gateway):
        with pytest.raises(ValidationException):
            PaymentManager.instance().verify_and_credit(buyer, "order_1", "pay_1", "forged")
        gateway.assert_not_called()
        assert CoinTransactionManager.instance().get_balance(buyer.id) == 0

    def test_missing_fields(self, buyer):
        with pytest.raises(ValidationException) as exc_info:
            PaymentManager.instance().verify_and_credit(buyer, "", None, "sig")
        assert len(exc_info.value.errors) == 2

    def test_order_mismatch(self, buyer, gateway):
        gateway.return_value = gateway_response(order_id="order_other", status="captured", amount=5000)
        with pytest.raises(ValidationException):
            PaymentManager.instance().verify_and_credit(buyer, "order_1", "pay_1", sign("order_1", "pay_1"))
        assert PaymentOrder.query.count() == 0

    def test_failed_payment_status(self, buyer, gateway):
        gateway.return_value = gateway_response(order_id="order_1", status="failed", amount=5000)
        with pytest.raises(ValidationException):
            PaymentManager.instance().verify_and_credit(buyer, "order_1", "pay_1", sign("order_1", "pay_1"))

    def test_gateway_unreachable(self, buyer, gateway):
        gateway.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(TransientFailureException):
            PaymentManager.instance().verify_and_credit(buyer, "order_1", "pay_1", sign("order_1", "pay_1"))
        assert CoinTransaction.query.count() == 0

    def test_gateway_server_error(self, buyer, gateway):
        gateway.return_value = gateway_response(status_code=502)
        with pytest.raises(TransientFailureException):
            PaymentManager.instance().verify_and_credit(buyer, "order_1", "pay_1", sign("order_1", "pay_1"))


class TestTopupEndpoint:

    def test_verify_endpoint(self, client, buyer, auth_headers, gateway):
        response = client.post('/wallet/topup/verify', json={
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": sign("order_1", "pay_1"),
        }, headers=auth_headers(buyer))

        assert response.status_code == 200
        assert response.get_json()["coinsAdded"] == 1000
        assert client.get('/wallet/balance', headers=auth_headers(buyer)).get_json()["balance"] == 1000

    def test_gateway_outage_is_503(self, client, buyer, auth_headers, gateway):
        gateway.side_effect = requests.Timeout("timed out")
        response = client.post('/wallet/topup/verify', json={
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": sign("order_1", "pay_1"),
        }, headers=auth_headers(buyer))
        assert response.status_code == 503
