# -*- coding: utf-8 -*-
import hashlib
import hmac
import logging
from decimal import Decimal

import requests
from sqlalchemy.exc import IntegrityError

from coinvault.managers.CoinTransactionManager import CoinTransactionManager
from coinvault.managers.Config import Config
from coinvault.managers.NotificationManager import NotificationManager
from coinvault.models.database import db
from coinvault.models.CoinTransaction import DIRECTION_EARN, TYPE_TOPUP
from coinvault.models.PaymentOrder import PaymentOrder
from coinvault.models.typings import (
    InternalFailureException, TransientFailureException, ValidationException,
)

logger = logging.getLogger(__name__)

ACCEPTED_PAYMENT_STATUSES = ('captured', 'authorized')


class PaymentManager:
    """
    Turns a Razorpay payment confirmation into coins.
    Order creation happens at the gateway; this side only verifies and credits.
    """

    _instance = None

    @classmethod
    def instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    # 配置在每次请求时读取
    @property
    def key_id(self):
        return Config.get_value('RAZORPAY_KEY_ID')

    @property
    def key_secret(self):
        return Config.get_value('RAZORPAY_KEY_SECRET')

    @property
    def api_url(self):
        return Config.get_value('razorpay_api_url')

    @property
    def timeout(self):
        return Config.get_value('http_timeout_seconds')

    def verify_signature(self, order_id, payment_id, signature):
        if not self.key_secret:
            raise InternalFailureException("Payment gateway is not configured")
        expected = hmac.new(
            self.key_secret.encode('utf-8'),
            f"{order_id}|{payment_id}".encode('utf-8'),
            hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(expected, signature or '')

    def fetch_payment(self, payment_id):
        """
        Ask Razorpay for the payment; the amount comes from the gateway, never from the client.
        """
        try:
            response = requests.get(
                f"{self.api_url}/payments/{payment_id}",
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Razorpay request for payment %s failed: %s", payment_id, e)
            raise TransientFailureException("Network error. Please check your connection.")
        if response.status_code >= 500:
            raise TransientFailureException("Payment gateway unavailable. Please try again.")
        if response.status_code != 200:
            raise ValidationException("Payment could not be verified",
                                      errors=[f"gateway returned status {response.status_code}"])
        return response.json()

    def verify_and_credit(self, user, order_id, payment_id, signature):
        """
        Verify a top-up and credit its coins once / 验证充值并发放金币（幂等）
        """
        errors = [f"{name} is required" for name, value in (
            ('razorpay_order_id', order_id),
            ('razorpay_payment_id', payment_id),
            ('razorpay_signature', signature),
        ) if not value]
        if errors:
            raise ValidationException("Validation failed", errors=errors)

        if not self.verify_signature(order_id, payment_id, signature):
            logger.warning("Invalid payment signature: user=%s order=%s payment=%s", user.id, order_id, payment_id)
            raise ValidationException("Payment verification failed", errors=["invalid payment signature"])

        coin_manager = CoinTransactionManager.instance()
        existing = PaymentOrder.query.filter_by(razorpay_payment_id=payment_id).first()
        if existing:
            return self._already_processed(existing, user)

        payment = self.fetch_payment(payment_id)
        if payment.get('order_id') != order_id:
            raise ValidationException("Payment verification failed", errors=["payment does not belong to this order"])
        if payment.get('status') not in ACCEPTED_PAYMENT_STATUSES:
            raise ValidationException("Payment verification failed",
                                      errors=[f"payment status is {payment.get('status')}"])

        rupees = Decimal(int(payment.get('amount', 0))) / 100
        coins = coin_manager.rupees_to_coins(rupees)
        if coins <= 0:
            raise ValidationException("Payment verification failed", errors=["payment amount is zero"])

        try:
            order = PaymentOrder(
                user_id=user.id,
                razorpay_order_id=order_id,
                razorpay_payment_id=payment_id,
                rupee_amount=rupees,
                coin_amount=coins,
                paid_status=True,
            )
            db.session.add(order)
            _, new_balance = coin_manager.create_transaction(
                user_id=user.id,
                direction=DIRECTION_EARN,
                amount=coins,
                description=f"Purchased {coins} coins (₹{rupees:.2f})",
                transaction_type=TYPE_TOPUP,
                payment_id=payment_id,
                commit=False,
            )
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            existing = PaymentOrder.query.filter(
                (PaymentOrder.razorpay_payment_id == payment_id) | (PaymentOrder.razorpay_order_id == order_id)
            ).first()
            if existing:
                return self._already_processed(existing, user)
            raise
        except Exception:
            db.session.rollback()
            raise

        logger.info("Top-up credited: user=%s payment=%s rupees=%s coins=%s", user.id, payment_id, rupees, coins)
        NotificationManager.instance().emit_topup_event(user.id, coins, payment_id)
        return {
            "success": True,
            "message": f"{coins} coins added to your wallet",
            "coinsAdded": coins,
            "newBalance": new_balance,
            "order": order.to_dict(),
        }

    def _already_processed(self, order, user):
        if order.user_id != user.id:
            raise ValidationException("Payment verification failed", errors=["payment belongs to another user"])
        return {
            "success": True,
            "message": "Payment already processed",
            "coinsAdded": 0,
            "newBalance": CoinTransactionManager.instance().get_balance(user.id),
            "order": order.to_dict(),
        }
