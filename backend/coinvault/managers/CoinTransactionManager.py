# -*- coding: utf-8 -*-
import logging

from sqlalchemy import case, func

from coinvault.managers.Config import Config
from coinvault.models.database import db
from coinvault.models.User import User
from coinvault.models.CoinTransaction import (
    CoinTransaction, DIRECTIONS, DIRECTION_EARN, DIRECTION_SPEND,
    TRANSACTION_TYPES, TYPE_PURCHASE, TYPE_TOPUP,
)
from coinvault.models.typings import (
    InsufficientCoinsException, NotFoundException, ValidationException,
)

logger = logging.getLogger(__name__)


class CoinTransactionManager:
    """
    金币账本管理器
    The only writer of coin_transaction. Balance is always Σearn - Σspend over
    the ledger; there is no mutable balance column to drift.
    """
    _instance = None

    @classmethod
    def instance(cls):
        """单例模式"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @staticmethod
    def coins_to_rupees(coins):
        return coins / Config.get_value('recharge_rate')

    @staticmethod
    def rupees_to_coins(rupees):
        return int(round(float(rupees) * Config.get_value('recharge_rate')))

    def _totals_query(self, user_id):
        earned = func.coalesce(func.sum(case(
            (CoinTransaction.direction == DIRECTION_EARN, CoinTransaction.coin_amount), else_=0)), 0)
        spent = func.coalesce(func.sum(case(
            (CoinTransaction.direction == DIRECTION_SPEND, CoinTransaction.coin_amount), else_=0)), 0)
        return db.session.query(earned, spent, func.max(CoinTransaction.create_time)).\
            filter(CoinTransaction.user_id == user_id)

    def get_balance(self, user_id):
        """Current balance derived from the ledger / 由流水汇总得到当前余额"""
        earned, spent, _ = self._totals_query(user_id).one()
        return int(earned) - int(spent)

    def get_balance_info(self, user_id):
        earned, spent, last_time = self._totals_query(user_id).one()
        return {
            "balance": int(earned) - int(spent),
            "totalEarned": int(earned),
            "totalSpent": int(spent),
            "lastTransactionTime": last_time.isoformat() if last_time else None,
        }

    def check_sufficient_coins(self, user_id, amount):
        """
        Read-only projection; a True here does not reserve anything, the spend
        itself re-checks under the wallet lock.
        :return: (sufficient, balance, shortfall)
        """
        balance = self.get_balance(user_id)
        if amount <= balance:
            return True, balance, 0
        return False, balance, amount - balance

    def lock_wallet(self, user_id):
        """
        SELECT ... FOR UPDATE on the user row so concurrent spends for the same
        user serialize on it until the surrounding transaction ends.
        """
        user = User.query.filter_by(id=user_id).with_for_update().first()
        if not user:
            raise NotFoundException("User not found")
        return user

    def create_transaction(self, user_id, direction, amount, related_content_type=None,
                           related_content_id=None, description="", transaction_type=None,
                           payment_id=None, commit=True):
        """
        Record one spend or earn.
        :param commit: False when the caller commits several writes as one unit of work
        :return: (transaction, new_balance)
        """
        if direction not in DIRECTIONS:
            raise ValidationException("Invalid transaction direction", errors=[f"direction must be one of {DIRECTIONS}"])
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationException("Coin amount must be greater than zero",
                                      errors=["amount must be a positive whole number of coins"])
        if transaction_type is None:
            transaction_type = TYPE_PURCHASE if direction == DIRECTION_SPEND else TYPE_TOPUP
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationException("Invalid transaction type", errors=[f"unknown transaction type {transaction_type}"])

        try:
            # 只锁扣费方的钱包行，入账方不加锁
            if direction == DIRECTION_SPEND:
                self.lock_wallet(user_id)
                balance = self.get_balance(user_id)
                if amount > balance:
                    raise InsufficientCoinsException(required=amount, available=balance)
            elif db.session.get(User, user_id) is None:
                raise NotFoundException("User not found")

            transaction = CoinTransaction(
                user_id=user_id,
                direction=direction,
                transaction_type=transaction_type,
                coin_amount=amount,
                related_content_type=related_content_type,
                related_content_id=related_content_id,
                payment_id=payment_id,
                description=description,
            )
            db.session.add(transaction)
            db.session.flush()
            new_balance = self.get_balance(user_id)

            if commit:
                db.session.commit()
        except Exception:
            if commit:
                db.session.rollback()
            raise

        logger.info("Coin transaction %s: user=%s %s %s coins (%s), new balance %s",
                    transaction.id, user_id, direction, amount, transaction_type, new_balance)
        return transaction, new_balance

    def get_transaction_history(self, user_id, limit=20, offset=0, transaction_type=None):
        query = CoinTransaction.query.filter(CoinTransaction.user_id == user_id)
        if transaction_type:
            query = query.filter(CoinTransaction.transaction_type == transaction_type)
        total = query.count()
        transactions = query.order_by(CoinTransaction.create_time.desc(), CoinTransaction.id.desc()).\
            limit(limit).offset(offset).all()
        return transactions, total
