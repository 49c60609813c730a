# -*- coding: utf-8 -*-
import logging

from sqlalchemy import func

from coinvault.managers.CoinTransactionManager import CoinTransactionManager
from coinvault.managers.Config import Config
from coinvault.models.database import db
from coinvault.models.CoinTransaction import (
    CoinTransaction, DIRECTION_EARN, DIRECTION_SPEND, TYPE_EARNING, TYPE_WITHDRAWAL,
)
from coinvault.models.typings import ForbiddenException, ValidationException

logger = logging.getLogger(__name__)

WITHDRAWAL_METHODS = ('bank_transfer', 'upi')


class EarningManager:
    """创作者收益管理器"""
    _instance = None

    @classmethod
    def instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def record_creator_earning(self, creator_id, coin_amount, content_type, content_id, description, commit=True):
        """Credit the creator for a purchase of their content / 记录创作者收益"""
        transaction, new_balance = CoinTransactionManager.instance().create_transaction(
            user_id=creator_id,
            direction=DIRECTION_EARN,
            amount=coin_amount,
            related_content_type=content_type,
            related_content_id=content_id,
            description=description,
            transaction_type=TYPE_EARNING,
            commit=commit,
        )
        logger.info("Creator earning recorded: creator=%s %s coins from %s %s",
                    creator_id, coin_amount, content_type, content_id)
        return transaction, new_balance

    def _sum(self, creator_id, direction, transaction_type):
        total = db.session.query(func.coalesce(func.sum(CoinTransaction.coin_amount), 0)).filter(
            CoinTransaction.user_id == creator_id,
            CoinTransaction.direction == direction,
            CoinTransaction.transaction_type == transaction_type
        ).scalar()
        return int(total)

    def get_withdrawable_coins(self, creator_id):
        """
        Only earned coins can be cashed out, and never more than the wallet holds.
        """
        earned = self._sum(creator_id, DIRECTION_EARN, TYPE_EARNING)
        withdrawn = self._sum(creator_id, DIRECTION_SPEND, TYPE_WITHDRAWAL)
        balance = CoinTransactionManager.instance().get_balance(creator_id)
        return max(0, min(earned - withdrawn, balance))

    def get_earnings_summary(self, creator_id, recent_limit=10):
        coin_manager = CoinTransactionManager.instance()
        total_earned = self._sum(creator_id, DIRECTION_EARN, TYPE_EARNING)
        total_withdrawn = self._sum(creator_id, DIRECTION_SPEND, TYPE_WITHDRAWAL)

        by_content = db.session.query(
            CoinTransaction.related_content_type,
            CoinTransaction.related_content_id,
            func.count(CoinTransaction.id),
            func.sum(CoinTransaction.coin_amount)
        ).filter(
            CoinTransaction.user_id == creator_id,
            CoinTransaction.direction == DIRECTION_EARN,
            CoinTransaction.transaction_type == TYPE_EARNING
        ).group_by(
            CoinTransaction.related_content_type, CoinTransaction.related_content_id
        ).all()

        recent, _ = coin_manager.get_transaction_history(creator_id, limit=recent_limit, transaction_type=TYPE_EARNING)
        withdrawable = self.get_withdrawable_coins(creator_id)
        return {
            "totalEarned": total_earned,
            "totalWithdrawn": total_withdrawn,
            "withdrawableCoins": withdrawable,
            "withdrawableRupees": round(coin_manager.coins_to_rupees(withdrawable), 2),
            "walletBalance": coin_manager.get_balance(creator_id),
            "byContent": [
                {
                    "contentType": content_type,
                    "contentId": content_id,
                    "purchases": int(count),
                    "coinsEarned": int(coins or 0),
                }
                for content_type, content_id, count, coins in by_content
            ],
            "recentEarnings": [transaction.to_dict() for transaction in recent],
        }

    def withdraw(self, user, coin_amount, method):
        """
        Record a withdrawal request as a spend on the creator's ledger.
        Payout to the bank happens outside this system.
        """
        if not user.is_creator:
            raise ForbiddenException("Only creators can withdraw earnings")

        errors = []
        if isinstance(coin_amount, bool) or not isinstance(coin_amount, int) or coin_amount <= 0:
            errors.append("coinAmount must be a positive whole number")
        if method not in WITHDRAWAL_METHODS:
            errors.append(f"withdrawalMethod must be one of {', '.join(WITHDRAWAL_METHODS)}")
        if errors:
            raise ValidationException("Validation failed", errors=errors)

        coin_manager = CoinTransactionManager.instance()
        min_rupees = Config.get_value('min_withdrawal_rupees')
        min_coins = coin_manager.rupees_to_coins(min_rupees)
        if coin_amount < min_coins:
            raise ValidationException(
                f"Minimum withdrawal amount is ₹{min_rupees} ({min_coins} coins)",
                errors=[f"coinAmount must be at least {min_coins}"],
                minimum=min_coins,
            )

        try:
            coin_manager.lock_wallet(user.id)
            withdrawable = self.get_withdrawable_coins(user.id)
            if coin_amount > withdrawable:
                raise ValidationException(
                    "Withdrawal exceeds available earnings",
                    errors=[f"at most {withdrawable} coins can be withdrawn"],
                    withdrawableCoins=withdrawable,
                )
            rupees = coin_manager.coins_to_rupees(coin_amount)
            transaction, new_balance = coin_manager.create_transaction(
                user_id=user.id,
                direction=DIRECTION_SPEND,
                amount=coin_amount,
                description=f"Withdrawal of {coin_amount} coins (₹{rupees:.2f}) via {method}",
                transaction_type=TYPE_WITHDRAWAL,
                commit=False,
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Withdrawal recorded: creator=%s %s coins via %s", user.id, coin_amount, method)
        return {
            "success": True,
            "message": "Withdrawal request recorded",
            "coins": coin_amount,
            "rupees": round(rupees, 2),
            "withdrawalMethod": method,
            "transactionId": transaction.id,
            "remainingBalance": new_balance,
        }
