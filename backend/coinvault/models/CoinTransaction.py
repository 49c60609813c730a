# -*- coding: utf-8 -*-
from datetime import datetime, timezone

from coinvault.models.database import db

DIRECTION_SPEND = 'spend'
DIRECTION_EARN = 'earn'
DIRECTIONS = (DIRECTION_SPEND, DIRECTION_EARN)

TYPE_TOPUP = 'topup'
TYPE_PURCHASE = 'purchase'
TYPE_EARNING = 'earning'
TYPE_WITHDRAWAL = 'withdrawal'
TYPE_REFUND = 'refund'
TYPE_BONUS = 'bonus'
TRANSACTION_TYPES = (TYPE_TOPUP, TYPE_PURCHASE, TYPE_EARNING, TYPE_WITHDRAWAL, TYPE_REFUND, TYPE_BONUS)


class CoinTransaction(db.Model):
    """Append-only coin ledger row / 金币流水（只增不改）"""
    __tablename__ = 'coin_transaction'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    direction = db.Column(db.String(8), nullable=False, comment='spend / earn')
    transaction_type = db.Column(db.String(16), nullable=False)
    coin_amount = db.Column(db.Integer, nullable=False)
    related_content_type = db.Column(db.String(16), nullable=True, comment='video / series')
    related_content_id = db.Column(db.String(36), nullable=True)
    payment_id = db.Column(db.String(255), nullable=True, index=True)
    description = db.Column(db.String(512), nullable=True)
    create_time = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        db.CheckConstraint('coin_amount > 0', name='ck_coin_amount_positive'),
        db.CheckConstraint("direction IN ('spend', 'earn')", name='ck_direction'),
    )

    @property
    def signed_amount(self):
        return self.coin_amount if self.direction == DIRECTION_EARN else -self.coin_amount

    def to_dict(self):
        return {
            "id": self.id,
            "direction": self.direction,
            "transactionType": self.transaction_type,
            "coinAmount": self.coin_amount,
            "relatedContentType": self.related_content_type,
            "relatedContentId": self.related_content_id,
            "description": self.description,
            "createTime": self.create_time.strftime("%Y-%m-%d %H:%M:%S") if self.create_time else "",
        }
