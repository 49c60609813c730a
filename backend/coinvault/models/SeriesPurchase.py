# -*- coding: utf-8 -*-
from datetime import datetime, timezone

from coinvault.models.database import db
from coinvault.models.VideoPurchase import PURCHASE_COMPLETED

GRANT_COIN_PAYMENT = 'coin_payment'
GRANT_CREATOR_ACCESS = 'creator_access'
GRANT_ALL_VIDEOS_OWNED = 'all_videos_owned'
GRANT_ZERO_PRICE = 'zero_price'


class SeriesPurchase(db.Model):
    """
    Durable access grant for a whole series / 系列购买记录
    metadata keeps the full pricing breakdown for audit.
    """
    __tablename__ = 'series_purchase'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    series_id = db.Column(db.String(36), db.ForeignKey('series.id'), nullable=False)
    coins_paid = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=PURCHASE_COMPLETED)
    purchase_metadata = db.Column('metadata', db.JSON, nullable=True)
    create_time = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'series_id', name='uk_user_series'),
    )

    @property
    def grant_type(self):
        return (self.purchase_metadata or {}).get('type')

    def to_dict(self):
        return {
            "seriesId": self.series_id,
            "coinsPaid": self.coins_paid,
            "status": self.status,
            "metadata": self.purchase_metadata or {},
            "purchaseDate": self.create_time.isoformat() if self.create_time else None,
        }
