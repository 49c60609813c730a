# -*- coding: utf-8 -*-
from datetime import datetime, timezone

from coinvault.models.database import db

PURCHASE_COMPLETED = 'completed'


class VideoPurchase(db.Model):
    """Durable access grant for one video / 单个视频购买记录"""
    __tablename__ = 'video_purchase'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    video_id = db.Column(db.String(36), db.ForeignKey('video.id'), nullable=False)
    coins_paid = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=PURCHASE_COMPLETED)
    purchase_metadata = db.Column('metadata', db.JSON, nullable=True)
    create_time = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'video_id', name='uk_user_video'),
    )

    def to_dict(self):
        return {
            "videoId": self.video_id,
            "coinsPaid": self.coins_paid,
            "status": self.status,
            "metadata": self.purchase_metadata or {},
            "purchaseDate": self.create_time.isoformat() if self.create_time else None,
        }
