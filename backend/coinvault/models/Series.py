# -*- coding: utf-8 -*-
import uuid
from datetime import datetime, timezone

from coinvault.models.database import db


class Series(db.Model):
    """
    Creator-defined ordered bundle of videos, sold as one unit.
    video_count / total_duration mirror series_video and are only written by
    SeriesManager.recompute_aggregates.
    """
    __tablename__ = 'series'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    creator_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    coin_price = db.Column(db.Integer, nullable=False, default=0, comment='bundle price in coins')
    video_count = db.Column(db.Integer, nullable=False, default=0)
    total_duration = db.Column(db.Integer, nullable=False, default=0, comment='秒')
    view_count = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, comment='false = deactivated by moderation')
    create_time = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    update_time = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "creatorId": self.creator_id,
            "coinPrice": self.coin_price,
            "videoCount": self.video_count,
            "totalDuration": self.total_duration,
            "viewCount": self.view_count,
            "isActive": self.is_active,
        }
