# -*- coding: utf-8 -*-
import uuid
import datetime

from coinvault.models.database import db

MIN_VIDEO_COIN_PRICE = 1
MAX_VIDEO_COIN_PRICE = 2000


class Video(db.Model):
    __tablename__ = 'video'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    creator_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False, comment='视频名称')
    coin_price = db.Column(db.Integer, nullable=False, default=MIN_VIDEO_COIN_PRICE, comment='list price in coins')
    series_id = db.Column(db.String(36), db.ForeignKey('series.id'), nullable=True, index=True,
                          comment='null = standalone')
    duration = db.Column(db.Integer, default=0, nullable=False, comment='视频时长（秒）')
    view_count = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False, comment='是否启用')
    create_time = db.Column(
        db.DateTime,
        default=lambda: datetime.datetime.now(datetime.timezone.utc),
        comment='创建时间（UTC时区）'
    )

    @property
    def standalone_price(self):
        """Bundled videos are not sold on their own / 系列内视频单独售价为0"""
        return 0 if self.series_id else self.coin_price

    @staticmethod
    def validate_coin_price(coin_price):
        """
        :return: error message, or None when the price is acceptable
        """
        if isinstance(coin_price, bool) or not isinstance(coin_price, int):
            return "Coin price must be a whole number"
        if coin_price < MIN_VIDEO_COIN_PRICE or coin_price > MAX_VIDEO_COIN_PRICE:
            return f"Coin price must be between {MIN_VIDEO_COIN_PRICE} and {MAX_VIDEO_COIN_PRICE} coins"
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'creatorId': self.creator_id,
            'coinPrice': self.standalone_price,
            'listPrice': self.coin_price,
            'seriesId': self.series_id,
            'duration': self.duration,
            'viewCount': self.view_count,
        }
