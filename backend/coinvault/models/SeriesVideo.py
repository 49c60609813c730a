# -*- coding: utf-8 -*-
from datetime import datetime, timezone

from coinvault.models.database import db

'''系列内视频顺序'''


class SeriesVideo(db.Model):
    __tablename__ = 'series_video'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='主键')
    series_id = db.Column(db.String(36), db.ForeignKey('series.id'), nullable=False, index=True)
    # a video can sit in at most one series
    video_id = db.Column(db.String(36), db.ForeignKey('video.id'), unique=True, nullable=False)
    order_index = db.Column(db.Integer, nullable=False, comment='顺序（1/2/3...）')
    create_time = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint('series_id', 'order_index', name='uk_series_order'),
    )

    # 按顺序获取系列内的成员
    @classmethod
    def get_members(cls, series_id):
        return cls.query.filter_by(series_id=series_id).order_by(cls.order_index).all()
