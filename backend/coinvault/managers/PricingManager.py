# -*- coding: utf-8 -*-
import logging

from coinvault.managers.AccessManager import AccessManager
from coinvault.models.database import db
from coinvault.models.Series import Series
from coinvault.models.SeriesVideo import SeriesVideo
from coinvault.models.Video import Video
from coinvault.models.typings import NotFoundException

logger = logging.getLogger(__name__)


class PricingManager:
    """
    Series pricing net of videos the buyer already owns individually.
    """
    _instance = None

    @classmethod
    def instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_series_videos(self, series_id):
        """Member videos in series order / 按顺序获取系列内视频"""
        return db.session.query(Video).\
            join(SeriesVideo, SeriesVideo.video_id == Video.id).\
            filter(SeriesVideo.series_id == series_id).\
            order_by(SeriesVideo.order_index).all()

    def calculate_adjusted_price(self, user_id, series_id):
        """
        adjusted_price = max(0, list price - list price of individually owned videos).
        Surplus deduction is discarded, never refunded. When every video is
        already owned the series is free regardless of the arithmetic.
        """
        series = db.session.get(Series, series_id)
        if not series:
            raise NotFoundException("Series not found")

        original_price = series.coin_price or 0
        videos = self.get_series_videos(series_id)
        if not videos:
            return {
                "original_price": original_price,
                "owned_videos": [],
                "total_deduction": 0,
                "adjusted_price": original_price,
                "all_videos_owned": False,
            }

        owned_ids = AccessManager.instance().owned_video_ids(user_id, [video.id for video in videos])
        owned_videos = [
            {"video_id": video.id, "title": video.title, "coin_price": video.coin_price}
            for video in videos if video.id in owned_ids
        ]
        total_deduction = sum(item["coin_price"] for item in owned_videos)
        all_videos_owned = len(owned_videos) == len(videos)
        adjusted_price = 0 if all_videos_owned else max(0, original_price - total_deduction)

        logger.info("Price calculation: series=%s user=%s original=%s owned=%s deduction=%s adjusted=%s all_owned=%s",
                    series_id, user_id, original_price, len(owned_videos), total_deduction,
                    adjusted_price, all_videos_owned)
        return {
            "original_price": original_price,
            "owned_videos": owned_videos,
            "total_deduction": total_deduction,
            "adjusted_price": adjusted_price,
            "all_videos_owned": all_videos_owned,
        }

    def get_unowned_series_videos(self, user_id, series_id):
        videos = self.get_series_videos(series_id)
        owned_ids = AccessManager.instance().owned_video_ids(user_id, [video.id for video in videos])
        return [video for video in videos if video.id not in owned_ids]

    @staticmethod
    def deductions_for_client(price_calculation):
        return [
            {"videoId": item["video_id"], "videoTitle": item["title"], "coinPrice": item["coin_price"]}
            for item in price_calculation["owned_videos"]
        ]

    def get_price_preview(self, user_id, series_id):
        calculation = self.calculate_adjusted_price(user_id, series_id)
        return {
            "seriesId": series_id,
            "originalPrice": calculation["original_price"],
            "adjustedPrice": calculation["adjusted_price"],
            "totalDeduction": calculation["total_deduction"],
            "allVideosOwned": calculation["all_videos_owned"],
            "deductions": self.deductions_for_client(calculation),
        }
