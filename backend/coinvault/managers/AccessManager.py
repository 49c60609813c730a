# -*- coding: utf-8 -*-
"""Content ownership queries / 内容访问权限查询"""
from coinvault.models.database import db
from coinvault.models.Series import Series
from coinvault.models.SeriesPurchase import SeriesPurchase
from coinvault.models.Video import Video
from coinvault.models.VideoPurchase import VideoPurchase, PURCHASE_COMPLETED
from coinvault.models.typings import NotFoundException

ACCESS_OWNED_DIRECT = 'owned-direct'
ACCESS_OWNED_VIA_SERIES = 'owned-via-series'
ACCESS_CREATOR_SELF = 'creator-self'
ACCESS_NONE = 'none'


class AccessManager:
    _instance = None

    @classmethod
    def instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def find_series_purchase(self, user_id, series_id):
        return SeriesPurchase.query.filter_by(
            user_id=user_id,
            series_id=series_id,
            status=PURCHASE_COMPLETED
        ).first()

    def find_video_purchase(self, user_id, video_id):
        return VideoPurchase.query.filter_by(
            user_id=user_id,
            video_id=video_id,
            status=PURCHASE_COMPLETED
        ).first()

    def owned_video_ids(self, user_id, video_ids):
        """Subset of video_ids the user bought individually / 用户单独购买过的视频"""
        if not video_ids:
            return set()
        rows = db.session.query(VideoPurchase.video_id).filter(
            VideoPurchase.user_id == user_id,
            VideoPurchase.video_id.in_(list(video_ids)),
            VideoPurchase.status == PURCHASE_COMPLETED
        ).all()
        return {row[0] for row in rows}

    def check_video_access(self, user_id, video_id):
        """
        Check how (if at all) the user may watch a video / 检查用户是否可观看指定视频
        Series ownership is checked before the individual purchase: the series
        grant is authoritative and must never lead to a second charge.
        :return: one of owned-direct / owned-via-series / creator-self / none
        """
        video = db.session.get(Video, video_id)
        if not video:
            raise NotFoundException("Video not found")

        if video.creator_id == user_id:
            return ACCESS_CREATOR_SELF

        if video.series_id and self.find_series_purchase(user_id, video.series_id):
            return ACCESS_OWNED_VIA_SERIES

        if self.find_video_purchase(user_id, video_id):
            return ACCESS_OWNED_DIRECT

        return ACCESS_NONE

    def check_series_access(self, user_id, series_id):
        """
        :return: creator-self / owned-direct / none
        """
        series = db.session.get(Series, series_id)
        if not series:
            raise NotFoundException("Series not found")

        if series.creator_id == user_id:
            return ACCESS_CREATOR_SELF

        if self.find_series_purchase(user_id, series_id):
            return ACCESS_OWNED_DIRECT

        return ACCESS_NONE

    def get_series_access_details(self, user_id, series_id):
        access = self.check_series_access(user_id, series_id)
        purchase = self.find_series_purchase(user_id, series_id)
        return {
            "seriesId": series_id,
            "hasAccess": access != ACCESS_NONE,
            "accessType": access,
            "purchaseDate": purchase.create_time.isoformat() if purchase and purchase.create_time else None,
            "coinsPaid": purchase.coins_paid if purchase else None,
            "purchase": purchase.to_dict() if purchase else None,
        }

    def get_video_access_details(self, user_id, video_id):
        access = self.check_video_access(user_id, video_id)
        return {
            "videoId": video_id,
            "hasAccess": access != ACCESS_NONE,
            "accessType": access,
        }
