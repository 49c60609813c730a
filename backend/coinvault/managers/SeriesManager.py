# -*- coding: utf-8 -*-
"""Series membership manager / 系列视频管理"""
import logging

from sqlalchemy import func

from coinvault.models.database import db
from coinvault.models.Series import Series
from coinvault.models.SeriesVideo import SeriesVideo
from coinvault.models.Video import Video
from coinvault.models.typings import (
    ForbiddenException, InactiveContentException, NotFoundException, ValidationException,
)

logger = logging.getLogger(__name__)


class SeriesManager:
    _instance = None

    @classmethod
    def instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def recompute_aggregates(self, series):
        """
        video_count / total_duration always come from COUNT/SUM over series_video.
        Does not commit.
        """
        db.session.flush()
        count, duration = db.session.query(
            func.count(SeriesVideo.id),
            func.coalesce(func.sum(Video.duration), 0)
        ).join(Video, Video.id == SeriesVideo.video_id).\
            filter(SeriesVideo.series_id == series.id).one()
        series.video_count = int(count)
        series.total_duration = int(duration)
        return series

    @staticmethod
    def check_bundle(series, video):
        """
        A video joins at most one series, and only a series of its own creator.
        """
        if video.creator_id != series.creator_id:
            raise ValidationException("Video belongs to a different creator",
                                      errors=["only your own videos can be added to your series"])
        if video.series_id:
            raise ValidationException("Video is already in a series",
                                      errors=[f"video {video.id} already belongs to series {video.series_id}"])

    @staticmethod
    def _apply_order(assignments):
        """
        assignments: [(SeriesVideo, new_order_index)]
        两阶段更新，避免 (series_id, order_index) 唯一索引冲突
        """
        for member, _ in assignments:
            member.order_index = -member.order_index
        db.session.flush()
        for member, order_index in assignments:
            member.order_index = order_index
        db.session.flush()

    def _get_owned_series(self, user, series_id):
        if not user.is_creator:
            raise ForbiddenException("Only creators can manage series videos")
        series = db.session.get(Series, series_id)
        if not series:
            raise NotFoundException("Series not found")
        if series.creator_id != user.id:
            raise ForbiddenException("You can only manage your own series")
        return series

    @staticmethod
    def validate_reorder(data):
        """
        Shape checks on a reorder payload, independent of the database.
        :return: (errors, video_orders) where video_orders is [(video_id, order_index)]
        """
        errors = []
        video_orders = []
        orders = data.get('videoOrders') if isinstance(data, dict) else None

        if not isinstance(orders, list):
            errors.append("Video orders must be an array")
            return errors, []
        if not orders:
            errors.append("Video orders array cannot be empty")
            return errors, []

        video_ids = set()
        order_indexes = set()
        for i, item in enumerate(orders):
            if not isinstance(item, dict):
                errors.append(f"Video order item {i} must be an object")
                continue

            video_id = item.get('videoId')
            if not isinstance(video_id, str) or not video_id.strip():
                errors.append(f"Video order item {i} must have a valid videoId string")
                continue
            video_id = video_id.strip()
            if video_id in video_ids:
                errors.append(f"Duplicate videoId found: {video_id}")
                continue
            video_ids.add(video_id)

            order_index = item.get('orderIndex')
            if isinstance(order_index, bool) or not isinstance(order_index, int) or order_index < 1:
                errors.append(f"Video order item {i} must have a valid positive integer orderIndex")
                continue
            if order_index in order_indexes:
                errors.append(f"Duplicate orderIndex found: {order_index}")
                continue
            order_indexes.add(order_index)

            video_orders.append((video_id, order_index))

        if sorted(order_indexes) != list(range(1, len(order_indexes) + 1)):
            errors.append("Order indexes must be consecutive starting from 1")

        return errors, video_orders

    def reorder_videos(self, user, series_id, data):
        """
        Replace the full order of a series. Partial reorders are rejected, and
        on any error the stored order is left untouched.
        """
        if not user.is_creator:
            raise ForbiddenException("Only creators can manage series videos")

        errors, video_orders = self.validate_reorder(data)
        if errors:
            raise ValidationException("Validation failed", errors=errors)

        series = self._get_owned_series(user, series_id)
        if not series.is_active:
            raise InactiveContentException("Cannot reorder videos in inactive series")

        members = {member.video_id: member for member in SeriesVideo.get_members(series.id)}
        missing = [video_id for video_id, _ in video_orders if video_id not in members]
        if missing:
            raise ValidationException(
                "Some videos are not in this series",
                errors=[f"Video {video_id} is not in this series" for video_id in missing],
                missingVideoIds=missing,
            )
        if len(video_orders) != series.video_count or len(video_orders) != len(members):
            raise ValidationException(
                "Must provide order for all videos in the series",
                errors=[f"Expected {series.video_count} videos, got {len(video_orders)}"],
                providedCount=len(video_orders),
                totalCount=series.video_count,
            )

        try:
            self._apply_order([(members[video_id], order_index) for video_id, order_index in video_orders])
            series.update_time = func.now()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Series %s reordered by %s", series.id, user.id)
        return [
            {"videoId": member.video_id, "orderIndex": member.order_index}
            for member in SeriesVideo.get_members(series.id)
        ]

    def add_video(self, user, series_id, video_id):
        """Append a video to the end of a series / 将视频追加到系列末尾"""
        series = self._get_owned_series(user, series_id)
        if not series.is_active:
            raise InactiveContentException("Cannot add videos to an inactive series")

        video = db.session.get(Video, video_id)
        if not video:
            raise NotFoundException("Video not found")
        self.check_bundle(series, video)

        try:
            next_index = (db.session.query(func.max(SeriesVideo.order_index)).
                          filter(SeriesVideo.series_id == series.id).scalar() or 0) + 1
            db.session.add(SeriesVideo(series_id=series.id, video_id=video.id, order_index=next_index))
            video.series_id = series.id
            self.recompute_aggregates(series)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Video %s added to series %s at position %s", video.id, series.id, next_index)
        return {"videoId": video.id, "orderIndex": next_index, "series": series.to_dict()}

    def remove_video(self, user, series_id, video_id, coin_price):
        """
        Take a video out of a series; it becomes standalone again at coin_price.
        Remaining positions are compacted back to 1..N-1.
        """
        series = self._get_owned_series(user, series_id)
        price_error = Video.validate_coin_price(coin_price)
        if price_error:
            raise ValidationException("Validation failed", errors=[price_error])

        member = SeriesVideo.query.filter_by(series_id=series.id, video_id=video_id).first()
        if not member:
            raise NotFoundException("Video is not in this series")

        try:
            video = db.session.get(Video, video_id)
            db.session.delete(member)
            db.session.flush()
            video.series_id = None
            video.coin_price = coin_price
            self._apply_order([
                (remaining, index) for index, remaining in enumerate(SeriesVideo.get_members(series.id), 1)
            ])
            self.recompute_aggregates(series)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Video %s removed from series %s", video_id, series.id)
        return series.to_dict()
