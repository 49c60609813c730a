# -*- coding: utf-8 -*-
"""
Purchase orchestration for videos and series / 视频与系列购买

Each purchase is one unit of work: debit the buyer, write the access grant,
bump the view counter and credit the creator commit together or not at all.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from coinvault.managers.AccessManager import AccessManager, ACCESS_NONE
from coinvault.managers.CoinTransactionManager import CoinTransactionManager
from coinvault.managers.EarningManager import EarningManager
from coinvault.managers.NotificationManager import NotificationManager
from coinvault.managers.PricingManager import PricingManager
from coinvault.models.database import db
from coinvault.models.CoinTransaction import DIRECTION_SPEND, TYPE_PURCHASE
from coinvault.models.Series import Series
from coinvault.models.SeriesPurchase import (
    SeriesPurchase, GRANT_ALL_VIDEOS_OWNED, GRANT_COIN_PAYMENT, GRANT_CREATOR_ACCESS, GRANT_ZERO_PRICE,
)
from coinvault.models.Video import Video
from coinvault.models.VideoPurchase import VideoPurchase, PURCHASE_COMPLETED
from coinvault.models.typings import (
    InactiveContentException, InsufficientCoinsException, NotFoundException,
    UnauthorizedException, ValidationException,
)

logger = logging.getLogger(__name__)

CONTENT_SERIES = 'series'
CONTENT_VIDEO = 'video'


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


class PurchaseManager:
    _instance = None

    @classmethod
    def instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _balance(self, user_id):
        return CoinTransactionManager.instance().get_balance(user_id)

    def _grant_series_free(self, user, series, metadata):
        """
        Zero-cost grant. False when a concurrent request already granted it.
        """
        try:
            db.session.add(SeriesPurchase(
                user_id=user.id,
                series_id=series.id,
                coins_paid=0,
                status=PURCHASE_COMPLETED,
                purchase_metadata=metadata,
            ))
            db.session.commit()
            return True
        except IntegrityError:
            db.session.rollback()
            return False

    def _already_owned_series(self, user, series):
        return {
            "success": True,
            "message": "You have already purchased this series",
            "coinsSpent": 0,
            "originalPrice": series.coin_price,
            "remainingBalance": self._balance(user.id),
            "hasAccess": True,
        }

    def purchase_series(self, user, series_id):
        """
        Buy a series with coins / 使用金币购买系列
        Steps run strictly in order; the first terminal outcome wins.
        """
        if user is None:
            raise UnauthorizedException("Authentication required")

        series = db.session.get(Series, series_id)
        if not series:
            raise NotFoundException("Series not found")
        if not series.is_active:
            raise InactiveContentException("Series is not available for purchase")

        access_manager = AccessManager.instance()
        pricing_manager = PricingManager.instance()
        coin_manager = CoinTransactionManager.instance()

        # 重复购买：直接返回，不扣费
        if access_manager.find_series_purchase(user.id, series.id):
            logger.info("User %s already owns series %s", user.id, series.id)
            return self._already_owned_series(user, series)

        if series.creator_id == user.id:
            granted = self._grant_series_free(user, series, {
                "type": GRANT_CREATOR_ACCESS,
                "grantedAt": _now_iso(),
            })
            if not granted:
                return self._already_owned_series(user, series)
            logger.info("Creator access granted: user=%s series=%s", user.id, series.id)
            return {
                "success": True,
                "message": "Creator access granted",
                "coinsSpent": 0,
                "originalPrice": series.coin_price,
                "adjustedPrice": 0,
                "deductions": [],
                "remainingBalance": self._balance(user.id),
                "hasAccess": True,
            }

        calculation = pricing_manager.calculate_adjusted_price(user.id, series.id)
        original_price = calculation["original_price"]
        adjusted_price = calculation["adjusted_price"]
        deductions = pricing_manager.deductions_for_client(calculation)
        owned_videos = calculation["owned_videos"]

        if calculation["all_videos_owned"] or adjusted_price == 0:
            grant_type = GRANT_ALL_VIDEOS_OWNED if calculation["all_videos_owned"] else GRANT_ZERO_PRICE
            granted = self._grant_series_free(user, series, {
                "type": grant_type,
                "originalPrice": original_price,
                "adjustedPrice": 0,
                "totalDeduction": calculation["total_deduction"],
                "ownedVideos": owned_videos,
                "grantedAt": _now_iso(),
            })
            if not granted:
                return self._already_owned_series(user, series)
            logger.info("Series %s granted for free to %s (%s)", series.id, user.id, grant_type)
            return {
                "success": True,
                "message": "You own all videos in this series" if grant_type == GRANT_ALL_VIDEOS_OWNED
                else "Series access granted",
                "coinsSpent": 0,
                "originalPrice": original_price,
                "adjustedPrice": 0,
                "deductions": deductions,
                "remainingBalance": self._balance(user.id),
                "hasAccess": True,
            }

        sufficient, balance, shortfall = coin_manager.check_sufficient_coins(user.id, adjusted_price)
        if not sufficient:
            logger.warning("Insufficient coins: user=%s series=%s required=%s available=%s shortfall=%s",
                           user.id, series.id, adjusted_price, balance, shortfall)
            raise InsufficientCoinsException(
                required=adjusted_price,
                available=balance,
                originalPrice=original_price,
                adjustedPrice=adjusted_price,
                deductions=deductions,
            )

        description = f"Purchased series: {series.title}"
        if owned_videos:
            description += f" (adjusted price, {len(owned_videos)} videos already owned)"

        try:
            _, new_balance = coin_manager.create_transaction(
                user_id=user.id,
                direction=DIRECTION_SPEND,
                amount=adjusted_price,
                related_content_type=CONTENT_SERIES,
                related_content_id=series.id,
                description=description,
                transaction_type=TYPE_PURCHASE,
                commit=False,
            )
            db.session.add(SeriesPurchase(
                user_id=user.id,
                series_id=series.id,
                coins_paid=adjusted_price,
                status=PURCHASE_COMPLETED,
                purchase_metadata={
                    "type": GRANT_COIN_PAYMENT,
                    "coinsSpent": adjusted_price,
                    "originalPrice": original_price,
                    "adjustedPrice": adjusted_price,
                    "totalDeduction": calculation["total_deduction"],
                    "ownedVideos": owned_videos,
                    "purchasedAt": _now_iso(),
                },
            ))
            series.view_count = Series.view_count + 1
            EarningManager.instance().record_creator_earning(
                series.creator_id,
                adjusted_price,
                CONTENT_SERIES,
                series.id,
                f"Earned from series purchase: {series.title}",
                commit=False,
            )
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            # lost a race against an identical purchase; nothing of ours persisted
            logger.warning("Concurrent purchase of series %s by %s rolled back", series_id, user.id)
            if access_manager.find_series_purchase(user.id, series_id):
                return self._already_owned_series(user, series)
            raise
        except InsufficientCoinsException as e:
            db.session.rollback()
            raise InsufficientCoinsException(
                required=e.required,
                available=e.available,
                originalPrice=original_price,
                adjustedPrice=adjusted_price,
                deductions=deductions,
            )
        except Exception:
            db.session.rollback()
            raise

        logger.info("Series purchased: user=%s series=%s coins=%s new_balance=%s",
                    user.id, series_id, adjusted_price, new_balance)
        NotificationManager.instance().emit_purchase_events(
            user.id, series.creator_id, CONTENT_SERIES, series.id, series.title, adjusted_price)

        if owned_videos:
            plural = 's' if len(owned_videos) > 1 else ''
            message = f"Series purchased successfully with adjusted price ({len(owned_videos)} video{plural} already owned)"
        else:
            message = "Series purchased successfully"
        return {
            "success": True,
            "message": message,
            "coinsSpent": adjusted_price,
            "originalPrice": original_price,
            "adjustedPrice": adjusted_price,
            "deductions": deductions,
            "remainingBalance": new_balance,
            "hasAccess": True,
        }

    def purchase_video(self, user, video_id):
        """
        Buy a single standalone video / 购买单个视频
        """
        if user is None:
            raise UnauthorizedException("Authentication required")

        video = db.session.get(Video, video_id)
        if not video:
            raise NotFoundException("Video not found")
        if not video.is_active:
            raise InactiveContentException("Video is not available for purchase")

        access_manager = AccessManager.instance()
        coin_manager = CoinTransactionManager.instance()

        access = access_manager.check_video_access(user.id, video.id)
        if access != ACCESS_NONE:
            return {
                "success": True,
                "message": "You already have access to this video",
                "coinsSpent": 0,
                "remainingBalance": self._balance(user.id),
                "hasAccess": True,
                "accessType": access,
            }

        if video.series_id:
            raise ValidationException(
                "This video is only available as part of its series",
                errors=["video is bundled in a series; purchase the series instead"],
                seriesId=video.series_id,
            )

        price = video.standalone_price
        sufficient, balance, shortfall = coin_manager.check_sufficient_coins(user.id, price)
        if not sufficient:
            logger.warning("Insufficient coins: user=%s video=%s required=%s available=%s",
                           user.id, video.id, price, balance)
            raise InsufficientCoinsException(required=price, available=balance)

        try:
            _, new_balance = coin_manager.create_transaction(
                user_id=user.id,
                direction=DIRECTION_SPEND,
                amount=price,
                related_content_type=CONTENT_VIDEO,
                related_content_id=video.id,
                description=f"Purchased video: {video.title}",
                transaction_type=TYPE_PURCHASE,
                commit=False,
            )
            db.session.add(VideoPurchase(
                user_id=user.id,
                video_id=video.id,
                coins_paid=price,
                status=PURCHASE_COMPLETED,
                purchase_metadata={
                    "type": GRANT_COIN_PAYMENT,
                    "coinsSpent": price,
                    "purchasedAt": _now_iso(),
                },
            ))
            video.view_count = Video.view_count + 1
            EarningManager.instance().record_creator_earning(
                video.creator_id,
                price,
                CONTENT_VIDEO,
                video.id,
                f"Earned from video purchase: {video.title}",
                commit=False,
            )
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning("Concurrent purchase of video %s by %s rolled back", video_id, user.id)
            if access_manager.find_video_purchase(user.id, video_id):
                return {
                    "success": True,
                    "message": "You already have access to this video",
                    "coinsSpent": 0,
                    "remainingBalance": self._balance(user.id),
                    "hasAccess": True,
                    "accessType": access_manager.check_video_access(user.id, video_id),
                }
            raise
        except Exception:
            db.session.rollback()
            raise

        logger.info("Video purchased: user=%s video=%s coins=%s new_balance=%s",
                    user.id, video_id, price, new_balance)
        NotificationManager.instance().emit_purchase_events(
            user.id, video.creator_id, CONTENT_VIDEO, video.id, video.title, price)
        return {
            "success": True,
            "message": "Video purchased successfully",
            "coinsSpent": price,
            "remainingBalance": new_balance,
            "hasAccess": True,
            "accessType": access_manager.check_video_access(user.id, video_id),
        }
