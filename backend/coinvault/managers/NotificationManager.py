# -*- coding: utf-8 -*-
import logging
from datetime import datetime, timezone

import requests

from coinvault.managers.Config import Config
from coinvault.models.database import db
from coinvault.models.NotificationEvent import (
    NotificationEvent, EVENT_EARNING_RECEIVED, EVENT_PURCHASE_COMPLETED, EVENT_TOPUP_COMPLETED,
)

logger = logging.getLogger(__name__)

MAX_DELIVERY_ATTEMPTS = 5


class NotificationManager:
    """
    Post-commit event outbox. Events are written only after the financial
    transaction committed, and a failure here is logged and dropped so it can
    never undo or block a purchase.
    """
    _instance = None

    @classmethod
    def instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def emit(self, event_type, recipient_id, payload):
        try:
            event = NotificationEvent(event_type=event_type, recipient_id=recipient_id, payload=payload)
            db.session.add(event)
            db.session.commit()
            return event
        except Exception:
            db.session.rollback()
            logger.exception("Failed to queue %s notification for %s", event_type, recipient_id)
            return None

    def emit_purchase_events(self, buyer_id, creator_id, content_type, content_id, title, coins_spent):
        self.emit(EVENT_PURCHASE_COMPLETED, buyer_id, {
            "contentType": content_type,
            "contentId": content_id,
            "title": title,
            "coinsSpent": coins_spent,
        })
        if coins_spent > 0:
            self.emit(EVENT_EARNING_RECEIVED, creator_id, {
                "contentType": content_type,
                "contentId": content_id,
                "title": title,
                "coinsEarned": coins_spent,
            })

    def emit_topup_event(self, user_id, coins, payment_id):
        self.emit(EVENT_TOPUP_COMPLETED, user_id, {"coins": coins, "paymentId": payment_id})

    def get_pending(self, limit=100):
        return NotificationEvent.query.filter(
            NotificationEvent.is_delivered == False,  # noqa: E712
            NotificationEvent.attempts < MAX_DELIVERY_ATTEMPTS
        ).order_by(NotificationEvent.id).limit(limit).all()

    def _deliver(self, event, webhook_url):
        if not webhook_url:
            logger.info("Notification %s (%s) for %s", event.id, event.event_type, event.recipient_id)
            return True
        try:
            response = requests.post(webhook_url, json=event.to_dict(),
                                     timeout=Config.get_value('http_timeout_seconds'))
        except requests.RequestException as e:
            logger.warning("Notification %s delivery failed: %s", event.id, e)
            return False
        if response.status_code >= 400:
            logger.warning("Notification %s rejected by webhook with status %s", event.id, response.status_code)
            return False
        return True

    def dispatch_pending(self, limit=100):
        """
        Deliver queued events / 投递待发送通知
        :return: number of events delivered in this run
        """
        webhook_url = Config.get_value('notification_webhook_url')
        delivered = 0
        for event in self.get_pending(limit):
            if self._deliver(event, webhook_url):
                event.is_delivered = True
                event.delivered_time = datetime.now(timezone.utc)
                delivered += 1
            else:
                event.attempts += 1
        db.session.commit()
        return delivered
