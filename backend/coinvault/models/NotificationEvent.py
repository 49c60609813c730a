# -*- coding: utf-8 -*-
from datetime import datetime, timezone

from coinvault.models.database import db

EVENT_PURCHASE_COMPLETED = 'purchase_completed'
EVENT_EARNING_RECEIVED = 'earning_received'
EVENT_TOPUP_COMPLETED = 'topup_completed'


class NotificationEvent(db.Model):
    """Outbox row written after a financial commit, delivered by DaemonTask."""
    __tablename__ = 'notification_event'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    event_type = db.Column(db.String(64), nullable=False)
    recipient_id = db.Column(db.String(36), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=True)
    is_delivered = db.Column(db.Boolean, nullable=False, default=False, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    create_time = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    delivered_time = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "eventType": self.event_type,
            "recipientId": self.recipient_id,
            "payload": self.payload or {},
            "createTime": self.create_time.isoformat() if self.create_time else None,
        }
