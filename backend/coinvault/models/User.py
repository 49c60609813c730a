# -*- coding: utf-8 -*-
import uuid
from datetime import datetime, timezone

from coinvault.models.database import db

ROLE_MEMBER = 'member'
ROLE_CREATOR = 'creator'


class User(db.Model):
    """
    Platform user. The coin balance is not stored here, it is always derived
    from coin_transaction (see CoinTransactionManager.get_balance).
    """
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    external_id = db.Column(db.String(255), unique=True, nullable=False, comment='identity provider subject')
    username = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_MEMBER, comment='member / creator')
    create_time = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    @property
    def is_creator(self):
        return self.role == ROLE_CREATOR

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
        }
