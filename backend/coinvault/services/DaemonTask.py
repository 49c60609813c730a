# -*- coding: utf-8 -*-
import logging

from coinvault.managers.NotificationManager import NotificationManager
from coinvault.models.database import db

logger = logging.getLogger(__name__)


class DaemonTask:

    @classmethod
    def dispatch_notifications(cls, app):
        with app.app_context():  # 确保在 Flask 应用上下文中操作数据库
            try:
                delivered = NotificationManager.instance().dispatch_pending()
            except Exception:
                db.session.rollback()
                logger.exception("Notification dispatch run failed")
                return 0
            if delivered:
                logger.info("Delivered %s notifications", delivered)
            return delivered
