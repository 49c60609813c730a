# -*- coding: utf-8 -*-
from datetime import datetime, timezone

from coinvault.models.database import db


class PaymentOrder(db.Model):
    """Verified Razorpay top-up / 充值订单"""
    __tablename__ = 'payment_order'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True, comment='主键，自增 ID')
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    razorpay_order_id = db.Column(db.String(255), unique=True, nullable=False)
    razorpay_payment_id = db.Column(db.String(255), unique=True, nullable=False)
    rupee_amount = db.Column(db.Numeric(12, 2), nullable=False, comment='充值金额（INR）')
    coin_amount = db.Column(db.Integer, nullable=False)
    paid_status = db.Column(db.Boolean, nullable=False, default=False, comment='支付状态')
    order_time = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc), comment='下单时间')

    def to_dict(self):
        return {
            "orderId": self.razorpay_order_id,
            "paymentId": self.razorpay_payment_id,
            "rupeeAmount": float(self.rupee_amount) if self.rupee_amount is not None else None,
            "coinAmount": self.coin_amount,
            "paidStatus": self.paid_status,
            "orderTime": self.order_time.strftime("%Y-%m-%d %H:%M:%S") if self.order_time else "",
        }
