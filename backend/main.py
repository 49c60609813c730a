# -*- coding: utf-8 -*-
import logging
import traceback
from functools import wraps

import jwt
import requests
from flask import Flask, request, jsonify
from flask_cors import cross_origin
from flask_apscheduler import APScheduler
from sqlalchemy.exc import DisconnectionError, OperationalError
from werkzeug.exceptions import HTTPException

from coinvault.models.database import db
from coinvault.managers.Config import Config, SCHEDULER_API_ENABLED
from coinvault.managers.AccessManager import AccessManager
from coinvault.managers.CatalogInitManager import init_catalog
from coinvault.managers.CoinTransactionManager import CoinTransactionManager
from coinvault.managers.EarningManager import EarningManager
from coinvault.managers.PaymentManager import PaymentManager
from coinvault.managers.PricingManager import PricingManager
from coinvault.managers.PurchaseManager import PurchaseManager
from coinvault.managers.SeriesManager import SeriesManager
from coinvault.managers.UserManager import UserManager
from coinvault.models.typings import (
    CustomException, ForbiddenException, InternalFailureException,
    TransientFailureException, UnauthorizedException, ValidationException,
)
from coinvault.models.JWTBlacklist import JWTBlacklist
from coinvault.services.DaemonTask import DaemonTask
# 建表需要导入全部模型
from coinvault.models.CoinTransaction import CoinTransaction, TRANSACTION_TYPES  # noqa: F401
from coinvault.models.ErrorLog import ErrorLog  # noqa: F401
from coinvault.models.NotificationEvent import NotificationEvent  # noqa: F401
from coinvault.models.PaymentOrder import PaymentOrder  # noqa: F401
from coinvault.models.Series import Series  # noqa: F401
from coinvault.models.SeriesPurchase import SeriesPurchase  # noqa: F401
from coinvault.models.SeriesVideo import SeriesVideo  # noqa: F401
from coinvault.models.User import User  # noqa: F401
from coinvault.models.Video import Video  # noqa: F401
from coinvault.models.VideoPurchase import VideoPurchase  # noqa: F401

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

app = Flask(__name__)
app.config['SCHEDULER_API_ENABLED'] = SCHEDULER_API_ENABLED

scheduler = APScheduler()
scheduler.init_app(app)


# 投递已提交购买产生的通知
@scheduler.task('interval', id='dispatch_notifications', minutes=1)
def dispatch_notifications():
    DaemonTask.dispatch_notifications(app)


def get_database_uri():
    uri = Config.get_value("SQLALCHEMY_DATABASE_URI")
    if uri:
        return uri
    return "mysql+pymysql://root:" + Config.get_value("MariaDB_password", default="") + "@" + Config.get_value(
        "MariaDB_url", default="localhost:3306/coinvault")


def configure_app(database_uri=None, jwt_secret=None, start_scheduler=False):
    """
    Bind database, JWT secret and background jobs to the app.
    Called once per process: by __main__ for the server, by the test session otherwise.
    """
    app.config['SQLALCHEMY_DATABASE_URI'] = database_uri or get_database_uri()
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['JWT_SECRET_KEY'] = jwt_secret or Config.get_value("JWT_SECRET_KEY")

    db.init_app(app)

    with app.app_context():
        db.create_all()
        catalog_file = Config.get_value("catalog_file")
        if catalog_file:
            init_catalog(catalog_file)

    if start_scheduler and not scheduler.running:
        scheduler.start()
    return app


def _bearer_token():
    auth_header = request.headers.get('Authorization')
    if auth_header and auth_header.startswith('Bearer '):
        return auth_header[7:]
    return None


def token_required(f):
    """
    鉴权，并从jwt中获取用户
    The `sub` claim carries the identity provider's subject, which maps to User.external_id.
    :param f:
    :return: 当前用户
    """
    @wraps(f)
    def decorator(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise UnauthorizedException("Token is missing!")

        try:
            decoded = jwt.decode(token, app.config['JWT_SECRET_KEY'], algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            raise UnauthorizedException(f"Invalid token: {e}")

        if JWTBlacklist.is_blacklisted(token):
            raise UnauthorizedException("Token is blacklisted.")

        external_id = decoded.get('sub')
        if not external_id:
            raise UnauthorizedException("Invalid token: missing subject")
        # 未注册用户返回404
        user = UserManager.get_by_external_id(external_id)

        return f(user, *args, **kwargs)

    return decorator


def _json_body():
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise ValidationException("Request body must be a JSON object", errors=["invalid or missing JSON body"])
    return data


def _page_args():
    limit = request.args.get('limit', 20, type=int)
    offset = request.args.get('offset', 0, type=int)
    return max(1, min(limit, MAX_PAGE_SIZE)), max(0, offset)


# ------------------------------ error handlers ------------------------------

@app.errorhandler(CustomException)
def handle_custom_exception(e):
    db.session.rollback()
    if e.status_code >= 500:
        logger.error("%s on %s %s: %s", type(e).__name__, request.method, request.path, e.message, exc_info=e)
        e.record_error()
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(OperationalError)
@app.errorhandler(DisconnectionError)
@app.errorhandler(requests.ConnectionError)
@app.errorhandler(requests.Timeout)
def handle_transient_failure(e):
    db.session.rollback()
    logger.error("Transient failure on %s %s", request.method, request.path, exc_info=e)
    failure = TransientFailureException()
    failure.record_error(f"{type(e).__name__} on {request.method} {request.path}: {e}")
    return jsonify(failure.to_dict()), failure.status_code


@app.errorhandler(Exception)
def handle_unexpected_exception(e):
    if isinstance(e, HTTPException):
        return jsonify({"success": False, "error": e.description}), e.code

    db.session.rollback()
    logger.error("Unhandled error on %s %s", request.method, request.path, exc_info=e)
    failure = InternalFailureException()
    failure.record_error("".join(traceback.format_exception(type(e), e, e.__traceback__)))
    return jsonify(failure.to_dict()), failure.status_code


# ------------------------------ routes ------------------------------

@app.route('/', methods=['GET'])
@cross_origin()
def index():
    return jsonify({"success": True, "message": "coinvault is running"})


@app.route('/logout', methods=['GET'])
@cross_origin()
@token_required
def logout(user):
    db.session.add(JWTBlacklist(token=_bearer_token()))
    db.session.commit()
    logger.info("User %s logged out", user.id)
    return jsonify({"success": True, "message": "User logged out successfully"})


@app.route('/wallet/balance', methods=['GET'])
@cross_origin()
@token_required
def get_wallet_balance(user):
    info = CoinTransactionManager.instance().get_balance_info(user.id)
    return jsonify({"success": True, **info})


@app.route('/wallet/transactions', methods=['GET'])
@cross_origin()
@token_required
def get_wallet_transactions(user):
    limit, offset = _page_args()
    transaction_type = request.args.get('type')
    if transaction_type and transaction_type not in TRANSACTION_TYPES:
        raise ValidationException("Validation failed",
                                  errors=[f"type must be one of {', '.join(TRANSACTION_TYPES)}"])
    transactions, total = CoinTransactionManager.instance().get_transaction_history(
        user.id, limit=limit, offset=offset, transaction_type=transaction_type)
    return jsonify({
        "success": True,
        "transactions": [transaction.to_dict() for transaction in transactions],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@app.route('/wallet/topup/verify', methods=['POST'])
@cross_origin()
@token_required
def verify_topup(user):
    data = _json_body()
    result = PaymentManager.instance().verify_and_credit(
        user,
        data.get('razorpay_order_id'),
        data.get('razorpay_payment_id'),
        data.get('razorpay_signature'),
    )
    return jsonify(result)


@app.route('/series/<series_id>/price', methods=['GET'])
@cross_origin()
@token_required
def get_series_price(user, series_id):
    preview = PricingManager.instance().get_price_preview(user.id, series_id)
    return jsonify({"success": True, **preview})


@app.route('/series/<series_id>/purchase', methods=['POST'])
@cross_origin()
@token_required
def purchase_series(user, series_id):
    return jsonify(PurchaseManager.instance().purchase_series(user, series_id))


@app.route('/series/<series_id>/purchase', methods=['GET'])
@cross_origin()
@token_required
def get_series_purchase(user, series_id):
    details = AccessManager.instance().get_series_access_details(user.id, series_id)
    return jsonify({"success": True, **details})


@app.route('/series/<series_id>/videos/reorder', methods=['PUT'])
@cross_origin()
@token_required
def reorder_series_videos(user, series_id):
    data = request.get_json(force=True, silent=True)
    video_orders = SeriesManager.instance().reorder_videos(user, series_id, data)
    return jsonify({
        "success": True,
        "message": "Videos reordered successfully",
        "videoOrders": video_orders,
    })


@app.route('/series/<series_id>/videos', methods=['POST'])
@cross_origin()
@token_required
def add_series_video(user, series_id):
    data = _json_body()
    video_id = data.get('videoId')
    if not isinstance(video_id, str) or not video_id.strip():
        raise ValidationException("Validation failed", errors=["videoId is required"])
    result = SeriesManager.instance().add_video(user, series_id, video_id.strip())
    return jsonify({"success": True, "message": "Video added to series", **result}), 201


@app.route('/series/<series_id>/videos/<video_id>', methods=['DELETE'])
@cross_origin()
@token_required
def remove_series_video(user, series_id, video_id):
    data = _json_body()
    series = SeriesManager.instance().remove_video(user, series_id, video_id, data.get('coinPrice'))
    return jsonify({"success": True, "message": "Video removed from series", "series": series})


@app.route('/videos/<video_id>/purchase', methods=['POST'])
@cross_origin()
@token_required
def purchase_video(user, video_id):
    return jsonify(PurchaseManager.instance().purchase_video(user, video_id))


@app.route('/videos/<video_id>/access', methods=['GET'])
@cross_origin()
@token_required
def get_video_access(user, video_id):
    details = AccessManager.instance().get_video_access_details(user.id, video_id)
    return jsonify({"success": True, **details})


@app.route('/creator/earnings', methods=['GET'])
@cross_origin()
@token_required
def get_creator_earnings(user):
    if not user.is_creator:
        raise ForbiddenException("Only creators have earnings")
    summary = EarningManager.instance().get_earnings_summary(user.id)
    return jsonify({"success": True, **summary})


@app.route('/creator/withdraw', methods=['POST'])
@cross_origin()
@token_required
def creator_withdraw(user):
    data = _json_body()
    result = EarningManager.instance().withdraw(user, data.get('coinAmount'), data.get('withdrawalMethod'))
    return jsonify(result)


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    configure_app(start_scheduler=True)
    app.run(host=Config.get_value("host", default="0.0.0.0"), port=Config.get_value("port", default=5000))
