# -*- coding: utf-8 -*-
"""
Shared fixtures: one Flask app per test session bound to in-memory SQLite,
with every table dropped and recreated around each test.
"""
import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest

# keep a developer's config.json out of the test run
os.environ["COINVAULT_CONFIG"] = os.path.join(os.path.dirname(os.path.abspath(__file__)), "missing-config.json")

from main import app as flask_app, configure_app  # noqa: E402
from coinvault.managers.CoinTransactionManager import CoinTransactionManager  # noqa: E402
from coinvault.managers.Config import Config  # noqa: E402
from coinvault.managers.SeriesManager import SeriesManager  # noqa: E402
from coinvault.managers.UserManager import UserManager  # noqa: E402
from coinvault.models.database import db  # noqa: E402
from coinvault.models.CoinTransaction import DIRECTION_EARN, TYPE_TOPUP  # noqa: E402
from coinvault.models.Series import Series  # noqa: E402
from coinvault.models.SeriesVideo import SeriesVideo  # noqa: E402
from coinvault.models.User import ROLE_CREATOR, ROLE_MEMBER  # noqa: E402
from coinvault.models.Video import Video  # noqa: E402

JWT_SECRET = "test-secret"


@pytest.fixture(scope="session")
def app():
    Config.reload()
    configure_app("sqlite://", jwt_secret=JWT_SECRET)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture(autouse=True)
def database(app):
    with app.app_context():
        db.create_all()
        yield db
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def config_values(monkeypatch):
    """Override config keys for one test."""
    def _set(**values):
        instance = Config._get_instance()
        for key, value in values.items():
            monkeypatch.setitem(instance.config, key, value)
    return _set


@pytest.fixture
def make_user():
    def _make(role=ROLE_MEMBER, username=None):
        external_id = f"ext-{uuid4().hex[:12]}"
        return UserManager.register_user(external_id, username=username or external_id, role=role)
    return _make


@pytest.fixture
def creator(make_user):
    return make_user(role=ROLE_CREATOR, username="creator")


@pytest.fixture
def buyer(make_user):
    return make_user(username="buyer")


@pytest.fixture
def top_up():
    def _top_up(user, coins):
        _, balance = CoinTransactionManager.instance().create_transaction(
            user_id=user.id,
            direction=DIRECTION_EARN,
            amount=coins,
            description="test top-up",
            transaction_type=TYPE_TOPUP,
        )
        return balance
    return _top_up


@pytest.fixture
def make_video():
    def _make(creator, coin_price, title=None, duration=60, is_active=True):
        video = Video(
            creator_id=creator.id,
            title=title or f"video-{uuid4().hex[:6]}",
            coin_price=coin_price,
            duration=duration,
            is_active=is_active,
        )
        db.session.add(video)
        db.session.commit()
        return video
    return _make


@pytest.fixture
def make_series():
    """Series with member videos in the given order; prices are the videos' list prices."""
    def _make(creator, coin_price, video_prices=(), videos=(), title="Series", is_active=True):
        series = Series(creator_id=creator.id, title=title, coin_price=coin_price, is_active=is_active)
        db.session.add(series)
        db.session.flush()

        members = list(videos)
        for i, price in enumerate(video_prices, 1):
            video = Video(creator_id=creator.id, title=f"{title} part {i}", coin_price=price, duration=60)
            db.session.add(video)
            members.append(video)
        db.session.flush()

        for index, video in enumerate(members, 1):
            video.series_id = series.id
            db.session.add(SeriesVideo(series_id=series.id, video_id=video.id, order_index=index))
        SeriesManager.instance().recompute_aggregates(series)
        db.session.commit()
        return series
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user, secret=JWT_SECRET, expires_in=timedelta(hours=1)):
        token = jwt.encode(
            {"sub": user.external_id, "exp": datetime.now(timezone.utc) + expires_in},
            secret,
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}
    return _headers
