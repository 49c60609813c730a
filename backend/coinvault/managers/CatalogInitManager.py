# -*- coding: utf-8 -*-
import json
import logging
import os

from coinvault.managers.SeriesManager import SeriesManager
from coinvault.models.database import db
from coinvault.models.Series import Series
from coinvault.models.SeriesVideo import SeriesVideo
from coinvault.models.User import User, ROLE_MEMBER
from coinvault.models.Video import Video

logger = logging.getLogger(__name__)


def _load_video(data, creator_id, series=None):
    video = db.session.get(Video, data['id']) if data.get('id') else None
    if video:
        if series is not None:
            # 已存在的视频加入系列时同样校验归属
            SeriesManager.check_bundle(series, video)
            video.series_id = series.id
        return video, False
    video = Video(
        creator_id=creator_id,
        title=data['title'],
        coin_price=int(data.get('coin_price', 1)),
        duration=int(data.get('duration', 0)),
        series_id=series.id if series is not None else None,
        is_active=data.get('is_active', True),
    )
    if data.get('id'):
        video.id = data['id']
    db.session.add(video)
    return video, True


def init_catalog(catalog_file):
    """
    Load users, standalone videos and series from a JSON catalog.
    Rows whose id already exists are skipped, so the load can run on every start.
    :return: number of rows created
    """
    if not catalog_file or not os.path.exists(catalog_file):
        logger.info("Catalog file %s not found, skipping catalog init", catalog_file)
        return 0

    with open(catalog_file, 'r', encoding='utf-8') as file:
        catalog = json.load(file)

    created = 0
    try:
        for data in catalog.get('users', []):
            if User.query.filter_by(external_id=data['external_id']).first():
                continue
            user = User(external_id=data['external_id'], username=data.get('username'),
                        role=data.get('role', ROLE_MEMBER))
            if data.get('id'):
                user.id = data['id']
            db.session.add(user)
            created += 1
        db.session.flush()

        for data in catalog.get('videos', []):
            _, is_new = _load_video(data, data['creator_id'])
            created += int(is_new)

        for data in catalog.get('series', []):
            series = db.session.get(Series, data['id']) if data.get('id') else None
            if series:
                continue
            series = Series(
                creator_id=data['creator_id'],
                title=data['title'],
                description=data.get('description'),
                coin_price=int(data.get('coin_price', 0)),
                is_active=data.get('is_active', True),
            )
            if data.get('id'):
                series.id = data['id']
            db.session.add(series)
            db.session.flush()
            created += 1

            for index, video_data in enumerate(data.get('videos', []), 1):
                video, is_new = _load_video(video_data, series.creator_id, series)
                created += int(is_new)
                db.session.flush()
                db.session.add(SeriesVideo(series_id=series.id, video_id=video.id, order_index=index))
            SeriesManager.instance().recompute_aggregates(series)

        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Catalog init from %s failed", catalog_file)
        raise

    logger.info("Catalog init complete, %s rows created from %s", created, catalog_file)
    return created
