# -*- coding: utf-8 -*-
import logging

from coinvault.models.database import db
from coinvault.models.User import User, ROLE_MEMBER, ROLE_CREATOR
from coinvault.models.typings import NotFoundException, ValidationException

logger = logging.getLogger(__name__)


class UserManager:

    @classmethod
    def get_by_external_id(cls, external_id):
        """Resolve an identity-provider subject to the internal user / 外部身份 -> 内部用户"""
        user = User.query.filter_by(external_id=external_id).first()
        if not user:
            raise NotFoundException("User not found")
        return user

    @classmethod
    def get_by_id(cls, user_id):
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundException("User not found")
        return user

    @classmethod
    def register_user(cls, external_id, username=None, role=ROLE_MEMBER, user_id=None):
        """
        Provision a user the first time the identity provider reports them.
        Returns the existing row when external_id is already known.
        """
        if role not in (ROLE_MEMBER, ROLE_CREATOR):
            raise ValidationException("Invalid role", errors=[f"role must be '{ROLE_MEMBER}' or '{ROLE_CREATOR}'"])
        user = User.query.filter_by(external_id=external_id).first()
        if user:
            return user
        user = User(external_id=external_id, username=username, role=role)
        if user_id:
            user.id = user_id
        db.session.add(user)
        db.session.commit()
        logger.info("Registered user %s (%s) as %s", user.id, external_id, role)
        return user
