# -*- coding: utf-8 -*-
import logging

from coinvault.models.database import db
from coinvault.models.ErrorLog import ErrorLog

logger = logging.getLogger(__name__)


class CustomException(Exception):
    """
    Base class for every error the API reports to a client.
    status_code decides the HTTP status, to_dict() the response body.
    """
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {
            "success": False,
            "error": self.message,
        }

    def record_error(self, detail=None):
        """
        Write the failure to the error_log table.
        Must only be called after the failed unit of work was rolled back.
        :param detail: stored instead of the client-facing message when given
        """
        try:
            error = ErrorLog(error_event=detail or f"{type(self).__name__}: {self.message}")
            db.session.add(error)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Could not record error to error_log: %s", self.message)


class ConfigOperationException(CustomException):
    """
    配置文件操作异常类
    """
    pass


class UnauthorizedException(CustomException):
    status_code = 401


class ForbiddenException(CustomException):
    status_code = 403


class NotFoundException(CustomException):
    status_code = 404


class InactiveContentException(CustomException):
    """Content deactivated by moderation / 内容已被下架"""
    status_code = 400


class InsufficientCoinsException(CustomException):
    """
    Balance below the amount required; carries the numbers the client shows.
    """
    status_code = 400

    def __init__(self, required, available, message=None, **details):
        self.required = required
        self.available = available
        self.shortfall = max(0, required - available)
        # extra fields for the client, e.g. originalPrice / deductions
        self.details = details
        super().__init__(message or f"Insufficient coins. You need {self.shortfall} more coins.")

    def to_dict(self):
        data = super().to_dict()
        data.update({
            "coinsRequired": self.required,
            "coinsAvailable": self.available,
            "coinsShortfall": self.shortfall,
        })
        data.update(self.details)
        return data


class ValidationException(CustomException):
    status_code = 400

    def __init__(self, message, errors=None, **details):
        super().__init__(message)
        self.errors = list(errors or [])
        self.details = details

    def to_dict(self):
        data = super().to_dict()
        data["details"] = dict(self.details, errors=self.errors)
        return data


class TransientFailureException(CustomException):
    """Network or database unavailable; the client may retry."""
    status_code = 503

    def __init__(self, message="Service temporarily unavailable. Please try again."):
        super().__init__(message)


class InternalFailureException(CustomException):
    status_code = 500

    def __init__(self, message="Internal server error"):
        super().__init__(message)
