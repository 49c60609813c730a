# -*- coding: utf-8 -*-
import json
import logging
import os

from coinvault.models.typings import ConfigOperationException

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
CONFIG_FILE = os.environ.get("COINVAULT_CONFIG", os.path.join(ROOT_DIR, "config.json"))

SCHEDULER_API_ENABLED = False

logger = logging.getLogger(__name__)

DEFAULTS = {
    "recharge_rate": 20,  # coins per rupee
    "min_withdrawal_rupees": 100,
    "razorpay_api_url": "https://api.razorpay.com/v1",
    "http_timeout_seconds": 10,
}


class Config:
    _instance = None

    @classmethod
    def _get_instance(cls, config_file=CONFIG_FILE):
        if cls._instance is None:
            cls._instance = cls.__new__(cls)
            cls._instance.config_file = config_file
            try:
                cls._instance.config = cls._instance.load_config()
            except ConfigOperationException:
                cls._instance = None
                raise
        return cls._instance

    @classmethod
    def reload(cls, config_file=CONFIG_FILE):
        """Drop the cached config and read config_file again."""
        cls._instance = None
        return cls._get_instance(config_file)

    @classmethod
    def load_config(cls):
        """
        加载配置文件
        :return: 配置文件，json形式
        """
        instance = cls._get_instance()
        if not os.path.exists(instance.config_file):
            return {}
        try:
            with open(instance.config_file, 'r', encoding='utf-8') as file:
                return json.load(file)
        except (OSError, ValueError) as e:
            logger.exception("Failed to read config file %s", instance.config_file)
            raise ConfigOperationException(f"Config file {instance.config_file} could not be read: {e}")

    @classmethod
    def get_value(cls, *args, default=None):
        """
        从配置文件中获取配置，针对多级key做了优化
        :param args: 指定的key，可以为多级
        :param default: returned when the key is missing; falls back to DEFAULTS
        :return: 获取到的值
        """
        instance = cls._get_instance()
        value = instance.config
        try:
            for key in args:
                value = value[key]
            return value
        except (KeyError, TypeError):
            if default is not None:
                return default
            if len(args) == 1:
                return DEFAULTS.get(args[0])
            return None

