"""Hive configuration."""

from hive.config.settings import HiveSettings, get_settings

__all__ = ["HiveSettings", "get_settings"]
