"""
Configuration module for Toolgate.
"""

from .settings import (
    CoordinatorConfig,
    LoggingConfig,
    Settings,
    SlackConfig,
    apply_legacy_env,
    load_settings,
)

__all__ = [
    'CoordinatorConfig',
    'LoggingConfig',
    'Settings',
    'SlackConfig',
    'apply_legacy_env',
    'load_settings',
]
