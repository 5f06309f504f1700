"""Cooperative localization package init.

Expose the main front-end classes at package level for convenient imports.
"""
from .config import LocalizationConfig, load_config
from .manager import LocalizationManager
from .publishers import PosePublisher, CallbackPublisher, TrajectoryFileWriter

__all__ = [
    "LocalizationConfig",
    "load_config",
    "LocalizationManager",
    "PosePublisher",
    "CallbackPublisher",
    "TrajectoryFileWriter",
]
