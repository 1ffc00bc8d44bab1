"""
Utility functions and helper classes
"""

from .logger import get_logger
from .notification import Notification, NotificationLevel, NotificationManager

__all__ = [
    'get_logger',
    'Notification',
    'NotificationLevel',
    'NotificationManager',
]
