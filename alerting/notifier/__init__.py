from .base import Notifier, HttpNotifier
from .dispatcher import ChannelDispatcher
from .factory import build_notifiers, build_notifiers_from_env

__all__ = ["Notifier", "HttpNotifier", "ChannelDispatcher", "build_notifiers", "build_notifiers_from_env"]
