"""Service modules"""
from .dashboards import Dashboards
from .messages import MessageBoard
from .sacco import SaccoService
from .watcher import EventWatcher

__all__ = ["Dashboards", "EventWatcher", "MessageBoard", "SaccoService"]
