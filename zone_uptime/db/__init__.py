"""Database models, session and query utilities."""

from .models import Base, Check, ErrorType, Incident, Monitor, MonitorSource, Setting
from .session import Database
from .store import MonitorExistsError, MonitorStats, MonitorStore, UpsertOutcome

__all__ = [
    "Base",
    "Check",
    "Database",
    "ErrorType",
    "Incident",
    "Monitor",
    "MonitorExistsError",
    "MonitorSource",
    "MonitorStats",
    "MonitorStore",
    "Setting",
    "UpsertOutcome",
]
