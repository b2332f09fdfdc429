# src/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами: PostgreSQL, RabbitMQ.
"""

from src.infra.database import DatabaseManager, get_db
from src.infra.event_bus import EventQueue, ReceivedMessage, get_event_queue

__all__ = [
    "DatabaseManager",
    "get_db",
    "EventQueue",
    "ReceivedMessage",
    "get_event_queue",
]
