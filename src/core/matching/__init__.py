# src/core/matching/__init__.py
"""
Домен подбора кандидатов.
Логика матчинга запросов пассажиров с предложениями водителей.
"""

from src.core.matching.service import MatchingService, is_destination_compatible, is_origin_compatible

__all__ = [
    "MatchingService",
    "is_origin_compatible",
    "is_destination_compatible",
]
