# src/services/__init__.py
"""
HTTP-сервисы приложения.

Сервисы:
- negotiation: команды водителя и пассажира по парам, списки поездок
"""

__all__: list[str] = []
