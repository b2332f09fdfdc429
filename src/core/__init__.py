# src/core/__init__.py
"""
Доменный слой (Core Domain).
Поездки, подбор кандидатов и переговоры о цене.
"""
