# src/core/geo/__init__.py
"""
Geo-утилиты.
Точки на карте и расстояние по большому кругу.
"""

from src.core.geo.distance import EARTH_RADIUS_KM, GeoPoint, haversine_km, within_radius

__all__ = [
    "EARTH_RADIUS_KM",
    "GeoPoint",
    "haversine_km",
    "within_radius",
]
