# src/core/geo/distance.py
"""
Геометрия на сфере: точки и расстояние по формуле Haversine.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, Field, model_validator

EARTH_RADIUS_KM = 6371.0


class GeoPoint(BaseModel):
    """
    Точка на карте (градусы).

    Принимает {"lat": ..., "lon": ...}, GeoJSON
    {"type": "Point", "coordinates": [lon, lat]} и пару [lon, lat].
    """
    lat: float = Field(..., ge=-90.0, le=90.0, description="Широта")
    lon: float = Field(..., ge=-180.0, le=180.0, description="Долгота")

    @model_validator(mode="before")
    @classmethod
    def from_geojson(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)) and len(data) >= 2:
            lon, lat = data[:2]
            return {"lat": lat, "lon": lon}
        if isinstance(data, dict) and "coordinates" in data and "lat" not in data:
            lon, lat = data["coordinates"][:2]
            return {"lat": lat, "lon": lon}
        return data


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """
    Вычисляет расстояние между двумя точками (в км) по формуле Haversine.
    """
    dlat = math.radians(b.lat - a.lat)
    dlon = math.radians(b.lon - a.lon)

    h = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) *
         math.sin(dlon / 2) ** 2)

    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def within_radius(a: GeoPoint, b: GeoPoint, radius_km: float) -> bool:
    """Лежит ли точка b в круге радиуса radius_km вокруг a (граница включительно)."""
    return haversine_km(a, b) <= radius_km
