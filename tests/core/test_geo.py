# tests/core/test_geo.py
"""
Тесты геометрии (src/core/geo/distance.py).
"""

import math

import pytest
from pydantic import ValidationError

from src.core.geo import EARTH_RADIUS_KM, GeoPoint, haversine_km, within_radius


class TestGeoPoint:
    """Форматы точек."""

    def test_lat_lon(self) -> None:
        point = GeoPoint(lat=50.45, lon=30.52)
        assert (point.lat, point.lon) == (50.45, 30.52)

    def test_geojson_is_lon_lat(self) -> None:
        point = GeoPoint.model_validate({"type": "Point", "coordinates": [30.52, 50.45]})
        assert (point.lat, point.lon) == (50.45, 30.52)

    def test_pair_is_lon_lat(self) -> None:
        point = GeoPoint.model_validate([30.52, 50.45])
        assert (point.lat, point.lon) == (50.45, 30.52)

    @pytest.mark.parametrize("lat, lon", [(91.0, 0.0), (-91.0, 0.0), (0.0, 181.0)])
    def test_out_of_range(self, lat: float, lon: float) -> None:
        with pytest.raises(ValidationError):
            GeoPoint(lat=lat, lon=lon)


class TestHaversine:
    """Расстояние по сфере."""

    def test_same_point_is_zero(self) -> None:
        point = GeoPoint(lat=10.0, lon=10.0)
        assert haversine_km(point, point) == 0.0

    def test_one_degree_of_latitude(self) -> None:
        distance = haversine_km(GeoPoint(lat=0.0, lon=0.0), GeoPoint(lat=1.0, lon=0.0))
        assert distance == pytest.approx(111.19, abs=0.01)

    def test_quarter_of_equator(self) -> None:
        distance = haversine_km(GeoPoint(lat=0.0, lon=0.0), GeoPoint(lat=0.0, lon=90.0))
        assert distance == pytest.approx(math.pi / 2 * EARTH_RADIUS_KM)

    def test_symmetric(self) -> None:
        a = GeoPoint(lat=0.01, lon=0.01)
        b = GeoPoint(lat=1.01, lon=1.01)
        assert haversine_km(a, b) == pytest.approx(haversine_km(b, a))


class TestWithinRadius:
    """Проверка радиуса (граница включительно)."""

    def test_near_point_is_inside(self) -> None:
        assert within_radius(GeoPoint(lat=0.01, lon=0.01), GeoPoint(lat=0.0, lon=0.0), 10.0)

    def test_far_point_is_outside(self) -> None:
        assert not within_radius(GeoPoint(lat=0.5, lon=0.5), GeoPoint(lat=0.0, lon=0.0), 10.0)

    def test_boundary_is_inclusive(self) -> None:
        a = GeoPoint(lat=0.0, lon=0.0)
        b = GeoPoint(lat=0.05, lon=0.0)
        assert within_radius(a, b, haversine_km(a, b))
