"""Geofence distance calculations."""
import math
from typing import NamedTuple

EARTH_RADIUS_METERS = 6371000

class Coordinate(NamedTuple):
    """A latitude/longitude pair in decimal degrees."""
    lat: float
    lng: float

class GeoService:
    """Service for GPS distance calculations."""

    @staticmethod
    def distance_meters(a: Coordinate, b: Coordinate) -> float:
        """Great-circle distance between two points in meters (haversine)."""
        lat1_rad = math.radians(a.lat)
        lat2_rad = math.radians(b.lat)
        delta_lat = math.radians(b.lat - a.lat)
        delta_lng = math.radians(b.lng - a.lng)

        h = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lng / 2) ** 2)
        c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

        return EARTH_RADIUS_METERS * c

def distance_meters(a: Coordinate, b: Coordinate) -> float:
    return GeoService.distance_meters(a, b)
