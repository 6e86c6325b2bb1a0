"""
Geofence evaluation: may a voter standing at a point vote on an issue?

Distances use the haversine formula on a spherical Earth. The evaluator is
pure; callers pass the issue's radius as read inside the vote's atomic step so
a radius grown by a repost is always honoured.
"""

# Standard library imports
from dataclasses import dataclass
import math

# Local application imports
from app.services.issues.errors import InvalidLocation

EARTH_RADIUS_METERS = 6_371_000.0


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


def validate_location(point: GeoPoint) -> GeoPoint:
    """Return ``point`` unchanged or raise ``InvalidLocation``."""
    lat, lng = point.latitude, point.longitude
    if lat is None or lng is None:
        raise InvalidLocation("Latitude and longitude are required")
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidLocation("Coordinates must be finite numbers", latitude=lat, longitude=lng)
    if not -90.0 <= lat <= 90.0:
        raise InvalidLocation(f"Latitude {lat} is outside [-90, 90]", latitude=lat)
    if not -180.0 <= lng <= 180.0:
        raise InvalidLocation(f"Longitude {lng} is outside [-180, 180]", longitude=lng)
    return point


def haversine_meters(a: GeoPoint, b: GeoPoint) -> float:
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Clamp against rounding just above 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(h))


def distance_to(origin: GeoPoint, voter_location: GeoPoint) -> float:
    validate_location(origin)
    validate_location(voter_location)
    return haversine_meters(origin, voter_location)


def is_eligible(origin: GeoPoint, radius_meters: float, voter_location: GeoPoint) -> bool:
    """True iff ``voter_location`` lies within ``radius_meters`` of ``origin``."""
    return distance_to(origin, voter_location) <= radius_meters
