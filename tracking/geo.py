"""
TRACKING App - Distance & ETA Utilities
========================================

Pure functions: Haversine distance between two GPS points and the
customer-facing ETA estimate derived from it.
"""

import math
from dataclasses import dataclass, asdict


# ============================================
# CONFIGURATION CONSTANTS
# ============================================

# Earth radius in km
EARTH_RADIUS_KM = 6371.0

# Average urban courier speed (km/h)
DEFAULT_AVG_SPEED_KMH = 30

# Fixed handling margin added to every ETA (minutes)
ETA_MARGIN_MINUTES = 5


@dataclass(frozen=True)
class Coordinates:
    """A GPS position in decimal degrees."""
    latitude: float
    longitude: float

    def to_dict(self):
        return asdict(self)


def validate_coordinates(latitude, longitude) -> Coordinates:
    """
    Check ranges and build a Coordinates value.

    Raises:
        ValueError: latitude outside [-90, 90], longitude outside [-180, 180],
            or values that are not numbers
    """
    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        raise ValueError(f"Coordenadas inválidas: ({latitude}, {longitude})")

    if math.isnan(lat) or math.isnan(lng):
        raise ValueError(f"Coordenadas inválidas: ({latitude}, {longitude})")
    if not -90 <= lat <= 90:
        raise ValueError(f"Latitud fuera de rango: {lat}")
    if not -180 <= lng <= 180:
        raise ValueError(f"Longitud fuera de rango: {lng}")

    return Coordinates(lat, lng)


# ============================================
# DISTANCE CALCULATION (Haversine)
# ============================================

def distance_km(a: Coordinates, b: Coordinates) -> float:
    """
    Great-circle distance between two points using the Haversine formula.

    Args:
        a, b: Coordinates of both points

    Returns:
        Distance in kilometers (as the crow flies)
    """
    lat1_rad = math.radians(a.latitude)
    lat2_rad = math.radians(b.latitude)
    delta_lat = math.radians(b.latitude - a.latitude)
    delta_lng = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    # rounding can push h just outside [0, 1] near antipodal points
    h = min(1.0, max(0.0, h))
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c


def eta_minutes(distance: float, avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH) -> int:
    """
    Estimated minutes to cover `distance` km.

    Formula: ceil(distance / speed * 60) + 5
    Ex: 0 km -> 5 min, 30 km at 30 km/h -> 65 min

    Raises:
        ValueError: if avg_speed_kmh is not positive
    """
    if avg_speed_kmh <= 0:
        raise ValueError(f"La velocidad promedio debe ser positiva: {avg_speed_kmh}")

    travel = int(math.ceil((distance / avg_speed_kmh) * 60))
    return travel + ETA_MARGIN_MINUTES
