"""
TRACKING App - Routing Service

Road distance and travel time between a courier and a customer:
1. OSRM (open-source routing engine) when reachable
2. Haversine distance + average speed otherwise

Architecture:
    GET /api/orders/<id>/eta/
        -> RoutingService.estimate(courier, customer)
            -> OSRM /route/v1/driving/...
            -> fallback: geo.distance_km + geo.eta_minutes
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional

import requests
from django.conf import settings

from .geo import Coordinates, distance_km, eta_minutes

logger = logging.getLogger(__name__)


# ============================================
# DATA CLASSES
# ============================================

@dataclass
class Route:
    """Route estimate between two points."""
    distance_km: float
    duration_min: int
    polyline: str = ''
    source: str = 'osrm'      # 'osrm' or 'haversine'

    def to_dict(self):
        return asdict(self)


# ============================================
# MAIN SERVICE
# ============================================

class RoutingService:
    """
    Thin OSRM client with a Haversine fallback.

    Usage:
        service = RoutingService()
        route = service.estimate(origin, destination)
    """

    def __init__(self, base_url: str = None, timeout: int = None, avg_speed_kmh: float = None):
        self.base_url = (base_url or settings.OSRM_BASE_URL).rstrip('/')
        self.timeout = timeout or getattr(settings, 'OSRM_TIMEOUT_SECONDS', 5)
        self.avg_speed_kmh = avg_speed_kmh or getattr(settings, 'TRACKING_AVG_SPEED_KMH', 30)

    def route(self, origin: Coordinates, destination: Coordinates) -> Optional[Route]:
        """
        Get the driving route from OSRM.

        Returns:
            Route, or None if OSRM fails or finds no route
        """
        # OSRM expects lng,lat format
        url = (
            f"{self.base_url}/route/v1/driving/"
            f"{origin.longitude},{origin.latitude};"
            f"{destination.longitude},{destination.latitude}"
        )
        try:
            response = requests.get(
                url,
                params={'overview': 'simplified', 'geometries': 'polyline'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[ROUTING] OSRM request failed: {e}")
            return None

        if data.get('code') != 'Ok' or not data.get('routes'):
            logger.warning(f"[ROUTING] OSRM returned no route: {data.get('code')}")
            return None

        best = data['routes'][0]
        # OSRM returns meters and seconds
        return Route(
            distance_km=round(best['distance'] / 1000, 2),
            duration_min=max(int(round(best['duration'] / 60)), 1),
            polyline=best.get('geometry', ''),
            source='osrm',
        )

    def estimate(self, origin: Coordinates, destination: Coordinates) -> Route:
        """Route via OSRM, falling back to Haversine + average speed."""
        route = self.route(origin, destination)
        if route is not None:
            return route

        crow = distance_km(origin, destination)
        return Route(
            distance_km=round(crow, 2),
            duration_min=eta_minutes(crow, self.avg_speed_kmh),
            source='haversine',
        )
