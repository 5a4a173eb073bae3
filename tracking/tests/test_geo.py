"""
DysaEats Distance, ETA and Routing Tests
"""

from unittest.mock import MagicMock, patch

import requests
from django.test import SimpleTestCase, override_settings

from tracking.geo import Coordinates, distance_km, eta_minutes, validate_coordinates
from tracking.routing_service import Route, RoutingService

SANTIAGO = Coordinates(-33.4489, -70.6693)
VALPARAISO = Coordinates(-33.0472, -71.6127)


class TestDistance(SimpleTestCase):

    def test_same_point_is_zero(self):
        self.assertEqual(distance_km(SANTIAGO, SANTIAGO), 0)

    def test_symmetric(self):
        self.assertAlmostEqual(
            distance_km(SANTIAGO, VALPARAISO), distance_km(VALPARAISO, SANTIAGO), places=9
        )

    def test_one_degree_of_longitude_on_equator(self):
        self.assertAlmostEqual(distance_km(Coordinates(0, 0), Coordinates(0, 1)), 111.19, places=1)

    def test_santiago_to_valparaiso(self):
        self.assertAlmostEqual(distance_km(SANTIAGO, VALPARAISO), 98.0, delta=3)

    def test_antipodes_is_half_circumference(self):
        half = distance_km(Coordinates(0, 0), Coordinates(0, 180))
        self.assertAlmostEqual(half, 20015.09, places=0)

    def test_near_antipodal_points_never_raise(self):
        half = distance_km(Coordinates(0, 0), Coordinates(0, 180))
        for lat in (87.5, 45.25, 33.4489, 12.1, 0.3):
            for lng in (0, 70.6693, -120.5):
                a = Coordinates(-lat, lng)
                b = Coordinates(lat, lng + 180 if lng <= 0 else lng - 180)
                self.assertAlmostEqual(distance_km(a, b), half, delta=0.01)

        self.assertAlmostEqual(
            distance_km(Coordinates(-87.5, 0), Coordinates(87.5, 180)), half, delta=0.01
        )


class TestEta(SimpleTestCase):

    def test_zero_distance_is_margin_only(self):
        self.assertEqual(eta_minutes(0), 5)

    def test_thirty_km_at_thirty_kmh(self):
        self.assertEqual(eta_minutes(30, 30), 65)

    def test_rounds_travel_up(self):
        # 0.1 km at 30 km/h = 0.2 min -> 1 min
        self.assertEqual(eta_minutes(0.1), 6)

    def test_non_positive_speed_rejected(self):
        with self.assertRaises(ValueError):
            eta_minutes(10, 0)
        with self.assertRaises(ValueError):
            eta_minutes(10, -5)


class TestValidateCoordinates(SimpleTestCase):

    def test_accepts_strings(self):
        self.assertEqual(validate_coordinates('-33.45', '-70.66'), Coordinates(-33.45, -70.66))

    def test_rejects_out_of_range(self):
        for lat, lng in [(91, 0), (-90.5, 0), (0, 181), (0, -180.1)]:
            with self.assertRaises(ValueError):
                validate_coordinates(lat, lng)

    def test_rejects_garbage(self):
        for lat, lng in [(None, 0), ('abc', 0), (float('nan'), 0)]:
            with self.assertRaises(ValueError):
                validate_coordinates(lat, lng)


@override_settings(OSRM_BASE_URL='http://osrm.test/', OSRM_TIMEOUT_SECONDS=2, TRACKING_AVG_SPEED_KMH=30)
class TestRoutingService(SimpleTestCase):

    def osrm_response(self, payload, status=200):
        response = MagicMock(status_code=status)
        response.json.return_value = payload
        if status >= 400:
            response.raise_for_status.side_effect = requests.HTTPError(f"{status}")
        return response

    @patch('tracking.routing_service.requests.get')
    def test_route_from_osrm(self, mock_get):
        mock_get.return_value = self.osrm_response({
            'code': 'Ok',
            'routes': [{'distance': 3210.0, 'duration': 545.0, 'geometry': 'abc'}],
        })

        route = RoutingService().route(SANTIAGO, VALPARAISO)

        self.assertEqual(route, Route(distance_km=3.21, duration_min=9, polyline='abc', source='osrm'))
        url = mock_get.call_args.args[0]
        self.assertEqual(
            url, 'http://osrm.test/route/v1/driving/-70.6693,-33.4489;-71.6127,-33.0472'
        )
        self.assertEqual(mock_get.call_args.kwargs['timeout'], 2)

    @patch('tracking.routing_service.requests.get')
    def test_no_route_returns_none(self, mock_get):
        mock_get.return_value = self.osrm_response({'code': 'NoRoute', 'routes': []})
        self.assertIsNone(RoutingService().route(SANTIAGO, VALPARAISO))

    @patch('tracking.routing_service.requests.get')
    def test_http_error_returns_none(self, mock_get):
        mock_get.return_value = self.osrm_response({}, status=500)
        self.assertIsNone(RoutingService().route(SANTIAGO, VALPARAISO))

    @patch('tracking.routing_service.requests.get', side_effect=requests.ConnectionError('down'))
    def test_estimate_falls_back_to_haversine(self, _mock_get):
        route = RoutingService().estimate(SANTIAGO, VALPARAISO)

        crow = distance_km(SANTIAGO, VALPARAISO)
        self.assertEqual(route.source, 'haversine')
        self.assertEqual(route.distance_km, round(crow, 2))
        self.assertEqual(route.duration_min, eta_minutes(crow, 30))
        self.assertEqual(route.polyline, '')
