import math

import pytest

from caddate.core.geo import GeoPoint, haversine_m, round_meters

from conftest import REF_LAT, REF_LNG, north_of


def test_distance_is_zero_for_identical_points():
    assert haversine_m(REF_LAT, REF_LNG, REF_LAT, REF_LNG) == 0.0


def test_distance_is_symmetric():
    a = (REF_LAT, REF_LNG)
    b = (41.0082, 28.9784)
    assert haversine_m(*a, *b) == pytest.approx(haversine_m(*b, *a))


def test_hundredth_of_a_degree_north_is_about_1112_meters():
    d = haversine_m(REF_LAT, REF_LNG, REF_LAT + 0.01, REF_LNG)
    assert d == pytest.approx(1112, rel=0.05)


def test_distance_grows_with_separation():
    near = haversine_m(REF_LAT, REF_LNG, north_of(REF_LAT, 50), REF_LNG)
    far = haversine_m(REF_LAT, REF_LNG, north_of(REF_LAT, 20000), REF_LNG)
    assert near == pytest.approx(50, abs=0.5)
    assert far == pytest.approx(20000, rel=0.001)
    assert near < far


def test_antipodal_points_do_not_raise():
    d = haversine_m(0.0, 0.0, 0.0, 180.0)
    assert d == pytest.approx(math.pi * 6_371_000)


def test_nan_propagates():
    assert math.isnan(haversine_m(float("nan"), REF_LNG, REF_LAT, REF_LNG))


def test_geopoint_matches_function():
    a = GeoPoint(REF_LAT, REF_LNG)
    b = GeoPoint(REF_LAT + 0.01, REF_LNG)
    assert a.distance_to(b) == haversine_m(a.lat, a.lng, b.lat, b.lng)


def test_round_meters_is_half_up():
    assert round_meters(49.5) == 50
    assert round_meters(50.5) == 51
    assert round_meters(49.49) == 49
