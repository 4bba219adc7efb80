import numpy as np
import pytest
from geopy.distance import great_circle
from shapely import Point as ShapelyPoint, Polygon

from avmspatial.utilities.geometry import (
  Point, distance_km, distance_matrix_km, is_within_radius, is_in_polygon, bounding_box,
  offset_coordinate_km, offset_coordinate_m, create_geo_circle, create_geo_rect, EARTH_RADIUS_KM
)


def _get_test_cases():
  return [
    (38.9072, -77.0369),  # Washington DC
    (48.8566, 2.3522),    # Paris
    (35.6895, 139.6917),  # Tokyo
    (51.5074, -0.1278),   # London
    (37.7749, -122.4194), # San Francisco
    (-33.8688, 151.2093), # Sydney
    (40.7128, -74.0060),  # New York City
  ]


def test_haversine_matches_great_circle():
  cases = _get_test_cases()
  for a in cases:
    for b in cases:
      expected = great_circle(a, b, radius=EARTH_RADIUS_KM).km
      assert distance_km(a, b) == pytest.approx(expected, abs=1e-6)


def test_distance_accepts_points():
  ny = Point(40.7128, -74.0060)
  assert distance_km(ny, ny) == 0.0
  assert distance_km(ny, (38.9072, -77.0369)) == pytest.approx(distance_km((40.7128, -74.0060), (38.9072, -77.0369)))


def test_distance_matrix():
  cases = _get_test_cases()
  d = distance_matrix_km(cases)
  assert d.shape == (len(cases), len(cases))
  assert np.allclose(d, d.T)
  assert np.all(np.diag(d) == 0)
  for i in range(len(cases)):
    for j in range(len(cases)):
      assert d[i, j] == pytest.approx(distance_km(cases[i], cases[j]), abs=1e-6)


def test_within_radius_inclusive():
  center = (40.7128, -74.0060)
  other = (40.7228, -74.0060)
  d = distance_km(center, other)
  assert is_within_radius(other, center, d)
  assert not is_within_radius(other, center, d * 0.999)
  assert is_within_radius(center, center, 0.0)


def test_point_in_polygon_square():
  square = [(0, 0), (0, 10), (10, 10), (10, 0)]
  assert is_in_polygon((5, 5), square)
  assert not is_in_polygon((15, 5), square)
  assert not is_in_polygon((5, -1), square)

  # an explicitly closed ring gives the same answers
  closed = square + [(0, 0)]
  assert is_in_polygon((5, 5), closed)
  assert not is_in_polygon((15, 5), closed)

  # fewer than three vertices is never a polygon
  assert not is_in_polygon((0, 0), [(0, 0), (1, 1)])


def test_point_in_polygon_matches_shapely():
  # concave "C" shape in (lat, lng)
  ring = [(0, 0), (0, 6), (2, 6), (2, 2), (4, 2), (4, 6), (6, 6), (6, 0)]
  shape = Polygon([(lng, lat) for lat, lng in ring])

  rng = np.random.default_rng(11)
  for _ in range(500):
    lat, lng = rng.uniform(-1, 7, size=2)
    expected = shape.contains(ShapelyPoint(lng, lat))
    assert is_in_polygon((lat, lng), ring) == expected
    assert is_in_polygon(Point(lat, lng), shape) == expected


def test_bounding_box():
  assert bounding_box([]) == (0.0, 0.0, 0.0, 0.0)
  box = bounding_box([(1, 5), (-2, 3), (4, -1)])
  assert box == (-2.0, -1.0, 4.0, 5.0)


def test_offset_coordinate():
  lat, lon = 40.7128, -74.0060
  north = offset_coordinate_km(lat, lon, 1.0, 0.0)
  east = offset_coordinate_km(lat, lon, 0.0, 1.0)
  south_west = offset_coordinate_m(lat, lon, -500, -500)

  # geopy moves on the WGS-84 ellipsoid, haversine measures on a sphere
  assert distance_km((lat, lon), north) == pytest.approx(1.0, abs=0.01)
  assert distance_km((lat, lon), east) == pytest.approx(1.0, abs=0.01)
  assert north[0] > lat
  assert east[1] > lon
  assert south_west[0] < lat and south_west[1] < lon


def test_geo_shapes():
  lat, lon = 40.7128, -74.0060
  circle = create_geo_circle(lat, lon, 1.0)
  assert circle.crs.to_string() == "EPSG:4326"
  polygon = circle.geometry.iloc[0]
  assert is_in_polygon((lat, lon), polygon)
  assert not is_in_polygon(offset_coordinate_km(lat, lon, 1.5, 0.0), polygon)

  rect = create_geo_rect(lat, lon, 2.0, 1.0)
  polygon = rect.geometry.iloc[0]
  assert is_in_polygon(offset_coordinate_km(lat, lon, 0.4, 0.9), polygon)
  assert not is_in_polygon(offset_coordinate_km(lat, lon, 0.6, 0.0), polygon)
