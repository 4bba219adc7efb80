import math

import geopandas as gpd
import numpy as np
import shapely
from geopy import Point as GeoPoint
from geopy.distance import distance
from shapely import Polygon


EARTH_RADIUS_KM = 6371.0


class Point:
  """A geographic coordinate in decimal degrees."""
  latitude: float
  longitude: float

  def __init__(self, latitude: float, longitude: float):
    self.latitude = float(latitude)
    self.longitude = float(longitude)

  def __iter__(self):
    yield self.latitude
    yield self.longitude

  def __eq__(self, other):
    try:
      lat, lng = _lat_lng(other)
    except (TypeError, ValueError):
      return False
    return self.latitude == lat and self.longitude == lng

  def __hash__(self):
    return hash((self.latitude, self.longitude))

  def __repr__(self):
    return f"Point({self.latitude}, {self.longitude})"


def _lat_lng(p) -> (float, float):
  if hasattr(p, "latitude") and hasattr(p, "longitude"):
    return float(p.latitude), float(p.longitude)
  lat, lng = p
  return float(lat), float(lng)


def distance_km(p1, p2) -> float:
  """
  Great-circle distance between two points using the haversine formula on a sphere of radius 6371 km.

  :param p1: First point, a Point or a (lat, lng) pair.
  :param p2: Second point, a Point or a (lat, lng) pair.
  :returns: Distance in kilometers.
  :rtype: float
  """
  lat1, lng1 = _lat_lng(p1)
  lat2, lng2 = _lat_lng(p2)
  d_lat = math.radians(lat2 - lat1)
  d_lng = math.radians(lng2 - lng1)
  a = (
    math.sin(d_lat / 2) ** 2 +
    math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
  )
  # rounding can push a a hair above 1 for antipodal points
  a = min(1.0, max(0.0, a))
  return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_matrix_km(points) -> np.ndarray:
  """
  Pairwise haversine distances for a list of points, vectorized.

  :param points: Sequence of Points or (lat, lng) pairs.
  :returns: Symmetric (n x n) array of distances in kilometers with a zero diagonal.
  :rtype: numpy.ndarray
  """
  coords = np.array([_lat_lng(p) for p in points], dtype=np.float64).reshape(-1, 2)
  lat = np.radians(coords[:, 0])
  lng = np.radians(coords[:, 1])
  d_lat = lat[:, None] - lat[None, :]
  d_lng = lng[:, None] - lng[None, :]
  a = np.sin(d_lat / 2) ** 2 + np.cos(lat[:, None]) * np.cos(lat[None, :]) * np.sin(d_lng / 2) ** 2
  a = np.clip(a, 0.0, 1.0)
  d = EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
  np.fill_diagonal(d, 0.0)
  return d


def is_within_radius(point, center, radius_km: float) -> bool:
  return distance_km(point, center) <= radius_km


def _polygon_vertices(polygon) -> list:
  if isinstance(polygon, Polygon):
    # shapely stores (x, y) = (lng, lat)
    coords = list(polygon.exterior.coords)
    return [(y, x) for x, y in coords]
  return [_lat_lng(p) for p in polygon]


def is_in_polygon(point, polygon) -> bool:
  """
  Point-in-polygon test by ray casting.

  The ring is treated as closed whether or not the last vertex repeats the first. Points exactly on
  an edge may fall either way.

  :param point: The point to test, a Point or a (lat, lng) pair.
  :param polygon: A list of Points / (lat, lng) pairs, or a shapely Polygon in (lng, lat) order.
  :returns: True if the point lies inside the polygon.
  :rtype: bool
  """
  lat, lng = _lat_lng(point)
  vertices = _polygon_vertices(polygon)
  n = len(vertices)
  if n < 3:
    return False

  inside = False
  j = n - 1
  for i in range(n):
    lat_i, lng_i = vertices[i]
    lat_j, lng_j = vertices[j]
    intersects = ((lat_i > lat) != (lat_j > lat)) and (
      lng < (lng_j - lng_i) * (lat - lat_i) / (lat_j - lat_i) + lng_i
    )
    if intersects:
      inside = not inside
    j = i
  return inside


def bounding_box(points) -> (float, float, float, float):
  """
  Returns (min_lat, min_lng, max_lat, max_lng) over the points, or all zeros for an empty input.
  """
  coords = [_lat_lng(p) for p in points]
  if len(coords) == 0:
    return 0.0, 0.0, 0.0, 0.0
  lats = [c[0] for c in coords]
  lngs = [c[1] for c in coords]
  return min(lats), min(lngs), max(lats), max(lngs)


def offset_coordinate_km(lat, lon, lat_km, lon_km) -> (float, float):
  """Offsets a coordinate by lat_km km north and lon_km km east."""
  start = GeoPoint(lat, lon)

  new_lat = distance(kilometers=abs(lat_km)).destination(start, bearing=0 if lat_km >= 0 else 180).latitude
  new_lon = distance(kilometers=abs(lon_km)).destination(start, bearing=90 if lon_km >= 0 else 270).longitude

  return new_lat, new_lon


def offset_coordinate_m(lat, lon, lat_m, lon_m) -> (float, float):
  return offset_coordinate_km(lat, lon, lat_m / 1000, lon_m / 1000)


def create_geo_circle(lat, lon, radius_km, crs="EPSG:4326", num_points=100) -> gpd.GeoDataFrame:
  """
  Creates a GeoDataFrame containing a circle centered at the specified latitude and longitude.
  :param lat: The latitude of the center of the circle.
  :param lon: The longitude of the center of the circle.
  :param radius_km: The radius of the circle in kilometers.
  :param crs: The CRS of the circle.
  :param num_points: The number of points to use to approximate the circle.
  :return: A GeoDataFrame containing the circle.
  """
  points = []
  for i in range(num_points):
    angle = 2 * math.pi * i / num_points
    north_km = radius_km * math.cos(angle)
    east_km = radius_km * math.sin(angle)
    pt_lat, pt_lon = offset_coordinate_km(lat, lon, north_km, east_km)
    points.append(shapely.Point(pt_lon, pt_lat))

  points.append(points[0])
  polygon = shapely.Polygon(points)

  return gpd.GeoDataFrame(geometry=[polygon], crs=crs)


def create_geo_rect(lat, lon, width_km, height_km, crs="EPSG:4326") -> gpd.GeoDataFrame:
  """
  Creates a GeoDataFrame containing a rectangle centered at the specified latitude and longitude.
  :param lat: The latitude of the center of the rectangle.
  :param lon: The longitude of the center of the rectangle.
  :param width_km: The east-west extent of the rectangle in kilometers.
  :param height_km: The north-south extent of the rectangle in kilometers.
  :param crs: The CRS of the rectangle.
  :return: A GeoDataFrame containing the rectangle.
  """
  n_lat, _ = offset_coordinate_km(lat, lon, height_km / 2, 0)
  s_lat, _ = offset_coordinate_km(lat, lon, -height_km / 2, 0)
  _, e_lon = offset_coordinate_km(lat, lon, 0, width_km / 2)
  _, w_lon = offset_coordinate_km(lat, lon, 0, -width_km / 2)

  # NW -> NE -> SE -> SW -> NW
  polygon = Polygon([(w_lon, n_lat), (e_lon, n_lat), (e_lon, s_lat), (w_lon, s_lat), (w_lon, n_lat)])

  return gpd.GeoDataFrame(geometry=[polygon], crs=crs)
