import math
import warnings

import numpy as np
import pandas as pd

from avmspatial.data import Property, to_properties, get_field_value
from avmspatial.utilities.distributions import two_tailed_p_value
from avmspatial.utilities.errors import InsufficientObservationsError
from avmspatial.utilities.geometry import distance_matrix_km


WEIGHT_BINARY = "binary"
WEIGHT_INVERSE_DISTANCE = "inverse_distance"

# floor on the distance used for inverse distance weights, so coincident points stay finite
MIN_WEIGHT_DISTANCE_KM = 0.01


class SpatialWeights:
  """
  Row-standardized spatial weights between properties.

  ``matrix[i][j]`` is the weight of ``ids[j]`` as a neighbor of ``ids[i]``. The diagonal is zero,
  and rows of properties with no neighbor inside the cutoff are all zero.
  """
  matrix: np.ndarray
  ids: list
  weight_type: str
  max_distance_km: float

  def __init__(self, matrix: np.ndarray, ids: list, weight_type: str, max_distance_km: float):
    self.matrix = matrix
    self.ids = ids
    self.weight_type = weight_type
    self.max_distance_km = max_distance_km

  @property
  def n(self) -> int:
    return len(self.ids)

  def neighbor_counts(self) -> np.ndarray:
    return np.sum(self.matrix > 0, axis=1)

  def isolated_ids(self) -> list:
    counts = self.neighbor_counts()
    return [self.ids[i] for i in range(self.n) if counts[i] == 0]

  def to_dict(self) -> dict:
    """Nested mapping id -> neighbor id -> weight, listing only non-zero weights."""
    result = {}
    for i, id_i in enumerate(self.ids):
      row = {}
      for j, id_j in enumerate(self.ids):
        if self.matrix[i, j] > 0:
          row[id_j] = float(self.matrix[i, j])
      result[id_i] = row
    return result


class HotspotResult:
  property: Property
  value: float
  gi_star: float
  p_value: float
  is_hotspot: bool
  is_coldspot: bool

  def __init__(self, property: Property, value: float, gi_star: float, p_value: float, significance: float):
    self.property = property
    self.value = value
    self.gi_star = gi_star
    self.p_value = p_value
    self.is_hotspot = gi_star > 0 and p_value < significance
    self.is_coldspot = gi_star < 0 and p_value < significance

  def __repr__(self):
    return f"HotspotResult(id={self.property.id}, gi_star={self.gi_star:.4f}, p_value={self.p_value:.4f})"


class HotspotResults:
  results: list[HotspotResult]
  metadata: dict

  def __init__(self, results: list[HotspotResult], metadata: dict):
    self.results = results
    self.metadata = metadata

  def __len__(self):
    return len(self.results)

  def __iter__(self):
    return iter(self.results)

  def __getitem__(self, i):
    return self.results[i]

  def hotspots(self) -> list[HotspotResult]:
    return [r for r in self.results if r.is_hotspot]

  def coldspots(self) -> list[HotspotResult]:
    return [r for r in self.results if r.is_coldspot]

  def to_df(self) -> pd.DataFrame:
    return pd.DataFrame([{
      "id": r.property.id,
      "latitude": r.property.latitude,
      "longitude": r.property.longitude,
      "value": r.value,
      "gi_star": r.gi_star,
      "p_value": r.p_value,
      "is_hotspot": r.is_hotspot,
      "is_coldspot": r.is_coldspot
    } for r in self.results])


class MoransIResult:
  """
  Global Moran's I with its randomization-assumption inference.

  Attributes
  ----------
  index : float
      Moran's I
  expected_index : float
      -1 / (n - 1)
  variance : float
      Variance of I under randomization
  z_score : float
  p_value : float
      Two-tailed
  pattern : str
      "clustered", "dispersed", or "random"
  n : int
      Number of observations used
  """
  index: float
  expected_index: float
  variance: float
  z_score: float
  p_value: float
  pattern: str
  n: int

  def __init__(self, index: float, expected_index: float, variance: float, z_score: float, p_value: float, n: int, significance: float = 0.05):
    self.index = index
    self.expected_index = expected_index
    self.variance = variance
    self.z_score = z_score
    self.p_value = p_value
    self.n = n
    if p_value < significance and z_score > 0:
      self.pattern = "clustered"
    elif p_value < significance and z_score < 0:
      self.pattern = "dispersed"
    else:
      self.pattern = "random"

  @property
  def is_significant(self) -> bool:
    return self.pattern != "random"

  def __repr__(self):
    return f"MoransIResult(I={self.index:.4f}, z={self.z_score:.4f}, p={self.p_value:.4f}, pattern={self.pattern})"


class HeatmapPoint:
  latitude: float
  longitude: float
  intensity: float

  def __init__(self, latitude: float, longitude: float, intensity: float):
    self.latitude = latitude
    self.longitude = longitude
    self.intensity = intensity


def _spatially_valid(props: list[Property], field: str = None) -> list[Property]:
  result = []
  for p in props:
    if not p.has_coordinates():
      continue
    if field is not None and get_field_value(p, field) is None:
      continue
    result.append(p)
  return result


def _row_standardize(w: np.ndarray) -> np.ndarray:
  sums = w.sum(axis=1)
  nonzero = sums > 0
  w[nonzero] = w[nonzero] / sums[nonzero][:, None]
  return w


def weights_matrix(coords, max_distance_km: float = 2.0, weight_type: str = WEIGHT_INVERSE_DISTANCE) -> np.ndarray:
  """
  Row-standardized weights matrix from a list of (lat, lng) pairs.

  :param coords: Sequence of Points or (lat, lng) pairs.
  :param max_distance_km: Neighbors farther than this get no weight.
  :type max_distance_km: float
  :param weight_type: "binary" or "inverse_distance".
  :type weight_type: str
  :returns: (n x n) weights with a zero diagonal.
  :rtype: numpy.ndarray
  """
  d = distance_matrix_km(coords)
  n = d.shape[0]
  within = d <= max_distance_km
  np.fill_diagonal(within, False)

  if weight_type == WEIGHT_BINARY:
    w = within.astype(np.float64)
  elif weight_type == WEIGHT_INVERSE_DISTANCE:
    w = np.where(within, 1.0 / np.maximum(d, MIN_WEIGHT_DISTANCE_KM), 0.0)
  else:
    raise ValueError(f"Unknown weight type {weight_type}, expected '{WEIGHT_BINARY}' or '{WEIGHT_INVERSE_DISTANCE}'")

  if n == 0:
    return w
  return _row_standardize(w)


def build_weights(properties, max_distance_km: float = 2.0, weight_type: str = WEIGHT_INVERSE_DISTANCE) -> SpatialWeights:
  """
  Build the spatial weights between every pair of properties with coordinates.

  :param properties: Properties, dicts, or a DataFrame.
  :param max_distance_km: Neighbors farther than this get no weight.
  :type max_distance_km: float
  :param weight_type: "binary" (1 per neighbor) or "inverse_distance" (1 / max(d, 0.01 km)).
  :type weight_type: str
  :returns: Row-standardized weights.
  :rtype: SpatialWeights
  :raises InsufficientObservationsError: If fewer than 2 properties have coordinates.
  """
  props = _spatially_valid(to_properties(properties))
  if len(props) < 2:
    raise InsufficientObservationsError(2, len(props), "spatial weights")
  w = weights_matrix([p.point for p in props], max_distance_km, weight_type)
  weights = SpatialWeights(w, [p.id for p in props], weight_type, max_distance_km)
  isolated = weights.isolated_ids()
  if len(isolated) > 0:
    warnings.warn(f"{len(isolated)} of {weights.n} properties have no neighbors within {max_distance_km} km")
  return weights


def hotspot_analysis(
    properties,
    field: str = "value",
    max_distance_km: float = 2.0,
    significance: float = 0.05,
    verbose: bool = False
) -> HotspotResults:
  """
  Getis-Ord Gi* hotspot analysis.

  Uses binary, row-standardized weights within ``max_distance_km`` and the population standard
  deviation of the field: Gi* = sum_j(w_ij * x_j) / (std * sqrt(n)), with a two-tailed normal
  p-value. A property is a hotspot when Gi* > 0 and p < significance, a coldspot when Gi* < 0 and
  p < significance.

  :param properties: Properties, dicts, or a DataFrame.
  :param field: Numeric field to analyze.
  :type field: str
  :param max_distance_km: Neighborhood radius.
  :type max_distance_km: float
  :param significance: Significance level.
  :type significance: float
  :param verbose: Print progress.
  :type verbose: bool
  :returns: One result per spatially valid property, in input order.
  :rtype: HotspotResults
  :raises InsufficientObservationsError: If fewer than 3 properties have coordinates and a value.
  """
  props = to_properties(properties)
  valid = _spatially_valid(props, field)
  if len(valid) < 3:
    raise InsufficientObservationsError(3, len(valid), "hotspot analysis")

  values = np.array([get_field_value(p, field) for p in valid], dtype=np.float64)
  n = len(values)
  std = float(np.std(values))

  if verbose:
    print(f"--> hotspot analysis on {n} properties, field={field}, max_distance_km={max_distance_km}")

  w = weights_matrix([p.point for p in valid], max_distance_km, WEIGHT_BINARY)

  if std == 0:
    warnings.warn(f"Field '{field}' has zero variance; every Gi* score is 0")
    scores = np.zeros(n)
    p_values = np.ones(n)
  else:
    scores = (w @ values) / (std * math.sqrt(n))
    p_values = np.array([two_tailed_p_value(z) for z in scores])

  results = [
    HotspotResult(valid[i], float(values[i]), float(scores[i]), float(p_values[i]), significance)
    for i in range(n)
  ]
  metadata = {
    "total_properties": len(props),
    "analyzed_properties": n,
    "excluded_properties": len(props) - n,
    "mean": float(np.mean(values)),
    "std": std,
    "hotspots": sum([1 for r in results if r.is_hotspot]),
    "coldspots": sum([1 for r in results if r.is_coldspot])
  }
  if verbose:
    print(f"----> {metadata['hotspots']} hotspots, {metadata['coldspots']} coldspots")
  return HotspotResults(results, metadata)


def morans_i_statistic(values, weights: np.ndarray, significance: float = 0.05) -> MoransIResult:
  """
  Global Moran's I of a set of values under a weights matrix, with the variance of I under the
  randomization assumption.

  :param values: Observed values, one per row of ``weights``.
  :param weights: (n x n) spatial weights.
  :type weights: numpy.ndarray
  :param significance: Significance level used for the pattern label.
  :type significance: float
  :returns: The statistic and its inference.
  :rtype: MoransIResult
  """
  x = np.asarray(values, dtype=np.float64)
  w = np.asarray(weights, dtype=np.float64)
  n = len(x)
  if n < 3:
    raise InsufficientObservationsError(3, n, "Moran's I")

  expected = -1.0 / (n - 1)
  z = x - np.mean(x)
  m2 = float(np.sum(z ** 2))
  s0 = float(np.sum(w))

  if s0 == 0 or m2 == 0:
    return MoransIResult(0.0, expected, 0.0, 0.0, 1.0, n, significance)

  index = (n / s0) * float(z @ w @ z) / m2

  s1 = 0.5 * float(np.sum((w + w.T) ** 2))
  s2 = float(np.sum((w.sum(axis=1) + w.sum(axis=0)) ** 2))
  b2 = n * float(np.sum(z ** 4)) / (m2 ** 2)

  a = n * ((n * n - 3 * n + 3) * s1 - n * s2 + 3 * s0 * s0)
  b = b2 * ((n * n - n) * s1 - 2 * n * s2 + 6 * s0 * s0)
  c = (n - 1) * (n - 2) * (n - 3) * s0 * s0

  variance = (a - b) / c - expected ** 2 if c != 0 else 0.0
  if variance <= 0:
    return MoransIResult(index, expected, 0.0, 0.0, 1.0, n, significance)

  z_score = (index - expected) / math.sqrt(variance)
  p_value = two_tailed_p_value(z_score)
  return MoransIResult(index, expected, variance, z_score, p_value, n, significance)


def morans_i(
    properties,
    field: str = "value",
    max_distance_km: float = 2.0,
    weight_type: str = WEIGHT_INVERSE_DISTANCE,
    significance: float = 0.05,
    verbose: bool = False
) -> MoransIResult:
  """
  Global Moran's I of a property field.

  :param properties: Properties, dicts, or a DataFrame.
  :param field: Numeric field to analyze.
  :type field: str
  :param max_distance_km: Neighbor cutoff for the weights.
  :type max_distance_km: float
  :param weight_type: "inverse_distance" or "binary".
  :type weight_type: str
  :param significance: Significance level for the pattern label.
  :type significance: float
  :param verbose: Print progress.
  :type verbose: bool
  :returns: Moran's I, its expectation and variance, z-score, p-value and pattern.
  :rtype: MoransIResult
  :raises InsufficientObservationsError: If fewer than 3 properties have coordinates and a value.
  """
  valid = _spatially_valid(to_properties(properties), field)
  if len(valid) < 3:
    raise InsufficientObservationsError(3, len(valid), "Moran's I")

  values = np.array([get_field_value(p, field) for p in valid], dtype=np.float64)
  w = weights_matrix([p.point for p in valid], max_distance_km, weight_type)

  if np.std(values) == 0:
    warnings.warn(f"Field '{field}' has zero variance; Moran's I is undefined and reported as 0")

  result = morans_i_statistic(values, w, significance)
  if verbose:
    print(f"--> Moran's I on {len(valid)} properties: {result}")
  return result


def generate_heatmap_data(properties, field: str = "value") -> list[HeatmapPoint]:
  """
  Heatmap points with the field min-max scaled to [0, 1]. When every value is the same, every
  intensity is 0.5. Properties without coordinates or a value are skipped.
  """
  valid = _spatially_valid(to_properties(properties), field)
  if len(valid) == 0:
    return []
  values = np.array([get_field_value(p, field) for p in valid], dtype=np.float64)
  low = float(values.min())
  span = float(values.max()) - low
  points = []
  for p, v in zip(valid, values):
    intensity = 0.5 if span == 0 else (float(v) - low) / span
    points.append(HeatmapPoint(p.latitude, p.longitude, intensity))
  return points
