import numpy as np
import pandas as pd

from avmspatial.data import (
  Property, to_properties, get_field_value, get_category, get_raw_value, to_number, normalize_field_name,
  NUMERIC_FIELDS, CATEGORICAL_FIELDS, COORDINATE_FIELDS
)
from avmspatial.utilities.errors import InsufficientObservationsError
from avmspatial.utilities.geometry import Point, distance_km
from avmspatial.utilities.stats import calc_mode


DEFAULT_ATTRIBUTES = ("location", "value")


class PropertyCluster:
  """
  Summary of one k-means cluster.

  Attributes
  ----------
  id : int
      0-based cluster index, matching the values in ``ClusteringResult.property_cluster_map``
  centroid : Point | None
      Mean latitude/longitude of the members that have coordinates
  feature_means : dict
      Unscaled mean of every non-location numeric attribute used for clustering
  property_count : int
  property_ids : list
  average_value, min_value, max_value, value_range : float | None
      Statistics of the value field over members that have one
  dominant_property_type, dominant_neighborhood : str | None
      Most common category among the members (ties go to the first one seen)
  radius_km : float
      Largest member distance from the centroid
  metrics : dict
      Average square footage and year built
  """
  id: int
  centroid: Point | None
  feature_means: dict
  property_count: int
  property_ids: list
  average_value: float | None
  min_value: float | None
  max_value: float | None
  value_range: float | None
  dominant_property_type: str | None
  dominant_neighborhood: str | None
  radius_km: float
  metrics: dict

  def __init__(self, id: int, members: list[Property], feature_means: dict, value_field: str = "value"):
    self.id = id
    self.property_count = len(members)
    self.property_ids = [p.id for p in members]
    self.feature_means = feature_means

    located = [p for p in members if p.has_coordinates()]
    if len(located) > 0:
      self.centroid = Point(
        float(np.mean([p.latitude for p in located])),
        float(np.mean([p.longitude for p in located]))
      )
      self.radius_km = max([distance_km(p.point, self.centroid) for p in located])
    else:
      self.centroid = None
      self.radius_km = 0.0

    values = _present([get_field_value(p, value_field) for p in members])
    if len(values) > 0:
      self.average_value = float(np.mean(values))
      self.min_value = float(np.min(values))
      self.max_value = float(np.max(values))
      self.value_range = self.max_value - self.min_value
    else:
      self.average_value = None
      self.min_value = None
      self.max_value = None
      self.value_range = None

    self.dominant_property_type = calc_mode([get_category(p, "property_type") for p in members])
    self.dominant_neighborhood = calc_mode([get_category(p, "neighborhood") for p in members])

    square_feet = _present([get_field_value(p, "square_feet") for p in members])
    year_built = _present([get_field_value(p, "year_built") for p in members])
    self.metrics = {
      "square_feet_avg": float(np.mean(square_feet)) if len(square_feet) > 0 else None,
      "year_built_avg": float(np.mean(year_built)) if len(year_built) > 0 else None
    }

  def __repr__(self):
    return f"PropertyCluster(id={self.id}, count={self.property_count}, average_value={self.average_value})"


class ClusteringResult:
  clusters: list[PropertyCluster]
  property_cluster_map: dict
  metadata: dict

  def __init__(self, clusters: list[PropertyCluster], property_cluster_map: dict, metadata: dict):
    self.clusters = clusters
    self.property_cluster_map = property_cluster_map
    self.metadata = metadata

  def to_df(self) -> pd.DataFrame:
    rows = []
    for c in self.clusters:
      rows.append({
        "cluster": c.id,
        "property_count": c.property_count,
        "latitude": c.centroid.latitude if c.centroid is not None else None,
        "longitude": c.centroid.longitude if c.centroid is not None else None,
        "average_value": c.average_value,
        "min_value": c.min_value,
        "max_value": c.max_value,
        "radius_km": c.radius_km,
        "dominant_property_type": c.dominant_property_type,
        "dominant_neighborhood": c.dominant_neighborhood,
        **{f"mean_{k}": v for k, v in c.feature_means.items()}
      })
    return pd.DataFrame(rows)


class ProximityCluster:
  """A group of properties whose centroids were merged because they lie within a distance threshold."""
  property_ids: list
  centroid: Point
  average_value: float | None
  radius_km: float

  def __init__(self, members: list[Property], field: str):
    self.property_ids = [p.id for p in members]
    self.centroid = Point(
      float(np.mean([p.latitude for p in members])),
      float(np.mean([p.longitude for p in members]))
    )
    values = _present([get_field_value(p, field) for p in members])
    self.average_value = float(np.mean(values)) if len(values) > 0 else None
    self.radius_km = max([distance_km(p.point, self.centroid) for p in members])


def _present(values: list) -> list:
  return [v for v in values if v is not None]


def _attribute_kind(name: str, props: list[Property]) -> str:
  if name == "location":
    return "location"
  if name in CATEGORICAL_FIELDS:
    return "categorical"
  if name in NUMERIC_FIELDS or name in COORDINATE_FIELDS:
    return "numeric"
  # extra attributes: numeric when every non-null entry parses as a number
  raws = [get_raw_value(p, name) for p in props]
  raws = [r for r in raws if r is not None and not (isinstance(r, float) and np.isnan(r))]
  if len(raws) > 0 and all(to_number(r) is not None for r in raws):
    return "numeric"
  return "categorical"


def _has_feature(p: Property, name: str, kind: str) -> bool:
  if kind == "location":
    return p.has_coordinates()
  if kind == "numeric":
    return get_field_value(p, name) is not None
  return get_category(p, name) is not None


def _min_max_scale(values: np.ndarray, low: float, span: float) -> np.ndarray:
  if span <= 0:
    return np.zeros(len(values))
  return (values - low) / span


def _build_features(props: list[Property], attributes: list[str], kinds: dict):
  """
  Build the scaled numeric matrix and the categorical code matrix for the included properties.
  """
  n = len(props)
  numeric_cols = []
  numeric_names = []
  categorical_cols = []

  for name in attributes:
    kind = kinds[name]
    if kind == "location":
      lats = np.array([p.latitude for p in props], dtype=np.float64)
      lngs = np.array([p.longitude for p in props], dtype=np.float64)
      # a single scale for both axes keeps the geometry undistorted
      span = max(lats.max() - lats.min(), lngs.max() - lngs.min())
      numeric_cols.append(_min_max_scale(lats, lats.min(), span))
      numeric_cols.append(_min_max_scale(lngs, lngs.min(), span))
    elif kind == "numeric":
      values = np.array([get_field_value(p, name) for p in props], dtype=np.float64)
      numeric_cols.append(_min_max_scale(values, values.min(), values.max() - values.min()))
      numeric_names.append(name)
    else:
      labels = [get_category(p, name) for p in props]
      codes = {}
      col = []
      for label in labels:
        if label not in codes:
          codes[label] = len(codes)
        col.append(codes[label])
      categorical_cols.append(np.array(col, dtype=np.int64))

  num = np.column_stack(numeric_cols) if len(numeric_cols) > 0 else np.zeros((n, 0))
  cat = np.column_stack(categorical_cols) if len(categorical_cols) > 0 else np.zeros((n, 0), dtype=np.int64)
  return num, cat, numeric_names


def _sq_distances(num: np.ndarray, cat: np.ndarray, c_num: np.ndarray, c_cat: np.ndarray) -> np.ndarray:
  # squared euclidean distance on numeric dimensions plus one per categorical mismatch
  d = np.sum((num - c_num) ** 2, axis=1)
  if cat.shape[1] > 0:
    d = d + np.sum(cat != c_cat, axis=1)
  return d


def _all_sq_distances(num, cat, cent_num, cent_cat) -> np.ndarray:
  k = cent_num.shape[0]
  return np.column_stack([_sq_distances(num, cat, cent_num[c], cent_cat[c]) for c in range(k)])


def _seed_centroids(num: np.ndarray, cat: np.ndarray, k: int, rng: np.random.Generator):
  """
  k-means++ seeding: the first centroid is uniform, each further one is drawn with probability
  proportional to its squared distance from the nearest centroid already chosen.
  """
  n = num.shape[0]
  chosen = [int(rng.integers(n))]
  d2 = _sq_distances(num, cat, num[chosen[0]], cat[chosen[0]])

  while len(chosen) < k:
    total = float(np.sum(d2))
    if total <= 0:
      # every remaining point coincides with a chosen centroid
      candidates = [i for i in range(n) if i not in chosen]
      nxt = candidates[int(rng.integers(len(candidates)))]
    else:
      nxt = int(rng.choice(n, p=d2 / total))
    chosen.append(nxt)
    d2 = np.minimum(d2, _sq_distances(num, cat, num[nxt], cat[nxt]))

  return num[chosen].copy(), cat[chosen].copy()


def _lloyd(num: np.ndarray, cat: np.ndarray, cent_num: np.ndarray, cent_cat: np.ndarray, max_iterations: int):
  n = num.shape[0]
  k = cent_num.shape[0]
  assignments = np.full(n, -1, dtype=np.int64)
  iterations = 0

  for _ in range(max_iterations):
    iterations += 1
    dists = _all_sq_distances(num, cat, cent_num, cent_cat)
    # argmin returns the lowest index on ties
    new_assignments = np.argmin(dists, axis=1)
    if np.array_equal(new_assignments, assignments):
      break
    assignments = new_assignments

    for c in range(k):
      members = assignments == c
      if not members.any():
        # empty clusters keep their previous centroid
        continue
      cent_num[c] = num[members].mean(axis=0)
      for j in range(cat.shape[1]):
        cent_cat[c, j] = calc_mode(list(cat[members, j]))

  dists = _all_sq_distances(num, cat, cent_num, cent_cat)
  inertia = float(np.sum(dists[np.arange(n), assignments]))
  return assignments, inertia, iterations


def cluster_properties(
    properties,
    k: int = 5,
    attributes=DEFAULT_ATTRIBUTES,
    max_iterations: int = 100,
    value_field: str = "value",
    seed: int = None,
    n_init: int = 10,
    verbose: bool = False
) -> ClusteringResult:
  """
  Partition properties into k clusters with k-means++ seeding and Lloyd iterations.

  Attributes may be "location" (latitude and longitude, scaled together), any numeric field (min-max
  scaled), or any categorical field (compared by equality, centroid is the mode). Records missing
  any requested attribute are excluded and counted in the metadata. When no more records remain than
  clusters requested, k is reduced to the number of records and every record becomes its own cluster.

  :param properties: Properties, dicts, or a DataFrame.
  :param k: Number of clusters requested.
  :type k: int
  :param attributes: Attributes that define the feature space.
  :type attributes: list[str] | tuple[str]
  :param max_iterations: Iteration cap for each Lloyd run.
  :type max_iterations: int
  :param value_field: Field used for the value statistics of each cluster.
  :type value_field: str
  :param seed: Random seed. The same seed and input always give the same assignments.
  :type seed: int, optional
  :param n_init: Number of independent seedings; the run with the lowest inertia is kept.
  :type n_init: int
  :param verbose: Print progress.
  :type verbose: bool
  :returns: Cluster summaries, the property to cluster map, and metadata.
  :rtype: ClusteringResult
  :raises ValueError: If k or max_iterations is less than 1.
  :raises InsufficientObservationsError: If no record has every requested attribute.
  """
  if k < 1:
    raise ValueError(f"k must be at least 1, got {k}")
  if max_iterations < 1:
    raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
  if attributes is None or len(attributes) == 0:
    attributes = DEFAULT_ATTRIBUTES
  attributes = [normalize_field_name(a) for a in attributes]

  props = to_properties(properties)
  kinds = {name: _attribute_kind(name, props) for name in attributes}

  included = [p for p in props if all(_has_feature(p, name, kinds[name]) for name in attributes)]
  excluded_ids = [p.id for p in props if not all(_has_feature(p, name, kinds[name]) for name in attributes)]

  if verbose:
    print(f"--> clustering {len(included)} of {len(props)} properties on {attributes}")

  if len(included) == 0:
    raise InsufficientObservationsError(1, 0, "k-means clustering")

  effective_k = min(k, len(included))
  if verbose and effective_k < k:
    print(f"----> reducing k from {k} to {effective_k}")

  num, cat, numeric_names = _build_features(included, attributes, kinds)

  rng = np.random.default_rng(seed)
  best = None
  if effective_k == len(included):
    # one singleton per record, even when records coincide
    best = (np.arange(len(included)), 0.0, 0)
  else:
    for run in range(max(1, n_init)):
      cent_num, cent_cat = _seed_centroids(num, cat, effective_k, rng)
      assignments, inertia, iterations = _lloyd(num, cat, cent_num, cent_cat, max_iterations)
      if verbose:
        print(f"----> run {run+1}/{n_init}: inertia={inertia:.6f} after {iterations} iterations")
      if best is None or inertia < best[1]:
        best = (assignments, inertia, iterations)

  assignments, inertia, iterations = best

  clusters = []
  property_cluster_map = {}
  for c in range(effective_k):
    member_idx = np.flatnonzero(assignments == c)
    if len(member_idx) == 0:
      continue
    cluster_id = len(clusters)
    members = [included[i] for i in member_idx]
    feature_means = {
      name: float(np.mean([get_field_value(p, name) for p in members])) for name in numeric_names
    }
    clusters.append(PropertyCluster(cluster_id, members, feature_means, value_field))
    for p in members:
      property_cluster_map[p.id] = cluster_id

  metadata = {
    "total_properties": len(props),
    "included_properties": len(included),
    "excluded_properties": len(excluded_ids),
    "excluded_ids": excluded_ids,
    "attributes": list(attributes),
    "k": effective_k,
    "iterations": iterations,
    "inertia": inertia
  }
  return ClusteringResult(clusters, property_cluster_map, metadata)


def identify_property_clusters(properties, field: str = "value", distance_threshold_km: float = 0.1) -> list[ProximityCluster]:
  """
  Group properties by repeatedly merging the first pair of groups whose centroids lie within the
  distance threshold, until no pair is close enough. Properties without coordinates are ignored.

  :param properties: Properties, dicts, or a DataFrame.
  :param field: Field averaged for each group.
  :type field: str
  :param distance_threshold_km: Merge distance between group centroids.
  :type distance_threshold_km: float
  :returns: List of groups.
  :rtype: list[ProximityCluster]
  """
  props = [p for p in to_properties(properties) if p.has_coordinates()]
  groups = [[p] for p in props]
  centroids = [(p.latitude, p.longitude) for p in props]

  merged = True
  while merged:
    merged = False
    for i in range(len(groups)):
      for j in range(i + 1, len(groups)):
        if distance_km(centroids[i], centroids[j]) <= distance_threshold_km:
          combined = groups[i] + groups[j]
          groups[i] = combined
          centroids[i] = (
            float(np.mean([p.latitude for p in combined])),
            float(np.mean([p.longitude for p in combined]))
          )
          del groups[j]
          del centroids[j]
          merged = True
          break
      if merged:
        break

  return [ProximityCluster(g, field) for g in groups]
