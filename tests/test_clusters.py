import pytest

from avmspatial.clustering import cluster_properties, identify_property_clusters
from avmspatial.data import Property
from avmspatial.synthetic import generate_clustered_properties
from avmspatial.utilities.errors import InsufficientObservationsError


def _get_properties():
  return [
    {"id": 1, "latitude": 40.7128, "longitude": -74.0060, "value": "500000", "squareFeet": 1800, "yearBuilt": 1990, "propertyType": "Residential", "neighborhood": "Downtown"},
    {"id": 2, "latitude": 40.7129, "longitude": -74.0061, "value": "520000", "squareFeet": 2000, "yearBuilt": 1995, "propertyType": "Residential", "neighborhood": "Downtown"},
    {"id": 3, "latitude": 40.7130, "longitude": -74.0062, "value": "490000", "squareFeet": 1700, "yearBuilt": 1985, "propertyType": "Residential", "neighborhood": "Downtown"},
    {"id": 4, "latitude": 40.8128, "longitude": -74.1060, "value": "800000", "squareFeet": 2600, "yearBuilt": 2005, "propertyType": "Residential", "neighborhood": "Uptown"},
    {"id": 5, "latitude": 40.8129, "longitude": -74.1061, "value": "820000", "squareFeet": 2700, "yearBuilt": 2008, "propertyType": "Residential", "neighborhood": "Uptown"},
    {"id": 6, "latitude": 40.6128, "longitude": -74.2060, "value": "1200000", "squareFeet": 6000, "yearBuilt": 1970, "propertyType": "Commercial", "neighborhood": "Industrial"},
    {"id": 7, "latitude": 40.6129, "longitude": -74.2061, "value": "1250000", "squareFeet": 6500, "yearBuilt": 1975, "propertyType": "Commercial", "neighborhood": "Industrial"},
    {"id": 8, "value": "400000", "squareFeet": 1500, "propertyType": "Residential", "neighborhood": "Downtown"},
  ]


def _clusters_by_member(result):
  return {cluster.id: set(cluster.property_ids) for cluster in result.clusters}


def test_excludes_missing_coordinates():
  result = cluster_properties(_get_properties(), k=3, seed=1)
  assert result.metadata["total_properties"] == 8
  assert result.metadata["included_properties"] == 7
  assert result.metadata["excluded_properties"] == 1
  assert result.metadata["excluded_ids"] == [8]
  assert 8 not in result.property_cluster_map
  assert len(result.property_cluster_map) == 7


def test_cluster_statistics():
  result = cluster_properties(_get_properties(), k=3, seed=1)
  groups = sorted(_clusters_by_member(result).values(), key=lambda s: min(s))
  assert groups == [{1, 2, 3}, {4, 5}, {6, 7}]

  downtown = result.clusters[result.property_cluster_map[1]]
  assert downtown.property_count == 3
  assert downtown.average_value == pytest.approx(503333.3333, abs=0.01)
  assert downtown.min_value == 490000
  assert downtown.max_value == 520000
  assert downtown.value_range == 30000
  assert downtown.dominant_property_type == "Residential"
  assert downtown.dominant_neighborhood == "Downtown"
  assert downtown.centroid.latitude == pytest.approx(40.7129)
  assert downtown.centroid.longitude == pytest.approx(-74.0061)
  assert downtown.metrics["square_feet_avg"] == pytest.approx(1833.3333, abs=0.01)
  assert downtown.radius_km < 0.05

  industrial = result.clusters[result.property_cluster_map[6]]
  assert industrial.dominant_property_type == "Commercial"
  assert industrial.feature_means["value"] == pytest.approx(1225000)

  df = result.to_df()
  assert len(df) == 3
  assert "mean_value" in df.columns


def test_same_seed_same_assignments():
  props = generate_clustered_properties(
    [(40.70, -74.00, 300000), (40.75, -74.05, 600000), (40.65, -73.95, 900000)],
    per_cluster=15,
    seed=3
  )
  a = cluster_properties(props, k=4, seed=99)
  b = cluster_properties(props, k=4, seed=99)
  assert a.property_cluster_map == b.property_cluster_map
  assert a.metadata["inertia"] == b.metadata["inertia"]


def test_k_clamped_to_available_points():
  props = _get_properties()[:3]
  result = cluster_properties(props, k=10, seed=5)
  assert result.metadata["k"] == 3
  assert len(result.clusters) == 3
  for cluster in result.clusters:
    assert cluster.property_count == 1


def test_spatial_grouping():
  # a tight trio and a pair roughly 10 km away
  props = [
    Property(id="a", latitude=40.7000, longitude=-74.0000, value=100),
    Property(id="b", latitude=40.7010, longitude=-74.0010, value=900),
    Property(id="c", latitude=40.7005, longitude=-74.0020, value=500),
    Property(id="d", latitude=40.7900, longitude=-74.0000, value=100),
    Property(id="e", latitude=40.7910, longitude=-74.0010, value=900),
  ]
  result = cluster_properties(props, k=2, attributes=["location"], seed=0)
  groups = sorted(_clusters_by_member(result).values(), key=len)
  assert groups == [{"d", "e"}, {"a", "b", "c"}]


def test_location_and_value_grouping():
  props = [
    Property(id="downtown_1", latitude=40.7128, longitude=-74.0060, value=500000),
    Property(id="downtown_2", latitude=40.7130, longitude=-74.0065, value=510000),
    Property(id="downtown_3", latitude=40.7125, longitude=-74.0058, value=495000),
    Property(id="uptown_1", latitude=40.8000, longitude=-73.9500, value=800000),
    Property(id="uptown_2", latitude=40.8005, longitude=-73.9505, value=820000),
  ]
  result = cluster_properties(props, k=2, attributes=["location", "value"], seed=4)
  m = result.property_cluster_map
  assert m["downtown_1"] == m["downtown_2"] == m["downtown_3"]
  assert m["uptown_1"] == m["uptown_2"]
  assert m["downtown_1"] != m["uptown_1"]


def test_two_records_five_clusters():
  props = [
    {"id": 1, "latitude": 40.7128, "longitude": -74.0060, "value": 500000},
    {"id": 2, "latitude": 40.7500, "longitude": -73.9800, "value": 700000},
  ]
  result = cluster_properties(props, k=5, seed=1)
  assert result.metadata["k"] == 2
  assert len(result.clusters) == 2
  assert [c.property_count for c in result.clusters] == [1, 1]

  # coincident records still get a cluster each
  same = [dict(props[0], id=1), dict(props[0], id=2)]
  result = cluster_properties(same, k=5, seed=1)
  assert len(result.clusters) == 2
  assert result.property_cluster_map[1] != result.property_cluster_map[2]


def test_nan_coordinates_are_excluded():
  props = [
    Property(id=1, latitude=40.7128, longitude=-74.0060, value=500000),
    Property(id=2, latitude=40.7130, longitude=-74.0062, value=510000),
    Property(id=3, latitude=40.8000, longitude=-73.9500, value=800000),
    Property(id=4, latitude=float("nan"), longitude=-74.0000, value=400000),
  ]
  result = cluster_properties(props, k=2, seed=1)
  assert result.metadata["excluded_ids"] == [4]
  assert result.metadata["included_properties"] == 3
  assert 4 not in result.property_cluster_map


def test_categorical_only():
  result = cluster_properties(_get_properties(), k=2, attributes=["propertyType"], seed=2)
  # no coordinates needed, so nothing is excluded
  assert result.metadata["included_properties"] == 8
  commercial = result.property_cluster_map[6]
  assert result.property_cluster_map[7] == commercial
  for i in [1, 2, 3, 4, 5, 8]:
    assert result.property_cluster_map[i] != commercial
  assert result.clusters[commercial].dominant_property_type == "Commercial"


def test_numeric_attribute_missing_values():
  props = _get_properties()
  props[0]["value"] = "not a number"
  result = cluster_properties(props, k=2, attributes=["location", "value"], seed=2)
  assert result.metadata["excluded_properties"] == 2
  assert 1 not in result.property_cluster_map


def test_bad_arguments():
  with pytest.raises(ValueError):
    cluster_properties(_get_properties(), k=0)

  with pytest.raises(InsufficientObservationsError):
    cluster_properties([{"id": 1, "value": 5}], k=2)

  with pytest.raises(InsufficientObservationsError):
    cluster_properties([], k=2)


def test_proximity_clusters():
  groups = identify_property_clusters(_get_properties(), distance_threshold_km=0.1)
  members = sorted([sorted(g.property_ids) for g in groups])
  assert members == [[1, 2, 3], [4, 5], [6, 7]]
  downtown = [g for g in groups if 1 in g.property_ids][0]
  assert downtown.average_value == pytest.approx(503333.3333, abs=0.01)
  assert downtown.radius_km < 0.1
