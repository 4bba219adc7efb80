import math
import warnings

import numpy as np
import pytest

from avmspatial.data import Property
from avmspatial.spatial_stats import (
  build_weights, weights_matrix, hotspot_analysis, morans_i, morans_i_statistic, generate_heatmap_data
)
from avmspatial.synthetic import generate_grid_properties
from avmspatial.utilities.errors import InsufficientObservationsError
from avmspatial.utilities.geometry import offset_coordinate_km


def _pairs():
  # two pairs of neighbors about 10 km apart
  a = (40.7000, -74.0000)
  b = offset_coordinate_km(a[0], a[1], 0.5, 0.0)
  c = offset_coordinate_km(a[0], a[1], 10.0, 0.0)
  d = offset_coordinate_km(a[0], a[1], 10.0, 0.5)
  return [
    Property(id="a", latitude=a[0], longitude=a[1], value=10),
    Property(id="b", latitude=b[0], longitude=b[1], value=20),
    Property(id="c", latitude=c[0], longitude=c[1], value=30),
    Property(id="d", latitude=d[0], longitude=d[1], value=40),
  ]


def test_binary_weights():
  weights = build_weights(_pairs(), max_distance_km=1.0, weight_type="binary")
  w = weights.matrix
  assert weights.ids == ["a", "b", "c", "d"]
  assert np.all(np.diag(w) == 0)
  assert np.allclose(w.sum(axis=1), 1.0)
  assert w[0, 1] == 1.0
  assert w[0, 2] == 0.0
  assert weights.to_dict()["c"] == {"d": 1.0}


def test_inverse_distance_weights():
  a = (40.7000, -74.0000)
  near = offset_coordinate_km(a[0], a[1], 0.2, 0.0)
  far = offset_coordinate_km(a[0], a[1], 0.0, 0.8)
  w = weights_matrix([a, near, far], max_distance_km=2.0, weight_type="inverse_distance")
  assert np.allclose(w.sum(axis=1), 1.0)
  assert w[0, 1] > w[0, 2]
  # weights are proportional to 1 / d
  assert w[0, 1] / w[0, 2] == pytest.approx(4.0, rel=0.02)

  # coincident points use the 0.01 km floor instead of dividing by zero
  w = weights_matrix([a, a, far], max_distance_km=2.0)
  assert np.all(np.isfinite(w))

  with pytest.raises(ValueError):
    weights_matrix([a, near], weight_type="gaussian")


def test_isolated_points():
  props = _pairs()
  with pytest.warns(UserWarning):
    weights = build_weights(props, max_distance_km=0.1, weight_type="binary")
  assert weights.isolated_ids() == ["a", "b", "c", "d"]
  assert np.all(weights.matrix == 0)


def test_weights_need_two_points():
  with pytest.raises(InsufficientObservationsError):
    build_weights([Property(id=1, latitude=40.0, longitude=-74.0), Property(id=2)])


def test_hotspot_closed_form():
  results = hotspot_analysis(_pairs(), max_distance_km=1.0, significance=0.1)
  scores = {r.property.id: r.gi_star for r in results}

  denominator = math.sqrt(125.0) * 2.0
  assert scores["a"] == pytest.approx(20.0 / denominator)
  assert scores["b"] == pytest.approx(10.0 / denominator)
  assert scores["c"] == pytest.approx(40.0 / denominator)
  assert scores["d"] == pytest.approx(30.0 / denominator)

  flagged = [r.property.id for r in results.hotspots()]
  assert flagged == ["c"]
  assert results.coldspots() == []
  assert results.metadata["analyzed_properties"] == 4

  df = results.to_df()
  assert len(df) == 4
  assert df["is_hotspot"].sum() == 1


def test_hotspot_skips_unusable_coordinates():
  props = _pairs() + [
    Property(id="x", latitude=float("nan"), longitude=float("nan"), value=5.0),
    Property(id="y", latitude="n/a", longitude=-74.0, value=1.0),
  ]
  results = hotspot_analysis(props, max_distance_km=1.0, significance=0.1)
  assert results.metadata["excluded_properties"] == 2
  assert results.metadata["analyzed_properties"] == 4
  assert results.metadata["mean"] == pytest.approx(25.0)
  scores = {r.property.id: r.gi_star for r in results}
  assert set(scores) == {"a", "b", "c", "d"}
  assert scores["c"] == pytest.approx(40.0 / (math.sqrt(125.0) * 2.0))


def test_hotspot_and_coldspot_flags():
  # low dispersion around a large positive level: every point with neighbors is a hotspot
  props = _pairs()
  for i, p in enumerate(props):
    p.value = 1000000 + i
  results = hotspot_analysis(props, max_distance_km=1.0)
  assert all(r.is_hotspot for r in results)

  # and around a large negative level every point is a coldspot
  for i, p in enumerate(props):
    p.value = -1000000 + i
  results = hotspot_analysis(props, max_distance_km=1.0)
  assert all(r.is_coldspot for r in results)
  assert not any(r.is_hotspot for r in results)


def test_hotspot_zero_variance():
  props = _pairs()
  for p in props:
    p.value = 5
  with pytest.warns(UserWarning):
    results = hotspot_analysis(props, max_distance_km=1.0)
  for r in results:
    assert r.gi_star == 0.0
    assert r.p_value == 1.0
    assert not r.is_hotspot and not r.is_coldspot


def test_hotspot_needs_three_points():
  props = _pairs()[:2] + [Property(id="x", value=1)]
  with pytest.raises(InsufficientObservationsError):
    hotspot_analysis(props)


def test_morans_i_clustered():
  props = generate_grid_properties(8, 8, spacing_km=0.5, pattern="clustered", seed=1)
  result = morans_i(props, max_distance_km=1.0)
  assert result.n == 64
  assert result.expected_index == pytest.approx(-1.0 / 63)
  assert result.index > 0.5
  assert result.z_score > 3
  assert result.pattern == "clustered"
  assert result.is_significant


def test_morans_i_checkerboard():
  # with rook neighbors every neighbor of a high cell is low, and the reverse
  props = generate_grid_properties(8, 8, spacing_km=0.5, pattern="dispersed", seed=1)
  result = morans_i(props, max_distance_km=0.6, weight_type="binary")
  assert result.index == pytest.approx(-1.0)
  assert result.pattern == "dispersed"


def test_morans_i_random_rarely_significant():
  rejections = 0
  trials = 40
  for seed in range(trials):
    props = generate_grid_properties(8, 8, spacing_km=0.5, pattern="random", seed=seed)
    result = morans_i(props, max_distance_km=1.0)
    if result.pattern != "random":
      rejections += 1
  assert rejections / trials <= 0.2


def test_morans_i_statistic_closed_form():
  values = np.array([1.0, 2.0, 4.0, 8.0, 3.0])
  w = np.array([
    [0, 1, 0, 0, 0],
    [1, 0, 1, 0, 0],
    [0, 1, 0, 1, 0],
    [0, 0, 1, 0, 1],
    [0, 0, 0, 1, 0],
  ], dtype=float)
  w = w / w.sum(axis=1)[:, None]
  z = values - values.mean()
  expected = (len(values) / w.sum()) * (z @ w @ z) / (z @ z)
  result = morans_i_statistic(values, w)
  assert result.index == pytest.approx(expected)
  assert 0.0 <= result.p_value <= 1.0


def test_morans_i_degenerate():
  props = _pairs()
  for p in props:
    p.value = 7
  with warnings.catch_warnings():
    warnings.simplefilter("ignore")
    result = morans_i(props, max_distance_km=1.0)
  assert result.index == 0.0
  assert result.z_score == 0.0
  assert result.p_value == 1.0
  assert result.pattern == "random"

  # nobody has a neighbor
  result = morans_i(_pairs(), max_distance_km=0.01)
  assert result.index == 0.0
  assert result.p_value == 1.0

  # three points leave no degrees of freedom for the variance
  result = morans_i(_pairs()[:3], max_distance_km=20.0)
  assert result.p_value == 1.0

  with pytest.raises(InsufficientObservationsError):
    morans_i(_pairs()[:2])


def test_heatmap():
  points = generate_heatmap_data(_pairs())
  assert [p.intensity for p in points] == pytest.approx([0.0, 1.0 / 3.0, 2.0 / 3.0, 1.0])

  props = _pairs()
  for p in props:
    p.value = 3
  assert all(p.intensity == 0.5 for p in generate_heatmap_data(props))
  assert generate_heatmap_data([Property(id=1, value=3)]) == []
