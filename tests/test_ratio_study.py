import numpy as np
import pytest
from sklearn.metrics import mean_absolute_error, median_absolute_error, root_mean_squared_error

from avmspatial.ratio_study import RatioStudy, ModelQuality, calculate_model_quality
from avmspatial.regression import ols
from avmspatial.synthetic import generate_linear_properties
from avmspatial.utilities.stats import calc_cod, calc_prd, calc_prb, div_z_safe


def test_div_z_safe():
  assert div_z_safe(3.0, 2.0) == 1.5
  assert div_z_safe(3.0, 0.0) == 0.0
  assert div_z_safe(3.0, 0.0, 1.0) == 1.0
  assert div_z_safe(float("nan"), 2.0, -1.0) == -1.0


def test_cod():
  assert calc_cod(np.array([1.0, 1.0, 1.0])) == 0.0
  # median 1.0, mean absolute deviation 0.1
  assert calc_cod(np.array([0.9, 1.0, 1.1])) == pytest.approx(100 * (0.2 / 3))
  assert calc_cod(np.array([0.0, 0.0])) == 0.0
  assert np.isinf(calc_cod(np.array([-1.0, 0.0, 2.0])))
  assert np.isnan(calc_cod(np.array([])))


def test_prd():
  sales = np.array([100.0, 200.0, 400.0])
  values = np.array([100.0, 100.0, 100.0])
  # mean ratio 7/3 over aggregate ratio 700/300
  assert calc_prd(sales, values) == pytest.approx(1.0)

  sales = np.array([100.0, 300.0])
  values = np.array([100.0, 200.0])
  expected = np.mean(sales / values) / (np.sum(sales) / np.sum(values))
  assert calc_prd(sales, values) == pytest.approx(expected)


def test_prb():
  values = np.array([100.0, 200.0, 400.0, 800.0, 1600.0])
  ratios = np.array([1.1, 1.05, 1.0, 0.95, 0.9])
  prb, lower, upper = calc_prb(ratios, values)
  centered = np.log(values) - np.mean(np.log(values))
  slope = np.polyfit(centered, ratios, 1)[0]
  assert prb == pytest.approx(slope)
  assert prb < 0
  assert lower <= prb <= upper

  prb, lower, upper = calc_prb(np.array([1.0, 1.2, 0.8]), np.array([5.0, 5.0, 5.0]))
  assert prb == 0.0
  assert np.isnan(lower)

  with pytest.raises(ValueError):
    calc_prb(np.array([1.0]), np.array([1.0, 2.0]))


def test_ratio_study_drops_bad_pairs():
  study = RatioStudy(
    np.array([100.0, 200.0, 50.0, 80.0, np.nan]),
    np.array([100.0, 0.0, -10.0, 100.0, 100.0])
  )
  assert study.count == 2
  assert study.median_ratio == pytest.approx(0.9)
  assert study.mean_ratio == pytest.approx(0.9)
  assert study.cod == pytest.approx(100 * 0.1 / 0.9)

  empty = RatioStudy(np.array([1.0]), np.array([0.0]))
  assert empty.count == 0
  assert np.isnan(empty.cod)

  with pytest.raises(ValueError):
    RatioStudy(np.array([1.0]), np.array([1.0, 2.0]))


def test_model_quality_metrics():
  rng = np.random.default_rng(7)
  predicted = rng.uniform(100000, 500000, size=50)
  actual = predicted * rng.normal(1.0, 0.1, size=50)
  quality = ModelQuality(actual, predicted)

  assert quality.average_absolute_error == pytest.approx(mean_absolute_error(actual, predicted))
  assert quality.median_absolute_error == pytest.approx(median_absolute_error(actual, predicted))
  assert quality.root_mean_squared_error == pytest.approx(root_mean_squared_error(actual, predicted))
  assert quality.cod == pytest.approx(calc_cod(actual / predicted))
  assert quality.prd == pytest.approx(calc_prd(actual, predicted))
  assert quality.ratio_count == 50
  assert set(quality.to_dict().keys()) == {
    "cod", "prd", "prb", "average_absolute_error", "median_absolute_error", "root_mean_squared_error"
  }


def test_model_quality_skips_non_positive_predictions():
  actual = np.array([10.0, 20.0, 30.0])
  predicted = np.array([10.0, -5.0, 30.0])
  quality = ModelQuality(actual, predicted)
  assert quality.ratio_count == 2
  assert quality.cod == 0.0
  # error metrics use every observation
  assert quality.average_absolute_error == pytest.approx(25.0 / 3)


def test_calculate_model_quality():
  props = generate_linear_properties(n=100, intercept=100.0, noise=1.0, seed=11)
  model = ols(props, "value", ["x1", "x2"])
  quality = calculate_model_quality(model)
  assert quality.ratio_count == 100
  assert quality.cod < 5.0
  assert quality.prd == pytest.approx(1.0, abs=0.02)
  assert quality.root_mean_squared_error == pytest.approx(np.sqrt(np.mean(model.residuals ** 2)))
