import numpy as np
import pandas as pd
import statsmodels.api as sm


def div_z_safe(numerator: float, denominator: float, default: float = 0.0) -> float:
	"""
  Divide, returning ``default`` instead of raising or producing inf/NaN when the denominator is zero.
  """
	if denominator == 0 or pd.isna(denominator) or pd.isna(numerator):
		return default
	return numerator / denominator


def calc_mode(values: list):
	"""
  Most frequent non-null entry of a list. Ties go to whichever value was seen first.

  :param values: List of hashable values.
  :type values: list
  :returns: The most frequent value, or None if the list has no non-null entries.
  """
	counts = {}
	for v in values:
		if v is None or (isinstance(v, float) and np.isnan(v)):
			continue
		counts[v] = counts.get(v, 0) + 1
	best = None
	best_count = 0
	# dicts keep insertion order, so the first value to reach the max count wins
	for v, c in counts.items():
		if c > best_count:
			best = v
			best_count = c
	return best


def calc_cod(values: np.ndarray) -> float:
	"""
  Calculate the Coefficient of Dispersion (COD) for an array of values.

  COD is defined as the average absolute deviation from the median, divided by the median,
  multiplied by 100. Special cases are handled if the median is zero.

  :param values: Array of numeric values.
  :type values: numpy.ndarray
  :returns: The COD percentage.
  :rtype: float
  """
	values = np.asarray(values, dtype=np.float64)
	if len(values) == 0:
		return float('nan')

	median_value = np.median(values)
	abs_delta_values = np.abs(values - median_value)
	avg_abs_deviation = np.sum(abs_delta_values) / len(values)
	if median_value == 0:
		# if every value is zero, the COD is zero:
		if np.all(values == 0):
			return 0.0
		else:
			# if the median is zero but not all values are zero, return infinity
			return float('inf')
	cod = avg_abs_deviation / median_value
	cod *= 100
	return float(cod)


def calc_prd(numerators: np.ndarray, denominators: np.ndarray) -> float:
	"""
  Calculate the Price Related Differential (PRD).

  PRD is the mean of the individual ratios divided by the aggregate ratio sum(numerators) / sum(denominators).
  Values above 1 indicate that low-value records carry higher ratios than high-value ones.

  :param numerators: Ratio numerators.
  :type numerators: numpy.ndarray
  :param denominators: Ratio denominators.
  :type denominators: numpy.ndarray
  :returns: The PRD value.
  :rtype: float
  """
	numerators = np.asarray(numerators, dtype=np.float64)
	denominators = np.asarray(denominators, dtype=np.float64)
	if len(numerators) == 0:
		return float('nan')
	ratios = numerators / denominators
	mean_ratio = np.mean(ratios)
	sum_denominators = np.sum(denominators)
	if sum_denominators == 0:
		return float('inf')
	weighted_mean_ratio = np.sum(numerators) / sum_denominators
	if weighted_mean_ratio == 0:
		return float('inf')
	prd = mean_ratio / weighted_mean_ratio
	return float(prd)


def calc_prb(ratios: np.ndarray, values: np.ndarray, confidence_interval: float = 0.95) -> (float, float, float):
	"""
  Calculate the PRB (Price Related Bias) with a regression-based approach.

  Fits an OLS model of the ratios on the centered natural log of the values, and returns the slope
  along with its lower and upper confidence bounds.

  :param ratios: Array of ratios.
  :type ratios: numpy.ndarray
  :param values: Array of (strictly positive) values the ratios are measured against.
  :type values: numpy.ndarray
  :param confidence_interval: Desired confidence interval (default is 0.95).
  :type confidence_interval: float, optional
  :returns: A tuple containing the PRB, its lower bound, and its upper bound.
  :rtype: tuple(float, float, float)
  :raises ValueError: If ratios and values lengths differ.
  """
	ratios = np.asarray(ratios, dtype=np.float64)
	values = np.asarray(values, dtype=np.float64)
	if len(ratios) != len(values):
		raise ValueError("ratios and values must have the same length")

	if ratios.size < 2:
		return float('nan'), float('nan'), float('nan')

	logged = np.log(values)
	centered = logged - np.mean(logged)
	if np.allclose(centered, 0.0):
		# every value is the same, so there is no slope to measure
		return 0.0, float('nan'), float('nan')

	exog = sm.add_constant(centered, has_constant="add")
	mra_model = sm.OLS(endog=ratios, exog=exog).fit()
	prb = float(mra_model.params[1])

	if ratios.size < 3:
		return prb, float('nan'), float('nan')

	conf_int = np.asarray(mra_model.conf_int(alpha=1.0 - confidence_interval))
	return prb, float(conf_int[1, 0]), float(conf_int[1, 1])


def calc_mae(actual: np.ndarray, predicted: np.ndarray) -> float:
	errors = np.asarray(actual, dtype=np.float64) - np.asarray(predicted, dtype=np.float64)
	if errors.size == 0:
		return float('nan')
	return float(np.mean(np.abs(errors)))


def calc_median_ae(actual: np.ndarray, predicted: np.ndarray) -> float:
	errors = np.asarray(actual, dtype=np.float64) - np.asarray(predicted, dtype=np.float64)
	if errors.size == 0:
		return float('nan')
	return float(np.median(np.abs(errors)))


def calc_rmse(actual: np.ndarray, predicted: np.ndarray) -> float:
	errors = np.asarray(actual, dtype=np.float64) - np.asarray(predicted, dtype=np.float64)
	if errors.size == 0:
		return float('nan')
	return float(np.sqrt(np.mean(errors ** 2)))
