import numpy as np

import avmspatial.utilities.stats as stats
from avmspatial.regression import RegressionModel


class RatioStudy:
	"""
  Mass-appraisal ratio statistics for a set of numerator/denominator pairs.

  Only pairs whose denominator is strictly positive are used.
  """
	numerators: np.ndarray
	denominators: np.ndarray
	count: int
	median_ratio: float
	mean_ratio: float
	cod: float
	prd: float
	prb: float
	prb_lower: float
	prb_upper: float

	def __init__(
			self,
			numerators: np.ndarray,
			denominators: np.ndarray
	):
		numerators = np.asarray(numerators, dtype=np.float64)
		denominators = np.asarray(denominators, dtype=np.float64)

		if len(numerators) != len(denominators):
			raise ValueError("numerators and denominators must have the same length")

		keep = np.isfinite(numerators) & np.isfinite(denominators) & (denominators > 0)
		self.numerators = numerators[keep]
		self.denominators = denominators[keep]
		self.count = int(np.sum(keep))

		if self.count == 0:
			self.median_ratio = float('nan')
			self.mean_ratio = float('nan')
			self.cod = float('nan')
			self.prd = float('nan')
			self.prb, self.prb_lower, self.prb_upper = float('nan'), float('nan'), float('nan')
			return

		ratios = self.numerators / self.denominators
		self.median_ratio = float(np.median(ratios))
		self.mean_ratio = float(np.mean(ratios))
		self.cod = stats.calc_cod(ratios)
		self.prd = stats.calc_prd(self.numerators, self.denominators)
		self.prb, self.prb_lower, self.prb_upper = stats.calc_prb(ratios, self.denominators)


class ModelQuality:
	"""
  Ratio-study and error metrics of a fitted model.

  The ratios are actual / predicted, so COD, PRD and PRB describe how sale prices (or other actual
  values) relate to the model's valuations. Error metrics use every observation.
  """
	cod: float
	prd: float
	prb: float
	average_absolute_error: float
	median_absolute_error: float
	root_mean_squared_error: float
	ratio_count: int

	def __init__(self, actual: np.ndarray, predicted: np.ndarray):
		actual = np.asarray(actual, dtype=np.float64)
		predicted = np.asarray(predicted, dtype=np.float64)
		study = RatioStudy(actual, predicted)
		self.cod = study.cod
		self.prd = study.prd
		self.prb = study.prb
		self.ratio_count = study.count
		self.average_absolute_error = stats.calc_mae(actual, predicted)
		self.median_absolute_error = stats.calc_median_ae(actual, predicted)
		self.root_mean_squared_error = stats.calc_rmse(actual, predicted)

	def to_dict(self) -> dict:
		return {
			"cod": self.cod,
			"prd": self.prd,
			"prb": self.prb,
			"average_absolute_error": self.average_absolute_error,
			"median_absolute_error": self.median_absolute_error,
			"root_mean_squared_error": self.root_mean_squared_error
		}


def calculate_model_quality(model: RegressionModel) -> ModelQuality:
	return ModelQuality(model.actual_values, model.predicted_values)
