import math
import warnings

import numpy as np
import pandas as pd

from avmspatial.data import (
	Property, Amenity, AMENITY_TYPES, to_properties, to_amenities, get_field_value, get_category, normalize_field_name
)
from avmspatial.spatial_stats import morans_i_statistic, MoransIResult
from avmspatial.utilities.distributions import (
	f_distribution_cdf, chi_square_cdf, two_tailed_t_p_value
)
from avmspatial.utilities.errors import (
	InsufficientObservationsError, SingularMatrixError, MissingCoordinatesError
)
from avmspatial.utilities.geometry import distance_km, distance_matrix_km
from avmspatial.utilities.matrix import transpose, multiply, multiply_vector, invert
from avmspatial.utilities.stats import div_z_safe


VIF_THRESHOLD = 10.0
SIGNIFICANCE = 0.05

# offset added to distances for the residual autocorrelation weights
RESIDUAL_WEIGHT_OFFSET_KM = 0.0001

SPATIAL_REGRESSION_MIN_OBSERVATIONS = 10
SPATIAL_REGRESSION_BASE_PREDICTORS = ["square_feet", "year_built"]
NEIGHBORHOOD_FACTOR = "neighborhood_factor"


class KernelType:
	GAUSSIAN = "gaussian"
	EXPONENTIAL = "exponential"
	BISQUARE = "bisquare"
	TRICUBE = "tricube"
	BOXCAR = "boxcar"

	ALL = [GAUSSIAN, EXPONENTIAL, BISQUARE, TRICUBE, BOXCAR]


class DesignMatrix:
	"""
  Regression inputs after dropping records with a missing target or predictor.

  Attributes
  ----------
  X : numpy.ndarray
      (n x p) matrix; the first column is all ones
  y : numpy.ndarray
      Target values
  column_names : list[str]
      "intercept" followed by the predictors
  properties : list[Property]
      The retained records, aligned with the rows of X
  missing_count : int
      Number of input records that were dropped
  """
	X: np.ndarray
	y: np.ndarray
	target: str
	predictors: list[str]
	column_names: list[str]
	properties: list[Property]
	missing_count: int

	def __init__(self, X: np.ndarray, y: np.ndarray, target: str, predictors: list[str], properties: list[Property], missing_count: int):
		self.X = X
		self.y = y
		self.target = target
		self.predictors = predictors
		self.column_names = ["intercept"] + predictors
		self.properties = properties
		self.missing_count = missing_count

	@property
	def n(self) -> int:
		return self.X.shape[0]

	@property
	def p(self) -> int:
		return self.X.shape[1]


class RegressionDiagnostics:
	vif: dict
	collinearity: bool
	heteroskedasticity: bool
	breusch_pagan_statistic: float
	breusch_pagan_p_value: float
	spatial_autocorrelation: bool
	residual_morans_i: MoransIResult | None
	missing_value_count: int
	no_significant_variables: bool

	def __init__(
			self,
			vif: dict,
			breusch_pagan_statistic: float,
			breusch_pagan_p_value: float,
			residual_morans_i: MoransIResult | None,
			missing_value_count: int,
			no_significant_variables: bool
	):
		self.vif = vif
		self.collinearity = any([v > VIF_THRESHOLD for v in vif.values()])
		self.breusch_pagan_statistic = breusch_pagan_statistic
		self.breusch_pagan_p_value = breusch_pagan_p_value
		self.heteroskedasticity = breusch_pagan_p_value < SIGNIFICANCE
		self.residual_morans_i = residual_morans_i
		self.spatial_autocorrelation = residual_morans_i is not None and residual_morans_i.p_value < SIGNIFICANCE
		self.missing_value_count = missing_value_count
		self.no_significant_variables = no_significant_variables


class RegressionModel:
	"""
  A fitted linear model with its inference statistics and diagnostics.

  ``coefficients``, ``standard_errors``, ``t_values`` and ``p_values`` are keyed by predictor name;
  the intercept's own statistics are in the ``intercept_*`` attributes. ``p_value`` is the p-value
  of the F statistic.
  """
	model_name: str
	target: str
	predictors: list[str]
	intercept: float
	coefficients: dict
	standard_errors: dict
	t_values: dict
	p_values: dict
	intercept_standard_error: float
	intercept_t_value: float
	intercept_p_value: float
	r_squared: float
	adjusted_r_squared: float
	f_statistic: float
	p_value: float
	observations: int
	used_observations: int
	residuals: np.ndarray
	predicted_values: np.ndarray
	actual_values: np.ndarray
	property_ids: list
	data_mean: float
	data_std: float
	diagnostics: RegressionDiagnostics

	def __init__(self, **kwargs):
		for key, value in kwargs.items():
			setattr(self, key, value)

	def predict(self, properties) -> np.ndarray:
		return predict(self, properties)

	def coefficients_df(self) -> pd.DataFrame:
		rows = [{
			"variable": "intercept",
			"coefficient": self.intercept,
			"standard_error": self.intercept_standard_error,
			"t_value": self.intercept_t_value,
			"p_value": self.intercept_p_value,
			"vif": None
		}]
		for name in self.predictors:
			rows.append({
				"variable": name,
				"coefficient": self.coefficients[name],
				"standard_error": self.standard_errors[name],
				"t_value": self.t_values[name],
				"p_value": self.p_values[name],
				"vif": self.diagnostics.vif.get(name)
			})
		return pd.DataFrame(rows)

	def __repr__(self):
		return f"{type(self).__name__}(target={self.target}, n={self.observations}, r_squared={self.r_squared:.4f})"


class GWRModel(RegressionModel):
	"""
  Geographically weighted regression. Carries every attribute of the global OLS fit on the same
  records, plus one local fit per observation.
  """
	local_coefficients: list[dict]
	local_intercepts: np.ndarray
	local_r_squared: np.ndarray
	global_r_squared: float
	bandwidth: float
	kernel: str
	adaptive: bool
	coordinates: list

	def __init__(self, global_model: RegressionModel, **kwargs):
		super().__init__(**vars(global_model))
		self.model_name = "gwr"
		self.global_r_squared = global_model.r_squared
		for key, value in kwargs.items():
			setattr(self, key, value)

	def local_coefficients_df(self) -> pd.DataFrame:
		df = pd.DataFrame(self.local_coefficients)
		df.insert(0, "intercept", self.local_intercepts)
		df.insert(0, "id", self.property_ids)
		df["local_r_squared"] = self.local_r_squared
		return df


class SpatialRegressionModel(RegressionModel):
	"""
  Hedonic OLS model whose predictors may include the distance to the nearest amenity of each type
  and the mean value of the record's neighborhood. ``predict`` derives those features from each
  record's location and neighborhood before applying the coefficients.
  """
	amenities: list[Amenity]
	neighborhood_means: dict
	standard_error: float

	def __init__(self, model: RegressionModel, amenities: list[Amenity], neighborhood_means: dict):
		super().__init__(**vars(model))
		self.model_name = "spatial"
		self.amenities = amenities
		self.neighborhood_means = neighborhood_means
		dof = self.observations - len(self.predictors) - 1
		self.standard_error = math.sqrt(div_z_safe(float(np.sum(self.residuals ** 2)), dof))

	def predict(self, properties) -> np.ndarray:
		return predict(self, add_amenity_features(properties, self.amenities, self.neighborhood_means))


def build_design_matrix(properties, target: str, predictors: list[str]) -> DesignMatrix:
	"""
  Build the regression design matrix, dropping any record whose target or predictors are missing
  or not numeric.

  :param properties: Properties, dicts, or a DataFrame.
  :param target: Name of the dependent variable.
  :type target: str
  :param predictors: Names of the independent variables.
  :type predictors: list[str]
  :returns: The design matrix.
  :rtype: DesignMatrix
  :raises ValueError: If no predictors are given.
  :raises InsufficientObservationsError: If the retained records do not outnumber the parameters.
  """
	if predictors is None or len(predictors) == 0:
		raise ValueError("At least one predictor is required")
	target = normalize_field_name(target)
	predictors = [normalize_field_name(p) for p in predictors]
	if target in predictors:
		raise ValueError(f"Target '{target}' cannot also be a predictor")

	props = to_properties(properties)
	rows = []
	ys = []
	kept = []
	for prop in props:
		y = get_field_value(prop, target)
		if y is None:
			continue
		xs = [get_field_value(prop, name) for name in predictors]
		if any(x is None for x in xs):
			continue
		rows.append([1.0] + xs)
		ys.append(y)
		kept.append(prop)

	p = len(predictors) + 1
	if len(kept) <= p:
		raise InsufficientObservationsError(p + 1, len(kept), "regression")

	X = np.array(rows, dtype=np.float64)
	y = np.array(ys, dtype=np.float64)
	return DesignMatrix(X, y, target, predictors, kept, len(props) - len(kept))


def _least_squares(X: np.ndarray, y: np.ndarray) -> (np.ndarray, np.ndarray):
	XT = transpose(X)
	XTX_inv = invert(multiply(XT, X))
	beta = multiply_vector(XTX_inv, multiply_vector(XT, y))
	return beta, XTX_inv


def _linear_prediction(intercept: float, slopes: list[float], xs: list) -> float:
	# shared by the fitted values and predict(); a missing predictor contributes nothing
	prediction = intercept
	for slope, x in zip(slopes, xs):
		if x is not None:
			prediction += slope * x
	return prediction


def _centered_r_squared(y: np.ndarray, residuals: np.ndarray) -> float:
	tss = float(np.sum((y - np.mean(y)) ** 2))
	return 1.0 - div_z_safe(float(np.sum(residuals ** 2)), tss, 1.0)


def calculate_vif(X: np.ndarray, column_names: list[str]) -> dict:
	"""
  Variance inflation factor of every predictor column.

  Each predictor is regressed on all the other columns of the design, intercept included, and
  VIF = 1 / (1 - R^2) with the centered R^2 of that auxiliary fit. When the auxiliary system is
  singular, the predictor has no variance, or R^2 is 1, the VIF is infinite.

  :param X: Design matrix whose first column is the intercept.
  :type X: numpy.ndarray
  :param column_names: Names of the columns of X.
  :type column_names: list[str]
  :returns: Predictor name -> VIF.
  :rtype: dict
  """
	X = np.asarray(X, dtype=np.float64)
	vif = {}
	for i in range(1, X.shape[1]):
		name = column_names[i]
		xi = X[:, i]
		others = np.delete(X, i, axis=1)
		if float(np.sum((xi - np.mean(xi)) ** 2)) == 0:
			vif[name] = float('inf')
			continue
		try:
			beta, _ = _least_squares(others, xi)
		except SingularMatrixError:
			vif[name] = float('inf')
			continue
		r2 = _centered_r_squared(xi, xi - others @ beta)
		if r2 >= 1.0 - 1e-12:
			vif[name] = float('inf')
		else:
			vif[name] = 1.0 / (1.0 - r2)
	return vif


def breusch_pagan(X: np.ndarray, residuals: np.ndarray) -> (float, float):
	"""
  Breusch-Pagan test for heteroskedasticity.

  Squared residuals divided by their mean are regressed on the design; the statistic n * R^2 is
  compared against a chi-square distribution with p - 1 degrees of freedom.

  :returns: The statistic and its p-value. Residuals that are all zero give (0, 1).
  :rtype: tuple(float, float)
  """
	n, p = X.shape
	r2 = np.asarray(residuals, dtype=np.float64) ** 2
	mean_r2 = float(np.mean(r2))
	if mean_r2 == 0 or p < 2:
		return 0.0, 1.0
	g = r2 / mean_r2
	try:
		beta, _ = _least_squares(X, g)
	except SingularMatrixError:
		return 0.0, 1.0
	aux_r2 = max(0.0, _centered_r_squared(g, g - X @ beta))
	statistic = n * aux_r2
	p_value = 1.0 - chi_square_cdf(statistic, p - 1)
	return statistic, min(1.0, max(0.0, p_value))


def residual_spatial_autocorrelation(properties: list[Property], residuals: np.ndarray) -> MoransIResult | None:
	"""
  Moran's I of regression residuals with row-standardized weights 1 / (d + 0.0001 km) between every
  pair of records. Returns None unless every record has coordinates and there are more than 3.
  """
	n = len(properties)
	if n <= 3 or not all(p.has_coordinates() for p in properties):
		return None
	d = distance_matrix_km([p.point for p in properties])
	w = 1.0 / (d + RESIDUAL_WEIGHT_OFFSET_KM)
	np.fill_diagonal(w, 0.0)
	w = w / w.sum(axis=1)[:, None]
	return morans_i_statistic(residuals, w, SIGNIFICANCE)


def _fit(dm: DesignMatrix, weights: np.ndarray = None, spatial_check: bool = True, model_name: str = "ols") -> RegressionModel:
	X = dm.X
	y = dm.y
	n, p = dm.n, dm.p

	if weights is None:
		w = np.ones(n)
	else:
		w = np.asarray(weights, dtype=np.float64)
	sqrt_w = np.sqrt(w)

	# weighted least squares is ordinary least squares on rows scaled by sqrt(w)
	Xw = X * sqrt_w[:, None]
	yw = y * sqrt_w
	beta, XTX_inv = _least_squares(Xw, yw)

	intercept = float(beta[0])
	slopes = [float(b) for b in beta[1:]]
	predicted = np.array([_linear_prediction(intercept, slopes, row[1:].tolist()) for row in X], dtype=np.float64)
	residuals = y - predicted

	w_sum = float(np.sum(w))
	y_mean = float(np.sum(w * y) / w_sum)
	tss = float(np.sum(w * (y - y_mean) ** 2))
	rss = float(np.sum(w * residuals ** 2))
	ess = max(0.0, tss - rss)

	r_squared = div_z_safe(ess, tss)
	adjusted_r_squared = 1.0 - (1.0 - r_squared) * (n - 1) / (n - p)

	if tss == 0:
		f_statistic = 0.0
		f_p_value = 1.0
	elif rss == 0:
		f_statistic = float('inf')
		f_p_value = 0.0
	else:
		f_statistic = (ess / (p - 1)) / (rss / (n - p))
		f_p_value = max(0.0, 1.0 - f_distribution_cdf(f_statistic, p - 1, n - p))

	mse = rss / (n - p)
	variances = np.maximum(np.diag(XTX_inv) * mse, 0.0)
	standard_errors = np.sqrt(variances)

	t_values = np.zeros(p)
	p_values = np.ones(p)
	for j in range(p):
		if standard_errors[j] > 0:
			t_values[j] = beta[j] / standard_errors[j]
			p_values[j] = two_tailed_t_p_value(t_values[j], n - p)

	names = dm.predictors
	vif = calculate_vif(Xw, dm.column_names)
	bp_statistic, bp_p_value = breusch_pagan(Xw, residuals * sqrt_w)
	residual_moran = residual_spatial_autocorrelation(dm.properties, residuals) if spatial_check else None

	diagnostics = RegressionDiagnostics(
		vif=vif,
		breusch_pagan_statistic=bp_statistic,
		breusch_pagan_p_value=bp_p_value,
		residual_morans_i=residual_moran,
		missing_value_count=dm.missing_count,
		no_significant_variables=all([p_values[j] > SIGNIFICANCE for j in range(1, p)])
	)

	return RegressionModel(
		model_name=model_name,
		target=dm.target,
		predictors=list(names),
		intercept=intercept,
		coefficients={name: slopes[j] for j, name in enumerate(names)},
		standard_errors={name: float(standard_errors[j + 1]) for j, name in enumerate(names)},
		t_values={name: float(t_values[j + 1]) for j, name in enumerate(names)},
		p_values={name: float(p_values[j + 1]) for j, name in enumerate(names)},
		intercept_standard_error=float(standard_errors[0]),
		intercept_t_value=float(t_values[0]),
		intercept_p_value=float(p_values[0]),
		r_squared=float(r_squared),
		adjusted_r_squared=float(adjusted_r_squared),
		f_statistic=float(f_statistic),
		p_value=float(f_p_value),
		observations=n,
		used_observations=n,
		residuals=residuals,
		predicted_values=predicted,
		actual_values=y.copy(),
		property_ids=[prop.id for prop in dm.properties],
		data_mean=float(np.mean(y)),
		data_std=float(np.std(y)),
		diagnostics=diagnostics
	)


def ols(properties, target: str, predictors: list[str], spatial_check: bool = True, verbose: bool = False) -> RegressionModel:
	"""
  Ordinary least squares regression through the normal equations, with diagnostics.

  Diagnostics cover multicollinearity (VIF, flagged above 10), heteroskedasticity (Breusch-Pagan at
  the 5% level), spatial autocorrelation of the residuals (Moran's I at the 5% level, only when every
  record has coordinates) and whether any predictor is significant.

  :param properties: Properties, dicts, or a DataFrame.
  :param target: Name of the dependent variable.
  :type target: str
  :param predictors: Names of the independent variables.
  :type predictors: list[str]
  :param spatial_check: Run the residual spatial autocorrelation check.
  :type spatial_check: bool
  :param verbose: Print progress.
  :type verbose: bool
  :returns: The fitted model.
  :rtype: RegressionModel
  :raises InsufficientObservationsError: If the usable records do not outnumber the parameters.
  :raises SingularMatrixError: If the predictors are perfectly collinear.
  """
	dm = build_design_matrix(properties, target, predictors)
	if verbose:
		print(f"--> OLS: {target} ~ {' + '.join(dm.predictors)} on {dm.n} observations ({dm.missing_count} dropped)")
	model = _fit(dm, spatial_check=spatial_check, model_name="ols")
	if verbose:
		print(f"----> r_squared={model.r_squared:.4f}, adjusted={model.adjusted_r_squared:.4f}, F={model.f_statistic:.4f}")
	return model


def weighted_regression(properties, target: str, predictors: list[str], weight_function, spatial_check: bool = True, verbose: bool = False) -> RegressionModel:
	"""
  Weighted least squares regression.

  Every row of the design is scaled by the square root of its weight. R^2 is measured around the
  weighted mean with weighted sums of squares, and the VIF and Breusch-Pagan diagnostics are run on
  the scaled design.

  :param properties: Properties, dicts, or a DataFrame.
  :param target: Name of the dependent variable.
  :type target: str
  :param predictors: Names of the independent variables.
  :type predictors: list[str]
  :param weight_function: Callable returning the non-negative weight of a Property.
  :param spatial_check: Run the residual spatial autocorrelation check.
  :type spatial_check: bool
  :param verbose: Print progress.
  :type verbose: bool
  :returns: The fitted model.
  :rtype: RegressionModel
  :raises ValueError: If a weight is negative or not finite, or all weights are zero.
  """
	dm = build_design_matrix(properties, target, predictors)
	weights = np.array([float(weight_function(p)) for p in dm.properties], dtype=np.float64)
	if not np.all(np.isfinite(weights)):
		raise ValueError("Regression weights must be finite")
	if np.any(weights < 0):
		raise ValueError("Regression weights must be non-negative")
	if np.sum(weights) == 0:
		raise ValueError("Regression weights sum to zero")
	if verbose:
		print(f"--> WLS: {target} ~ {' + '.join(dm.predictors)} on {dm.n} observations ({dm.missing_count} dropped)")
	return _fit(dm, weights=weights, spatial_check=spatial_check, model_name="weighted")


def kernel_function(distance: float, bandwidth: float, kernel: str = KernelType.GAUSSIAN) -> float:
	"""
  Spatial kernel weight for a distance.

  With r = distance / bandwidth: gaussian exp(-r^2 / 2), exponential exp(-r), bisquare (1 - r^2)^2,
  tricube (1 - r^3)^3, boxcar 1. Bisquare, tricube and boxcar are 0 for r >= 1. A non-positive
  bandwidth gives weight 1 at distance 0 and 0 elsewhere.

  :param distance: Distance.
  :type distance: float
  :param bandwidth: Bandwidth, in the same unit as the distance.
  :type bandwidth: float
  :param kernel: Kernel name, see ``KernelType``.
  :type kernel: str
  :returns: The weight.
  :rtype: float
  :raises ValueError: If the kernel is unknown.
  """
	if kernel not in KernelType.ALL:
		raise ValueError(f"Unknown kernel '{kernel}', expected one of {KernelType.ALL}")
	if bandwidth <= 0:
		return 1.0 if distance == 0 else 0.0

	r = distance / bandwidth
	if kernel == KernelType.GAUSSIAN:
		return math.exp(-0.5 * r * r)
	if kernel == KernelType.EXPONENTIAL:
		return math.exp(-r)
	if r >= 1:
		return 0.0
	if kernel == KernelType.BISQUARE:
		return (1.0 - r ** 2) ** 2
	if kernel == KernelType.TRICUBE:
		return (1.0 - r ** 3) ** 3
	return 1.0


def gwr_weights(distances: np.ndarray, bandwidth: float, kernel: str, adaptive: bool) -> np.ndarray:
	"""
  Kernel weights of every observation relative to one regression point.

  With ``adaptive`` the bandwidth is a fraction of n, and the effective bandwidth becomes the
  distance to the floor(n * bandwidth)-th nearest observation (the point itself is the 0th).
  """
	n = len(distances)
	effective = bandwidth
	if adaptive:
		index = min(n - 1, max(0, int(math.floor(n * bandwidth))))
		effective = float(np.sort(distances)[index])
	return np.array([kernel_function(d, effective, kernel) for d in distances], dtype=np.float64)


def gwr(
		properties,
		target: str,
		predictors: list[str],
		bandwidth: float = None,
		kernel: str = KernelType.GAUSSIAN,
		adaptive: bool = False,
		spatial_check: bool = True,
		verbose: bool = False
) -> GWRModel:
	"""
  Geographically weighted regression.

  A weighted least squares fit is solved at every observation, with kernel weights from the
  distances to all other observations. A global OLS on the same records is attached for comparison.

  :param properties: Properties, dicts, or a DataFrame.
  :param target: Name of the dependent variable.
  :type target: str
  :param predictors: Names of the independent variables.
  :type predictors: list[str]
  :param bandwidth: Kernel bandwidth in km, or the neighbor fraction when ``adaptive``. Defaults to sqrt(n) * 0.1.
  :type bandwidth: float, optional
  :param kernel: Kernel name, see ``KernelType``.
  :type kernel: str
  :param adaptive: Interpret the bandwidth as a fraction of the observations.
  :type adaptive: bool
  :param spatial_check: Run the residual spatial autocorrelation check on the global fit.
  :type spatial_check: bool
  :param verbose: Print progress.
  :type verbose: bool
  :returns: The local fits and the global model.
  :rtype: GWRModel
  :raises MissingCoordinatesError: If any usable record has no coordinates.
  :raises SingularMatrixError: If a local system cannot be solved.
  """
	if kernel not in KernelType.ALL:
		raise ValueError(f"Unknown kernel '{kernel}', expected one of {KernelType.ALL}")

	dm = build_design_matrix(properties, target, predictors)
	missing = [p.id for p in dm.properties if not p.has_coordinates()]
	if len(missing) > 0:
		raise MissingCoordinatesError(missing, "GWR")

	n = dm.n
	if bandwidth is None:
		bandwidth = math.sqrt(n) * 0.1
	if bandwidth <= 0:
		raise ValueError(f"Bandwidth must be positive, got {bandwidth}")

	if verbose:
		print(f"--> GWR: {n} observations, kernel={kernel}, bandwidth={bandwidth}, adaptive={adaptive}")

	X = dm.X
	y = dm.y
	coordinates = [(p.latitude, p.longitude) for p in dm.properties]
	distances = distance_matrix_km(coordinates)

	local_coefficients = []
	local_intercepts = np.zeros(n)
	local_r_squared = np.zeros(n)

	for i in range(n):
		w = gwr_weights(distances[i], bandwidth, kernel, adaptive)
		XT_W = transpose(X) * w[None, :]
		try:
			XTWX_inv = invert(multiply(XT_W, X))
		except SingularMatrixError as e:
			raise SingularMatrixError(
				f"Local regression at observation {i} (id {dm.properties[i].id}) is singular; try a larger bandwidth"
			) from e
		beta = multiply_vector(XTWX_inv, multiply_vector(XT_W, y))

		local_intercepts[i] = beta[0]
		local_coefficients.append({name: float(beta[j + 1]) for j, name in enumerate(dm.predictors)})

		y_hat = X @ beta
		w_sum = float(np.sum(w))
		w_mean = float(np.sum(w * y) / w_sum)
		rss = float(np.sum(w * (y - y_hat) ** 2))
		tss = float(np.sum(w * (y - w_mean) ** 2))
		local_r_squared[i] = 1.0 - div_z_safe(rss, tss, 1.0)

		if verbose and (i + 1) % 100 == 0:
			print(f"----> {i+1}/{n} local fits")

	global_model = _fit(dm, spatial_check=spatial_check, model_name="ols")

	if np.any(local_r_squared < 0):
		warnings.warn("Some local fits have a negative R-squared; the bandwidth may be too small")

	return GWRModel(
		global_model,
		local_coefficients=local_coefficients,
		local_intercepts=local_intercepts,
		local_r_squared=local_r_squared,
		bandwidth=float(bandwidth),
		kernel=kernel,
		adaptive=adaptive,
		coordinates=coordinates
	)


def predict(model: RegressionModel, properties) -> np.ndarray:
	"""
  Apply a fitted model's global coefficients. A predictor that is missing on a record contributes
  nothing to that record's prediction.

  :param model: A fitted model.
  :type model: RegressionModel
  :param properties: Properties, dicts, or a DataFrame.
  :returns: One prediction per record, in input order.
  :rtype: numpy.ndarray
  """
	props = to_properties(properties)
	slopes = [model.coefficients[name] for name in model.predictors]
	results = np.zeros(len(props))
	for i, prop in enumerate(props):
		xs = [get_field_value(prop, name) for name in model.predictors]
		results[i] = _linear_prediction(model.intercept, slopes, xs)
	return results


def calculate_variable_importance(model: RegressionModel) -> dict:
	"""
  Relative importance of each predictor: its absolute t value over the sum of absolute t values.
  """
	importance = {name: abs(model.t_values[name]) for name in model.predictors}
	total = sum(importance.values())
	if total == 0:
		return {name: 0.0 for name in model.predictors}
	return {name: value / total for name, value in importance.items()}


def amenity_distance_field(amenity_type: str) -> str:
	return f"distance_to_{amenity_type}"


def nearest_amenity_km(point, amenities: list[Amenity], amenity_type: str) -> float | None:
	"""
  Distance in km from a point to the closest amenity of the given type, or None if there is none.
  """
	distances = [
		distance_km(point, a.point)
		for a in amenities
		if a.amenity_type == amenity_type and a.has_coordinates()
	]
	if len(distances) == 0:
		return None
	return min(distances)


def neighborhood_means(properties, field: str = "value", min_count: int = 1) -> dict:
	"""
  Mean of a numeric field per neighborhood, for neighborhoods with at least ``min_count`` valued records.
  """
	groups = {}
	for p in to_properties(properties):
		hood = get_category(p, "neighborhood")
		value = get_field_value(p, field)
		if hood is None or value is None:
			continue
		groups.setdefault(hood, []).append(value)
	return {hood: float(np.mean(values)) for hood, values in groups.items() if len(values) >= min_count}


def add_amenity_features(properties, amenities, neighborhood_values: dict = None) -> list[Property]:
	"""
  Copies of the properties with the spatial hedonic features stored in ``extra``.

  ``distance_to_<type>`` holds the km distance to the nearest amenity of each type in AMENITY_TYPES
  (records without coordinates, or types with no amenity, get none). ``neighborhood_factor`` holds
  the entry of ``neighborhood_values`` for the record's neighborhood, when there is one.

  :param properties: Properties, dicts, or a DataFrame.
  :param amenities: Amenities or dicts.
  :param neighborhood_values: Neighborhood -> factor value.
  :type neighborhood_values: dict, optional
  :returns: The featured copies, in input order.
  :rtype: list[Property]
  """
	props = to_properties(properties)
	amenities = to_amenities(amenities)
	for p in props:
		if p.has_coordinates():
			for amenity_type in AMENITY_TYPES:
				d = nearest_amenity_km(p.point, amenities, amenity_type)
				if d is not None:
					p.extra[amenity_distance_field(amenity_type)] = d
		hood = get_category(p, "neighborhood")
		if neighborhood_values is not None and hood in neighborhood_values:
			p.extra[NEIGHBORHOOD_FACTOR] = neighborhood_values[hood]
	return props


def _usable_predictor(props: list[Property], name: str) -> bool:
	values = [get_field_value(p, name) for p in props]
	if any(v is None for v in values):
		return False
	return max(values) > min(values)


def spatial_regression(
		properties,
		amenities,
		target: str = "value",
		spatial_check: bool = True,
		verbose: bool = False
) -> SpatialRegressionModel:
	"""
  Spatial hedonic regression of property values.

  Candidate predictors are square footage, year built, the distance to the nearest park, school and
  shopping amenity, and the neighborhood factor (the mean target value of the record's neighborhood,
  for neighborhoods with at least two records). A candidate is used only when every record has it and
  it is not constant. The model is fitted with ``ols``.

  :param properties: Properties, dicts, or a DataFrame.
  :param amenities: Amenities or dicts.
  :param target: Name of the dependent variable.
  :type target: str
  :param spatial_check: Run the residual spatial autocorrelation check.
  :type spatial_check: bool
  :param verbose: Print progress.
  :type verbose: bool
  :returns: The fitted model.
  :rtype: SpatialRegressionModel
  :raises InsufficientObservationsError: If fewer than 10 records have coordinates and a target value.
  :raises ValueError: If no candidate predictor is usable.
  """
	target = normalize_field_name(target)
	props = to_properties(properties)
	valid = [p for p in props if p.has_coordinates() and get_field_value(p, target) is not None]
	if len(valid) < SPATIAL_REGRESSION_MIN_OBSERVATIONS:
		raise InsufficientObservationsError(SPATIAL_REGRESSION_MIN_OBSERVATIONS, len(valid), "spatial regression")

	amenities = to_amenities(amenities)
	featured = add_amenity_features(valid, amenities, neighborhood_means(valid, target, min_count=2))

	candidates = SPATIAL_REGRESSION_BASE_PREDICTORS + [amenity_distance_field(t) for t in AMENITY_TYPES] + [NEIGHBORHOOD_FACTOR]
	predictors = [name for name in candidates if name != target and _usable_predictor(featured, name)]
	if verbose:
		skipped = [name for name in candidates if name not in predictors]
		print(f"--> spatial regression on {len(valid)} of {len(props)} properties, {len(amenities)} amenities")
		print(f"----> predictors: {predictors}, skipped: {skipped}")
	if len(predictors) == 0:
		raise ValueError("No usable predictors for spatial regression")

	model = ols(featured, target, predictors, spatial_check=spatial_check, verbose=verbose)
	# prediction uses every neighborhood seen in training, singletons included
	return SpatialRegressionModel(model, amenities, neighborhood_means(valid, target, min_count=1))
