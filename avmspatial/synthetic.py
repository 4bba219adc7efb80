import numpy as np

from avmspatial.data import Property
from avmspatial.utilities.geometry import offset_coordinate_km


DEFAULT_ORIGIN = (40.7128, -74.0060)


def generate_linear_properties(
		n: int = 100,
		intercept: float = 3.0,
		coefficients: dict = None,
		noise: float = 0.01,
		seed: int = None,
		origin: tuple = DEFAULT_ORIGIN,
		spread_km: float = 5.0
) -> list[Property]:
	"""
	Properties whose value is an exact linear function of extra attributes plus gaussian noise.

	Each predictor named in ``coefficients`` is drawn uniformly from [0, 10) and stored in ``extra``.
	Locations are scattered uniformly within ``spread_km`` of the origin.
	"""
	if coefficients is None:
		coefficients = {"x1": 2.0, "x2": -1.0}
	rng = np.random.default_rng(seed)

	results = []
	for i in range(n):
		extra = {name: float(rng.uniform(0, 10)) for name in coefficients}
		y = intercept + sum([coefficients[name] * extra[name] for name in coefficients])
		y += float(rng.normal(0, noise)) if noise > 0 else 0.0
		lat, lng = offset_coordinate_km(
			origin[0], origin[1],
			float(rng.uniform(-spread_km, spread_km)),
			float(rng.uniform(-spread_km, spread_km))
		)
		results.append(Property(id=i, latitude=lat, longitude=lng, value=y, extra=extra))
	return results


def generate_clustered_properties(
		centers: list,
		per_cluster: int = 10,
		radius_km: float = 0.2,
		value_noise: float = 0.05,
		seed: int = None
) -> list[Property]:
	"""
	Properties scattered around a set of centers.

	:param centers: List of (lat, lng, mean_value, property_type) tuples; property_type may be omitted.
	:type centers: list
	:param per_cluster: Number of properties around each center.
	:type per_cluster: int
	:param radius_km: Largest offset from the center, north/south and east/west.
	:type radius_km: float
	:param value_noise: Relative standard deviation of the values around the center's mean.
	:type value_noise: float
	:param seed: Random seed.
	:type seed: int, optional
	:returns: The properties; ``neighborhood`` holds the index of the center they were drawn around.
	:rtype: list[Property]
	"""
	rng = np.random.default_rng(seed)
	results = []
	for c, center in enumerate(centers):
		lat0, lng0, mean_value = center[0], center[1], center[2]
		property_type = center[3] if len(center) > 3 else "Residential"
		for _ in range(per_cluster):
			lat, lng = offset_coordinate_km(
				lat0, lng0,
				float(rng.uniform(-radius_km, radius_km)),
				float(rng.uniform(-radius_km, radius_km))
			)
			value = mean_value * (1.0 + float(rng.normal(0, value_noise)))
			results.append(Property(
				id=len(results),
				latitude=lat,
				longitude=lng,
				value=value,
				square_feet=float(rng.uniform(1000, 3000)),
				year_built=float(rng.integers(1950, 2020)),
				property_type=property_type,
				neighborhood=f"cluster_{c}"
			))
	return results


def generate_grid_properties(
		rows: int = 8,
		cols: int = 8,
		spacing_km: float = 0.5,
		pattern: str = "clustered",
		seed: int = None,
		origin: tuple = DEFAULT_ORIGIN,
		base_value: float = 300000.0
) -> list[Property]:
	"""
	Properties on a regular grid with a chosen spatial pattern of values.

	- "clustered": values rise smoothly from one corner of the grid to the other
	- "dispersed": a checkerboard of high and low values
	- "random": independent draws, no spatial structure
	"""
	if pattern not in ["clustered", "dispersed", "random"]:
		raise ValueError(f"Unknown pattern '{pattern}'")
	rng = np.random.default_rng(seed)

	results = []
	for r in range(rows):
		for c in range(cols):
			lat, lng = offset_coordinate_km(origin[0], origin[1], r * spacing_km, c * spacing_km)
			if pattern == "clustered":
				value = base_value * (1.0 + 0.1 * (r + c)) + float(rng.normal(0, base_value * 0.01))
			elif pattern == "dispersed":
				value = base_value * (1.5 if (r + c) % 2 == 0 else 0.5)
			else:
				value = base_value * (1.0 + float(rng.normal(0, 0.2)))
			results.append(Property(id=len(results), latitude=lat, longitude=lng, value=value))
	return results
