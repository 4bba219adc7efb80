import math
from dataclasses import dataclass, field, fields

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely

from avmspatial.utilities.geometry import Point


NUMERIC_FIELDS = ["value", "square_feet", "year_built", "land_value", "sale_price"]
CATEGORICAL_FIELDS = ["property_type", "neighborhood"]
COORDINATE_FIELDS = ["latitude", "longitude"]
AMENITY_TYPES = ["park", "school", "shopping"]

# names used by the web client, accepted on input
FIELD_ALIASES = {
	"squareFeet": "square_feet",
	"yearBuilt": "year_built",
	"landValue": "land_value",
	"salePrice": "sale_price",
	"propertyType": "property_type",
	"lat": "latitude",
	"lng": "longitude",
	"lon": "longitude",
}


def normalize_field_name(name: str) -> str:
	return FIELD_ALIASES.get(name, name)


def to_number(x):
	"""
  Coerce a raw field value to a finite float.

  Numeric strings such as "500000" or "1,250,000" are parsed. Returns None for nulls, NaN, infinities,
  booleans and anything that does not parse.
  """
	if x is None or isinstance(x, bool):
		return None
	if isinstance(x, str):
		s = x.strip().replace(",", "")
		if s == "":
			return None
		try:
			x = float(s)
		except ValueError:
			return None
	try:
		x = float(x)
	except (TypeError, ValueError):
		return None
	if math.isnan(x) or math.isinf(x):
		return None
	return x


@dataclass
class Property:
	"""
  A single parcel record.

  Numeric attributes may hold raw input (strings included); use ``get_field_value`` to read them as
  numbers. Coordinates are stored already coerced, so ``None`` means the record has no location.
  """
	id: object
	latitude: float | None = None
	longitude: float | None = None
	value: object = None
	square_feet: object = None
	year_built: object = None
	land_value: object = None
	sale_price: object = None
	property_type: str | None = None
	neighborhood: str | None = None
	extra: dict = field(default_factory=dict)

	def __post_init__(self):
		# NaN, infinite or unparseable coordinates mean no location
		self.latitude = to_number(self.latitude)
		self.longitude = to_number(self.longitude)

	def has_coordinates(self) -> bool:
		return self.latitude is not None and self.longitude is not None

	@property
	def point(self) -> Point | None:
		if not self.has_coordinates():
			return None
		return Point(self.latitude, self.longitude)

	def copy(self):
		return Property(
			id=self.id,
			latitude=self.latitude,
			longitude=self.longitude,
			value=self.value,
			square_feet=self.square_feet,
			year_built=self.year_built,
			land_value=self.land_value,
			sale_price=self.sale_price,
			property_type=self.property_type,
			neighborhood=self.neighborhood,
			extra=dict(self.extra)
		)


_PROPERTY_FIELDS = [f.name for f in fields(Property) if f.name != "extra"]


def get_raw_value(prop: Property, name: str):
	name = normalize_field_name(name)
	if name in _PROPERTY_FIELDS:
		return getattr(prop, name)
	return prop.extra.get(name, None)


def get_field_value(prop: Property, name: str) -> float | None:
	"""
  Read a named attribute of a property as a finite float, or None if it is missing or not numeric.

  :param prop: The property.
  :type prop: Property
  :param name: Field name; camelCase aliases are accepted.
  :type name: str
  :returns: The numeric value or None.
  :rtype: float | None
  """
	return to_number(get_raw_value(prop, name))


def get_category(prop: Property, name: str) -> str | None:
	raw = get_raw_value(prop, name)
	if raw is None or (isinstance(raw, float) and math.isnan(raw)):
		return None
	return str(raw)


def has_coordinates(prop: Property) -> bool:
	return prop.has_coordinates()


def property_from_dict(d: dict, default_id=None) -> Property:
	kwargs = {"extra": {}}
	for key in d:
		name = normalize_field_name(key)
		entry = d[key]
		if name == "extra" and isinstance(entry, dict):
			kwargs["extra"].update(entry)
		elif name in _PROPERTY_FIELDS:
			kwargs[name] = entry
		else:
			kwargs["extra"][name] = entry

	# nested {"coordinates": {"latitude": .., "longitude": ..}} as sent by the client
	coords = kwargs["extra"].pop("coordinates", None)
	if isinstance(coords, dict):
		kwargs.setdefault("latitude", coords.get("latitude", coords.get("lat")))
		kwargs.setdefault("longitude", coords.get("longitude", coords.get("lng")))

	if "id" not in kwargs or kwargs["id"] is None or (isinstance(kwargs["id"], float) and math.isnan(kwargs["id"])):
		kwargs["id"] = default_id

	for name in COORDINATE_FIELDS:
		kwargs[name] = to_number(kwargs.get(name, None))

	for name in CATEGORICAL_FIELDS:
		v = kwargs.get(name, None)
		if v is not None and not (isinstance(v, float) and math.isnan(v)):
			kwargs[name] = str(v)
		else:
			kwargs[name] = None

	return Property(**kwargs)


def _df_to_dicts(df: pd.DataFrame) -> list[dict]:
	df = df.copy()
	if isinstance(df, gpd.GeoDataFrame) and df.geometry.name in df.columns:
		geom_name = df.geometry.name
		has_lat = "latitude" in df.columns or "lat" in df.columns
		has_lng = "longitude" in df.columns or "lng" in df.columns or "lon" in df.columns
		if not (has_lat and has_lng):
			lats = []
			lngs = []
			for geom in df.geometry:
				if geom is None or geom.is_empty:
					lats.append(None)
					lngs.append(None)
				else:
					c = geom if geom.geom_type == "Point" else geom.centroid
					lats.append(c.y)
					lngs.append(c.x)
			df["latitude"] = lats
			df["longitude"] = lngs
		df = pd.DataFrame(df.drop(columns=[geom_name]))
	return df.to_dict(orient="records")


def to_properties(data) -> list[Property]:
	"""
  Convert caller input into a fresh list of Property records.

  The input is never modified; every record returned is a copy.

  :param data: A list of Property objects or dicts, or a pandas DataFrame / geopandas GeoDataFrame.
  :returns: List of Property.
  :rtype: list[Property]
  """
	if data is None:
		return []
	if isinstance(data, pd.DataFrame):
		records = _df_to_dicts(data)
	else:
		records = list(data)

	results = []
	for i, entry in enumerate(records):
		if isinstance(entry, Property):
			results.append(entry.copy())
		elif isinstance(entry, dict):
			results.append(property_from_dict(entry, default_id=i))
		else:
			raise ValueError(f"Cannot interpret record {i} of type {type(entry).__name__} as a property")
	return results


@dataclass
class Amenity:
	"""A point of interest (park, school, shopping) whose distance to a property can affect its value."""
	id: object
	amenity_type: str
	latitude: float | None = None
	longitude: float | None = None
	name: str | None = None

	def __post_init__(self):
		self.latitude = to_number(self.latitude)
		self.longitude = to_number(self.longitude)

	def has_coordinates(self) -> bool:
		return self.latitude is not None and self.longitude is not None

	@property
	def point(self) -> Point | None:
		if not self.has_coordinates():
			return None
		return Point(self.latitude, self.longitude)


def amenity_from_dict(d: dict, default_id=None) -> Amenity:
	amenity_type = d.get("amenity_type", d.get("type"))
	coords = d.get("coordinates")
	lat = d.get("latitude", d.get("lat"))
	lng = d.get("longitude", d.get("lng", d.get("lon")))
	if isinstance(coords, dict):
		lat = coords.get("latitude", coords.get("lat")) if lat is None else lat
		lng = coords.get("longitude", coords.get("lng")) if lng is None else lng
	return Amenity(
		id=d.get("id", default_id),
		amenity_type=str(amenity_type) if amenity_type is not None else None,
		latitude=lat,
		longitude=lng,
		name=d.get("name")
	)


def to_amenities(data) -> list[Amenity]:
	"""
  Convert caller input into a fresh list of Amenity records.

  :param data: A list of Amenity objects or dicts (``type`` is accepted for ``amenity_type``), or a DataFrame.
  :returns: List of Amenity.
  :rtype: list[Amenity]
  """
	if data is None:
		return []
	if isinstance(data, pd.DataFrame):
		records = _df_to_dicts(data)
	else:
		records = list(data)

	results = []
	for i, entry in enumerate(records):
		if isinstance(entry, Amenity):
			results.append(Amenity(entry.id, entry.amenity_type, entry.latitude, entry.longitude, entry.name))
		elif isinstance(entry, dict):
			results.append(amenity_from_dict(entry, default_id=i))
		else:
			raise ValueError(f"Cannot interpret record {i} of type {type(entry).__name__} as an amenity")
	return results


def properties_to_df(properties: list[Property]) -> pd.DataFrame:
	"""
  Flatten properties into a DataFrame, numeric attributes coerced to floats (NaN when missing).
  """
	rows = []
	for p in properties:
		row = {
			"id": p.id,
			"latitude": p.latitude if p.latitude is not None else np.nan,
			"longitude": p.longitude if p.longitude is not None else np.nan,
		}
		for name in NUMERIC_FIELDS:
			v = get_field_value(p, name)
			row[name] = v if v is not None else np.nan
		for name in CATEGORICAL_FIELDS:
			row[name] = get_category(p, name)
		for key in p.extra:
			raw = p.extra[key]
			num = to_number(raw)
			row[key] = num if num is not None else raw
		rows.append(row)
	columns = ["id"] + COORDINATE_FIELDS + NUMERIC_FIELDS + CATEGORICAL_FIELDS
	df = pd.DataFrame(rows)
	if len(rows) == 0:
		df = pd.DataFrame(columns=columns)
	return df


def properties_to_gdf(properties: list[Property], crs="EPSG:4326") -> gpd.GeoDataFrame:
	df = properties_to_df(properties)
	geometry = [
		shapely.Point(p.longitude, p.latitude) if p.has_coordinates() else None
		for p in properties
	]
	return gpd.GeoDataFrame(df, geometry=geometry, crs=crs)
