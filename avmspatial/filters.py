import pandas as pd

from avmspatial.data import Property, to_properties, properties_to_df, get_field_value, normalize_field_name
from avmspatial.utilities.geometry import distance_km, is_in_polygon


def select_filter(df: pd.DataFrame, f: list) -> pd.DataFrame:
  """
  Select a subset of the DataFrame based on a list of filters.

  :param df: Input DataFrame.
  :type df: pandas.DataFrame
  :param f: Filter expressed as a list.
  :type f: list
  :returns: Filtered DataFrame.
  :rtype: pandas.DataFrame
  """
  resolved_index = resolve_filter(df, f)
  return df.loc[resolved_index]


def resolve_not_filter(df: pd.DataFrame, f: list) -> pd.Series:
  """
  Resolve a NOT filter.

  The first element of the filter list must be "not", followed by a filter list.

  :param df: Input DataFrame.
  :type df: pandas.DataFrame
  :param f: Filter list.
  :type f: list
  :returns: Boolean Series resulting from applying the NOT operator.
  :rtype: pandas.Series
  """
  if len(f) < 2:
    raise ValueError("NOT operator requires at least one argument")

  values = f[1:]
  if len(values) > 1:
    raise ValueError(f"NOT operator only accepts one argument")

  selected_index = resolve_filter(df, values[0])
  return ~selected_index


def resolve_bool_filter(df: pd.DataFrame, f: list) -> pd.Series:
  """
  Resolve a list of filters using a boolean operator.

  Iterates through each filter in the list (after the operator) and combines their boolean indices
  using the specified boolean operator ("and", "or", "nand", "nor", "xor", "xnor").

  :param df: Input DataFrame.
  :type df: pandas.DataFrame
  :param f: List where the first element is the boolean operator and the remaining elements are filter objects.
  :type f: list
  :returns: Boolean Series resulting from applying the boolean operator.
  :rtype: pandas.Series
  """
  operator = f[0]
  values = f[1:]

  final_index = None

  for v in values:
    selected_index = resolve_filter(df, v)

    if final_index is None:
      final_index = selected_index
      continue

    if operator == "and":
      final_index = final_index & selected_index
    elif operator == "nand":
      final_index = ~(final_index & selected_index)
    elif operator == "or":
      final_index = final_index | selected_index
    elif operator == "nor":
      final_index = ~(final_index | selected_index)
    elif operator == "xor":
      final_index = final_index ^ selected_index
    elif operator == "xnor":
      final_index = ~(final_index ^ selected_index)

  if final_index is None:
    return pd.Series(True, index=df.index)
  return final_index


def resolve_spatial_filter(df: pd.DataFrame, f: list) -> pd.Series:
  """
  Resolve a spatial filter. Rows without coordinates never match.

  Supported forms:

  - ``["within_radius", [lat, lng], radius_km]``
  - ``["in_polygon", polygon]`` where polygon is a list of (lat, lng) pairs or a shapely Polygon
  - ``["in_bbox", [min_lat, min_lng, max_lat, max_lng]]``

  :param df: DataFrame with ``latitude`` and ``longitude`` columns.
  :type df: pandas.DataFrame
  :param f: Filter list.
  :type f: list
  :returns: Boolean Series.
  :rtype: pandas.Series
  """
  operator = f[0]
  lat = pd.to_numeric(df["latitude"], errors="coerce")
  lng = pd.to_numeric(df["longitude"], errors="coerce")
  has_coords = lat.notna() & lng.notna()

  if operator == "within_radius":
    if len(f) != 3:
      raise ValueError("within_radius requires a center and a radius")
    center = f[1]
    radius_km = f[2]
    result = [
      bool(ok) and distance_km((a, b), center) <= radius_km
      for a, b, ok in zip(lat, lng, has_coords)
    ]
  elif operator == "in_polygon":
    polygon = f[1]
    result = [
      bool(ok) and is_in_polygon((a, b), polygon)
      for a, b, ok in zip(lat, lng, has_coords)
    ]
  elif operator == "in_bbox":
    min_lat, min_lng, max_lat, max_lng = f[1]
    return has_coords & lat.ge(min_lat) & lat.le(max_lat) & lng.ge(min_lng) & lng.le(max_lng)
  else:
    raise ValueError(f"Unknown spatial operator {operator}")

  return pd.Series(result, index=df.index, dtype=bool)


def resolve_filter(df: pd.DataFrame, f: list) -> pd.Series:
  """
  Resolve a filter list into a boolean Series for the DataFrame (which can be used for selection).

  For basic operators, the filter list must contain an operator, a field, and an optional value.
  For boolean operators, the filter list must contain a boolean operator, followed by a list of filters.
  Spatial operators are described in ``resolve_spatial_filter``. Missing values never satisfy a
  numeric comparison.

  :param df: Input DataFrame.
  :type df: pandas.DataFrame
  :param f: Filter list.
  :type f: list
  :returns: Boolean Series corresponding to the filter.
  :rtype: pandas.Series
  :raises ValueError: If the operator is unknown.
  """

  if len(f) == 0:
    return pd.Series(False, index=df.index)

  operator = f[0]

  # check if operator is a boolean operator:
  if operator == "not":
    return resolve_not_filter(df, f)
  elif _is_bool_operator(operator):
    return resolve_bool_filter(df, f)
  elif _is_spatial_operator(operator):
    return resolve_spatial_filter(df, f)
  else:
    field = normalize_field_name(f[1])
    if field not in df:
      raise ValueError(f"Unknown field {f[1]}")

    if len(f) == 3:
      value = f[2]
    else:
      value = None

    if isinstance(value, str):
      if value.startswith("str:"):
        value = value[4:]

    col = df[field]
    if operator in [">", "<", ">=", "<="]:
      num = pd.to_numeric(col, errors="coerce")
      if operator == ">": return num.gt(value).fillna(False)
      if operator == "<": return num.lt(value).fillna(False)
      if operator == ">=": return num.ge(value).fillna(False)
      if operator == "<=": return num.le(value).fillna(False)
    if operator == "==": return col.eq(value)
    if operator == "!=": return col.ne(value)
    if operator == "isin": return col.isin(value)
    if operator == "notin": return ~col.isin(value)
    if operator == "isempty": return pd.isna(col) | col.astype(str).str.strip().eq("")
    if operator == "iszero": return col.eq(0)
    if operator == "contains":
      text = col.astype(str).where(col.notna(), "")
      if isinstance(value, str):
        selection = text.str.contains(value, regex=False)
      elif isinstance(value, list):
        selection = text.str.contains(value[0], regex=False)
        for v in value[1:]: selection |= text.str.contains(v, regex=False)
      else:
        raise ValueError(f"Value must be a string or list for operator {operator}, found: {type(value)}")
      return selection

  raise ValueError(f"Unknown operator {operator}")


def validate_filter_list(filters: list[list]):
  """
  Validate a list of filter lists.

  :param filters: List of filters (each filter is a list).
  :type filters: list[list]
  :returns: True if all filters are valid.
  :rtype: bool
  """
  for f in filters:
    validate_filter(f)
  return True


def validate_filter(f: list):
  """
  Validate a single filter list.

  Checks that the filter's operator is appropriate for the value type.

  :param f: Filter expressed as a list.
  :type f: list
  :returns: True if the filter is valid.
  :rtype: bool
  :raises ValueError: If the value type does not match the operator requirements.
  """
  operator = f[0]
  if operator == "not" or _is_bool_operator(operator):
    for sub in f[1:]:
      validate_filter(sub)
  elif operator == "within_radius":
    if len(f) != 3 or len(list(f[1])) != 2 or not isinstance(f[2], (int, float)):
      raise ValueError("within_radius expects a [lat, lng] center and a numeric radius")
    if f[2] < 0:
      raise ValueError("within_radius expects a non-negative radius")
  elif operator == "in_polygon":
    if len(f) != 2:
      raise ValueError("in_polygon expects a single polygon")
  elif operator == "in_bbox":
    if len(f) != 2 or len(f[1]) != 4:
      raise ValueError("in_bbox expects [min_lat, min_lng, max_lat, max_lng]")
  else:
    value = f[2] if len(f) > 2 else None

    if operator in [">", "<", ">=", "<="]:
      if not isinstance(value, (int, float, bool)):
        raise ValueError(f"Value must be a number for operator {operator}")
    if operator in ["isin", "notin"]:
      if not isinstance(value, list):
        raise ValueError(f"Value must be a list for operator {operator}")
    if operator == "contains":
      if not isinstance(value, str):
        raise ValueError(f"Value must be a string for operator {operator}")
  return True


def build_filter(
    center=None,
    radius_km: float = None,
    polygon=None,
    bbox=None,
    neighborhood: str = None,
    property_type: str = None,
    min_value: float = None,
    max_value: float = None
) -> list:
  """
  Build an "and" filter list from individual search criteria. Criteria left as None are ignored.
  """
  parts = []
  if center is not None and radius_km is not None:
    parts.append(["within_radius", list(center), radius_km])
  if polygon is not None:
    parts.append(["in_polygon", polygon])
  if bbox is not None:
    parts.append(["in_bbox", list(bbox)])
  if neighborhood is not None:
    parts.append(["==", "neighborhood", neighborhood])
  if property_type is not None:
    parts.append(["==", "property_type", property_type])
  if min_value is not None:
    parts.append([">=", "value", min_value])
  if max_value is not None:
    parts.append(["<=", "value", max_value])
  if len(parts) == 0:
    return []
  return ["and"] + parts


def filter_properties(properties, f: list = None) -> list[Property]:
  """
  Return copies of the properties that satisfy the filter. An empty or missing filter keeps everything.

  :param properties: Properties, dicts, or a DataFrame.
  :param f: Filter expressed as a list.
  :type f: list, optional
  :returns: Matching properties, in input order.
  :rtype: list[Property]
  """
  props = to_properties(properties)
  if f is None or len(f) == 0 or len(props) == 0:
    return props
  validate_filter(f)
  df = properties_to_df(props)
  mask = resolve_filter(df, f).to_numpy(dtype=bool)
  return [p for p, keep in zip(props, mask) if keep]


def sort_properties(properties, sort_by: str = None, ascending: bool = True) -> list[Property]:
  """
  Sort copies of the properties by a numeric field. Records with no numeric value go last.
  """
  props = to_properties(properties)
  if sort_by is None:
    return props
  present = [p for p in props if get_field_value(p, sort_by) is not None]
  missing = [p for p in props if get_field_value(p, sort_by) is None]
  present.sort(key=lambda p: get_field_value(p, sort_by), reverse=not ascending)
  return present + missing


def _is_bool_operator(s: str) -> bool:
  return s in ["and", "or", "nand", "nor", "xor", "xnor"]


def _is_spatial_operator(s: str) -> bool:
  return s in ["within_radius", "in_polygon", "in_bbox"]
