class AnalysisError(ValueError):
	"""
  Base class for every failure raised by the analysis engines. Subclasses ValueError so that callers
  already catching bad-input errors keep working.
  """
	pass


class InsufficientObservationsError(AnalysisError):
	"""
  Raised when too few usable records remain for the requested analysis.

  :param needed: Minimum number of records the analysis needs.
  :type needed: int
  :param found: Number of usable records that were actually available.
  :type found: int
  :param context: Short description of the analysis, used in the message.
  :type context: str
  """
	needed: int
	found: int

	def __init__(self, needed: int, found: int, context: str = ""):
		self.needed = needed
		self.found = found
		msg = f"Need at least {needed} usable observations, found {found}"
		if context != "":
			msg = f"{context}: {msg}"
		super().__init__(msg)


class SingularMatrixError(AnalysisError):
	"""Raised when a matrix cannot be inverted because a pivot is (numerically) zero."""
	pass


class MissingCoordinatesError(AnalysisError):
	"""Raised when an operation that needs coordinates for every record receives records without them."""
	ids: list

	def __init__(self, ids: list, context: str = ""):
		self.ids = list(ids)
		preview = ", ".join([str(i) for i in self.ids[:5]])
		if len(self.ids) > 5:
			preview += ", ..."
		msg = f"{len(self.ids)} record(s) have no usable coordinates ({preview})"
		if context != "":
			msg = f"{context}: {msg}"
		super().__init__(msg)


class DimensionMismatchError(AnalysisError):
	"""Raised when matrix shapes do not agree for the requested operation."""
	pass
