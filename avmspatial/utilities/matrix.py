import numpy as np

from avmspatial.utilities.errors import DimensionMismatchError, SingularMatrixError


PIVOT_EPSILON = 1e-10


def _as_matrix(m) -> np.ndarray:
  arr = np.array(m, dtype=np.float64)
  if arr.ndim == 1:
    arr = arr.reshape(1, -1)
  if arr.ndim != 2:
    raise DimensionMismatchError(f"Expected a 2-dimensional matrix, got {arr.ndim} dimensions")
  return arr


def identity(n: int) -> np.ndarray:
  return np.eye(n, dtype=np.float64)


def transpose(m) -> np.ndarray:
  """
  Return the transpose of a matrix as a new array.

  :param m: Matrix as a 2D array or a list of rows.
  :type m: array-like
  :returns: A new (cols x rows) array.
  :rtype: numpy.ndarray
  """
  return _as_matrix(m).T.copy()


def multiply(a, b) -> np.ndarray:
  """
  Multiply two matrices.

  :param a: Left matrix (n x k).
  :type a: array-like
  :param b: Right matrix (k x m).
  :type b: array-like
  :returns: The (n x m) product.
  :rtype: numpy.ndarray
  :raises DimensionMismatchError: If the column count of ``a`` differs from the row count of ``b``.
  """
  a = _as_matrix(a)
  b = _as_matrix(b)
  if a.shape[1] != b.shape[0]:
    raise DimensionMismatchError(
      f"Cannot multiply a {a.shape[0]}x{a.shape[1]} matrix by a {b.shape[0]}x{b.shape[1]} matrix"
    )
  return a @ b


def multiply_vector(m, v) -> np.ndarray:
  m = _as_matrix(m)
  v = np.array(v, dtype=np.float64).ravel()
  if m.shape[1] != len(v):
    raise DimensionMismatchError(
      f"Cannot multiply a {m.shape[0]}x{m.shape[1]} matrix by a vector of length {len(v)}"
    )
  return m @ v


def invert(m, epsilon: float = PIVOT_EPSILON) -> np.ndarray:
  """
  Invert a square matrix using Gauss-Jordan elimination with partial pivoting.

  At every column the row with the largest absolute value at or below the diagonal is swapped into
  the pivot position. If that value is smaller than ``epsilon`` the matrix is treated as singular.

  :param m: Square matrix.
  :type m: array-like
  :param epsilon: Smallest pivot magnitude accepted.
  :type epsilon: float
  :returns: The inverse as a new array.
  :rtype: numpy.ndarray
  :raises DimensionMismatchError: If the matrix is not square.
  :raises SingularMatrixError: If a pivot falls below ``epsilon``.
  """
  a = _as_matrix(m)
  n = a.shape[0]
  if a.shape[1] != n:
    raise DimensionMismatchError(f"Only square matrices can be inverted, got {a.shape[0]}x{a.shape[1]}")

  # augmented matrix [A | I]
  aug = np.hstack([a, identity(n)])

  for col in range(n):
    pivot_row = col + int(np.argmax(np.abs(aug[col:, col])))
    pivot = aug[pivot_row, col]
    if abs(pivot) < epsilon:
      raise SingularMatrixError(f"Matrix is singular (pivot {pivot:.3e} in column {col})")
    if pivot_row != col:
      aug[[col, pivot_row]] = aug[[pivot_row, col]]

    aug[col] = aug[col] / aug[col, col]
    for row in range(n):
      if row == col:
        continue
      factor = aug[row, col]
      if factor != 0.0:
        aug[row] = aug[row] - factor * aug[col]

  return aug[:, n:].copy()
