import numpy as np
import pytest

from avmspatial.utilities.assertions import matrices_are_equal
from avmspatial.utilities.errors import DimensionMismatchError, SingularMatrixError
from avmspatial.utilities.matrix import transpose, multiply, multiply_vector, invert, identity


def test_transpose():
  m = [[1, 2, 3], [4, 5, 6]]
  t = transpose(m)
  assert t.shape == (3, 2)
  assert matrices_are_equal(t, [[1, 4], [2, 5], [3, 6]])


def test_multiply():
  a = [[1, 2], [3, 4]]
  b = [[5, 6], [7, 8]]
  assert matrices_are_equal(multiply(a, b), [[19, 22], [43, 50]])
  assert matrices_are_equal(multiply_vector(a, [1, 1]).reshape(1, -1), [[3, 7]])

  with pytest.raises(DimensionMismatchError):
    multiply([[1, 2, 3]], [[1, 2, 3]])

  with pytest.raises(DimensionMismatchError):
    multiply_vector([[1, 2, 3]], [1, 2])


def test_invert_identity_round_trip():
  m = np.array([
    [4.0, 7.0, 2.0],
    [3.0, 6.0, 1.0],
    [2.0, 5.0, 3.0]
  ])
  original = m.copy()
  inv = invert(m)
  assert matrices_are_equal(multiply(m, inv), identity(3), 1e-9)
  assert matrices_are_equal(multiply(inv, m), identity(3), 1e-9)

  # input untouched, output not aliased
  assert matrices_are_equal(m, original, 0.0 + 1e-15)
  inv[0, 0] = 999.0
  assert m[0, 0] == 4.0


def test_invert_needs_pivoting():
  # zero on the diagonal: only works with row swaps
  m = [[0.0, 1.0], [1.0, 0.0]]
  assert matrices_are_equal(invert(m), m)

  m = [[0.0, 2.0, 1.0], [1.0, 0.0, 0.0], [3.0, 1.0, 0.0]]
  assert matrices_are_equal(multiply(m, invert(m)), identity(3), 1e-9)


def test_invert_random_matches_numpy():
  rng = np.random.default_rng(7)
  for size in [2, 5, 8]:
    m = rng.normal(size=(size, size)) + np.eye(size) * size
    assert matrices_are_equal(invert(m), np.linalg.inv(m), 1e-8)


def test_invert_singular():
  with pytest.raises(SingularMatrixError):
    invert([[1.0, 2.0], [2.0, 4.0]])

  with pytest.raises(SingularMatrixError):
    invert(np.zeros((3, 3)))


def test_invert_not_square():
  with pytest.raises(DimensionMismatchError):
    invert([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
