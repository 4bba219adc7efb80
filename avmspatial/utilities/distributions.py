import math


# Lanczos approximation, g = 7, n = 9
LANCZOS_G = 7
LANCZOS_COEFFICIENTS = [
  0.99999999999980993,
  676.5203681218851,
  -1259.1392167224028,
  771.32342877765313,
  -176.61502916214059,
  12.507343278686905,
  -0.13857109526572012,
  9.9843695780195716e-6,
  1.5056327351493116e-7
]

_TINY = 1e-30


def normal_pdf(z: float) -> float:
  return math.exp(-0.5 * z * z) / math.sqrt(2.0 * math.pi)


def normal_cdf(z: float) -> float:
  """
  Standard normal cumulative distribution function.

  Evaluated with the power series sum(z^(2k+1) / (1*3*5*...*(2k+1))) scaled by the density, which
  converges quickly for moderate z. Beyond +/-8 the result is clamped to 1 or 0.

  :param z: Z-score.
  :type z: float
  :returns: P(Z <= z).
  :rtype: float
  """
  if math.isnan(z):
    return float('nan')
  if z < -8.0:
    return 0.0
  if z > 8.0:
    return 1.0

  total = 0.0
  term = z
  i = 3
  while total + term != total and i < 2000:
    total += term
    term = term * z * z / i
    i += 2

  return 0.5 + total * normal_pdf(z)


def erf(x: float) -> float:
  """
  Error function, Abramowitz and Stegun formula 7.1.26 (maximum error about 1.5e-7).

  :param x: Input value.
  :type x: float
  :returns: erf(x)
  :rtype: float
  """
  a1 = 0.254829592
  a2 = -0.284496736
  a3 = 1.421413741
  a4 = -1.453152027
  a5 = 1.061405429
  p = 0.3275911

  sign = -1.0 if x < 0 else 1.0
  x = abs(x)

  t = 1.0 / (1.0 + p * x)
  y = 1.0 - (((((a5 * t + a4) * t) + a3) * t + a2) * t + a1) * t * math.exp(-x * x)
  return sign * y


def log_gamma(z: float) -> float:
  """
  Natural log of |Gamma(z)| from the Lanczos series.

  :param z: Input value; must not be zero or a negative integer.
  :type z: float
  :returns: ln|Gamma(z)|
  :rtype: float
  """
  if z < 0.5:
    # reflection: Gamma(z) * Gamma(1 - z) = pi / sin(pi * z)
    s = math.sin(math.pi * z)
    if s == 0.0:
      return float('inf')
    return math.log(math.pi / abs(s)) - log_gamma(1.0 - z)

  z -= 1.0
  x = LANCZOS_COEFFICIENTS[0]
  for i in range(1, len(LANCZOS_COEFFICIENTS)):
    x += LANCZOS_COEFFICIENTS[i] / (z + i)
  t = z + LANCZOS_G + 0.5
  return 0.5 * math.log(2.0 * math.pi) + (z + 0.5) * math.log(t) - t + math.log(x)


def gamma_function(z: float) -> float:
  """
  Gamma function via the Lanczos approximation, using the reflection formula for z < 0.5.

  :param z: Input value.
  :type z: float
  :returns: Gamma(z), or infinity at the poles and on overflow.
  :rtype: float
  """
  if z < 0.5:
    s = math.sin(math.pi * z)
    if s == 0.0:
      return float('inf')
    return math.pi / (s * gamma_function(1.0 - z))

  lg = log_gamma(z)
  if lg > 709.0:
    return float('inf')
  return math.exp(lg)


def log_beta(a: float, b: float) -> float:
  return log_gamma(a) + log_gamma(b) - log_gamma(a + b)


def beta_function(a: float, b: float) -> float:
  return math.exp(log_beta(a, b))


def _beta_continued_fraction(x: float, a: float, b: float, max_iterations: int, tolerance: float) -> float:
  # modified Lentz evaluation of the continued fraction for I_x(a, b)
  qab = a + b
  qap = a + 1.0
  qam = a - 1.0
  c = 1.0
  d = 1.0 - qab * x / qap
  if abs(d) < _TINY:
    d = _TINY
  d = 1.0 / d
  h = d

  for m in range(1, max_iterations + 1):
    m2 = 2 * m

    # even step
    aa = m * (b - m) * x / ((qam + m2) * (a + m2))
    d = 1.0 + aa * d
    if abs(d) < _TINY:
      d = _TINY
    c = 1.0 + aa / c
    if abs(c) < _TINY:
      c = _TINY
    d = 1.0 / d
    h *= d * c

    # odd step
    aa = -(a + m) * (qab + m) * x / ((a + m2) * (qap + m2))
    d = 1.0 + aa * d
    if abs(d) < _TINY:
      d = _TINY
    c = 1.0 + aa / c
    if abs(c) < _TINY:
      c = _TINY
    d = 1.0 / d
    delta = d * c
    h *= delta

    if abs(delta - 1.0) < tolerance:
      break

  return h


def beta_incomplete(x: float, a: float, b: float, max_iterations: int = 200, tolerance: float = 1e-8) -> float:
  """
  Regularized incomplete beta function I_x(a, b).

  Uses the continued fraction on whichever side of the distribution converges fastest: directly
  when x < (a + 1) / (a + b + 2), otherwise through the symmetry I_x(a, b) = 1 - I_(1-x)(b, a).

  :param x: Upper integration bound in [0, 1].
  :type x: float
  :param a: First shape parameter (> 0).
  :type a: float
  :param b: Second shape parameter (> 0).
  :type b: float
  :param max_iterations: Iteration cap for the continued fraction.
  :type max_iterations: int
  :param tolerance: Convergence tolerance.
  :type tolerance: float
  :returns: I_x(a, b)
  :rtype: float
  """
  if math.isnan(x):
    return float('nan')
  if x <= 0.0:
    return 0.0
  if x >= 1.0:
    return 1.0

  ln_front = a * math.log(x) + b * math.log(1.0 - x) - log_beta(a, b)
  front = math.exp(ln_front)

  if x < (a + 1.0) / (a + b + 2.0):
    return front * _beta_continued_fraction(x, a, b, max_iterations, tolerance) / a
  return 1.0 - front * _beta_continued_fraction(1.0 - x, b, a, max_iterations, tolerance) / b


def regularized_lower_gamma(s: float, x: float, max_iterations: int = 200, tolerance: float = 1e-10) -> float:
  """
  Regularized lower incomplete gamma function P(s, x).

  :param s: Shape parameter (> 0).
  :type s: float
  :param x: Upper integration bound.
  :type x: float
  :returns: P(s, x) in [0, 1].
  :rtype: float
  """
  if x <= 0.0:
    return 0.0
  if math.isinf(x):
    return 1.0

  ln_front = -x + s * math.log(x) - log_gamma(s)

  if x < s + 1.0:
    # series expansion
    ap = s
    term = 1.0 / s
    total = term
    for _ in range(max_iterations):
      ap += 1.0
      term *= x / ap
      total += term
      if abs(term) < abs(total) * tolerance:
        break
    return min(1.0, total * math.exp(ln_front))

  # continued fraction for the upper tail Q(s, x)
  b = x + 1.0 - s
  c = 1.0 / _TINY
  d = 1.0 / b
  h = d
  for i in range(1, max_iterations + 1):
    an = -i * (i - s)
    b += 2.0
    d = an * d + b
    if abs(d) < _TINY:
      d = _TINY
    c = b + an / c
    if abs(c) < _TINY:
      c = _TINY
    d = 1.0 / d
    delta = d * c
    h *= delta
    if abs(delta - 1.0) < tolerance:
      break
  return max(0.0, 1.0 - math.exp(ln_front) * h)


def lower_incomplete_gamma(s: float, x: float) -> float:
  """Unregularized lower incomplete gamma function gamma(s, x)."""
  return regularized_lower_gamma(s, x) * gamma_function(s)


def t_distribution_cdf(t: float, df: float) -> float:
  """
  Student's t cumulative distribution function.

  :param t: T-value.
  :type t: float
  :param df: Degrees of freedom.
  :type df: float
  :returns: P(T <= t)
  :rtype: float
  """
  if df <= 0 or math.isnan(t):
    return float('nan')
  if math.isinf(t):
    return 1.0 if t > 0 else 0.0
  x = df / (df + t * t)
  tail = 0.5 * beta_incomplete(x, df / 2.0, 0.5)
  if t >= 0:
    return 1.0 - tail
  return tail


def f_distribution_cdf(x: float, d1: float, d2: float) -> float:
  if x <= 0.0:
    return 0.0
  if math.isinf(x):
    return 1.0
  z = d1 * x / (d1 * x + d2)
  return beta_incomplete(z, d1 / 2.0, d2 / 2.0)


def chi_square_cdf(x: float, k: float) -> float:
  if x <= 0.0:
    return 0.0
  return regularized_lower_gamma(k / 2.0, x / 2.0)


def beta_cdf(x: float, a: float, b: float) -> float:
  return beta_incomplete(x, a, b)


def gamma_cdf(x: float, shape: float, scale: float = 1.0) -> float:
  if x <= 0.0:
    return 0.0
  return regularized_lower_gamma(shape, x / scale)


def two_tailed_p_value(z: float) -> float:
  """Two-tailed p-value of a standard normal score."""
  p = 2.0 * (1.0 - normal_cdf(abs(z)))
  return min(1.0, max(0.0, p))


def two_tailed_t_p_value(t: float, df: float) -> float:
  """Two-tailed p-value of a t statistic with ``df`` degrees of freedom."""
  if df <= 0 or math.isnan(t):
    return float('nan')
  if math.isinf(t):
    return 0.0
  # 2 * (1 - T(|t|)) == I_x(df/2, 1/2) with x = df / (df + t^2)
  x = df / (df + t * t)
  p = beta_incomplete(x, df / 2.0, 0.5)
  return min(1.0, max(0.0, p))
