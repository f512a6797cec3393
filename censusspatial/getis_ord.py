# censusspatial/getis_ord.py
"""
Getis-Ord General G: are high values (or low values) concentrated in space?

G = sum_{i != j} w_ij x_i x_j / sum_{i != j} x_i x_j

Moments under randomization follow Getis & Ord (1992). Binary weights are the
usual choice; any non-negative weights are accepted.
"""
import numpy as np

from censusspatial.autocorrelation import (
    VARIANCE_TOL,
    Alternative,
    GlobalStatistic,
    _as_vector,
    p_value,
)
from censusspatial.weights import SpatialWeights

def general_g(
    values,
    weights: SpatialWeights,
    alternative: str | Alternative = Alternative.GREATER,
) -> GlobalStatistic:
    """
    Global Getis-Ord G.

    A z-score above 0 means high values cluster; below 0, low values cluster.
    Raises ValueError for negative values, mismatched lengths, n < 4, or
    data whose cross-products vanish.
    """
    alternative = Alternative(alternative)
    x = _as_vector(values, weights, min_n=4)
    if (x < 0).any():
        raise ValueError(f"General G requires non-negative values; found {(x < 0).sum()} negative")

    n = len(x)
    s0, s1, s2 = weights.s0, weights.s1, weights.s2
    if s0 == 0:
        raise ValueError("Weights matrix has no neighbor pairs (S0 = 0)")

    m1 = x.sum()
    m2 = (x ** 2).sum()
    m3 = (x ** 3).sum()
    m4 = (x ** 4).sum()

    # diagonal of the weights matrix is zero, so the full quadratic form excludes i == j
    cross = m1 ** 2 - m2
    if cross <= 0:
        raise ValueError("Sum of cross-products x_i x_j (i != j) is zero; General G is undefined")

    index = (x @ weights.lag(x)) / cross
    expected = s0 / (n * (n - 1))

    b0 = (n * n - 3 * n + 3) * s1 - n * s2 + 3 * s0 ** 2
    b1 = -((n * n - n) * s1 - 2 * n * s2 + 6 * s0 ** 2)
    b2 = -(2 * n * s1 - (n + 3) * s2 + 6 * s0 ** 2)
    b3 = 4 * (n - 1) * s1 - 2 * (n + 1) * s2 + 8 * s0 ** 2
    b4 = s1 - s2 + s0 ** 2

    eg2 = (b0 * m2 ** 2 + b1 * m4 + b2 * m1 ** 2 * m2 + b3 * m1 * m3 + b4 * m1 ** 4) / (
        cross ** 2 * n * (n - 1) * (n - 2) * (n - 3)
    )
    variance = eg2 - expected ** 2

    # G scales with S0 / n^2, so the tolerance is relative to E[G]^2
    if not variance > VARIANCE_TOL * expected ** 2:
        raise ValueError(f"Variance of General G is non-positive ({variance:.3e})")

    z_score = (index - expected) / np.sqrt(variance)
    return GlobalStatistic(
        name="general_g",
        index=float(index),
        expected=float(expected),
        variance=float(variance),
        z_score=float(z_score),
        p_value=p_value(z_score, alternative),
        alternative=alternative.value,
        assumption="randomization",
        n=n,
    )
