# censusspatial/autocorrelation.py
"""
Moran's I, global and local (Anselin 1995), with analytical inference.

Global:  I  = (n / S0) * sum_ij w_ij z_i z_j / sum_i z_i^2
Local:   I_i = (z_i / m2) * sum_j w_ij z_j,   m2 = sum_i z_i^2 / n

z-scores use the moments under the chosen null assumption; p-values come from
the standard normal.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import NamedTuple

import numpy as np
from scipy.stats import norm

from censusspatial.weights import SpatialWeights
from censusspatial.utils import warn

# Variances at or below this are treated as zero
VARIANCE_TOL = 1e-12

class Alternative(str, Enum):
    GREATER = "greater"
    LESS = "less"
    TWO_SIDED = "two.sided"

class Assumption(str, Enum):
    NORMALITY = "normality"
    RANDOMIZATION = "randomization"
    CONDITIONAL = "conditional"

@dataclass(frozen=True)
class GlobalStatistic:
    name: str
    index: float
    expected: float
    variance: float
    z_score: float
    p_value: float
    alternative: str
    assumption: str
    n: int

    def to_dict(self) -> dict:
        return asdict(self)

class LocalStatistic(NamedTuple):
    index: float
    z_score: float
    p_value: float
    expected: float
    variance: float
    deviation_lag: float

def p_value(z, alternative: str | Alternative = Alternative.GREATER):
    """Normal-approximation p-value for a z-score (scalar or array)."""
    alternative = Alternative(alternative)
    z = np.asarray(z, dtype=float)
    if alternative is Alternative.GREATER:
        p = norm.sf(z)
    elif alternative is Alternative.LESS:
        p = norm.cdf(z)
    else:
        p = 2.0 * norm.sf(np.abs(z))
    return float(p) if p.ndim == 0 else p

def _as_vector(values, weights: SpatialWeights, min_n: int = 3) -> np.ndarray:
    x = np.asarray(values, dtype=float)
    if x.ndim != 1:
        raise ValueError(f"Expected a 1-d attribute vector, got shape {x.shape}")
    if len(x) != weights.n:
        raise ValueError(f"Attribute vector has {len(x)} values but the weights matrix has {weights.n} units")
    if not np.isfinite(x).all():
        raise ValueError(f"Attribute vector has {(~np.isfinite(x)).sum()} missing or infinite values")
    if len(x) < min_n:
        raise ValueError(f"Need at least {min_n} units, got {len(x)}")
    if np.ptp(x) == 0:
        raise ValueError("Attribute vector is constant; the statistic is undefined (zero variance)")
    return x

def moran_global(
    values,
    weights: SpatialWeights,
    alternative: str | Alternative = Alternative.GREATER,
    assumption: str | Assumption = Assumption.RANDOMIZATION,
) -> GlobalStatistic:
    """
    Global Moran's I.

    Parameters:
        values      : attribute vector aligned to `weights.ids`
        weights     : SpatialWeights
        alternative : 'greater' (clustering), 'less' (dispersion) or 'two.sided'
        assumption  : 'randomization' (default) or 'normality' for Var[I]

    Raises ValueError for mismatched lengths, constant data, an empty weights
    matrix or a non-positive variance of I.
    """
    alternative = Alternative(alternative)
    assumption = Assumption(assumption)
    if assumption is Assumption.CONDITIONAL:
        raise ValueError("The conditional assumption applies to local statistics only")

    x = _as_vector(values, weights, min_n=4 if assumption is Assumption.RANDOMIZATION else 3)
    n = len(x)
    z = x - x.mean()
    m2 = (z * z).sum()

    s0, s1, s2 = weights.s0, weights.s1, weights.s2
    if s0 == 0:
        raise ValueError("Weights matrix has no neighbor pairs (S0 = 0)")

    index = (n / s0) * (z @ weights.lag(z)) / m2
    expected = -1.0 / (n - 1)

    if assumption is Assumption.NORMALITY:
        variance = (n * n * s1 - n * s2 + 3 * s0 * s0) / ((n * n - 1) * s0 * s0) - expected ** 2
    else:
        k = ((z ** 4).sum() / n) / (m2 / n) ** 2
        a = n * ((n * n - 3 * n + 3) * s1 - n * s2 + 3 * s0 * s0)
        b = k * ((n * n - n) * s1 - 2 * n * s2 + 6 * s0 * s0)
        variance = (a - b) / ((n - 1) * (n - 2) * (n - 3) * s0 * s0) - expected ** 2

    if not variance > VARIANCE_TOL:
        raise ValueError(
            f"Variance of Moran's I is non-positive ({variance:.3e}); "
            "the neighbor structure leaves I no room to vary"
        )

    z_score = (index - expected) / np.sqrt(variance)
    return GlobalStatistic(
        name="morans_i",
        index=float(index),
        expected=float(expected),
        variance=float(variance),
        z_score=float(z_score),
        p_value=p_value(z_score, alternative),
        alternative=alternative.value,
        assumption=assumption.value,
        n=n,
    )

def local_moran(
    values,
    weights: SpatialWeights,
    alternative: str | Alternative = Alternative.GREATER,
    assumption: str | Assumption = Assumption.CONDITIONAL,
) -> list[LocalStatistic]:
    """
    Anselin's Local Moran's I for every unit, in input order.

    assumption='conditional' holds z_i fixed and permutes the rest (Sokal et al. 1998);
    assumption='randomization' is Anselin's total randomization.
    The same `alternative` applies to every unit.

    Units whose variance is zero (no neighbors, or z_i = 0 under the conditional
    assumption) get z = 0.
    """
    alternative = Alternative(alternative)
    assumption = Assumption(assumption)
    if assumption is Assumption.NORMALITY:
        raise ValueError("Local Moran's I supports 'conditional' or 'randomization' assumptions")

    x = _as_vector(values, weights, min_n=3)
    n = len(x)
    z = x - x.mean()
    m2 = (z * z).sum() / n

    lag = weights.lag(z)
    index = (z / m2) * lag

    wi = weights.row_sums
    wi2 = np.asarray(weights.matrix.multiply(weights.matrix).sum(axis=1)).ravel()

    if assumption is Assumption.CONDITIONAL:
        expected = -(z ** 2 * wi) / ((n - 1) * m2)
        variance = (z / m2) ** 2 * (n / (n - 2)) * (wi2 - wi ** 2 / (n - 1)) * (m2 - z ** 2 / (n - 1))
    else:
        b2 = ((z ** 4).sum() / n) / m2 ** 2
        expected = -wi / (n - 1)
        variance = (
            wi2 * (n - b2) / (n - 1)
            + (wi ** 2 - wi2) * (2 * b2 - n) / ((n - 1) * (n - 2))
            - expected ** 2
        )

    degenerate = ~(variance > VARIANCE_TOL)
    if degenerate.any():
        warn(f"Local Moran's I: {degenerate.sum()} units have zero variance; their z-scores are set to 0")

    z_scores = np.where(degenerate, 0.0, (index - expected) / np.sqrt(np.where(degenerate, 1.0, variance)))
    p_values = p_value(z_scores, alternative)

    return [
        LocalStatistic(float(i), float(zs), float(p), float(e), float(v), float(l))
        for i, zs, p, e, v, l in zip(index, z_scores, np.atleast_1d(p_values), expected, variance, lag)
    ]

def lisa_quadrant(values, weights: SpatialWeights) -> list[str]:
    """Moran-scatterplot quadrant of each unit: value vs spatial lag, both centred."""
    x = _as_vector(values, weights, min_n=3)
    z = x - x.mean()
    lag = weights.lag(z)
    quadrants = np.select(
        [(z > 0) & (lag > 0), (z < 0) & (lag < 0), (z > 0) & (lag < 0), (z < 0) & (lag > 0)],
        ["High-High", "Low-Low", "High-Low", "Low-High"],
        default="Neutral",
    )
    return quadrants.tolist()
