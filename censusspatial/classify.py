# censusspatial/classify.py
from typing import Iterable

from censusspatial.config import (
    STRONG_SIGNIFICANCE,
    SIGNIFICANCE,
    CLUSTER_STRONG,
    CLUSTER,
    OUTLIER_STRONG,
    OUTLIER,
    NOT_SIGNIFICANT,
)
from censusspatial.autocorrelation import LocalStatistic

def classify(index: float, p_value: float) -> str:
    """
    Label one unit from its local index and p-value.

    Positive index -> cluster, negative -> outlier; p must be strictly below
    0.001 for the strong label and strictly below 0.05 for the plain one.
    """
    if index > 0:
        if p_value < STRONG_SIGNIFICANCE:
            return CLUSTER_STRONG
        if p_value < SIGNIFICANCE:
            return CLUSTER
    elif index < 0:
        if p_value < STRONG_SIGNIFICANCE:
            return OUTLIER_STRONG
        if p_value < SIGNIFICANCE:
            return OUTLIER
    return NOT_SIGNIFICANT

def classify_local(results: Iterable[LocalStatistic]) -> list[str]:
    return [classify(r.index, r.p_value) for r in results]
