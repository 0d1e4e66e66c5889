"""Statistics primitives - pure numeric functions shared by every engine.

All functions accept plain sequences of numbers, never mutate their input and
are defined for empty input (returning 0 or an empty structure). Division
sites fall back to a documented value instead of producing NaN or infinity.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

from finsight.domain.exceptions import DimensionMismatchError, InvalidWindowError
from finsight.domain.models import StatisticalSummary


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def variance(values: Sequence[float]) -> float:
    """Population variance"""
    if not values:
        return 0.0
    avg = mean(values)
    return sum((v - avg) ** 2 for v in values) / len(values)


def standard_deviation(values: Sequence[float]) -> float:
    return math.sqrt(variance(values))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Standard deviation as a percentage of the mean (0 when the mean is 0)"""
    avg = mean(values)
    if avg == 0:
        return 0.0
    return standard_deviation(values) / abs(avg) * 100


def summarize(values: Sequence[float], k: float = 2.0) -> StatisticalSummary:
    avg = mean(values)
    var = variance(values)
    std = math.sqrt(var)
    return StatisticalSummary(mean=avg, std_dev=std, variance=var, threshold=avg + k * std)


def weighted_average(items: Iterable[Tuple[float, float]]) -> float:
    """Average of (value, weight) pairs; 0 when the total weight is 0"""
    pairs = list(items)
    total_weight = sum(weight for _, weight in pairs)
    if total_weight == 0:
        return 0.0
    return sum(value * weight for value, weight in pairs) / total_weight


def moving_average(values: Sequence[float], window: int = 7) -> List[float]:
    """Trailing average over values[max(0, i - window + 1) .. i]"""
    if window < 1:
        raise InvalidWindowError(f"Moving average window must be positive, got {window}")
    result = []
    for i in range(len(values)):
        start = max(0, i - window + 1)
        result.append(mean(values[start : i + 1]))
    return result


@dataclass(frozen=True)
class OutlierReport:
    outliers: List[float] = field(default_factory=list)
    indices: List[int] = field(default_factory=list)
    lower_bound: float = 0.0
    upper_bound: float = 0.0
    mean: float = 0.0
    std_dev: float = 0.0
    sample_size: int = 0

    @property
    def outlier_percentage(self) -> float:
        if not self.sample_size:
            return 0.0
        return len(self.indices) / self.sample_size * 100


@dataclass(frozen=True)
class IQRReport:
    outliers: List[float] = field(default_factory=list)
    indices: List[int] = field(default_factory=list)
    q1: float = 0.0
    q3: float = 0.0
    iqr: float = 0.0
    lower_bound: float = 0.0
    upper_bound: float = 0.0


def _outside(values: Sequence[float], lower: float, upper: float) -> Tuple[List[float], List[int]]:
    outliers, indices = [], []
    for index, value in enumerate(values):
        if value < lower or value > upper:
            outliers.append(value)
            indices.append(index)
    return outliers, indices


def find_outliers_zscore(values: Sequence[float], k: float = 2.0) -> OutlierReport:
    """Values outside mean +/- k * std_dev"""
    if not values:
        return OutlierReport()
    avg = mean(values)
    std = standard_deviation(values)
    lower = avg - k * std
    upper = avg + k * std
    outliers, indices = _outside(values, lower, upper)
    return OutlierReport(
        outliers=outliers,
        indices=indices,
        lower_bound=lower,
        upper_bound=upper,
        mean=avg,
        std_dev=std,
        sample_size=len(values),
    )


def find_outliers_iqr(values: Sequence[float]) -> IQRReport:
    """Tukey fences using positional (non-interpolated) quartiles"""
    if not values:
        return IQRReport()
    ordered = sorted(values)
    n = len(ordered)
    q1 = ordered[math.floor(n * 0.25)]
    q3 = ordered[math.floor(n * 0.75)]
    iqr = q3 - q1
    lower = q1 - 1.5 * iqr
    upper = q3 + 1.5 * iqr
    outliers, indices = _outside(values, lower, upper)
    return IQRReport(
        outliers=outliers,
        indices=indices,
        q1=q1,
        q3=q3,
        iqr=iqr,
        lower_bound=lower,
        upper_bound=upper,
    )


def correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson coefficient; 0 when lengths differ or either series is constant"""
    if len(x) != len(y) or not x:
        return 0.0
    mean_x = mean(x)
    mean_y = mean(y)
    numerator = 0.0
    denom_x = 0.0
    denom_y = 0.0
    for xi, yi in zip(x, y):
        dx = xi - mean_x
        dy = yi - mean_y
        numerator += dx * dy
        denom_x += dx * dx
        denom_y += dy * dy
    if denom_x == 0 or denom_y == 0:
        return 0.0
    return numerator / math.sqrt(denom_x * denom_y)


def min_max_normalize(values: Sequence[float]) -> List[float]:
    if not values:
        return []
    low = min(values)
    high = max(values)
    if high == low:
        return [0.5 for _ in values]
    return [(v - low) / (high - low) for v in values]


def z_score_normalize(values: Sequence[float]) -> List[float]:
    if not values:
        return []
    avg = mean(values)
    std = standard_deviation(values)
    if std == 0:
        return [0.0 for _ in values]
    return [(v - avg) / std for v in values]


def _check_dimensions(a: Sequence[float], b: Sequence[float]) -> None:
    if len(a) != len(b):
        raise DimensionMismatchError(f"Vector lengths differ: {len(a)} != {len(b)}")


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    _check_dimensions(a, b)
    return math.sqrt(sum((ai - bi) ** 2 for ai, bi in zip(a, b)))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    _check_dimensions(a, b)
    dot = sum(ai * bi for ai, bi in zip(a, b))
    norm_a = math.sqrt(sum(ai * ai for ai in a))
    norm_b = math.sqrt(sum(bi * bi for bi in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


@dataclass(frozen=True)
class LinearFit:
    """Least-squares line y = slope * x + intercept"""

    slope: float
    intercept: float
    r2: float

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


def r_squared(x: Sequence[float], y: Sequence[float], slope: float, intercept: float) -> float:
    """Coefficient of determination; 0 when y is constant"""
    mean_y = mean(y)
    ss_res = 0.0
    ss_tot = 0.0
    for xi, yi in zip(x, y):
        predicted = slope * xi + intercept
        ss_res += (yi - predicted) ** 2
        ss_tot += (yi - mean_y) ** 2
    if ss_tot == 0:
        return 0.0
    return 1 - ss_res / ss_tot


def simple_linear_regression(x: Sequence[float], y: Sequence[float]) -> LinearFit:
    _check_dimensions(x, y)
    if not x:
        return LinearFit(slope=0.0, intercept=0.0, r2=0.0)

    mean_x = mean(x)
    mean_y = mean(y)
    numerator = 0.0
    denominator = 0.0
    for xi, yi in zip(x, y):
        numerator += (xi - mean_x) * (yi - mean_y)
        denominator += (xi - mean_x) ** 2

    slope = 0.0 if denominator == 0 else numerator / denominator
    intercept = mean_y - slope * mean_x
    return LinearFit(slope=slope, intercept=intercept, r2=r_squared(x, y, slope, intercept))


def seasonal_variation(averages: Sequence[float]) -> float:
    """Spread between the highest and lowest average as a percentage of their mean"""
    if not averages:
        return 0.0
    avg = mean(averages)
    if avg == 0:
        return 0.0
    return (max(averages) - min(averages)) / avg * 100
