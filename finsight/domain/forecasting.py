"""Forecasting engine - monthly expense, income and per-category projections.

Monthly totals are fitted with an ordinary-least-squares line over the bucket
index. With a full year of history the projection is scaled by a calendar
month seasonal factor. Every forecast point carries a band of one standard
deviation of the monthly series around it.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple, Union

from finsight.domain.exceptions import InvalidWindowError
from finsight.domain.models import AggregationBucket, Category, TransactionRecord
from finsight.domain.policy import DEFAULT_POLICY, AnalyticsPolicy
from finsight.domain.results import (
    CategoryForecast,
    ExpenseForecast,
    ForecastAnalysis,
    ForecastPoint,
    IncomeForecast,
    IncomePattern,
    InsufficientData,
    Recommendation,
    Seasonality,
    Trend,
)
from finsight.domain.statistics import (
    coefficient_of_variation,
    mean,
    simple_linear_regression,
    standard_deviation,
)
from finsight.utils.date_utils import add_months, month_key


def aggregate_by_month(
    records: Sequence[TransactionRecord],
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> List[AggregationBucket]:
    """Group records into calendar-month buckets, oldest first"""
    buckets: Dict[Tuple[int, int], AggregationBucket] = {}
    for record in sorted(records, key=lambda r: r.date):
        key = month_key(record.date)
        if key not in buckets:
            buckets[key] = AggregationBucket(key=key)
        buckets[key].add(record, record.base_amount(policy.usd_exchange_rate))
    return [buckets[key] for key in sorted(buckets)]


def calculate_trend(
    buckets: Sequence[AggregationBucket],
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Trend:
    totals = [b.total for b in buckets]
    fit = simple_linear_regression(list(range(len(totals))), totals)

    if fit.slope > policy.trend_slope_threshold:
        direction = "increasing"
    elif fit.slope < -policy.trend_slope_threshold:
        direction = "decreasing"
    else:
        direction = "stable"
    return Trend(slope=fit.slope, intercept=fit.intercept, r2=fit.r2, direction=direction)


def detect_seasonality(
    buckets: Sequence[AggregationBucket],
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Seasonality:
    """
    Calendar-month factors (month average / overall mean).

    Requirements:
    - at least `min_seasonality_months` monthly buckets
    - detected when the mean |factor - 1| exceeds `seasonality_threshold`
    """
    if len(buckets) < policy.min_seasonality_months:
        return Seasonality(detected=False, factors={}, strength=0.0)

    overall = mean([b.total for b in buckets])
    if overall == 0:
        return Seasonality(detected=False, factors={}, strength=0.0)

    by_month: Dict[int, List[float]] = defaultdict(list)
    for bucket in buckets:
        by_month[bucket.key[1]].append(bucket.total)

    factors = {month: mean(totals) / overall for month, totals in by_month.items()}
    strength = mean([abs(f - 1) for f in factors.values()])
    return Seasonality(
        detected=strength > policy.seasonality_threshold,
        factors=factors,
        strength=strength,
    )


def forecast_confidence(
    data_points: int,
    months_ahead: int,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> float:
    base = min(policy.forecast_confidence_cap, data_points / 12 * 0.8)
    return round(base * policy.forecast_confidence_decay ** (months_ahead - 1), 2)


def volatility_level(totals: Sequence[float]) -> str:
    cv = coefficient_of_variation(totals)
    if cv < 15:
        return "low"
    if cv < 30:
        return "medium"
    return "high"


def _check_horizon(months: int) -> None:
    if months < 1:
        raise InvalidWindowError(f"Forecast horizon must be at least one month, got {months}")


def _project(
    buckets: List[AggregationBucket],
    months: int,
    policy: AnalyticsPolicy,
) -> Tuple[List[ForecastPoint], ForecastAnalysis]:
    trend = calculate_trend(buckets, policy)
    seasonality = detect_seasonality(buckets, policy)
    totals = [b.total for b in buckets]
    std_dev = standard_deviation(totals)
    last_year, last_month = buckets[-1].key
    last_index = len(buckets) - 1

    predictions = []
    for offset in range(1, months + 1):
        year, month = add_months(last_year, last_month, offset)
        base = trend.slope * (last_index + offset) + trend.intercept
        factor = seasonality.factor_for(month)
        point = max(0.0, base * factor)
        predictions.append(
            ForecastPoint(
                month_offset=offset,
                year=year,
                month=month,
                point_estimate=round(point, 2),
                base_estimate=round(base, 2),
                seasonal_factor=round(factor, 2),
                lower_bound=round(max(0.0, point - std_dev), 2),
                upper_bound=round(point + std_dev, 2),
                confidence=forecast_confidence(len(buckets), offset, policy),
            )
        )

    analysis = ForecastAnalysis(
        trend=trend,
        seasonality_detected=seasonality.detected,
        historical_months=len(buckets),
        avg_monthly=round(mean(totals), 2),
        std_dev=round(std_dev, 2),
        volatility=volatility_level(totals),
    )
    return predictions, analysis


def _not_enough_history(
    records: Sequence[TransactionRecord],
    buckets: List[AggregationBucket],
    min_records: int,
    policy: AnalyticsPolicy,
    kind: str,
) -> Optional[InsufficientData]:
    if len(records) < min_records:
        return InsufficientData(
            reason=f"Not enough {kind} history (minimum {min_records} transactions)",
            required=min_records,
            available=len(records),
        )
    if len(buckets) < policy.min_forecast_months:
        return InsufficientData(
            reason=f"{kind.capitalize()} history must span at least {policy.min_forecast_months} calendar months",
            required=policy.min_forecast_months,
            available=len(buckets),
        )
    return None


def generate_expense_recommendations(
    predictions: List[ForecastPoint],
    analysis: ForecastAnalysis,
) -> List[Recommendation]:
    recommendations = []

    if analysis.trend.direction == "increasing":
        recommendations.append(
            Recommendation(
                priority="high",
                message=f"Your expenses grow by about {round(analysis.trend.strength)} HTG per month. Take corrective action.",
            )
        )

    first = predictions[0].point_estimate
    average = mean([p.point_estimate for p in predictions])
    if first > 0 and average > first * 1.1:
        recommendations.append(
            Recommendation(
                priority="medium",
                message=f"A {round((average / first - 1) * 100)}% increase is expected. Adjust your budgets.",
            )
        )

    if analysis.volatility == "high":
        recommendations.append(
            Recommendation(
                priority="medium",
                message="Monthly spending varies a lot. Keep a buffer for expensive months.",
            )
        )
    return recommendations


def predict_future_expenses(
    records: Sequence[TransactionRecord],
    months: int = 1,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[ExpenseForecast, InsufficientData]:
    """
    Project monthly expenses `months` ahead of the last month with data.

    Requirements:
    - at least `min_expense_forecast_samples` expense records
    - spanning at least `min_forecast_months` calendar months
    """
    _check_horizon(months)
    expenses = [r for r in records if r.is_expense]
    buckets = aggregate_by_month(expenses, policy)

    missing = _not_enough_history(expenses, buckets, policy.min_expense_forecast_samples, policy, "expense")
    if missing:
        return missing

    predictions, analysis = _project(buckets, months, policy)
    return ExpenseForecast(
        predictions=predictions,
        analysis=analysis,
        recommendations=generate_expense_recommendations(predictions, analysis),
    )


def analyze_income_pattern(
    buckets: Sequence[AggregationBucket],
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> IncomePattern:
    """regular (CV < 10), mixed (CV < 30) or variable income"""
    totals = [b.total for b in buckets]
    avg = mean(totals)
    cv = coefficient_of_variation(totals)
    trend = calculate_trend(buckets, policy)

    if cv < 10:
        pattern_type, consistency = "regular", "high"
    elif cv < 30:
        pattern_type, consistency = "mixed", "medium"
    else:
        pattern_type, consistency = "variable", "low"

    return IncomePattern(
        type=pattern_type,
        avg_amount=round(avg, 2),
        volatility=round(cv, 2),
        growth_rate=trend.slope / avg if avg else 0.0,
        consistency=consistency,
    )


def generate_income_recommendations(pattern: IncomePattern) -> List[Recommendation]:
    recommendations = []

    if pattern.type == "variable":
        recommendations.append(
            Recommendation(
                priority="high",
                message="Variable income detected. Build an emergency fund covering 3-6 months of expenses.",
            )
        )
    if pattern.growth_rate < 0:
        recommendations.append(
            Recommendation(
                priority="urgent",
                message=f"Your income is falling by {round(abs(pattern.growth_rate) * 100)}% per month. Diversify your income sources.",
            )
        )
    return recommendations


def predict_future_income(
    records: Sequence[TransactionRecord],
    months: int = 3,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[IncomeForecast, InsufficientData]:
    """
    Project monthly income and classify how regular it is.

    Requirements:
    - at least `min_income_forecast_samples` income records
    - spanning at least `min_forecast_months` calendar months
    """
    _check_horizon(months)
    income = [r for r in records if r.is_income]
    buckets = aggregate_by_month(income, policy)

    missing = _not_enough_history(income, buckets, policy.min_income_forecast_samples, policy, "income")
    if missing:
        return missing

    predictions, analysis = _project(buckets, months, policy)
    pattern = analyze_income_pattern(buckets, policy)
    return IncomeForecast(
        predictions=predictions,
        analysis=analysis,
        pattern=pattern,
        recommendations=generate_income_recommendations(pattern),
    )


def predict_category_expense(
    records: Sequence[TransactionRecord],
    category: Category,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[CategoryForecast, InsufficientData]:
    """
    Next-month spending for one category from its recent monthly totals.

    The average monthly total is scaled by the fitted slope relative to that
    average; the trend is stable while that relative slope stays within
    +/- `category_trend_threshold`.
    """
    expenses = [r for r in records if r.is_expense and r.category == category]
    if len(expenses) < policy.min_category_forecast_samples:
        return InsufficientData(
            reason=f"Not enough {category.label} expenses to forecast this category",
            required=policy.min_category_forecast_samples,
            available=len(expenses),
        )

    totals = [b.total for b in aggregate_by_month(expenses, policy)]
    avg = mean(totals)
    fit = simple_linear_regression(list(range(len(totals))), totals)
    relative_trend = fit.slope / avg if avg else 0.0

    if relative_trend > policy.category_trend_threshold:
        direction = "increasing"
    elif relative_trend < -policy.category_trend_threshold:
        direction = "decreasing"
    else:
        direction = "stable"

    return CategoryForecast(
        category=category,
        prediction=round(max(0.0, avg * (1 + relative_trend)), 2),
        historical_avg=round(avg, 2),
        relative_trend=round(relative_trend, 4),
        trend=direction,
        months=len(totals),
        confidence=policy.category_forecast_confidence,
    )
