"""Hand-tuned thresholds used across the analytics engine.

Every cutoff the engine applies lives here so it can be overridden from
configuration (see `Settings.policy()`) instead of being buried in the code
that uses it.
"""

from dataclasses import dataclass, field
from typing import FrozenSet

from finsight.domain.models import Category


@dataclass(frozen=True)
class AnalyticsPolicy:
    # Minimum sample counts
    min_anomaly_samples: int = 5
    min_temporal_samples: int = 10
    min_habit_samples: int = 20
    min_training_samples: int = 30
    min_expense_forecast_samples: int = 10
    min_income_forecast_samples: int = 3
    min_forecast_months: int = 2
    min_seasonality_months: int = 12
    min_similarity_pool: int = 3

    # Anomaly detection
    anomaly_sigma: float = 2.0
    anomaly_critical_sigma: float = 3.0
    # z-scores are bounded by sqrt(n - 1) on small samples, so severity also
    # escalates on the ratio to the mean
    anomaly_critical_ratio: float = 5.0
    anomaly_high_ratio: float = 3.0
    max_reported_anomalies: int = 10

    # Habits: (minimum occurrences, confidence ceiling)
    category_habit_min: int = 5
    category_habit_ceiling: int = 20
    merchant_habit_min: int = 3
    merchant_habit_ceiling: int = 10
    weekday_habit_min: int = 5
    weekday_habit_ceiling: int = 15

    # Spending patterns
    weekend_share_alert: float = 40.0

    # Forecasting
    trend_slope_threshold: float = 5.0
    seasonality_threshold: float = 0.15
    forecast_confidence_decay: float = 0.9
    forecast_confidence_cap: float = 0.95
    history_months: int = 12

    # Per-category forecast
    category_forecast_months: int = 3
    min_category_forecast_samples: int = 3
    category_trend_threshold: float = 0.05
    category_forecast_confidence: float = 0.75

    # Budget risk
    budget_high_risk_percent: float = 100.0
    budget_medium_risk_percent: float = 90.0

    # Savings capacity
    savings_window_days: int = 90
    compressible_reduction: float = 0.15
    compressible_categories: FrozenSet[Category] = field(
        default_factory=lambda: frozenset(
            {Category.TRANSPORT, Category.ENTERTAINMENT, Category.FOOD, Category.SERVICES}
        )
    )
    optimal_savings_rate: float = 0.20

    # Debt impact (debt-to-income percent thresholds)
    debt_ratio_high: float = 30.0
    debt_ratio_medium: float = 20.0
    debt_ratio_low: float = 10.0
    thin_surplus_ratio: float = 0.10
    savings_group_months: int = 10

    # Sol timing
    sol_comfort_margin_ratio: float = 0.20
    sol_liquidity_share: float = 0.50
    sol_long_rotation_participants: int = 20
    sol_default_monthly_day: int = 5
    sol_default_day: int = 15

    # Model training
    learning_rate: float = 0.01
    epochs: int = 100
    accuracy_tolerance: float = 0.20
    min_deploy_accuracy: float = 60.0

    # Currency
    usd_exchange_rate: float = 130.0


DEFAULT_POLICY = AnalyticsPolicy()
