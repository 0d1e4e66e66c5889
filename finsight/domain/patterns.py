"""Pattern analysis engine - spending patterns, anomalies, habits, timing and location"""

from collections import Counter, defaultdict
from typing import Dict, List, Optional, Sequence, Union

from finsight.domain.exceptions import InvalidWindowError
from finsight.domain.models import Category, Currency, TransactionRecord
from finsight.domain.policy import DEFAULT_POLICY, AnalyticsPolicy
from finsight.domain.results import (
    AmountCheck,
    AnomalyAnalysis,
    AnomalyReport,
    BucketStat,
    CategoryBreakdown,
    FrequencyProfile,
    HabitAnalysis,
    HabitPattern,
    Insight,
    InsufficientData,
    LocationPatterns,
    SpendingOverview,
    SpendingPatterns,
    TimingBreakdown,
    TimingPatterns,
)
from finsight.domain.statistics import mean, standard_deviation, summarize
from finsight.utils.date_utils import WEEKDAY_NAMES, is_weekend

TIME_OF_DAY_BUCKETS = ("morning", "afternoon", "evening", "night")

NORMAL_AMOUNT_CONFIDENCE = 0.9


def _check_window(window_days: int) -> None:
    if window_days < 1:
        raise InvalidWindowError(f"Analysis window must be at least one day, got {window_days}")


def _expenses(records: Sequence[TransactionRecord]) -> List[TransactionRecord]:
    return [r for r in records if r.is_expense]


def time_of_day(hour: int) -> str:
    """Bucket an hour: morning 6-12, afternoon 12-18, evening 18-22, night otherwise"""
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def frequency_level(avg_per_day: float) -> str:
    if avg_per_day >= 5:
        return "very_high"
    if avg_per_day >= 3:
        return "high"
    if avg_per_day >= 1:
        return "medium"
    if avg_per_day >= 0.5:
        return "low"
    return "very_low"


def _distinct_days(records: Sequence[TransactionRecord]) -> int:
    return len({r.date.date() for r in records})


def analyze_category_breakdown(
    records: Sequence[TransactionRecord],
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> List[CategoryBreakdown]:
    """Per-category totals sorted by total spend, largest first"""
    totals: Dict[Category, float] = defaultdict(float)
    counts: Counter = Counter()
    for record in records:
        totals[record.category] += record.base_amount(policy.usd_exchange_rate)
        counts[record.category] += 1

    grand_total = sum(totals.values())
    breakdown = [
        CategoryBreakdown(
            category=category,
            name=category.label,
            total=total,
            percentage=(total / grand_total * 100) if grand_total > 0 else 0.0,
            count=counts[category],
            avg_amount=total / counts[category],
        )
        for category, total in totals.items()
    ]
    breakdown.sort(key=lambda b: b.total, reverse=True)
    return breakdown


def analyze_timing_breakdown(records: Sequence[TransactionRecord]) -> TimingBreakdown:
    """Counts by time of day, weekday and weekend split"""
    time_counts = {label: 0 for label in TIME_OF_DAY_BUCKETS}
    day_counts = {name: 0 for name in WEEKDAY_NAMES}
    weekend = 0

    for record in records:
        time_counts[time_of_day(record.date.hour)] += 1
        day_counts[WEEKDAY_NAMES[record.date.weekday()]] += 1
        if is_weekend(record.date):
            weekend += 1

    # max() keeps the first key on ties, so ordering above is the tie-breaker
    most_active_time = max(time_counts, key=time_counts.get)
    most_active_day = max(day_counts, key=day_counts.get)
    total = len(records)

    return TimingBreakdown(
        time_of_day=time_counts,
        most_active_time=most_active_time,
        day_of_week=day_counts,
        most_active_day=most_active_day,
        weekend=weekend,
        weekday=total - weekend,
        weekend_percentage=(weekend / total * 100) if total else 0.0,
    )


def calculate_frequency(records: Sequence[TransactionRecord], window_days: int) -> FrequencyProfile:
    days_with_transactions = _distinct_days(records)
    avg_per_day = len(records) / window_days
    return FrequencyProfile(
        days_with_transactions=days_with_transactions,
        total_days=window_days,
        avg_per_day=avg_per_day,
        level=frequency_level(avg_per_day),
        consistency=days_with_transactions / window_days * 100,
    )


def generate_spending_insights(
    breakdown: List[CategoryBreakdown],
    timing: TimingBreakdown,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> List[Insight]:
    insights = []

    if breakdown:
        top = breakdown[0]
        if top.percentage > 40:
            impact = "high"
        elif top.percentage > 25:
            impact = "medium"
        else:
            impact = "low"
        insights.append(
            Insight(
                type="dominant_category",
                title=f"{top.name} dominates your spending",
                description=f"{top.percentage:.0f}% of total spending ({top.total:,.0f} HTG)",
                impact=impact,
                category=top.category,
            )
        )

    active = timing.most_active_time
    insights.append(
        Insight(
            type="timing_pattern",
            title=f"You spend mostly in the {active}",
            description=f"{timing.time_of_day[active]} transactions in the {active}",
            impact="medium",
        )
    )

    if timing.weekend_percentage > policy.weekend_share_alert:
        insights.append(
            Insight(
                type="weekend_spending",
                title="High weekend spending",
                description=f"{timing.weekend_percentage:.1f}% of your spending happens on weekends",
                impact="medium",
                suggestion="Plan a dedicated weekend budget",
            )
        )

    return insights


def analyze_spending_patterns(
    records: Sequence[TransactionRecord],
    window_days: int = 90,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[SpendingPatterns, InsufficientData]:
    """
    Summarize expense behavior over a window.

    Requires at least one expense record. Produces an overview, a category
    breakdown sorted by total, a timing breakdown, a frequency class and
    structured insights.
    """
    _check_window(window_days)
    expenses = _expenses(records)
    if not expenses:
        return InsufficientData("Not enough data for spending analysis", required=1, available=0)

    total_spent = sum(r.base_amount(policy.usd_exchange_rate) for r in expenses)
    avg_daily = total_spent / window_days

    breakdown = analyze_category_breakdown(expenses, policy)
    timing = analyze_timing_breakdown(expenses)

    return SpendingPatterns(
        window_days=window_days,
        overview=SpendingOverview(
            total_transactions=len(expenses),
            total_spent=total_spent,
            avg_daily=avg_daily,
            avg_monthly=avg_daily * 30,
            avg_per_transaction=total_spent / len(expenses),
        ),
        category_breakdown=breakdown,
        timing=timing,
        frequency=calculate_frequency(expenses, window_days),
        insights=generate_spending_insights(breakdown, timing, policy),
    )


def classify_severity(
    amount: float,
    mean: float,
    std_dev: float,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> str:
    """
    Severity for an amount already above the flagging threshold.

    critical: beyond mean + 3 sigma, or at least 5x the mean
    high:     at least 3x the mean
    warning:  anything else above mean + 2 sigma
    """
    ratio = amount / mean if mean > 0 else 0.0
    if amount > mean + policy.anomaly_critical_sigma * std_dev or ratio >= policy.anomaly_critical_ratio:
        return "critical"
    if ratio >= policy.anomaly_high_ratio:
        return "high"
    return "warning"


def detect_anomalies(
    records: Sequence[TransactionRecord],
    window_days: int = 90,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[AnomalyAnalysis, InsufficientData]:
    """
    Flag expenses above mean + 2 standard deviations.

    The statistics used for the decision are returned alongside the flags so a
    caller can audit why each transaction was reported.
    """
    _check_window(window_days)
    expenses = _expenses(records)
    if len(expenses) < policy.min_anomaly_samples:
        return InsufficientData(
            "Not enough data to detect anomalies",
            required=policy.min_anomaly_samples,
            available=len(expenses),
        )

    amounts = [r.base_amount(policy.usd_exchange_rate) for r in expenses]
    stats = summarize(amounts, k=policy.anomaly_sigma)

    anomalies = []
    for record, amount in zip(expenses, amounts):
        if amount <= stats.threshold:
            continue
        deviation = amount / stats.mean if stats.mean > 0 else 0.0
        z_score = (amount - stats.mean) / stats.std_dev if stats.std_dev > 0 else 0.0
        anomalies.append(
            AnomalyReport(
                transaction=record,
                deviation_factor=round(deviation, 1),
                z_score=round(z_score, 2),
                severity=classify_severity(amount, stats.mean, stats.std_dev, policy),
                message=f"{deviation:.1f}x your average expense",
            )
        )

    anomalies.sort(key=lambda a: a.deviation_factor, reverse=True)
    return AnomalyAnalysis(
        statistics=stats,
        anomalies=anomalies[: policy.max_reported_anomalies],
        anomaly_count=len(anomalies),
        anomaly_percentage=len(anomalies) / len(expenses) * 100,
        sample_size=len(expenses),
    )


def check_amount_anomaly(
    amount: float,
    records: Sequence[TransactionRecord],
    category: Optional[Category] = None,
    currency: Currency = Currency.HTG,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[AmountCheck, InsufficientData]:
    """
    Check one proposed expense against the user's history before it is recorded.

    The amount is anomalous when its z-score against the history (restricted
    to `category` when given) is beyond 2 sigma in either direction; beyond
    3 sigma it is critical, otherwise high. A history with no spread flags
    amounts of at least 3x its mean.
    """
    rate = policy.usd_exchange_rate
    value = abs(amount) * (rate if currency == Currency.USD else 1)
    history = [r for r in _expenses(records) if category is None or r.category == category]
    if len(history) < policy.min_anomaly_samples:
        return InsufficientData(
            "Not enough expense history to check this amount",
            required=policy.min_anomaly_samples,
            available=len(history),
        )

    amounts = [r.base_amount(rate) for r in history]
    avg = mean(amounts)
    std_dev = standard_deviation(amounts)
    deviation = value / avg if avg > 0 else 0.0

    if std_dev > 0:
        z_score = (value - avg) / std_dev
        is_anomaly = abs(z_score) > policy.anomaly_sigma
        severity = "critical" if abs(z_score) > policy.anomaly_critical_sigma else "high"
        confidence = min(abs(z_score) / policy.anomaly_critical_sigma, 1.0)
    else:
        z_score = 0.0
        is_anomaly = deviation >= policy.anomaly_high_ratio
        severity = "critical" if deviation >= policy.anomaly_critical_ratio else "high"
        confidence = 1.0

    if is_anomaly:
        scope = f" for {category.label}" if category else ""
        message = f"This expense is {deviation:.1f}x your average{scope}. Check that it is intentional."
    else:
        severity = None
        confidence = NORMAL_AMOUNT_CONFIDENCE
        message = "Amount is within your usual range"

    return AmountCheck(
        amount=value,
        is_anomaly=is_anomaly,
        confidence=round(confidence, 2),
        average=round(avg, 2),
        z_score=round(z_score, 2),
        deviation_factor=round(deviation, 1),
        sample_size=len(history),
        message=message,
        severity=severity,
        category=category,
    )


def _merchant_key(record: TransactionRecord) -> str:
    if record.merchant:
        return record.merchant.strip().lower()
    return " ".join(record.description.lower().split())


def _saturating_confidence(count: int, ceiling: int) -> float:
    return round(min(count / ceiling, 1.0), 2)


def identify_habits(
    records: Sequence[TransactionRecord],
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[HabitAnalysis, InsufficientData]:
    """
    Detect recurring categories, merchants and a dominant weekday.

    Confidence grows linearly with occurrences and saturates at 1.0 when the
    count reaches the class ceiling (20 category, 10 merchant, 15 weekday).
    """
    expenses = _expenses(records)
    if len(expenses) < policy.min_habit_samples:
        return InsufficientData(
            "Not enough transactions to identify habits",
            required=policy.min_habit_samples,
            available=len(expenses),
        )

    rate = policy.usd_exchange_rate
    by_category: Dict[Category, List[float]] = defaultdict(list)
    by_merchant: Dict[str, List[float]] = defaultdict(list)
    by_weekday: Dict[int, List[float]] = defaultdict(list)
    for record in expenses:
        amount = record.base_amount(rate)
        by_category[record.category].append(amount)
        key = _merchant_key(record)
        if key:
            by_merchant[key].append(amount)
        by_weekday[record.date.weekday()].append(amount)

    habits = []
    for category, amounts in by_category.items():
        if len(amounts) >= policy.category_habit_min:
            habits.append(
                HabitPattern(
                    type="category",
                    label=category.value,
                    frequency=len(amounts),
                    confidence=_saturating_confidence(len(amounts), policy.category_habit_ceiling),
                    avg_amount=sum(amounts) / len(amounts),
                    description=f"Recurring spending on {category.label}",
                    category=category,
                )
            )

    for merchant, amounts in by_merchant.items():
        if len(amounts) >= policy.merchant_habit_min:
            habits.append(
                HabitPattern(
                    type="merchant",
                    label=merchant,
                    frequency=len(amounts),
                    confidence=_saturating_confidence(len(amounts), policy.merchant_habit_ceiling),
                    avg_amount=sum(amounts) / len(amounts),
                    description=f'You often spend at "{merchant}"',
                )
            )

    if by_weekday:
        weekday, amounts = max(by_weekday.items(), key=lambda item: (len(item[1]), -item[0]))
        if len(amounts) >= policy.weekday_habit_min:
            habits.append(
                HabitPattern(
                    type="timing",
                    label=WEEKDAY_NAMES[weekday],
                    frequency=len(amounts),
                    confidence=_saturating_confidence(len(amounts), policy.weekday_habit_ceiling),
                    avg_amount=sum(amounts) / len(amounts),
                    description=f"Most of your spending happens on {WEEKDAY_NAMES[weekday]}",
                )
            )

    habits.sort(key=lambda h: (h.confidence, h.frequency), reverse=True)
    return HabitAnalysis(habits=habits, sample_size=len(expenses))


def _bucket_stats(groups: Dict[str, List[float]], total_count: int) -> List[BucketStat]:
    stats = [
        BucketStat(
            label=label,
            count=len(amounts),
            total=sum(amounts),
            avg_amount=sum(amounts) / len(amounts),
            percentage=len(amounts) / total_count * 100 if total_count else 0.0,
        )
        for label, amounts in groups.items()
        if amounts
    ]
    stats.sort(key=lambda s: s.count, reverse=True)
    return stats


def analyze_timing_patterns(
    records: Sequence[TransactionRecord],
    window_days: int = 90,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[TimingPatterns, InsufficientData]:
    """Activity by hour of day and weekday with peak buckets and consistency"""
    _check_window(window_days)
    if len(records) < policy.min_temporal_samples:
        return InsufficientData(
            "Not enough transactions for temporal analysis",
            required=policy.min_temporal_samples,
            available=len(records),
        )

    rate = policy.usd_exchange_rate
    by_hour: Dict[str, List[float]] = defaultdict(list)
    by_weekday: Dict[str, List[float]] = defaultdict(list)
    for record in sorted(records, key=lambda r: r.date):
        amount = record.base_amount(rate)
        by_hour[f"{record.date.hour:02d}:00"].append(amount)
        by_weekday[WEEKDAY_NAMES[record.date.weekday()]].append(amount)

    hours = _bucket_stats(by_hour, len(records))
    weekdays = _bucket_stats(by_weekday, len(records))
    active_days = _distinct_days(records)

    return TimingPatterns(
        by_hour=hours,
        by_weekday=weekdays,
        peak_hour=hours[0],
        peak_day=weekdays[0],
        days_with_activity=active_days,
        window_days=window_days,
        consistency=min(active_days / window_days, 1.0),
    )


def analyze_location_patterns(
    records: Sequence[TransactionRecord],
    window_days: int = 90,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[LocationPatterns, InsufficientData]:
    """Activity grouped by free-text location label"""
    _check_window(window_days)
    located = [r for r in records if r.location is not None and r.location.name.strip()]
    if not located:
        return InsufficientData("No transactions with a location", required=1, available=0)

    rate = policy.usd_exchange_rate
    groups: Dict[str, List[float]] = defaultdict(list)
    for record in located:
        groups[record.location.name.strip()].append(record.base_amount(rate))

    locations = _bucket_stats(groups, len(located))
    active_days = _distinct_days(located)

    return LocationPatterns(
        locations=locations,
        peak_location=locations[0],
        located_transactions=len(located),
        unlocated_transactions=len(records) - len(located),
        days_with_activity=active_days,
        window_days=window_days,
        consistency=min(active_days / window_days, 1.0),
    )
