"""Financial health score - additive 0-100 score from four capped factors"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from finsight.domain.models import Budget, TransactionRecord
from finsight.domain.policy import DEFAULT_POLICY, AnalyticsPolicy
from finsight.domain.results import FinancialHealth, HealthFactor, Recommendation
from finsight.utils.date_utils import days_ago, utc_now

TRACKING_POINTS = 20
BUDGET_POINTS = 25
SAVINGS_GROUP_POINTS = 20
RATIO_POINTS = 35

TRACKING = "Transaction tracking"
BUDGETING = "Budget management"
SAVINGS_GROUP = "Collective savings (sol)"
RATIO = "Income/expense ratio"


def ratio_points(income: float, expenses: float) -> Tuple[int, str]:
    """
    Points for the 30-day expense/income ratio.

    ratio < 0.7 -> 35, < 0.9 -> 25, < 1.0 -> 15, otherwise 0.
    No income in the window earns nothing.
    """
    if income <= 0:
        return 0, "missing"
    ratio = expenses / income
    if ratio < 0.7:
        return RATIO_POINTS, "excellent"
    if ratio < 0.9:
        return 25, "good"
    if ratio < 1.0:
        return 15, "warning"
    return 0, "critical"


def health_level(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Average"
    return "Needs improvement"


def generate_health_recommendations(score: int, factors: List[HealthFactor]) -> List[Recommendation]:
    earned = {f.name for f in factors if f.points > 0}
    recommendations = []

    if score < 60:
        recommendations.append(
            Recommendation(
                priority="high",
                message="Improve your financial health",
                actions=[
                    "Create a monthly budget",
                    "Track your daily expenses",
                    "Join a savings group",
                ],
            )
        )
    if TRACKING not in earned:
        recommendations.append(
            Recommendation(priority="high", message="Start recording your transactions to unlock analysis")
        )
    if BUDGETING not in earned:
        recommendations.append(
            Recommendation(priority="medium", message="Create your first budget to keep spending under control")
        )
    if SAVINGS_GROUP not in earned:
        recommendations.append(
            Recommendation(priority="medium", message="Join a sol (tontine) to save collectively")
        )
    if RATIO not in earned:
        recommendations.append(
            Recommendation(priority="high", message="Keep monthly expenses below your income")
        )
    return recommendations


def calculate_financial_health(
    records: Sequence[TransactionRecord],
    active_budgets: Sequence[Budget] = (),
    savings_group_count: int = 0,
    now: Optional[datetime] = None,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> FinancialHealth:
    """
    Score a user's financial habits.

    Factors (each capped independently):
    - 20: has recorded transactions
    - 25: has at least one active budget
    - 20: participates in a collective savings group
    - 35: 30-day expense/income ratio tier

    The score never decreases when one factor improves and the others stay
    fixed, because every factor only adds points.
    """
    now = now or utc_now()
    factors = []

    factors.append(
        HealthFactor(
            name=TRACKING,
            points=TRACKING_POINTS if records else 0,
            max_points=TRACKING_POINTS,
            status="positive" if records else "missing",
        )
    )
    factors.append(
        HealthFactor(
            name=BUDGETING,
            points=BUDGET_POINTS if active_budgets else 0,
            max_points=BUDGET_POINTS,
            status="positive" if active_budgets else "missing",
        )
    )
    factors.append(
        HealthFactor(
            name=SAVINGS_GROUP,
            points=SAVINGS_GROUP_POINTS if savings_group_count > 0 else 0,
            max_points=SAVINGS_GROUP_POINTS,
            status="positive" if savings_group_count > 0 else "missing",
        )
    )

    cutoff = days_ago(now, 30)
    recent = [r for r in records if cutoff <= r.date <= now]
    rate = policy.usd_exchange_rate
    income = sum(r.base_amount(rate) for r in recent if r.is_income)
    expenses = sum(r.base_amount(rate) for r in recent if r.is_expense)
    points, status = ratio_points(income, expenses)
    factors.append(HealthFactor(name=RATIO, points=points, max_points=RATIO_POINTS, status=status))

    score = sum(f.points for f in factors)
    return FinancialHealth(
        score=score,
        max_score=100,
        level=health_level(score),
        factors=factors,
        recommendations=generate_health_recommendations(score, factors),
        income_expense_ratio=(expenses / income) if income > 0 else None,
    )
