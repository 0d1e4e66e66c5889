"""Risk engine - budget overrun projection, savings capacity, debt impact and sol timing"""

import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union

from finsight.domain.exceptions import InputContractViolation
from finsight.domain.models import Budget, Category, ContributionFrequency, DebtProposal, SolPlan, TransactionRecord
from finsight.domain.policy import DEFAULT_POLICY, AnalyticsPolicy
from finsight.domain.results import (
    BudgetRisk,
    BudgetRiskReport,
    CompressibleExpense,
    DebtAlternative,
    DebtImpact,
    DebtRiskFactor,
    InsufficientData,
    Recommendation,
    SavingsCapacity,
    SavingsStep,
    SolAffordability,
    SolPaymentTiming,
    SolRisk,
    SolSimulation,
    SolTimingAnalysis,
)
from finsight.domain.statistics import mean
from finsight.utils.date_utils import days_ago, days_between, utc_now

# (level, share of income, timeframe in months, difficulty)
SAVINGS_LADDER = (
    ("beginner", 0.05, 1, "easy"),
    ("intermediate", 0.10, 3, "moderate"),
    ("advanced", 0.15, 6, "demanding"),
    ("expert", None, 12, "optimal"),  # policy.optimal_savings_rate
)

BETTER_LOAN_FEASIBILITY = 0.5
FAMILY_LOAN_FEASIBILITY = 0.4


# --- Budget risk ---


def budget_risk_score(projected_percent: float, policy: AnalyticsPolicy = DEFAULT_POLICY) -> Tuple[str, int]:
    """
    Risk level and a 0-100 score that never decreases as the projection grows.

    high:   projected >= 100% -> min(100, (p - 100) * 2 + 70)
    medium: projected >= 90%  -> 50 + (p - 90) * 2
    low:    otherwise         -> p / 2
    """
    if projected_percent >= policy.budget_high_risk_percent:
        return "high", min(100, round((projected_percent - 100) * 2 + 70))
    if projected_percent >= policy.budget_medium_risk_percent:
        return "medium", round(50 + (projected_percent - 90) * 2)
    return "low", max(0, round(projected_percent / 2))


def budget_risk_recommendation(risk_level: str, projected_percent: float, budget: Budget) -> str:
    if risk_level == "high":
        return (
            f"URGENT: cut spending on {budget.name} now. "
            f"Projected overrun of {round(projected_percent - 100)}%."
        )
    if risk_level == "medium":
        return f"CAUTION: slow down spending on {budget.name}. You are close to the limit."
    return f"{budget.name} is on track. Keep the current pace."


def overall_budget_risk(risks: Sequence[BudgetRisk]) -> str:
    if not risks:
        return "none"
    average = mean([r.risk_score for r in risks])
    if average >= 70:
        return "critical"
    if average >= 50:
        return "high"
    if average >= 30:
        return "medium"
    return "low"


def assess_budget(budget: Budget, now: datetime, policy: AnalyticsPolicy = DEFAULT_POLICY) -> Optional[BudgetRisk]:
    """Project one budget to its end date; None when it has already ended or has no amount"""
    days_remaining = days_between(now, budget.end_date)
    if days_remaining <= 0 or budget.amount <= 0:
        return None

    days_elapsed = max(1, days_between(budget.start_date, now))
    daily_rate = budget.spent / days_elapsed
    projected_total = budget.spent + daily_rate * days_remaining
    projected_percent = projected_total / budget.amount * 100
    risk_level, risk_score = budget_risk_score(projected_percent, policy)

    return BudgetRisk(
        budget_id=budget.id,
        budget_name=budget.name,
        category=budget.category,
        current_spent=budget.spent,
        budget_amount=budget.amount,
        percent_used=round(budget.spent / budget.amount * 100, 2),
        days_elapsed=days_elapsed,
        days_remaining=days_remaining,
        daily_rate=round(daily_rate, 2),
        projected_total=round(projected_total, 2),
        projected_percent=round(projected_percent, 2),
        risk_level=risk_level,
        risk_score=risk_score,
        recommendation=budget_risk_recommendation(risk_level, projected_percent, budget),
    )


def predict_budget_risks(
    budgets: Sequence[Budget],
    now: Optional[datetime] = None,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[BudgetRiskReport, InsufficientData]:
    """
    Project every active budget linearly to its end date.

    Budgets whose end date has passed are skipped. Risks are sorted by score,
    highest first.
    """
    if not budgets:
        return InsufficientData(reason="No active budget found", required=1, available=0)

    now = now or utc_now()
    risks = [risk for risk in (assess_budget(b, now, policy) for b in budgets) if risk]
    risks.sort(key=lambda r: r.risk_score, reverse=True)

    return BudgetRiskReport(
        total_budgets=len(budgets),
        risks=risks,
        overall_risk=overall_budget_risk(risks),
    )


# --- Savings capacity ---


class _CashFlow:
    """Monthly income/expense figures derived from a trailing window"""

    def __init__(self, records: Sequence[TransactionRecord], now: datetime, policy: AnalyticsPolicy):
        cutoff = days_ago(now, policy.savings_window_days)
        window = [r for r in records if cutoff <= r.date <= now]
        to_monthly = 30 / policy.savings_window_days
        rate = policy.usd_exchange_rate

        self.records = window
        self.expense_records = [r for r in window if r.is_expense]
        self.monthly_income = sum(r.base_amount(rate) for r in window if r.is_income) * to_monthly
        self.monthly_expenses = sum(r.base_amount(rate) for r in self.expense_records) * to_monthly
        self.by_category: Dict[Category, float] = defaultdict(float)
        for record in self.expense_records:
            self.by_category[record.category] += record.base_amount(rate) * to_monthly

    @property
    def has_data(self) -> bool:
        return bool(self.expense_records)

    @property
    def surplus(self) -> float:
        return self.monthly_income - self.monthly_expenses


def _no_cash_flow(policy: AnalyticsPolicy) -> InsufficientData:
    return InsufficientData(
        reason=f"No expenses recorded in the last {policy.savings_window_days} days",
        required=1,
        available=0,
    )


def identify_compressible_expenses(
    by_category: Dict[Category, float],
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> List[CompressibleExpense]:
    """Flat reduction on allow-listed categories, biggest potential first"""
    reduction = policy.compressible_reduction
    expenses = [
        CompressibleExpense(
            category=category,
            name=category.label,
            current_monthly=round(total, 2),
            savings_potential=round(total * reduction, 2),
            reduction_percent=round(reduction * 100, 2),
        )
        for category, total in by_category.items()
        if category in policy.compressible_categories
    ]
    expenses.sort(key=lambda e: e.savings_potential, reverse=True)
    return expenses


def build_savings_roadmap(monthly_income: float, policy: AnalyticsPolicy = DEFAULT_POLICY) -> List[SavingsStep]:
    steps = []
    for level, rate, months, difficulty in SAVINGS_LADDER:
        rate = policy.optimal_savings_rate if rate is None else rate
        steps.append(
            SavingsStep(
                level=level,
                target=round(monthly_income * rate, 2),
                rate=rate,
                timeframe_months=months,
                difficulty=difficulty,
            )
        )
    return steps


def generate_savings_recommendations(
    current: float,
    optimal: float,
    compressible: List[CompressibleExpense],
) -> List[Recommendation]:
    gap = optimal - current
    if gap <= 0:
        return [
            Recommendation(
                priority="low",
                message=f"Excellent! You already save {round(abs(gap))} HTG more than the optimal target.",
            )
        ]

    recommendations = [
        Recommendation(
            priority="high",
            message=f"Save {round(gap)} HTG more per month to reach the optimal savings rate.",
        )
    ]
    if compressible:
        top = compressible[0]
        recommendations.append(
            Recommendation(
                priority="medium",
                message=(
                    f"Start by cutting {top.name} by {round(top.reduction_percent)}% "
                    f"to save {round(top.savings_potential)} HTG per month."
                ),
            )
        )
    return recommendations


def predict_savings_capacity(
    records: Sequence[TransactionRecord],
    now: Optional[datetime] = None,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[SavingsCapacity, InsufficientData]:
    now = now or utc_now()
    flow = _CashFlow(records, now, policy)
    if not flow.has_data:
        return _no_cash_flow(policy)

    current = flow.surplus
    compressible = identify_compressible_expenses(flow.by_category, policy)
    optimal = flow.monthly_income * policy.optimal_savings_rate

    return SavingsCapacity(
        monthly_income=round(flow.monthly_income, 2),
        monthly_expenses=round(flow.monthly_expenses, 2),
        current_savings=round(current, 2),
        savings_rate=round(current / flow.monthly_income * 100, 2) if flow.monthly_income > 0 else 0.0,
        compressible_expenses=compressible,
        potential_monthly_savings=round(sum(e.savings_potential for e in compressible), 2),
        optimal_monthly_savings=round(optimal, 2),
        roadmap=build_savings_roadmap(flow.monthly_income, policy),
        recommendations=generate_savings_recommendations(current, optimal, compressible),
    )


# --- Debt impact ---


def debt_health_penalty(debt_to_income: float, policy: AnalyticsPolicy = DEFAULT_POLICY) -> int:
    if debt_to_income > policy.debt_ratio_high:
        return 20
    if debt_to_income > policy.debt_ratio_medium:
        return 10
    if debt_to_income > policy.debt_ratio_low:
        return 5
    return 0


def debt_risk_level(
    debt_to_income: float,
    new_surplus: float,
    monthly_expenses: float,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> str:
    if debt_to_income > policy.debt_ratio_high or new_surplus < 0:
        return "high"
    if debt_to_income > policy.debt_ratio_medium or new_surplus < monthly_expenses * policy.thin_surplus_ratio:
        return "medium"
    return "low"


def identify_debt_risk_factors(
    debt_to_income: float,
    new_surplus: float,
    health_score: int,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> List[DebtRiskFactor]:
    factors = []
    if debt_to_income > policy.debt_ratio_high:
        factors.append(
            DebtRiskFactor(
                factor="High debt-to-income ratio",
                impact="critical",
                description=f"{round(debt_to_income)}% of your income would go to repayments",
            )
        )
    if new_surplus < 0:
        factors.append(
            DebtRiskFactor(
                factor="Negative surplus",
                impact="critical",
                description="You would not be able to cover your current expenses",
            )
        )
    if health_score < 50:
        factors.append(
            DebtRiskFactor(
                factor="Fragile financial health",
                impact="high",
                description="Your financial situation is already precarious",
            )
        )
    if not factors:
        factors.append(
            DebtRiskFactor(
                factor="Manageable situation",
                impact="low",
                description="This debt looks manageable with your current situation",
            )
        )
    return factors


def debt_recommendation(risk_level: str) -> Recommendation:
    if risk_level == "high":
        return Recommendation(
            priority="high",
            message="Not advised. Your current finances cannot support this debt.",
            actions=[
                "Borrow a smaller amount",
                "Negotiate a longer term to lower the monthly payment",
                "Wait until your income improves",
                "Look for alternatives that do not involve debt",
            ],
        )
    if risk_level == "medium":
        return Recommendation(
            priority="medium",
            message="Possible but risky. Make sure you have a solid repayment plan.",
            actions=[
                "Negotiate a lower interest rate",
                "Cut non-essential expenses by 15%",
                "Build an emergency fund first",
                "Consider a shorter term if possible",
            ],
        )
    return Recommendation(
        priority="low",
        message="This debt looks manageable with your current situation.",
        actions=[
            "Compare several offers for the best rate",
            "Repay early when possible",
            "Keep your emergency savings",
            "Schedule automatic payments",
        ],
    )


def suggest_debt_alternatives(
    amount: float,
    current_surplus: float,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> List[DebtAlternative]:
    """
    Alternatives to borrowing, most feasible first.

    Feasibility is 0..1: for saving alone it shrinks with the months needed
    (out of 12), for a savings group with the share of surplus the monthly
    contribution takes. Negotiating a loan and borrowing from family are
    always offered, so the list is never empty.
    """
    alternatives = []

    if current_surplus > 0:
        months_to_save = math.ceil(amount / current_surplus)
        if months_to_save <= 12:
            alternatives.append(
                DebtAlternative(
                    type="savings",
                    title="Save progressively",
                    description=f"Put aside {round(current_surplus)} HTG per month for {months_to_save} months instead of borrowing",
                    advantage="No interest to pay",
                    timeframe=f"{months_to_save} months",
                    feasibility=round(1 - (months_to_save - 1) / 12, 2),
                )
            )

    group_months = policy.savings_group_months
    contribution = amount / group_months
    if current_surplus > 0 and contribution < current_surplus * 0.5:
        alternatives.append(
            DebtAlternative(
                type="savings_group",
                title="Join a sol",
                description=f"Take part in a sol with a contribution of {round(contribution)} HTG per month",
                advantage="Forced savings with a lump sum when your turn comes",
                timeframe=f"{group_months} months",
                feasibility=round(1 - contribution / current_surplus, 2),
            )
        )

    alternatives.append(
        DebtAlternative(
            type="better_loan",
            title="Negotiate a better loan",
            description="Compare 3-5 institutions to get the best rate",
            advantage="Potential 2-5% reduction of the interest rate",
            timeframe="Immediate",
            feasibility=BETTER_LOAN_FEASIBILITY,
        )
    )
    alternatives.append(
        DebtAlternative(
            type="family",
            title="Interest-free family loan",
            description="Ask family for help with a clear repayment plan",
            advantage="No interest and flexible terms",
            timeframe="As agreed with family",
            feasibility=FAMILY_LOAN_FEASIBILITY,
        )
    )

    alternatives.sort(key=lambda a: a.feasibility, reverse=True)
    return alternatives


def predict_debt_impact(
    records: Sequence[TransactionRecord],
    proposal: DebtProposal,
    current_health_score: int,
    now: Optional[datetime] = None,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[DebtImpact, InsufficientData]:
    """
    Estimate what taking on `proposal` does to the monthly budget.

    Requirements:
    - expenses recorded in the trailing savings window
    - a user without income is treated as a 100% debt-to-income ratio
    """
    now = now or utc_now()
    flow = _CashFlow(records, now, policy)
    if not flow.has_data:
        return _no_cash_flow(policy)

    current_surplus = flow.surplus
    new_surplus = current_surplus - proposal.monthly_payment
    if flow.monthly_income > 0:
        debt_to_income = proposal.monthly_payment / flow.monthly_income * 100
    else:
        debt_to_income = 100.0

    penalty = debt_health_penalty(debt_to_income, policy)
    risk_level = debt_risk_level(debt_to_income, new_surplus, flow.monthly_expenses, policy)
    total_interest = proposal.amount * proposal.interest_rate * proposal.duration_months / 100

    return DebtImpact(
        monthly_payment=proposal.monthly_payment,
        monthly_income=round(flow.monthly_income, 2),
        current_surplus=round(current_surplus, 2),
        new_surplus=round(new_surplus, 2),
        debt_to_income_ratio=round(debt_to_income, 2),
        current_health_score=current_health_score,
        projected_health_score=max(0, current_health_score - penalty),
        health_penalty=penalty,
        total_interest=round(total_interest, 2),
        total_repayment=round(proposal.amount + total_interest, 2),
        risk_level=risk_level,
        risk_factors=identify_debt_risk_factors(debt_to_income, new_surplus, current_health_score, policy),
        recommendation=debt_recommendation(risk_level),
        alternatives=suggest_debt_alternatives(proposal.amount, current_surplus, policy),
    )


# --- Sol timing ---


def daily_net_flow(records: Sequence[TransactionRecord], policy: AnalyticsPolicy = DEFAULT_POLICY) -> Dict[int, float]:
    """Income minus expenses per day of the month, summed across months"""
    rate = policy.usd_exchange_rate
    flow: Dict[int, float] = defaultdict(float)
    for record in records:
        if record.is_income:
            flow[record.date.day] += record.base_amount(rate)
        elif record.is_expense:
            flow[record.date.day] -= record.base_amount(rate)
    return dict(flow)


def best_payment_day(
    daily_net: Dict[int, float],
    frequency: ContributionFrequency,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Tuple[int, List[int]]:
    """
    Day of the month with the strongest net inflow, and every above-average day.

    Falls back to the 5th for monthly contributions (the 15th otherwise) when
    no day stands out from the average. Ties go to the earlier day.
    """
    average = mean(list(daily_net.values()))
    best_days = sorted(day for day, net in daily_net.items() if net > average)
    if not best_days:
        default = policy.sol_default_monthly_day if frequency == ContributionFrequency.MONTHLY else policy.sol_default_day
        return default, []
    return max(best_days, key=lambda day: (daily_net[day], -day)), best_days


def explain_payment_day(day: int) -> str:
    if day <= 5:
        return "Early in the month: you usually have more cash right after your salary arrives."
    if day >= 25:
        return "End of the month: your cash flow is usually at its best then."
    return "Mid-month: it balances your cash flow across the month."


def sol_recommendation(can_afford: bool, comfort_margin: float, monthly_charge: float, policy: AnalyticsPolicy) -> str:
    if not can_afford:
        return "Not advised for now. Increase your income or cut expenses first."
    if comfort_margin > monthly_charge * policy.sol_comfort_margin_ratio:
        return "Good timing. You have a comfortable margin."
    return "Possible but tight. Keep a close eye on your expenses."


def _rotation_length(plan: SolPlan) -> str:
    if plan.frequency == ContributionFrequency.MONTHLY:
        return f"{plan.participants} months"
    weeks = plan.participants * (2 if plan.frequency == ContributionFrequency.BIWEEKLY else 1)
    return f"{weeks} weeks"


def assess_sol_risks(
    plan: SolPlan,
    monthly_charge: float,
    monthly_surplus: float,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> List[SolRisk]:
    """Liquidity and rotation-length risks; counterparty risk is always listed"""
    risks = []
    if monthly_charge > monthly_surplus * policy.sol_liquidity_share:
        risks.append(
            SolRisk(
                type="liquidity",
                level="high",
                message=f"The contribution takes more than {round(policy.sol_liquidity_share * 100)}% of your monthly surplus",
            )
        )
    if plan.participants > policy.sol_long_rotation_participants:
        risks.append(
            SolRisk(
                type="duration",
                level="medium",
                message=f"Long rotation ({_rotation_length(plan)}). Members are more likely to drop out.",
            )
        )
    risks.append(
        SolRisk(
            type="default",
            level="medium",
            message="Other members may miss payments. Check the organizer's reputation.",
        )
    )
    return risks


def predict_sol_timing(
    records: Sequence[TransactionRecord],
    plan: SolPlan,
    now: Optional[datetime] = None,
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> Union[SolTimingAnalysis, InsufficientData]:
    """
    Whether the user can carry a sol contribution, and when in the month to pay it.

    Affordability compares the monthly charge (weekly x4, biweekly x2) with
    the monthly surplus of the trailing savings window. The payment day comes
    from the day-of-month net flow over the same window. A sol returns
    exactly what was paid in, so the simulated return is always 0%.

    Raises:
        InputContractViolation: non-positive amount or fewer than two participants
    """
    if plan.amount <= 0:
        raise InputContractViolation(f"Sol contribution must be positive, got {plan.amount}")
    if plan.participants < 2:
        raise InputContractViolation(f"A sol needs at least two participants, got {plan.participants}")

    now = now or utc_now()
    flow = _CashFlow(records, now, policy)
    if not flow.records:
        return InsufficientData(
            reason=f"No transactions recorded in the last {policy.savings_window_days} days",
            required=1,
            available=0,
        )

    monthly_charge = plan.amount * plan.frequency.per_month
    surplus = flow.surplus
    comfort_margin = surplus - monthly_charge
    can_afford = surplus >= monthly_charge
    day, best_days = best_payment_day(daily_net_flow(flow.records, policy), plan.frequency, policy)
    total = plan.amount * plan.participants

    return SolTimingAnalysis(
        feasibility=SolAffordability(
            can_afford=can_afford,
            monthly_charge=round(monthly_charge, 2),
            available_surplus=round(surplus, 2),
            comfort_margin=round(comfort_margin, 2),
            recommendation=sol_recommendation(can_afford, comfort_margin, monthly_charge, policy),
        ),
        timing=SolPaymentTiming(best_payment_day=day, reasoning=explain_payment_day(day), best_days=best_days),
        simulation=SolSimulation(
            total_contributed=round(total, 2),
            expected_payout=round(total, 2),
            estimated_roi=0.0,
            duration=_rotation_length(plan),
        ),
        risks=assess_sol_risks(plan, monthly_charge, surplus, policy),
    )
