"""Output structures returned by the analytics engines.

Every public engine operation returns either `InsufficientData` or one of the
success dataclasses below. Both carry `has_data` and `success` tags so callers
can branch without isinstance checks.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from finsight.domain.models import (
    Category,
    ModelStatus,
    StatisticalSummary,
    TrainedModel,
    TransactionRecord,
)


def serialize(value: Any) -> Any:
    """Render dataclasses, enums and datetimes as JSON-ready values"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: serialize(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {serialize(k) if isinstance(k, Enum) else k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [serialize(v) for v in value]
    return value


class AnalysisResult:
    """Tag shared by all engine results"""

    has_data = True
    success = True

    def to_dict(self) -> Dict[str, Any]:
        data = serialize(self)
        data["has_data"] = self.has_data
        data["success"] = self.success
        return data


@dataclass
class InsufficientData(AnalysisResult):
    """Not enough history to compute a meaningful result"""

    reason: str
    required: int = 0
    available: int = 0

    has_data = False
    success = False

    @property
    def message(self) -> str:
        return self.reason


@dataclass
class Insight:
    type: str
    title: str
    description: str
    impact: str
    category: Optional[Category] = None
    suggestion: Optional[str] = None


@dataclass
class Recommendation:
    priority: str
    message: str
    actions: List[str] = field(default_factory=list)


# --- Pattern analysis ---


@dataclass
class SpendingOverview:
    total_transactions: int
    total_spent: float
    avg_daily: float
    avg_monthly: float
    avg_per_transaction: float


@dataclass
class CategoryBreakdown:
    category: Category
    name: str
    total: float
    percentage: float
    count: int
    avg_amount: float


@dataclass
class TimingBreakdown:
    time_of_day: Dict[str, int]
    most_active_time: str
    day_of_week: Dict[str, int]
    most_active_day: str
    weekend: int
    weekday: int
    weekend_percentage: float


@dataclass
class FrequencyProfile:
    days_with_transactions: int
    total_days: int
    avg_per_day: float
    level: str
    consistency: float


@dataclass
class SpendingPatterns(AnalysisResult):
    window_days: int
    overview: SpendingOverview
    category_breakdown: List[CategoryBreakdown]
    timing: TimingBreakdown
    frequency: FrequencyProfile
    insights: List[Insight]


@dataclass
class AnomalyReport:
    transaction: TransactionRecord
    deviation_factor: float
    z_score: float
    severity: str
    message: str


@dataclass
class AnomalyAnalysis(AnalysisResult):
    statistics: StatisticalSummary
    anomalies: List[AnomalyReport]
    anomaly_count: int
    anomaly_percentage: float
    sample_size: int


@dataclass
class AmountCheck(AnalysisResult):
    """One proposed amount compared with the user's recent expenses"""

    amount: float
    is_anomaly: bool
    confidence: float
    average: float
    z_score: float
    deviation_factor: float
    sample_size: int
    message: str
    severity: Optional[str] = None
    category: Optional[Category] = None


@dataclass
class HealthFactor:
    name: str
    points: int
    max_points: int
    status: str


@dataclass
class FinancialHealth(AnalysisResult):
    score: int
    max_score: int
    level: str
    factors: List[HealthFactor]
    recommendations: List[Recommendation]
    income_expense_ratio: Optional[float] = None


@dataclass
class HabitPattern:
    type: str
    label: str
    frequency: int
    confidence: float
    avg_amount: float
    description: str
    category: Optional[Category] = None


@dataclass
class HabitAnalysis(AnalysisResult):
    habits: List[HabitPattern]
    sample_size: int

    @property
    def habit_count(self) -> int:
        return len(self.habits)


@dataclass
class BucketStat:
    """Count, total and average amount for one grouping key"""

    label: str
    count: int
    total: float
    avg_amount: float
    percentage: float = 0.0


@dataclass
class TimingPatterns(AnalysisResult):
    by_hour: List[BucketStat]
    by_weekday: List[BucketStat]
    peak_hour: BucketStat
    peak_day: BucketStat
    days_with_activity: int
    window_days: int
    consistency: float


@dataclass
class LocationPatterns(AnalysisResult):
    locations: List[BucketStat]
    peak_location: BucketStat
    located_transactions: int
    unlocated_transactions: int
    days_with_activity: int
    window_days: int
    consistency: float


# --- Classification ---


@dataclass
class AlternativeCategory:
    category: Category
    confidence: float


@dataclass
class Classification:
    category: Category
    confidence: float
    method: str
    matched_keywords: List[str] = field(default_factory=list)
    alternatives: List[AlternativeCategory] = field(default_factory=list)
    score: float = 0.0
    note: Optional[str] = None


# --- Forecasting ---


@dataclass
class Trend:
    slope: float
    intercept: float
    r2: float
    direction: str

    @property
    def strength(self) -> float:
        return abs(self.slope)


@dataclass
class Seasonality:
    detected: bool
    factors: Dict[int, float]
    strength: float

    def factor_for(self, month: int) -> float:
        if not self.detected:
            return 1.0
        return self.factors.get(month, 1.0)


@dataclass
class ForecastPoint:
    month_offset: int
    year: int
    month: int
    point_estimate: float
    base_estimate: float
    seasonal_factor: float
    lower_bound: float
    upper_bound: float
    confidence: float


@dataclass
class ForecastAnalysis:
    trend: Trend
    seasonality_detected: bool
    historical_months: int
    avg_monthly: float
    std_dev: float
    volatility: str


@dataclass
class IncomePattern:
    type: str
    avg_amount: float
    volatility: float
    growth_rate: float
    consistency: str


@dataclass
class ExpenseForecast(AnalysisResult):
    predictions: List[ForecastPoint]
    analysis: ForecastAnalysis
    recommendations: List[Recommendation]


@dataclass
class IncomeForecast(AnalysisResult):
    predictions: List[ForecastPoint]
    analysis: ForecastAnalysis
    pattern: IncomePattern
    recommendations: List[Recommendation]


@dataclass
class CategoryForecast(AnalysisResult):
    category: Category
    prediction: float
    historical_avg: float
    relative_trend: float
    trend: str
    months: int
    confidence: float


# --- Risk ---


@dataclass
class BudgetRisk:
    budget_id: str
    budget_name: str
    category: Category
    current_spent: float
    budget_amount: float
    percent_used: float
    days_elapsed: int
    days_remaining: int
    daily_rate: float
    projected_total: float
    projected_percent: float
    risk_level: str
    risk_score: int
    recommendation: str


@dataclass
class BudgetRiskReport(AnalysisResult):
    total_budgets: int
    risks: List[BudgetRisk]
    overall_risk: str

    @property
    def high_risk(self) -> int:
        return sum(1 for r in self.risks if r.risk_level == "high")

    @property
    def medium_risk(self) -> int:
        return sum(1 for r in self.risks if r.risk_level == "medium")

    @property
    def low_risk(self) -> int:
        return sum(1 for r in self.risks if r.risk_level == "low")


@dataclass
class CompressibleExpense:
    category: Category
    name: str
    current_monthly: float
    savings_potential: float
    reduction_percent: float


@dataclass
class SavingsStep:
    level: str
    target: float
    rate: float
    timeframe_months: int
    difficulty: str


@dataclass
class SavingsCapacity(AnalysisResult):
    monthly_income: float
    monthly_expenses: float
    current_savings: float
    savings_rate: float
    compressible_expenses: List[CompressibleExpense]
    potential_monthly_savings: float
    optimal_monthly_savings: float
    roadmap: List[SavingsStep]
    recommendations: List[Recommendation]

    @property
    def potential_annual_savings(self) -> float:
        return self.potential_monthly_savings * 12


@dataclass
class DebtRiskFactor:
    factor: str
    impact: str
    description: str


@dataclass
class DebtAlternative:
    type: str
    title: str
    description: str
    advantage: str
    timeframe: str
    feasibility: float


@dataclass
class DebtImpact(AnalysisResult):
    monthly_payment: float
    monthly_income: float
    current_surplus: float
    new_surplus: float
    debt_to_income_ratio: float
    current_health_score: int
    projected_health_score: int
    health_penalty: int
    total_interest: float
    total_repayment: float
    risk_level: str
    risk_factors: List[DebtRiskFactor]
    recommendation: Recommendation
    alternatives: List[DebtAlternative]


@dataclass
class SolAffordability:
    can_afford: bool
    monthly_charge: float
    available_surplus: float
    comfort_margin: float
    recommendation: str


@dataclass
class SolPaymentTiming:
    best_payment_day: int
    reasoning: str
    best_days: List[int]


@dataclass
class SolSimulation:
    total_contributed: float
    expected_payout: float
    estimated_roi: float
    duration: str


@dataclass
class SolRisk:
    type: str
    level: str
    message: str


@dataclass
class SolTimingAnalysis(AnalysisResult):
    feasibility: SolAffordability
    timing: SolPaymentTiming
    simulation: SolSimulation
    risks: List[SolRisk]


@dataclass
class UserProfile:
    user_id: str
    avg_monthly_spend: float
    dominant_category: Category
    transaction_count: int


@dataclass
class SimilarUser:
    profile: UserProfile
    similarity: float


@dataclass
class SimilarUsersReport(AnalysisResult):
    user: UserProfile
    pool_size: int
    similar_users: List[SimilarUser]
    peer_avg_monthly_spend: float


# --- Training ---


@dataclass
class TrainingResult(AnalysisResult):
    model: TrainedModel
    recommendations: List[Recommendation]


@dataclass
class TrainingFailure(AnalysisResult):
    reason: str
    status: ModelStatus = ModelStatus.FAILED
    sample_count: int = 0

    has_data = False
    success = False
