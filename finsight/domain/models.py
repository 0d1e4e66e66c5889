"""Domain models - pure Python dataclasses and closed enums for financial records"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from finsight.domain.exceptions import DimensionMismatchError


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Currency(str, Enum):
    HTG = "HTG"  # base currency
    USD = "USD"


class Category(str, Enum):
    """Closed set of transaction categories known to the engine"""

    FOOD = "food"
    TRANSPORT = "transport"
    HOUSING = "housing"
    HEALTH = "health"
    EDUCATION = "education"
    ENTERTAINMENT = "entertainment"
    CLOTHING = "clothing"
    BILLS = "bills"
    SERVICES = "services"
    SAVINGS_GROUP = "savings_group"
    OTHER = "other"
    SALARY = "salary"
    BUSINESS = "business"
    FREELANCE = "freelance"
    INVESTMENT = "investment"

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]


CATEGORY_LABELS: Dict[Category, str] = {
    Category.FOOD: "Food",
    Category.TRANSPORT: "Transport",
    Category.HOUSING: "Housing",
    Category.HEALTH: "Health",
    Category.EDUCATION: "Education",
    Category.ENTERTAINMENT: "Entertainment",
    Category.CLOTHING: "Clothing",
    Category.BILLS: "Bills",
    Category.SERVICES: "Services",
    Category.SAVINGS_GROUP: "Savings group (sol)",
    Category.OTHER: "Other",
    Category.SALARY: "Salary",
    Category.BUSINESS: "Business",
    Category.FREELANCE: "Freelance",
    Category.INVESTMENT: "Investment",
}


class ModelType(str, Enum):
    """Supported prediction targets for trained models"""

    SPENDING_PREDICTION = "spending_prediction"
    INCOME_FORECAST = "income_forecast"
    BUDGET_OPTIMIZATION = "budget_optimization"
    SAVINGS_GROUP_RECOMMENDATION = "savings_group_recommendation"
    CATEGORY_CLASSIFICATION = "category_classification"
    ANOMALY_DETECTION = "anomaly_detection"
    SAVINGS_POTENTIAL = "savings_potential"
    DEBT_RISK_ASSESSMENT = "debt_risk_assessment"
    INVESTMENT_SCORING = "investment_scoring"


class ModelStatus(str, Enum):
    TRAINING = "training"
    TRAINED = "trained"
    DEPLOYED = "deployed"
    DEPRECATED = "deprecated"
    FAILED = "failed"


@dataclass(frozen=True)
class Location:
    """Free-text place label with optional coordinates"""

    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class TransactionRecord:
    """Transaction supplied by the storage collaborator (read-only to the engine)"""

    transaction_id: str
    amount: float
    type: TransactionType
    category: Category
    date: datetime
    description: str = ""
    location: Optional[Location] = None
    merchant: Optional[str] = None
    currency: Currency = Currency.HTG

    def base_amount(self, usd_exchange_rate: float) -> float:
        """Absolute amount expressed in the base currency"""
        amount = abs(self.amount)
        if self.currency == Currency.USD:
            return amount * usd_exchange_rate
        return amount

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME


@dataclass(frozen=True)
class Budget:
    """Active budget envelope supplied by the storage collaborator"""

    id: str
    name: str
    category: Category
    amount: float
    spent: float
    start_date: datetime
    end_date: datetime


@dataclass(frozen=True)
class DebtProposal:
    """Loan a user is considering; interest_rate is percent per month"""

    amount: float
    monthly_payment: float
    duration_months: int
    interest_rate: float = 0.0


class ContributionFrequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @property
    def per_month(self) -> int:
        return {"weekly": 4, "biweekly": 2, "monthly": 1}[self.value]


@dataclass(frozen=True)
class SolPlan:
    """Rotating savings group (sol) a user is considering joining.

    Each of the `participants` members pays `amount` every cycle and receives
    the whole pot once, so a full rotation lasts `participants` cycles.
    """

    amount: float
    frequency: ContributionFrequency
    participants: int


@dataclass
class AggregationBucket:
    """Records grouped by one calendar unit (month or ISO week)"""

    key: Tuple[int, int]
    total: float = 0.0
    count: int = 0
    records: List[TransactionRecord] = field(default_factory=list)

    def add(self, record: TransactionRecord, amount: float) -> None:
        self.total += amount
        self.count += 1
        self.records.append(record)


@dataclass(frozen=True)
class StatisticalSummary:
    """Mean, spread and the flagging threshold (mean + k * std_dev)"""

    mean: float
    std_dev: float
    variance: float
    threshold: float


@dataclass(frozen=True)
class ModelMetrics:
    mse: float
    rmse: float
    mae: float
    r2: float


@dataclass
class TrainedModel:
    """Snapshot of one successful training run.

    Snapshots are append-only; a retrain produces a new snapshot with the next
    version rather than overwriting the previous one.
    """

    user_id: str
    model_type: ModelType
    version: int
    weights: List[float]
    bias: float
    accuracy: float
    metrics: ModelMetrics
    trained_at: datetime
    status: ModelStatus = ModelStatus.TRAINED
    feature_names: List[str] = field(default_factory=list)
    sample_count: int = 0
    hyperparameters: Dict[str, float] = field(default_factory=dict)

    def predict(self, features: Sequence[float]) -> float:
        if len(features) != len(self.weights):
            raise DimensionMismatchError(
                f"Model expects {len(self.weights)} features, got {len(features)}"
            )
        return sum(w * x for w, x in zip(self.weights, features)) + self.bias

    @property
    def performance_grade(self) -> str:
        if self.accuracy >= 90:
            return "A"
        if self.accuracy >= 80:
            return "B"
        if self.accuracy >= 70:
            return "C"
        if self.accuracy >= 60:
            return "D"
        return "F"
