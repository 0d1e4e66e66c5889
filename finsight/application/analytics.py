"""Analytics service - fetches a user's data window and runs the engine on it"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Union

from sqlalchemy.orm import Session, sessionmaker

from finsight.config import Settings, settings as default_settings
from finsight.domain import clustering, forecasting, health, patterns, risk
from finsight.domain.classification import ClassificationEngine
from finsight.domain.exceptions import DomainException, TransactionSourceError
from finsight.domain.models import (
    Budget,
    Category,
    Currency,
    DebtProposal,
    ModelType,
    SolPlan,
    TrainedModel,
    TransactionRecord,
    TransactionType,
)
from finsight.domain.results import (
    AnalysisResult,
    AnomalyAnalysis,
    Classification,
    FinancialHealth,
    TrainingFailure,
    TrainingResult,
)
from finsight.domain.training import ModelTrainer, parse_model_type
from finsight.infrastructure.database.repositories import ModelRepository
from finsight.infrastructure.observability.logging import log_analysis, log_training
from finsight.infrastructure.observability.metrics import (
    record_analysis,
    record_analysis_error,
    record_anomalies,
    record_training,
)
from finsight.utils.date_utils import days_ago, months_ago, to_naive_utc, utc_now


class TransactionSource(Protocol):
    """Read-only view of the store that owns transactions, budgets and savings groups"""

    async def get_transactions(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        type: Optional[TransactionType] = None,
    ) -> List[TransactionRecord]: ...

    async def get_active_budgets(self, user_id: str) -> List[Budget]: ...

    async def get_savings_group_count(self, user_id: str) -> int: ...


class AnalyticsService:
    """
    Entry point a host application calls per user.

    Each method fetches the window of history it needs from the transaction
    source, runs one engine operation on that snapshot and records metrics and
    a structured log line. Engine results (including InsufficientData) are
    returned unchanged; source failures propagate as TransactionSourceError.
    """

    def __init__(
        self,
        source: TransactionSource,
        session_factory: sessionmaker,
        config: Settings = default_settings,
        classifier: Optional[ClassificationEngine] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.source = source
        self.session_factory = session_factory
        self.config = config
        self.policy = config.policy()
        self.classifier = classifier or ClassificationEngine(usd_exchange_rate=self.policy.usd_exchange_rate)
        self.clock = clock

    def _now(self) -> datetime:
        """Clock reading as naive UTC, the form records arrive in from the store"""
        return to_naive_utc(self.clock())

    async def _records(self, user_id: str, start: datetime, end: datetime) -> List[TransactionRecord]:
        return await self.source.get_transactions(user_id, start, end)

    async def _recent(self, user_id: str, window_days: int) -> List[TransactionRecord]:
        now = self._now()
        return await self._records(user_id, days_ago(now, window_days), now)

    async def _history(self, user_id: str) -> List[TransactionRecord]:
        now = self._now()
        return await self._records(user_id, months_ago(now, self.policy.history_months), now)

    def _finish(self, user_id: str, operation: str, started: float, result: AnalysisResult) -> AnalysisResult:
        duration = time.time() - started
        record_analysis(operation, result.has_data, duration)
        log_analysis(
            user_id,
            operation,
            result.has_data,
            duration * 1000,
            reason=getattr(result, "reason", None),
        )
        return result

    def _fail(self, user_id: str, operation: str, error: Exception) -> None:
        record_analysis_error(operation)
        if isinstance(error, TransactionSourceError):
            logging.error(f"Transaction store error: {error}", extra={"user_id": user_id, "operation": operation})
        else:
            logging.warning(f"Analysis rejected: {error}", extra={"user_id": user_id, "operation": operation})

    # --- Pattern analysis ---

    async def analyze_spending_patterns(self, user_id: str, window_days: Optional[int] = None) -> AnalysisResult:
        started = time.time()
        window_days = window_days or self.config.analysis_window_days
        try:
            records = await self._recent(user_id, window_days)
            result = patterns.analyze_spending_patterns(records, window_days, self.policy)
        except DomainException as e:
            self._fail(user_id, "spending_patterns", e)
            raise
        return self._finish(user_id, "spending_patterns", started, result)

    async def detect_anomalies(self, user_id: str, window_days: Optional[int] = None) -> AnalysisResult:
        started = time.time()
        window_days = window_days or self.config.analysis_window_days
        try:
            records = await self._recent(user_id, window_days)
            result = patterns.detect_anomalies(records, window_days, self.policy)
        except DomainException as e:
            self._fail(user_id, "anomalies", e)
            raise
        if isinstance(result, AnomalyAnalysis):
            record_anomalies(a.severity for a in result.anomalies)
        return self._finish(user_id, "anomalies", started, result)

    async def check_amount_anomaly(
        self,
        user_id: str,
        amount: float,
        category: Optional[Category] = None,
        currency: Currency = Currency.HTG,
    ) -> AnalysisResult:
        """Compare a proposed expense with the analysis window before it is recorded"""
        started = time.time()
        try:
            records = await self._recent(user_id, self.config.analysis_window_days)
            result = patterns.check_amount_anomaly(amount, records, category, currency, self.policy)
        except DomainException as e:
            self._fail(user_id, "amount_check", e)
            raise
        return self._finish(user_id, "amount_check", started, result)

    async def identify_habits(self, user_id: str, window_days: Optional[int] = None) -> AnalysisResult:
        started = time.time()
        try:
            records = await self._recent(user_id, window_days or self.config.analysis_window_days)
            result = patterns.identify_habits(records, self.policy)
        except DomainException as e:
            self._fail(user_id, "habits", e)
            raise
        return self._finish(user_id, "habits", started, result)

    async def analyze_timing_patterns(self, user_id: str, window_days: Optional[int] = None) -> AnalysisResult:
        started = time.time()
        window_days = window_days or self.config.analysis_window_days
        try:
            records = await self._recent(user_id, window_days)
            result = patterns.analyze_timing_patterns(records, window_days, self.policy)
        except DomainException as e:
            self._fail(user_id, "timing_patterns", e)
            raise
        return self._finish(user_id, "timing_patterns", started, result)

    async def analyze_location_patterns(self, user_id: str, window_days: Optional[int] = None) -> AnalysisResult:
        started = time.time()
        window_days = window_days or self.config.analysis_window_days
        try:
            records = await self._recent(user_id, window_days)
            result = patterns.analyze_location_patterns(records, window_days, self.policy)
        except DomainException as e:
            self._fail(user_id, "location_patterns", e)
            raise
        return self._finish(user_id, "location_patterns", started, result)

    async def _health(self, user_id: str, records: Sequence[TransactionRecord]) -> FinancialHealth:
        budgets = await self.source.get_active_budgets(user_id)
        groups = await self.source.get_savings_group_count(user_id)
        return health.calculate_financial_health(records, budgets, groups, self._now(), self.policy)

    async def calculate_financial_health(self, user_id: str) -> AnalysisResult:
        started = time.time()
        try:
            records = await self._recent(user_id, 30)
            result = await self._health(user_id, records)
        except DomainException as e:
            self._fail(user_id, "financial_health", e)
            raise
        return self._finish(user_id, "financial_health", started, result)

    # --- Classification ---

    def classify_transaction(self, description: str, amount: float = 0.0, currency: Currency = Currency.HTG) -> Classification:
        return self.classifier.classify(description, amount, currency)

    # --- Forecasting & risk ---

    async def predict_future_expenses(self, user_id: str, months: int = 1) -> AnalysisResult:
        started = time.time()
        try:
            records = await self._history(user_id)
            result = forecasting.predict_future_expenses(records, months, self.policy)
        except DomainException as e:
            self._fail(user_id, "expense_forecast", e)
            raise
        return self._finish(user_id, "expense_forecast", started, result)

    async def predict_future_income(self, user_id: str, months: int = 3) -> AnalysisResult:
        started = time.time()
        try:
            records = await self._history(user_id)
            result = forecasting.predict_future_income(records, months, self.policy)
        except DomainException as e:
            self._fail(user_id, "income_forecast", e)
            raise
        return self._finish(user_id, "income_forecast", started, result)

    async def predict_category_expense(self, user_id: str, category: Category) -> AnalysisResult:
        started = time.time()
        try:
            now = self._now()
            records = await self._records(user_id, months_ago(now, self.policy.category_forecast_months), now)
            result = forecasting.predict_category_expense(records, category, self.policy)
        except DomainException as e:
            self._fail(user_id, "category_forecast", e)
            raise
        return self._finish(user_id, "category_forecast", started, result)

    async def predict_budget_risks(self, user_id: str) -> AnalysisResult:
        started = time.time()
        try:
            budgets = await self.source.get_active_budgets(user_id)
            result = risk.predict_budget_risks(budgets, self._now(), self.policy)
        except DomainException as e:
            self._fail(user_id, "budget_risks", e)
            raise
        return self._finish(user_id, "budget_risks", started, result)

    async def predict_savings_capacity(self, user_id: str) -> AnalysisResult:
        started = time.time()
        try:
            records = await self._recent(user_id, self.policy.savings_window_days)
            result = risk.predict_savings_capacity(records, self._now(), self.policy)
        except DomainException as e:
            self._fail(user_id, "savings_capacity", e)
            raise
        return self._finish(user_id, "savings_capacity", started, result)

    async def predict_debt_impact(self, user_id: str, proposal: DebtProposal) -> AnalysisResult:
        """Scores health on the last 30 days, then projects the debt on the savings window"""
        started = time.time()
        try:
            records = await self._recent(user_id, self.policy.savings_window_days)
            cutoff = days_ago(self._now(), 30)
            current = await self._health(user_id, [r for r in records if r.date >= cutoff])
            result = risk.predict_debt_impact(records, proposal, current.score, self._now(), self.policy)
        except DomainException as e:
            self._fail(user_id, "debt_impact", e)
            raise
        return self._finish(user_id, "debt_impact", started, result)

    async def predict_sol_timing(self, user_id: str, plan: SolPlan) -> AnalysisResult:
        started = time.time()
        try:
            records = await self._recent(user_id, self.policy.savings_window_days)
            result = risk.predict_sol_timing(records, plan, self._now(), self.policy)
        except DomainException as e:
            self._fail(user_id, "sol_timing", e)
            raise
        return self._finish(user_id, "sol_timing", started, result)

    async def find_similar_users(self, user_id: str, peer_ids: Sequence[str], k: int = 5) -> AnalysisResult:
        started = time.time()
        try:
            histories: Dict[str, List[TransactionRecord]] = {}
            for uid in [user_id, *peer_ids]:
                if uid not in histories:
                    histories[uid] = await self._history(uid)
            result = clustering.find_similar_users(user_id, histories, k, self.policy)
        except DomainException as e:
            self._fail(user_id, "similar_users", e)
            raise
        return self._finish(user_id, "similar_users", started, result)

    # --- Model training ---

    def _trainer(self, db: Session) -> ModelTrainer:
        return ModelTrainer(ModelRepository(db), self.policy, self.config.training_timeout_seconds)

    async def train_model(
        self,
        user_id: str,
        model_type: Union[str, ModelType] = ModelType.SPENDING_PREDICTION,
        cancel_event: Optional[threading.Event] = None,
    ) -> Union[TrainingResult, TrainingFailure]:
        """
        Train and store the next model version for the user.

        Flow:
        1. Fetch the lookback window of history
        2. Fit and evaluate the model
        3. Commit the new snapshot (failures commit nothing)
        """
        started = time.time()
        try:
            model_type = parse_model_type(model_type)
            records = await self._history(user_id)
        except DomainException as e:
            self._fail(user_id, "training", e)
            raise

        db = self.session_factory()
        try:
            result = self._trainer(db).train(user_id, records, model_type, self._now(), cancel_event)
            if result.success:
                db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        duration = time.time() - started
        type_label = model_type.value
        record_training(type_label, result.success, duration)
        if isinstance(result, TrainingResult):
            log_training(user_id, type_label, True, duration * 1000, result.model.version, result.model.accuracy)
        else:
            log_training(user_id, type_label, False, duration * 1000, reason=result.reason)
        return result

    def _transition(self, action: Callable[[ModelTrainer], TrainedModel]) -> TrainedModel:
        db = self.session_factory()
        try:
            model = action(self._trainer(db))
            db.commit()
            return model
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def deploy_model(self, user_id: str, model_type: Union[str, ModelType], version: int) -> TrainedModel:
        return self._transition(lambda trainer: trainer.deploy(user_id, model_type, version))

    def deprecate_model(self, user_id: str, model_type: Union[str, ModelType], version: int) -> TrainedModel:
        return self._transition(lambda trainer: trainer.deprecate(user_id, model_type, version))

    def current_model(self, user_id: str, model_type: Union[str, ModelType]) -> Optional[TrainedModel]:
        db = self.session_factory()
        try:
            return self._trainer(db).current(user_id, model_type)
        finally:
            db.close()
