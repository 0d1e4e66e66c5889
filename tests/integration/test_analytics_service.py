"""Integration tests for the analytics service with a patched transaction store"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from prometheus_client import REGISTRY

from finsight.application.analytics import AnalyticsService
from finsight.application.factory import create_service
from finsight.config import settings
from finsight.domain.exceptions import InvalidModelTypeError, ModelDeploymentError, TransactionSourceError
from finsight.domain.models import (
    Budget,
    Category,
    ContributionFrequency,
    DebtProposal,
    ModelMetrics,
    ModelStatus,
    ModelType,
    SolPlan,
    TrainedModel,
)
from finsight.infrastructure.clients.transactions import TransactionSourceClient
from finsight.infrastructure.database.repositories import ModelRepository
from finsight.infrastructure.observability.metrics import render_metrics
from finsight.utils.date_utils import months_ago

CLIENT = "finsight.infrastructure.clients.transactions.TransactionSourceClient"


@pytest.fixture
def service(session_factory, now) -> AnalyticsService:
    return AnalyticsService(
        source=TransactionSourceClient(base_url="http://store.test"),
        session_factory=session_factory,
        clock=lambda: now,
    )


@pytest.fixture
def training_history(make_record, now):
    """Twelve weeks of small weekly expenses"""
    records = []
    for week in range(12):
        day = now - timedelta(days=week * 7 + 1)
        for i, amount in enumerate([250, 300, 150 + 25 * (week % 4)]):
            records.append(make_record(amount, date=day - timedelta(hours=i), category=Category.FOOD))
    return records


def sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def make_model(version, accuracy):
    return TrainedModel(
        user_id="user_1",
        model_type=ModelType.SPENDING_PREDICTION,
        version=version,
        weights=[1.0] * 6,
        bias=0.0,
        accuracy=accuracy,
        metrics=ModelMetrics(mse=1.0, rmse=1.0, mae=1.0, r2=0.9),
        trained_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )


@patch(f"{CLIENT}.get_transactions")
async def test_spending_patterns(mock_transactions: AsyncMock, service, monthly_history, now):
    """Test the service fetches a trailing window and returns the engine result"""
    mock_transactions.return_value = monthly_history

    result = await service.analyze_spending_patterns("user_1")

    assert result.has_data is True
    user_id, start, end = mock_transactions.call_args.args
    assert user_id == "user_1"
    assert end == now
    assert start == now - timedelta(days=settings.analysis_window_days)


@patch(f"{CLIENT}.get_transactions")
async def test_anomalies_are_counted(mock_transactions: AsyncMock, service, make_record, now):
    mock_transactions.return_value = [make_record(100, date=now - timedelta(days=i)) for i in range(1, 6)] + [
        make_record(10000, date=now - timedelta(days=7))
    ]
    before = sample("finsight_anomalies_total", {"severity": "critical"})

    result = await service.detect_anomalies("user_1")

    assert result.anomaly_count == 1
    assert sample("finsight_anomalies_total", {"severity": "critical"}) == before + 1


@patch(f"{CLIENT}.get_transactions")
async def test_insufficient_data_is_returned_not_raised(mock_transactions: AsyncMock, service):
    mock_transactions.return_value = []
    before = sample("finsight_analysis_total", {"operation": "habits", "outcome": "insufficient_data"})

    result = await service.identify_habits("user_1")

    assert result.has_data is False
    assert sample("finsight_analysis_total", {"operation": "habits", "outcome": "insufficient_data"}) == before + 1


@patch(f"{CLIENT}.get_savings_group_count")
@patch(f"{CLIENT}.get_active_budgets")
@patch(f"{CLIENT}.get_transactions")
async def test_financial_health(
    mock_transactions: AsyncMock,
    mock_budgets: AsyncMock,
    mock_groups: AsyncMock,
    service,
    monthly_history,
    now,
):
    mock_transactions.return_value = monthly_history
    mock_budgets.return_value = [
        Budget(
            id="b1",
            name="Manje",
            category=Category.FOOD,
            amount=15000,
            spent=5000,
            start_date=now - timedelta(days=10),
            end_date=now + timedelta(days=20),
        )
    ]
    mock_groups.return_value = 1

    result = await service.calculate_financial_health("user_1")

    # 20 tracking + 25 budget + 20 sol + 35 ratio (14000 / 60000)
    assert result.score == 100
    assert result.level == "Excellent"


@patch(f"{CLIENT}.get_transactions")
async def test_expense_forecast(mock_transactions: AsyncMock, service, monthly_history, now):
    mock_transactions.return_value = monthly_history

    result = await service.predict_future_expenses("user_1", months=3)

    assert result.success is True
    assert len(result.predictions) == 3
    _, start, _ = mock_transactions.call_args.args
    assert start.year == now.year - 1


@patch(f"{CLIENT}.get_savings_group_count")
@patch(f"{CLIENT}.get_active_budgets")
@patch(f"{CLIENT}.get_transactions")
async def test_debt_impact_scores_current_health(
    mock_transactions: AsyncMock,
    mock_budgets: AsyncMock,
    mock_groups: AsyncMock,
    service,
    monthly_history,
):
    mock_transactions.return_value = monthly_history
    mock_budgets.return_value = []
    mock_groups.return_value = 0

    result = await service.predict_debt_impact(
        "user_1", DebtProposal(amount=50000, monthly_payment=5000, duration_months=12)
    )

    # tracking + ratio only
    assert result.current_health_score == 55
    assert result.risk_level == "low"
    assert result.alternatives


@patch(f"{CLIENT}.get_transactions")
async def test_similar_users_fetches_each_history_once(mock_transactions: AsyncMock, service, make_record, now):
    spend = {"me": 1000, "a": 900, "b": 5000}

    async def history(user_id, start, end, type=None):
        return [make_record(spend[user_id], date=now - timedelta(days=3))]

    mock_transactions.side_effect = history

    result = await service.find_similar_users("me", ["a", "b", "a"], k=1)

    assert mock_transactions.await_count == 3
    assert result.similar_users[0].profile.user_id == "a"


@patch(f"{CLIENT}.get_transactions")
async def test_source_error_propagates(mock_transactions: AsyncMock, service):
    mock_transactions.side_effect = TransactionSourceError("store down")
    before = sample("finsight_analysis_total", {"operation": "savings_capacity", "outcome": "error"})

    with pytest.raises(TransactionSourceError):
        await service.predict_savings_capacity("user_1")
    assert sample("finsight_analysis_total", {"operation": "savings_capacity", "outcome": "error"}) == before + 1


@patch(f"{CLIENT}.get_transactions")
async def test_train_model_persists_next_version(mock_transactions: AsyncMock, service, training_history, db):
    mock_transactions.return_value = training_history

    first = await service.train_model("user_1")
    second = await service.train_model("user_1", "spending_prediction")

    assert first.model.version == 1
    assert second.model.version == 2
    stored = ModelRepository(db).list_versions("user_1", ModelType.SPENDING_PREDICTION)
    assert [m.version for m in stored] == [1, 2]
    assert stored[0].weights == pytest.approx(first.model.weights)
    assert service.current_model("user_1", ModelType.SPENDING_PREDICTION).version == 2
    assert "finsight_training_runs_total" in render_metrics().decode()


@patch(f"{CLIENT}.get_transactions")
async def test_failed_training_persists_nothing(mock_transactions: AsyncMock, service, training_history, db):
    cancelled = threading.Event()
    cancelled.set()

    mock_transactions.return_value = training_history[:10]
    too_few = await service.train_model("user_1")
    mock_transactions.return_value = training_history
    interrupted = await service.train_model("user_1", cancel_event=cancelled)

    assert too_few.success is False
    assert interrupted.success is False
    assert ModelRepository(db).latest_version("user_1", ModelType.SPENDING_PREDICTION) == 0
    assert service.current_model("user_1", ModelType.SPENDING_PREDICTION) is None


def test_deploy_and_deprecate(service, db):
    repo = ModelRepository(db)
    repo.append(make_model(1, accuracy=88.0))
    repo.append(make_model(2, accuracy=35.0))
    db.commit()

    deployed = service.deploy_model("user_1", "spending_prediction", 1)
    assert deployed.status == ModelStatus.DEPLOYED

    with pytest.raises(ModelDeploymentError):
        service.deploy_model("user_1", ModelType.SPENDING_PREDICTION, 2)

    service.deprecate_model("user_1", ModelType.SPENDING_PREDICTION, 2)
    current = service.current_model("user_1", ModelType.SPENDING_PREDICTION)
    assert current.version == 1
    assert current.status == ModelStatus.DEPLOYED


def test_classify_transaction(service):
    result = service.classify_transaction("Recharge Natcom", 250)
    assert result.category == Category.SERVICES


def test_create_service_wires_client():
    created = create_service(create_tables=False)

    assert isinstance(created.source, TransactionSourceClient)
    assert created.source.base_url == settings.transaction_api_base
    assert created.policy.usd_exchange_rate == settings.usd_exchange_rate


async def test_store_timestamps_with_offsets_and_aware_clock(session_factory):
    """Test ISO dates ending in `Z` and `+00:00` compare against a UTC-aware clock"""
    expenses = [
        {
            "transaction_id": day,
            "amount": -500,
            "type": "expense",
            "category": "food",
            "date": f"2024-06-{day:02d}T12:00:00.000Z",
        }
        for day in range(5, 14)
    ]
    salary = {
        "transaction_id": "salary",
        "amount": 10000,
        "type": "income",
        "category": "salary",
        "date": "2024-06-01T09:00:00+00:00",
    }
    budget = {
        "id": "b1",
        "name": "Manje",
        "category": "food",
        "amount": 8000,
        "spent": 4500,
        "start_date": "2024-06-01T00:00:00.000Z",
        "end_date": "2024-06-30T23:59:59.999Z",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/transactions"):
            return httpx.Response(200, json={"transactions": [salary, *expenses]})
        if request.url.path.endswith("/budgets"):
            return httpx.Response(200, json={"budgets": [budget]})
        return httpx.Response(200, json={"savings_groups": [{"id": 1}]})

    service = AnalyticsService(
        source=TransactionSourceClient(base_url="http://store.test", transport=httpx.MockTransport(handler)),
        session_factory=session_factory,
        clock=lambda: datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc),
    )

    health = await service.calculate_financial_health("user_1")
    risks = await service.predict_budget_risks("user_1")

    # 20 tracking + 25 budget + 20 sol + 35 ratio (4500 / 10000)
    assert health.score == 100
    assert risks.risks[0].days_remaining == 16


@patch(f"{CLIENT}.get_transactions")
async def test_training_rejects_unknown_model_type(mock_transactions: AsyncMock, service):
    before = sample("finsight_analysis_total", {"operation": "training", "outcome": "error"})

    with pytest.raises(InvalidModelTypeError):
        await service.train_model("user_1", "horoscope")

    mock_transactions.assert_not_awaited()
    assert sample("finsight_analysis_total", {"operation": "training", "outcome": "error"}) == before + 1


@patch(f"{CLIENT}.get_transactions")
async def test_training_source_error_is_recorded(mock_transactions: AsyncMock, service):
    mock_transactions.side_effect = TransactionSourceError("store down")
    before = sample("finsight_analysis_total", {"operation": "training", "outcome": "error"})

    with pytest.raises(TransactionSourceError):
        await service.train_model("user_1")
    assert sample("finsight_analysis_total", {"operation": "training", "outcome": "error"}) == before + 1


@patch(f"{CLIENT}.get_transactions")
async def test_check_amount_anomaly(mock_transactions: AsyncMock, service, make_record, now):
    mock_transactions.return_value = [
        make_record(amount, date=now - timedelta(days=i + 1)) for i, amount in enumerate([100, 200, 300, 100, 200, 300])
    ]

    result = await service.check_amount_anomaly("user_1", 500, Category.FOOD)

    assert result.is_anomaly is True
    assert result.severity == "critical"
    _, start, _ = mock_transactions.call_args.args
    assert start == now - timedelta(days=settings.analysis_window_days)


@patch(f"{CLIENT}.get_transactions")
async def test_category_forecast_fetches_three_months(mock_transactions: AsyncMock, service, monthly_history, now):
    mock_transactions.return_value = monthly_history

    result = await service.predict_category_expense("user_1", Category.TRANSPORT)

    assert result.success is True
    assert result.category == Category.TRANSPORT
    _, start, end = mock_transactions.call_args.args
    assert start == months_ago(now, 3)
    assert end == now


@patch(f"{CLIENT}.get_transactions")
async def test_sol_timing(mock_transactions: AsyncMock, service, monthly_history):
    mock_transactions.return_value = monthly_history
    plan = SolPlan(amount=2000, frequency=ContributionFrequency.WEEKLY, participants=10)

    result = await service.predict_sol_timing("user_1", plan)

    assert result.feasibility.can_afford is True
    assert result.timing.best_payment_day == 17
