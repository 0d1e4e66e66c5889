"""Unit tests for feature extraction, gradient descent and the model trainer"""

import threading
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from pydantic import ValidationError

from finsight.domain.exceptions import (
    InvalidModelTypeError,
    ModelDeploymentError,
    ModelNotFoundError,
    TrainingDiverged,
    TrainingInterrupted,
)
from finsight.domain.models import Category, ModelMetrics, ModelStatus, ModelType, TrainedModel, TransactionType
from finsight.domain.training import (
    FEATURE_NAMES,
    ModelTrainer,
    TrainingSample,
    evaluate_model,
    extract_weekly_features,
    fit_linear_model,
    parse_model_type,
)
from finsight.schemas import ModelArtifact


class InMemoryModelStore:
    """List-backed model store used to observe what the trainer writes"""

    def __init__(self):
        self.models: List[TrainedModel] = []

    def _matching(self, user_id, model_type):
        return [m for m in self.models if m.user_id == user_id and m.model_type == model_type]

    def latest_version(self, user_id, model_type) -> int:
        return max((m.version for m in self._matching(user_id, model_type)), default=0)

    def append(self, model):
        self.models.append(model)
        return model

    def get_version(self, user_id, model_type, version) -> Optional[TrainedModel]:
        return next((m for m in self._matching(user_id, model_type) if m.version == version), None)

    def get_current(self, user_id, model_type) -> Optional[TrainedModel]:
        active = [m for m in self._matching(user_id, model_type) if m.status != ModelStatus.DEPRECATED]
        return max(active, key=lambda m: m.version, default=None)

    def set_status(self, user_id, model_type, version, status):
        model = self.get_version(user_id, model_type, version)
        if model is None:
            raise ModelNotFoundError(version)
        updated = replace(model, status=status)
        self.models[self.models.index(model)] = updated
        return updated


def snapshot(version, accuracy=85.0, status=ModelStatus.TRAINED, user_id="user_1"):
    return TrainedModel(
        user_id=user_id,
        model_type=ModelType.SPENDING_PREDICTION,
        version=version,
        weights=[0.1] * 6,
        bias=1.0,
        accuracy=accuracy,
        metrics=ModelMetrics(mse=4.0, rmse=2.0, mae=1.5, r2=0.8),
        trained_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        status=status,
    )


@pytest.fixture
def store():
    return InMemoryModelStore()


@pytest.fixture
def weekly_expenses(make_record, now):
    """Ten weeks of four small expenses each, inside the training window"""
    records = []
    for week in range(10):
        day = now - timedelta(days=week * 7 + 1)
        for i, amount in enumerate([200, 300, 250, 150 + 50 * (week % 3)]):
            category = Category.FOOD if i % 2 else Category.TRANSPORT
            records.append(make_record(amount, date=day - timedelta(hours=i), category=category))
    return records


@pytest.fixture
def heavy_user_year(make_record, now):
    """A year of twelve expenses a week, around 1,800 HTG each"""
    records = []
    for week in range(52):
        day = now - timedelta(days=week * 7 + 1)
        for i in range(12):
            records.append(make_record(1700 + 20 * (i % 10), date=day - timedelta(hours=i), category=Category.FOOD))
    return records


def test_weekly_features(make_record):
    monday = datetime(2024, 6, 10, 9)
    records = [
        make_record(500, date=monday + timedelta(days=2), category=Category.TRANSPORT),
        make_record(1000, date=monday, category=Category.FOOD),
        make_record(2000, date=datetime(2024, 6, 17, 9), type=TransactionType.INCOME, category=Category.SALARY),
    ]

    samples = extract_weekly_features(records)

    assert len(samples) == 2
    first, second = samples
    # features come from the earliest record of the week (Monday the 10th)
    assert first.features == pytest.approx([1.5, 0.75, 2.0, 10 / 31, 1 / 7, 2.0])
    assert first.label == 1500
    # income-only week: no expense label
    assert second.label == 0
    assert second.features[2] == 1.0


def test_gradient_descent_recovers_line():
    """Test y = 2x + 1 is learned to within a small tolerance"""
    samples = [TrainingSample(features=[x / 4], label=2 * x / 4 + 1) for x in range(5)]

    fit = fit_linear_model(samples, learning_rate=0.5, epochs=2000)

    assert fit.weights[0] == pytest.approx(2.0, abs=0.01)
    assert fit.bias == pytest.approx(1.0, abs=0.01)
    assert fit.epochs_completed == 2000


def test_gradient_descent_without_samples():
    fit = fit_linear_model([])
    assert fit.weights == []
    assert fit.epochs_completed == 0


def test_gradient_descent_divergence_is_detected():
    samples = [TrainingSample(features=[1000.0], label=1.0), TrainingSample(features=[2000.0], label=2.0)]

    with pytest.raises(TrainingDiverged):
        fit_linear_model(samples, learning_rate=10.0, epochs=500)


def test_gradient_descent_growing_loss_is_divergence(heavy_user_year):
    """Test an oscillating fit is rejected while its weights are still finite"""
    samples = extract_weekly_features(heavy_user_year)

    with pytest.raises(TrainingDiverged, match="starting value"):
        fit_linear_model(samples, learning_rate=0.01, epochs=100)


def test_heavy_user_training_writes_nothing(store, heavy_user_year, now):
    result = ModelTrainer(store).train("user_1", heavy_user_year, now=now)

    assert result.success is False
    assert result.status == ModelStatus.FAILED
    assert result.sample_count == 52
    assert "Loss grew" in result.reason
    assert store.models == []


def test_gradient_descent_honours_cancel_and_deadline():
    samples = [TrainingSample(features=[1.0], label=1.0)]
    cancelled = threading.Event()
    cancelled.set()

    with pytest.raises(TrainingInterrupted):
        fit_linear_model(samples, cancel_event=cancelled)
    with pytest.raises(TrainingInterrupted):
        fit_linear_model(samples, deadline=time.monotonic() - 1)


def test_evaluate_perfect_fit():
    samples = [TrainingSample(features=[x], label=2 * x + 1) for x in range(5)]

    evaluation = evaluate_model([2.0], 1.0, samples)

    assert evaluation.metrics.mse == pytest.approx(0)
    assert evaluation.metrics.r2 == pytest.approx(1)
    assert evaluation.accuracy == 100


def test_evaluate_tolerance_and_constant_labels():
    # errors 1 (within 20% of 9) and -10 (outside 20% of 20)
    mixed = evaluate_model([0.0], 10.0, [TrainingSample([1.0], 9.0), TrainingSample([1.0], 20.0)])
    assert mixed.accuracy == 50
    assert mixed.metrics.mae == pytest.approx(5.5)

    constant = evaluate_model([0.0], 4.0, [TrainingSample([1.0], 5.0), TrainingSample([2.0], 5.0)])
    assert constant.metrics.r2 == 0.0


def test_parse_model_type():
    assert parse_model_type("income_forecast") == ModelType.INCOME_FORECAST
    with pytest.raises(InvalidModelTypeError):
        parse_model_type("crystal_ball")


def test_training_appends_new_versions(store, weekly_expenses, now):
    trainer = ModelTrainer(store)

    first = trainer.train("user_1", weekly_expenses, now=now)
    second = trainer.train("user_1", weekly_expenses, now=now)

    assert first.success is True
    assert first.model.version == 1
    assert second.model.version == 2
    assert len(store.models) == 2
    assert first.model.status == ModelStatus.TRAINED
    assert first.model.feature_names == FEATURE_NAMES
    assert len(first.model.weights) == len(FEATURE_NAMES)
    assert first.model.sample_count == 10
    assert 0 <= first.model.accuracy <= 100
    assert first.recommendations
    # earlier snapshot is untouched
    assert store.get_version("user_1", ModelType.SPENDING_PREDICTION, 1).weights == first.model.weights


def test_training_with_too_few_records_writes_nothing(store, weekly_expenses, now):
    result = ModelTrainer(store).train("user_1", weekly_expenses[:29], now=now)

    assert result.success is False
    assert result.status == ModelStatus.FAILED
    assert result.sample_count == 29
    assert store.models == []


def test_records_outside_window_are_ignored(store, weekly_expenses, now):
    result = ModelTrainer(store).train("user_1", weekly_expenses, now=now + timedelta(days=500))
    assert result.success is False
    assert result.sample_count == 0


def test_cancelled_training_writes_nothing(store, weekly_expenses, now):
    cancelled = threading.Event()
    cancelled.set()

    result = ModelTrainer(store).train("user_1", weekly_expenses, now=now, cancel_event=cancelled)

    assert result.success is False
    assert "cancelled" in result.reason
    assert store.models == []


def test_invalid_model_type_raises(store, weekly_expenses, now):
    with pytest.raises(InvalidModelTypeError):
        ModelTrainer(store).train("user_1", weekly_expenses, model_type="horoscope", now=now)


def test_deploy_requires_accuracy_floor(store):
    store.append(snapshot(1, accuracy=85.0))
    store.append(snapshot(2, accuracy=40.0))
    trainer = ModelTrainer(store)

    deployed = trainer.deploy("user_1", "spending_prediction", 1)

    assert deployed.status == ModelStatus.DEPLOYED
    with pytest.raises(ModelDeploymentError):
        trainer.deploy("user_1", ModelType.SPENDING_PREDICTION, 2)
    with pytest.raises(ModelNotFoundError):
        trainer.deploy("user_1", ModelType.SPENDING_PREDICTION, 3)


def test_current_skips_deprecated(store):
    store.append(snapshot(1))
    store.append(snapshot(2))
    trainer = ModelTrainer(store)

    assert trainer.current("user_1", ModelType.SPENDING_PREDICTION).version == 2
    trainer.deprecate("user_1", ModelType.SPENDING_PREDICTION, 2)
    assert trainer.current("user_1", ModelType.SPENDING_PREDICTION).version == 1
    assert trainer.current("user_2", ModelType.SPENDING_PREDICTION) is None
    with pytest.raises(ModelNotFoundError):
        trainer.deprecate("user_1", ModelType.SPENDING_PREDICTION, 9)


def test_trained_model_predict_and_grade():
    model = snapshot(1, accuracy=72.0)
    assert model.predict([1, 1, 1, 1, 1, 1]) == pytest.approx(1.6)
    assert model.performance_grade == "C"


def test_model_artifact_uses_camel_case():
    artifact = ModelArtifact.from_model(snapshot(3))
    data = artifact.model_dump(by_alias=True)

    assert data["userId"] == "user_1"
    assert data["modelType"] == ModelType.SPENDING_PREDICTION
    assert "trainedAt" in data
    assert '"modelType":"spending_prediction"' in artifact.to_json()
    assert artifact.to_model().version == 3


def test_model_artifact_rejects_invalid_snapshots():
    valid = ModelArtifact.from_model(snapshot(1)).model_dump(by_alias=True)

    with pytest.raises(ValidationError):
        ModelArtifact(**{**valid, "weights": []})
    with pytest.raises(ValidationError):
        ModelArtifact(**{**valid, "version": 0})
    with pytest.raises(ValidationError):
        ModelArtifact(**{**valid, "bias": float("nan")})
    with pytest.raises(ValidationError):
        ModelArtifact(**{**valid, "modelType": "horoscope"})
