"""Model trainer - weekly feature extraction and a gradient-descent linear model.

Training is append-only: every successful run stores a new `TrainedModel`
snapshot with the next version number for the (user, model type) pair. The
current model is the highest version that has not been deprecated.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence, Union

from finsight.domain.exceptions import (
    InvalidModelTypeError,
    ModelDeploymentError,
    ModelNotFoundError,
    TrainingDiverged,
    TrainingInterrupted,
)
from finsight.domain.models import ModelMetrics, ModelStatus, ModelType, TrainedModel, TransactionRecord
from finsight.domain.policy import DEFAULT_POLICY, AnalyticsPolicy
from finsight.domain.results import Recommendation, TrainingFailure, TrainingResult
from finsight.domain.statistics import mean
from finsight.utils.date_utils import iso_week_key, months_ago, utc_now

logger = logging.getLogger(__name__)

FEATURE_NAMES = [
    "total_amount",
    "avg_amount",
    "tx_count",
    "day_of_month",
    "day_of_week",
    "category_count",
]


@dataclass(frozen=True)
class TrainingSample:
    features: List[float]
    label: float


@dataclass(frozen=True)
class LinearModelFit:
    weights: List[float]
    bias: float
    epochs_completed: int


@dataclass(frozen=True)
class Evaluation:
    metrics: ModelMetrics
    accuracy: float


class ModelStore(Protocol):
    """Append-only storage for model snapshots"""

    def latest_version(self, user_id: str, model_type: ModelType) -> int: ...

    def append(self, model: TrainedModel) -> TrainedModel: ...

    def get_version(self, user_id: str, model_type: ModelType, version: int) -> Optional[TrainedModel]: ...

    def get_current(self, user_id: str, model_type: ModelType) -> Optional[TrainedModel]: ...

    def set_status(self, user_id: str, model_type: ModelType, version: int, status: ModelStatus) -> TrainedModel: ...


def parse_model_type(value: Union[str, ModelType]) -> ModelType:
    try:
        return ModelType(value)
    except ValueError as e:
        raise InvalidModelTypeError(f"Unsupported model type: {value!r}") from e


def _week_features(records: List[TransactionRecord], policy: AnalyticsPolicy) -> List[float]:
    rate = policy.usd_exchange_rate
    total = sum(r.base_amount(rate) for r in records)
    first = min(records, key=lambda r: r.date)
    return [
        total / 1000,
        total / len(records) / 1000,
        float(len(records)),
        first.date.day / 31,
        (first.date.isoweekday() % 7) / 7,  # Sunday = 0
        float(len({r.category for r in records})),
    ]


def extract_weekly_features(
    records: Sequence[TransactionRecord],
    policy: AnalyticsPolicy = DEFAULT_POLICY,
) -> List[TrainingSample]:
    """
    One training sample per ISO week, oldest week first.

    Features: [total/1000, avg/1000, count, day_of_month/31, day_of_week/7,
    distinct categories], taken from the week's records. The label is the
    week's expense total.
    """
    weeks = {}
    for record in records:
        weeks.setdefault(iso_week_key(record.date), []).append(record)

    samples = []
    for key in sorted(weeks):
        week = weeks[key]
        label = sum(r.base_amount(policy.usd_exchange_rate) for r in week if r.is_expense)
        samples.append(TrainingSample(features=_week_features(week, policy), label=label))
    return samples


def _check_interrupted(deadline: Optional[float], cancel_event: Optional[threading.Event], epoch: int) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise TrainingInterrupted(f"Training cancelled after {epoch} epochs")
    if deadline is not None and time.monotonic() > deadline:
        raise TrainingInterrupted(f"Training timed out after {epoch} epochs")


def _mean_squared_error(weights: Sequence[float], bias: float, samples: Sequence[TrainingSample]) -> float:
    total = 0.0
    for sample in samples:
        error = sum(w * x for w, x in zip(weights, sample.features)) + bias - sample.label
        total += error * error
    return total / len(samples)


def _check_converging(loss: float, initial_loss: float, epoch: int) -> None:
    if not math.isfinite(loss):
        raise TrainingDiverged(f"Loss became non-finite at epoch {epoch}")
    if loss > initial_loss:
        raise TrainingDiverged(f"Loss grew past its starting value at epoch {epoch} ({loss:.4g} > {initial_loss:.4g})")


def fit_linear_model(
    samples: Sequence[TrainingSample],
    learning_rate: float = 0.01,
    epochs: int = 100,
    deadline: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> LinearModelFit:
    """
    Full-batch gradient descent on mean squared error.

    Every epoch computes the averaged gradient over all samples and then
    updates all weights at once. `deadline` is a `time.monotonic()` value;
    both it and `cancel_event` are checked before each epoch.

    The loss of every epoch must stay at or below the loss of the all-zero
    starting point; an oscillating fit can grow for many epochs while its
    weights are still finite.

    Raises:
        TrainingInterrupted: cancelled or past the deadline
        TrainingDiverged: the loss grew past its starting value or stopped being finite
    """
    if not samples:
        return LinearModelFit(weights=[], bias=0.0, epochs_completed=0)

    n = len(samples)
    m = len(samples[0].features)
    weights = [0.0] * m
    bias = 0.0
    initial_loss = _mean_squared_error(weights, bias, samples)

    for epoch in range(epochs):
        _check_interrupted(deadline, cancel_event, epoch)

        grad_w = [0.0] * m
        grad_b = 0.0
        loss = 0.0
        for sample in samples:
            error = sum(w * x for w, x in zip(weights, sample.features)) + bias - sample.label
            for j, x in enumerate(sample.features):
                grad_w[j] += error * x
            grad_b += error
            loss += error * error
        _check_converging(loss / n, initial_loss, epoch)

        weights = [w - learning_rate * g / n for w, g in zip(weights, grad_w)]
        bias -= learning_rate * grad_b / n

    _check_converging(_mean_squared_error(weights, bias, samples), initial_loss, epochs)
    return LinearModelFit(weights=weights, bias=bias, epochs_completed=epochs)


def evaluate_model(
    weights: Sequence[float],
    bias: float,
    samples: Sequence[TrainingSample],
    tolerance: float = 0.20,
) -> Evaluation:
    """
    Fit metrics on the training samples.

    Accuracy is the percentage of predictions within `tolerance` relative
    error of the actual label. R2 is 0 when the labels are constant.
    """
    if not samples:
        return Evaluation(metrics=ModelMetrics(mse=0.0, rmse=0.0, mae=0.0, r2=0.0), accuracy=0.0)

    actuals = [s.label for s in samples]
    predictions = [sum(w * x for w, x in zip(weights, s.features)) + bias for s in samples]
    errors = [p - a for p, a in zip(predictions, actuals)]

    mse = mean([e * e for e in errors])
    mae = mean([abs(e) for e in errors])

    mean_actual = mean(actuals)
    total_ss = sum((a - mean_actual) ** 2 for a in actuals)
    r2 = 1 - sum(e * e for e in errors) / total_ss if total_ss else 0.0

    accurate = sum(1 for e, a in zip(errors, actuals) if abs(e) <= tolerance * abs(a))
    return Evaluation(
        metrics=ModelMetrics(mse=mse, rmse=math.sqrt(mse), mae=mae, r2=r2),
        accuracy=accurate / len(samples) * 100,
    )


def model_recommendations(evaluation: Evaluation) -> List[Recommendation]:
    recommendations = []
    if evaluation.accuracy < 70:
        recommendations.append(
            Recommendation(priority="high", message="Low model accuracy. Collect 3+ more months of transactions.")
        )
    if evaluation.metrics.r2 < 0.6:
        recommendations.append(
            Recommendation(priority="medium", message="The model explains less than 60% of the variation. Add more features.")
        )
    if evaluation.metrics.mae > 5000:
        recommendations.append(
            Recommendation(
                priority="medium",
                message=f"High mean error ({round(evaluation.metrics.mae)} HTG). Tune the model parameters.",
            )
        )
    if not recommendations:
        recommendations.append(
            Recommendation(priority="low", message="Model performs well. Keep training it with new data.")
        )
    return recommendations


class ModelTrainer:
    """
    Trains per-user linear models and manages their lifecycle.

    The store is only written once per successful run, after training and
    evaluation have finished; failed, diverged or interrupted runs write
    nothing.
    """

    def __init__(
        self,
        repository: ModelStore,
        policy: AnalyticsPolicy = DEFAULT_POLICY,
        timeout_seconds: Optional[float] = None,
    ):
        self.repository = repository
        self.policy = policy
        self.timeout_seconds = timeout_seconds

    def train(
        self,
        user_id: str,
        records: Sequence[TransactionRecord],
        model_type: Union[str, ModelType] = ModelType.SPENDING_PREDICTION,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Union[TrainingResult, TrainingFailure]:
        """
        Train a new model version from the user's recent history.

        Requirements:
        - model_type must be a supported ModelType (raises otherwise)
        - at least `min_training_samples` transactions in the last
          `history_months` months
        """
        model_type = parse_model_type(model_type)
        now = now or utc_now()
        start = months_ago(now, self.policy.history_months)
        window = [r for r in records if start <= r.date <= now]

        if len(window) < self.policy.min_training_samples:
            return TrainingFailure(
                reason=(
                    f"Not enough data to train a model "
                    f"(minimum {self.policy.min_training_samples} transactions)"
                ),
                sample_count=len(window),
            )

        samples = extract_weekly_features(window, self.policy)
        deadline = time.monotonic() + self.timeout_seconds if self.timeout_seconds else None
        try:
            fit = fit_linear_model(
                samples,
                learning_rate=self.policy.learning_rate,
                epochs=self.policy.epochs,
                deadline=deadline,
                cancel_event=cancel_event,
            )
        except (TrainingInterrupted, TrainingDiverged) as e:
            logger.warning("Training failed", extra={"user_id": user_id, "model_type": model_type.value, "error": str(e)})
            return TrainingFailure(reason=str(e), sample_count=len(samples))

        evaluation = evaluate_model(fit.weights, fit.bias, samples, self.policy.accuracy_tolerance)
        model = TrainedModel(
            user_id=user_id,
            model_type=model_type,
            version=self.repository.latest_version(user_id, model_type) + 1,
            weights=fit.weights,
            bias=fit.bias,
            accuracy=evaluation.accuracy,
            metrics=evaluation.metrics,
            trained_at=datetime.now(timezone.utc),
            status=ModelStatus.TRAINED,
            feature_names=list(FEATURE_NAMES),
            sample_count=len(samples),
            hyperparameters={
                "learning_rate": self.policy.learning_rate,
                "epochs": self.policy.epochs,
                "feature_count": len(FEATURE_NAMES),
            },
        )
        stored = self.repository.append(model)
        return TrainingResult(model=stored, recommendations=model_recommendations(evaluation))

    def current(self, user_id: str, model_type: Union[str, ModelType]) -> Optional[TrainedModel]:
        return self.repository.get_current(user_id, parse_model_type(model_type))

    def deploy(self, user_id: str, model_type: Union[str, ModelType], version: int) -> TrainedModel:
        """Mark a snapshot deployed; refuses models below the accuracy floor"""
        model_type = parse_model_type(model_type)
        model = self.repository.get_version(user_id, model_type, version)
        if model is None:
            raise ModelNotFoundError(f"No {model_type.value} model v{version} for user {user_id}")
        if model.accuracy < self.policy.min_deploy_accuracy:
            raise ModelDeploymentError(
                f"Accuracy {model.accuracy:.1f}% is below the deployment floor "
                f"of {self.policy.min_deploy_accuracy:.0f}%"
            )
        return self.repository.set_status(user_id, model_type, version, ModelStatus.DEPLOYED)

    def deprecate(self, user_id: str, model_type: Union[str, ModelType], version: int) -> TrainedModel:
        model_type = parse_model_type(model_type)
        if self.repository.get_version(user_id, model_type, version) is None:
            raise ModelNotFoundError(f"No {model_type.value} model v{version} for user {user_id}")
        return self.repository.set_status(user_id, model_type, version, ModelStatus.DEPRECATED)
