"""Data access layer for trained model snapshots"""

from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from finsight.domain.exceptions import ModelNotFoundError
from finsight.domain.models import ModelMetrics, ModelStatus, ModelType, TrainedModel
from finsight.infrastructure.database.models import TrainedModelRecord


def to_domain(record: TrainedModelRecord) -> TrainedModel:
    metrics = record.metrics or {}
    return TrainedModel(
        user_id=record.user_id,
        model_type=ModelType(record.model_type),
        version=record.version,
        weights=list(record.weights),
        bias=record.bias,
        accuracy=record.accuracy,
        metrics=ModelMetrics(
            mse=metrics.get("mse", 0.0),
            rmse=metrics.get("rmse", 0.0),
            mae=metrics.get("mae", 0.0),
            r2=metrics.get("r2", 0.0),
        ),
        trained_at=record.trained_at,
        status=ModelStatus(record.status),
        feature_names=list(record.feature_names or []),
        sample_count=record.sample_count,
        hyperparameters=dict(record.hyperparameters or {}),
    )


class ModelRepository:
    """
    Append-only store of model snapshots keyed by (user, model type, version).

    Only `status` is ever updated in place; weights and metrics of a stored
    version never change.
    """

    def __init__(self, db: Session):
        self.db = db

    def _query(self, user_id: str, model_type: ModelType):
        return self.db.query(TrainedModelRecord).filter(
            TrainedModelRecord.user_id == user_id,
            TrainedModelRecord.model_type == model_type.value,
        )

    def _get_record(self, user_id: str, model_type: ModelType, version: int) -> Optional[TrainedModelRecord]:
        return self._query(user_id, model_type).filter(TrainedModelRecord.version == version).first()

    def latest_version(self, user_id: str, model_type: ModelType) -> int:
        """Highest stored version, 0 when none exists"""
        latest = (
            self.db.query(func.max(TrainedModelRecord.version))
            .filter(
                TrainedModelRecord.user_id == user_id,
                TrainedModelRecord.model_type == model_type.value,
            )
            .scalar()
        )
        return latest or 0

    def append(self, model: TrainedModel) -> TrainedModel:
        """Persist a new snapshot"""
        record = TrainedModelRecord(
            user_id=model.user_id,
            model_type=model.model_type.value,
            version=model.version,
            weights=list(model.weights),
            bias=model.bias,
            accuracy=model.accuracy,
            metrics={
                "mse": model.metrics.mse,
                "rmse": model.metrics.rmse,
                "mae": model.metrics.mae,
                "r2": model.metrics.r2,
            },
            feature_names=list(model.feature_names),
            hyperparameters=dict(model.hyperparameters),
            sample_count=model.sample_count,
            status=model.status.value,
            trained_at=model.trained_at,
        )
        self.db.add(record)
        self.db.flush()
        return to_domain(record)

    def get_version(self, user_id: str, model_type: ModelType, version: int) -> Optional[TrainedModel]:
        record = self._get_record(user_id, model_type, version)
        return to_domain(record) if record else None

    def get_current(self, user_id: str, model_type: ModelType) -> Optional[TrainedModel]:
        """Highest version that is not deprecated"""
        record = (
            self._query(user_id, model_type)
            .filter(TrainedModelRecord.status != ModelStatus.DEPRECATED.value)
            .order_by(TrainedModelRecord.version.desc())
            .first()
        )
        return to_domain(record) if record else None

    def list_versions(self, user_id: str, model_type: ModelType) -> List[TrainedModel]:
        records = self._query(user_id, model_type).order_by(TrainedModelRecord.version.asc()).all()
        return [to_domain(r) for r in records]

    def set_status(self, user_id: str, model_type: ModelType, version: int, status: ModelStatus) -> TrainedModel:
        record = self._get_record(user_id, model_type, version)
        if record is None:
            raise ModelNotFoundError(f"No {model_type.value} model v{version} for user {user_id}")
        record.status = status.value
        self.db.flush()
        return to_domain(record)
