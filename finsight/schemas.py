"""Pydantic schemas for the persisted model artifact"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from finsight.domain.models import ModelMetrics, ModelStatus, ModelType, TrainedModel


class ArtifactMetrics(BaseModel):
    """Fit quality of a trained model"""

    model_config = ConfigDict(allow_inf_nan=False)

    mse: float = Field(..., ge=0)
    rmse: float = Field(..., ge=0)
    mae: float = Field(..., ge=0)
    r2: float


class ModelArtifact(BaseModel):
    """Stable camelCase representation of a `TrainedModel` snapshot"""

    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False, protected_namespaces=())

    user_id: str = Field(..., min_length=1, alias="userId")
    model_type: ModelType = Field(..., alias="modelType")
    version: int = Field(..., ge=1)
    weights: List[float] = Field(..., min_length=1)
    bias: float
    accuracy: float = Field(..., ge=0, le=100)
    metrics: ArtifactMetrics
    trained_at: datetime = Field(..., alias="trainedAt")
    status: ModelStatus = ModelStatus.TRAINED

    @classmethod
    def from_model(cls, model: TrainedModel) -> "ModelArtifact":
        return cls(
            user_id=model.user_id,
            model_type=model.model_type,
            version=model.version,
            weights=list(model.weights),
            bias=model.bias,
            accuracy=model.accuracy,
            metrics=ArtifactMetrics(
                mse=model.metrics.mse,
                rmse=model.metrics.rmse,
                mae=model.metrics.mae,
                r2=model.metrics.r2,
            ),
            trained_at=model.trained_at,
            status=model.status,
        )

    def to_model(self) -> TrainedModel:
        return TrainedModel(
            user_id=self.user_id,
            model_type=self.model_type,
            version=self.version,
            weights=list(self.weights),
            bias=self.bias,
            accuracy=self.accuracy,
            metrics=ModelMetrics(
                mse=self.metrics.mse,
                rmse=self.metrics.rmse,
                mae=self.metrics.mae,
                r2=self.metrics.r2,
            ),
            trained_at=self.trained_at,
            status=self.status,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
