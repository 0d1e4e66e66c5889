"""SQLAlchemy ORM models for persisted model snapshots"""

import uuid

from sqlalchemy import JSON, Column, DateTime, Float, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class TrainedModelRecord(Base):
    """One version of a user's trained model (rows are never overwritten, only re-tagged)"""

    __tablename__ = "trained_model"
    __table_args__ = (UniqueConstraint("user_id", "model_type", "version", name="uq_trained_model_version"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    model_type = Column(Text, nullable=False)
    version = Column(Integer, nullable=False)
    weights = Column(JSON, nullable=False)
    bias = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=False)
    metrics = Column(JSON, nullable=False)  # {mse, rmse, mae, r2}
    feature_names = Column(JSON, nullable=True)
    hyperparameters = Column(JSON, nullable=True)
    sample_count = Column(Integer, nullable=False, default=0)
    status = Column(Text, nullable=False, default="trained")
    trained_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
