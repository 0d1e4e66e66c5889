"""Integration tests for the model snapshot repository (SQLite)"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from finsight.domain.exceptions import ModelNotFoundError
from finsight.domain.models import ModelMetrics, ModelStatus, ModelType, TrainedModel
from finsight.infrastructure.database.repositories import ModelRepository
from finsight.infrastructure.database.session import init_db


def make_model(version, user_id="user_1", model_type=ModelType.SPENDING_PREDICTION, accuracy=80.0):
    return TrainedModel(
        user_id=user_id,
        model_type=model_type,
        version=version,
        weights=[0.5, -1.25, 3.0, 0.0, 0.125, 2.0],
        bias=42.5,
        accuracy=accuracy,
        metrics=ModelMetrics(mse=100.0, rmse=10.0, mae=8.0, r2=0.7),
        trained_at=datetime(2024, 6, 1, 12, tzinfo=timezone.utc),
        feature_names=["a", "b", "c", "d", "e", "f"],
        sample_count=12,
        hyperparameters={"learning_rate": 0.01, "epochs": 100},
    )


def test_init_db_creates_table(db):
    init_db(db.get_bind())
    assert inspect(db.get_bind()).has_table("trained_model")


def test_append_round_trips_snapshot(db):
    repo = ModelRepository(db)

    repo.append(make_model(1))
    db.commit()
    loaded = repo.get_version("user_1", ModelType.SPENDING_PREDICTION, 1)

    assert loaded.weights == [0.5, -1.25, 3.0, 0.0, 0.125, 2.0]
    assert loaded.bias == 42.5
    assert loaded.version == 1
    assert loaded.metrics == ModelMetrics(mse=100.0, rmse=10.0, mae=8.0, r2=0.7)
    assert loaded.status == ModelStatus.TRAINED
    assert loaded.feature_names == ["a", "b", "c", "d", "e", "f"]
    assert loaded.hyperparameters["epochs"] == 100


def test_latest_version_per_user_and_type(db):
    repo = ModelRepository(db)
    assert repo.latest_version("user_1", ModelType.SPENDING_PREDICTION) == 0

    repo.append(make_model(1))
    repo.append(make_model(2))
    repo.append(make_model(1, model_type=ModelType.INCOME_FORECAST))
    repo.append(make_model(5, user_id="user_2"))

    assert repo.latest_version("user_1", ModelType.SPENDING_PREDICTION) == 2
    assert repo.latest_version("user_1", ModelType.INCOME_FORECAST) == 1
    assert [m.version for m in repo.list_versions("user_1", ModelType.SPENDING_PREDICTION)] == [1, 2]


def test_duplicate_version_is_rejected(db):
    repo = ModelRepository(db)
    repo.append(make_model(1))

    with pytest.raises(IntegrityError):
        repo.append(make_model(1))
    db.rollback()


def test_current_skips_deprecated(db):
    repo = ModelRepository(db)
    repo.append(make_model(1))
    repo.append(make_model(2))

    repo.set_status("user_1", ModelType.SPENDING_PREDICTION, 1, ModelStatus.DEPLOYED)
    assert repo.get_current("user_1", ModelType.SPENDING_PREDICTION).version == 2

    repo.set_status("user_1", ModelType.SPENDING_PREDICTION, 2, ModelStatus.DEPRECATED)
    current = repo.get_current("user_1", ModelType.SPENDING_PREDICTION)
    assert current.version == 1
    assert current.status == ModelStatus.DEPLOYED


def test_status_change_keeps_weights(db):
    repo = ModelRepository(db)
    repo.append(make_model(1))

    updated = repo.set_status("user_1", ModelType.SPENDING_PREDICTION, 1, ModelStatus.DEPRECATED)

    assert updated.weights == make_model(1).weights
    assert repo.get_current("user_1", ModelType.SPENDING_PREDICTION) is None


def test_set_status_on_missing_version_raises(db):
    with pytest.raises(ModelNotFoundError):
        ModelRepository(db).set_status("user_1", ModelType.SPENDING_PREDICTION, 7, ModelStatus.DEPLOYED)
