import json                                  # Read the packaged model record
import pickle                                # Reload the packaged pipeline

import pytest                                # Pytest framework
from sklearn.pipeline import Pipeline        # Scikit-learn Pipeline class

from src.inference.schemas import ModelRecord
from src.training.model_utils import (
    build_mock_prediction_output,
    build_model_pipeline,
    build_preprocessor,
    evaluate_pipeline,
    split_data,
)
from src.training.train import train_and_package


def test_training_pipeline_runs(heart_frame):
    """Ensure model pipeline trains and evaluates without errors"""
    X_train, X_test, y_train, y_test = split_data(heart_frame)

    pipeline = build_model_pipeline(build_preprocessor(X_train))
    pipeline.fit(X_train, y_train)           # Train the pipeline on the dataset
    metrics = evaluate_pipeline(pipeline, X_test, y_test)

    assert isinstance(pipeline, Pipeline)    # Ensure returned object is a sklearn Pipeline
    assert 0 <= metrics["accuracy"] <= 100   # Stored on the 0-100 scale
    assert set(metrics["performance_metrics"]) == {"precision", "recall", "f1_score"}


def test_mock_prediction_output_is_a_prediction(heart_frame):
    X = heart_frame.drop(columns=["target"])
    pipeline = build_model_pipeline(build_preprocessor(X))
    pipeline.fit(X, heart_frame["target"])

    mock = build_mock_prediction_output(pipeline, {"age": 72, "chol": 290})

    assert mock["risk_level"] in ("low", "moderate", "high", "critical")
    assert "recommendations" in mock


@pytest.mark.slow                             # Fits and pickles a full pipeline
def test_train_and_package_writes_registry_payload(tmp_path, heart_frame):
    data_path = tmp_path / "heart.csv"
    heart_frame.to_csv(data_path, index=False)
    output = tmp_path / "out" / "rf"

    record = train_and_package(str(data_path), str(output), version="2.0.0", track=False)

    with open(f"{output}.pkl", "rb") as f:
        assert isinstance(pickle.load(f), Pipeline)
    with open(f"{output}.json") as f:
        assert json.load(f) == record        # JSON payload matches the returned record

    model = ModelRecord(id="pending", **record)  # Registry accepts the payload as-is
    assert model.version == "2.0.0"
    assert model.mock_prediction_output["risk_level"]
