"""
Train a local heart-disease model and package it for the model registry.

Produces two files:
  - <output>.pkl   the fitted scikit-learn pipeline (upload as the model file)
  - <output>.json  the model record payload for POST /models, carrying
                   accuracy, performance metrics and the mock prediction
                   output used when live inference fails
"""

import os
import time
import json
import pickle
import argparse

import mlflow
import mlflow.sklearn

from src.training.model_utils import (
    load_data,
    split_data,
    build_preprocessor,
    build_model_pipeline,
    evaluate_pipeline,
    build_mock_prediction_output,
)


# ------------------------------------------------------------------
# Progress helper
# ------------------------------------------------------------------
def log_step(message: str) -> None:
    print(f"[{time.strftime('%H:%M:%S')}] {message}", flush=True)


# ------------------------------------------------------------------
# Paths
# ------------------------------------------------------------------
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
DATA_PATH = os.path.join(
    BASE_DIR, "notebooks", "data", "processed", "heart_disease_cleaned.csv"
)
OUTPUT_PATH = os.path.join(BASE_DIR, "models", "random_forest_pipeline")
MLRUNS_DIR = os.path.join(BASE_DIR, "mlruns")


def build_model_record(
    metrics: dict,
    mock_output: dict,
    model_name: str,
    version: str,
    model_type: str = "heart_disease",
) -> dict:
    return {
        "model_name": model_name,
        "version": version,
        "model_type": model_type,
        "description": "Random Forest pipeline over the 13 standard heart-disease features",
        "accuracy": metrics["accuracy"],
        "performance_metrics": metrics["performance_metrics"],
        "mock_prediction_output": mock_output,
    }


def train_and_package(
    data_path: str,
    output_path: str,
    model_name: str = "Random Forest Heart Disease",
    version: str = "1.0.0",
    track: bool = True,
) -> dict:
    log_step("Loading data")
    df = load_data(data_path)
    X_train, X_test, y_train, y_test = split_data(df)

    log_step("Training Random Forest pipeline")
    pipeline = build_model_pipeline(build_preprocessor(X_train))
    pipeline.fit(X_train, y_train)

    metrics = evaluate_pipeline(pipeline, X_test, y_test)
    log_step(f"accuracy: {metrics['accuracy']:.2f}")
    for key, value in metrics["performance_metrics"].items():
        log_step(f"{key}: {value:.4f}")

    record = build_model_record(
        metrics,
        build_mock_prediction_output(pipeline),
        model_name,
        version,
    )

    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    with open(f"{output_path}.pkl", "wb") as f:
        pickle.dump(pipeline, f)
    with open(f"{output_path}.json", "w") as f:
        json.dump(record, f, indent=2)

    log_step(f"Model saved at {output_path}.pkl")

    if track:
        mlflow.set_tracking_uri(f"file:///{MLRUNS_DIR}")
        mlflow.set_experiment("Heart Disease Classification")
        with mlflow.start_run(run_name=f"{model_name} {version}"):
            mlflow.log_metric("accuracy", metrics["accuracy"])
            mlflow.log_metrics(metrics["performance_metrics"])
            mlflow.sklearn.log_model(sk_model=pipeline, artifact_path="model")
        log_step("Run logged to MLflow")

    return record


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------
def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--data", default=DATA_PATH)
    parser.add_argument("--output", default=OUTPUT_PATH)
    parser.add_argument("--name", default="Random Forest Heart Disease")
    parser.add_argument("--version", default="1.0.0")
    parser.add_argument("--no-mlflow", action="store_true")
    args = parser.parse_args()

    train_and_package(
        args.data,
        args.output,
        model_name=args.name,
        version=args.version,
        track=not args.no_mlflow,
    )
    log_step("Training completed successfully")


if __name__ == "__main__":
    main()
