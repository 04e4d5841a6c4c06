from typing import Any, Dict, Optional

import pandas as pd
import numpy as np

from sklearn.compose import ColumnTransformer
from sklearn.preprocessing import StandardScaler, OneHotEncoder
from sklearn.pipeline import Pipeline
from sklearn.ensemble import RandomForestClassifier
from sklearn.model_selection import train_test_split
from sklearn.metrics import accuracy_score, precision_score, recall_score, f1_score

from src.inference.clients.local_backend import prediction_from_probability
from src.inference.features import DEFAULT_FEATURES, FEATURE_COLUMNS


TARGET_COL = "target"


def load_data(csv_path: str) -> pd.DataFrame:
    df = pd.read_csv(csv_path)
    if TARGET_COL not in df.columns:
        raise ValueError("Target column missing")
    missing = [c for c in FEATURE_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Feature columns missing: {', '.join(missing)}")
    return df[FEATURE_COLUMNS + [TARGET_COL]]


def split_data(df: pd.DataFrame):
    X = df.drop(columns=[TARGET_COL])
    y = df[TARGET_COL]
    return train_test_split(
        X, y, test_size=0.2, random_state=42, stratify=y
    )


def build_preprocessor(X: pd.DataFrame):
    categorical_cols = X.select_dtypes(
        include=["object", "category"]
    ).columns.tolist()

    numerical_cols = X.select_dtypes(
        include=[np.number]
    ).columns.tolist()

    return ColumnTransformer(
        transformers=[
            ("num", StandardScaler(), numerical_cols),
            ("cat", OneHotEncoder(handle_unknown="ignore"), categorical_cols),
        ]
    )


def build_model_pipeline(preprocessor):
    rf = RandomForestClassifier(
        n_estimators=100,
        random_state=42,
        n_jobs=1,  # CI & Windows safe
    )

    return Pipeline(
        steps=[
            ("preprocessor", preprocessor),
            ("classifier", rf),
        ]
    )


def evaluate_pipeline(pipeline: Pipeline, X_test: pd.DataFrame, y_test) -> Dict[str, Any]:
    """Metrics in the shape a model record stores them (accuracy 0-100, rest 0-1)."""
    y_pred = pipeline.predict(X_test)
    return {
        "accuracy": round(accuracy_score(y_test, y_pred) * 100, 2),
        "performance_metrics": {
            "precision": round(precision_score(y_test, y_pred, zero_division=0), 4),
            "recall": round(recall_score(y_test, y_pred, zero_division=0), 4),
            "f1_score": round(f1_score(y_test, y_pred, zero_division=0), 4),
        },
    }


def build_mock_prediction_output(
    pipeline: Pipeline,
    reference: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Prediction for a reference patient, stored as the model's offline fallback."""
    row = {**DEFAULT_FEATURES, **(reference or {})}
    df = pd.DataFrame([row], columns=FEATURE_COLUMNS)
    predicted_class = int(pipeline.predict(df)[0])
    probability = float(pipeline.predict_proba(df)[0][1])
    return prediction_from_probability(probability, predicted_class)
