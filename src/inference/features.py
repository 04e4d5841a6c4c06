import re
from typing import Any, Dict, Optional

import pandas as pd


# =================================================
# Feature layout and clinical defaults
# =================================================
FEATURE_COLUMNS = [
    "age",
    "sex",
    "cp",
    "trestbps",
    "chol",
    "fbs",
    "restecg",
    "thalach",
    "exang",
    "oldpeak",
    "slope",
    "ca",
    "thal",
]

DEFAULT_FEATURES: Dict[str, Any] = {
    "age": 50,
    "sex": 1,
    "cp": 0,
    "trestbps": 120,
    "chol": 200,
    "fbs": 0,
    "restecg": 0,
    "thalach": 150,
    "exang": 0,
    "oldpeak": 1.0,
    "slope": 1,
    "ca": 0,
    "thal": 2,
}

BP_PATTERN = re.compile(r"(\d+)/(\d+)")
PROMPT_AGE = re.compile(r"age[:\s]*(\d+)", re.IGNORECASE)
PROMPT_BP = re.compile(r"blood[_\s]pressure[:\s]*(\d+)/(\d+)", re.IGNORECASE)
PROMPT_HR = re.compile(r"heart[_\s]rate[:\s]*(\d+)", re.IGNORECASE)
PROMPT_CHOL = re.compile(r"cholesterol[:\s]*(\d+)", re.IGNORECASE)


def _from_structured(data: Dict[str, Any]) -> Dict[str, Any]:
    features: Dict[str, Any] = {}

    if data.get("age"):
        features["age"] = data["age"]
    if data.get("gender"):
        features["sex"] = 1 if data["gender"] == "male" else 0

    vitals = data.get("vital_signs") or {}
    if vitals.get("blood_pressure"):
        match = BP_PATTERN.search(str(vitals["blood_pressure"]))
        if match:
            features["trestbps"] = int(match.group(1))
    if vitals.get("heart_rate"):
        features["thalach"] = vitals["heart_rate"]
    if vitals.get("cholesterol"):
        features["chol"] = vitals["cholesterol"]

    return features


def _from_prompt(prompt: str) -> Dict[str, Any]:
    features: Dict[str, Any] = {}

    match = PROMPT_AGE.search(prompt)
    if match:
        features["age"] = int(match.group(1))

    match = PROMPT_BP.search(prompt)
    if match:
        features["trestbps"] = int(match.group(1))

    match = PROMPT_HR.search(prompt)
    if match:
        features["thalach"] = int(match.group(1))

    match = PROMPT_CHOL.search(prompt)
    if match:
        features["chol"] = int(match.group(1))

    lowered = prompt.lower()
    if "male" in lowered and "female" not in lowered:
        features["sex"] = 1
    elif "female" in lowered:
        features["sex"] = 0

    if "chest pain" in lowered:
        features["cp"] = 1

    return features


def extract_features(
    structured_input: Optional[Dict[str, Any]] = None,
    prompt: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the 13-feature heart-disease vector.

    Structured input wins whenever it yields at least one field; the prompt
    is only scanned when it yields nothing. Fields neither path fills take
    the clinical defaults, so the result is always complete.
    """
    features: Dict[str, Any] = {}

    if structured_input:
        features = _from_structured(structured_input)

    if not features and prompt:
        features = _from_prompt(prompt)

    return {**DEFAULT_FEATURES, **features}


def features_to_frame(features: Dict[str, Any]) -> pd.DataFrame:
    row = {column: features.get(column, DEFAULT_FEATURES[column]) for column in FEATURE_COLUMNS}
    return pd.DataFrame([row], columns=FEATURE_COLUMNS)
