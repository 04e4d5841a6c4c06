import numpy as np                             # Synthetic training data
import pandas as pd                            # DataFrames for training fixtures
import pytest                                  # Pytest fixtures

from src.inference.clients.local_backend import LocalInferenceResponse
from src.inference.clients.persistence import InMemoryCollection
from src.inference.features import FEATURE_COLUMNS
from src.inference.router import InferenceServices


HIGH_RISK_PREDICTION = {                       # What a healthy local backend returns
    "risk_level": "high",
    "risk_score": 82,
    "confidence": 90,
    "predicted_conditions": [
        {"condition": "Coronary artery disease", "severity": "high"}
    ],
}


class FakeLocalBackend:
    """Local-inference double: returns data, reports an error, or raises."""

    def __init__(self, data=None, error=None, exc=None):
        self.data = data
        self.error = error
        self.exc = exc
        self.calls = []

    async def predict(self, model_id, features):
        self.calls.append((model_id, features))  # Record what the router sent
        if self.exc is not None:
            raise self.exc
        return LocalInferenceResponse(data=self.data, error=self.error)


class FakeLLM:
    """Generative-AI double recording prompts and schemas."""

    def __init__(self, result=None, error=None):
        self.result = result if result is not None else {"risk_level": "low", "risk_score": 10}
        self.error = error
        self.calls = []

    async def invoke(self, prompt, response_json_schema=None, add_context_from_internet=False):
        self.calls.append((prompt, response_json_schema))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def fake_backend():
    return FakeLocalBackend                    # Tests instantiate with the behaviour they need


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def make_model():
    def _make(model_id, model_type="heart_disease", is_active=True, local=True, **extra):
        record = {
            "id": model_id,
            "model_name": f"Model {model_id}",
            "version": "1.0",
            "model_type": model_type,
            "is_active": is_active,
            "model_file_url": f"/models/{model_id}.pkl" if local else "",
        }
        record.update(extra)
        return record

    return _make


@pytest.fixture
def make_services():
    def _make(models=(), config=None, local_backend=None, llm=None):
        configs = [dict(config, id=config.get("id", "cfg"))] if config else []
        return InferenceServices(
            models=InMemoryCollection("MLModel", list(models)),
            configs=InMemoryCollection("SystemSetting", configs),
            local_backend=local_backend or FakeLocalBackend(data=dict(HIGH_RISK_PREDICTION)),
            llm=llm or FakeLLM(),
        )

    return _make


@pytest.fixture
def heart_frame():
    rng = np.random.RandomState(0)             # Deterministic synthetic cohort
    n = 40
    df = pd.DataFrame({
        "age": rng.randint(30, 80, n),
        "sex": rng.randint(0, 2, n),
        "cp": rng.randint(0, 4, n),
        "trestbps": rng.randint(100, 180, n),
        "chol": rng.randint(150, 320, n),
        "fbs": rng.randint(0, 2, n),
        "restecg": rng.randint(0, 3, n),
        "thalach": rng.randint(90, 200, n),
        "exang": rng.randint(0, 2, n),
        "oldpeak": rng.uniform(0, 4, n).round(1),
        "slope": rng.randint(0, 3, n),
        "ca": rng.randint(0, 4, n),
        "thal": rng.randint(0, 4, n),
    })
    df["target"] = [0, 1] * (n // 2)           # Balanced so stratified splits work
    return df[FEATURE_COLUMNS + ["target"]]
