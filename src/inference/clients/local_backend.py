import asyncio
import copy
import logging
import os
import pickle
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from src.inference.features import features_to_frame
from src.inference.schemas import LocalBackend, ModelRecord


logger = logging.getLogger(__name__)


# =================================================
# Probability -> clinical risk object
# =================================================
RISK_BANDS: List[Tuple[float, str]] = [
    (35.0, "low"),
    (60.0, "moderate"),
    (80.0, "high"),
]

RECOMMENDATIONS = {
    "low": {
        "lifestyle": ["Maintain regular physical activity", "Follow heart-healthy diet"],
        "medications": [],
        "follow_up": "Routine annual review",
        "referrals": [],
    },
    "moderate": {
        "lifestyle": ["Increase aerobic exercise", "Reduce dietary sodium and saturated fat"],
        "medications": ["Consider lipid-lowering therapy"],
        "follow_up": "Reassess in 3 months",
        "referrals": [],
    },
    "high": {
        "lifestyle": ["Supervised exercise programme", "Smoking cessation if applicable"],
        "medications": ["Statin therapy", "Antihypertensive therapy if indicated"],
        "follow_up": "Reassess within 4 weeks",
        "referrals": ["Cardiology"],
    },
    "critical": {
        "lifestyle": ["Restrict exertion pending cardiology review"],
        "medications": ["Antiplatelet therapy per cardiology"],
        "follow_up": "Urgent review within 48 hours",
        "referrals": ["Cardiology (urgent)"],
    },
}


def risk_level_for(score: float) -> str:
    for upper, level in RISK_BANDS:
        if score < upper:
            return level
    return "critical"


def prediction_from_probability(probability: float, predicted_class: int) -> Dict[str, Any]:
    """Shape a positive-class probability as a heart-disease prediction."""
    risk_score = round(probability * 100, 1)
    risk_level = risk_level_for(risk_score)
    confidence = round(max(probability, 1.0 - probability) * 100, 1)

    conditions = []
    if predicted_class == 1:
        severity = "moderate" if risk_level in ("low", "moderate") else "high"
        conditions.append({"condition": "Coronary artery disease", "severity": severity})

    return {
        "risk_level": risk_level,
        "risk_score": risk_score,
        "confidence": confidence,
        "predicted_conditions": conditions,
        "recommendations": copy.deepcopy(RECOMMENDATIONS[risk_level]),
        "urgent_warning_signs": [],
        "guideline_references": [],
        "decision_support_flags": [],
    }


# =================================================
# Backend
# =================================================
@dataclass
class LocalInferenceResponse:
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class LocalInferenceBackend:
    """
    Runs uploaded scikit-learn artifacts in-process.

    ``predict`` never raises: any problem (unknown model, missing file,
    unpickling or prediction failure) comes back as ``error``.
    """

    def __init__(
        self,
        models,
        http_client: httpx.AsyncClient,
        cache_dir: str,
    ):
        self._models = models
        self._http = http_client
        self.cache_dir = cache_dir
        self._estimators: Dict[Tuple[str, str], Any] = {}

    async def _artifact_path(self, model_id: str, file_url: str) -> str:
        parsed = urlparse(file_url)

        if parsed.scheme in ("http", "https"):
            os.makedirs(self.cache_dir, exist_ok=True)
            target = os.path.join(self.cache_dir, f"{model_id}.pkl")
            if not os.path.exists(target):
                response = await self._http.get(file_url)
                response.raise_for_status()
                await asyncio.to_thread(self._write, target, response.content)
                logger.info("Downloaded model artifact for %s", model_id)
            return target

        if parsed.scheme == "file":
            return parsed.path

        return file_url

    async def _load_estimator(self, model_id: str, file_url: str) -> Any:
        key = (model_id, file_url)
        if key not in self._estimators:
            path = await self._artifact_path(model_id, file_url)
            self._estimators[key] = await asyncio.to_thread(self._unpickle, path)
            logger.info("Model %s loaded successfully", model_id)
        return self._estimators[key]

    @staticmethod
    def _write(path: str, content: bytes) -> None:
        with open(path, "wb") as file:
            file.write(content)

    @staticmethod
    def _unpickle(path: str) -> Any:
        with open(path, "rb") as file:
            return pickle.load(file)

    @staticmethod
    def _run(estimator: Any, features: Dict[str, Any]) -> Dict[str, Any]:
        df = features_to_frame(features)
        predicted_class = int(estimator.predict(df)[0])
        probability = float(estimator.predict_proba(df)[0][1])
        return prediction_from_probability(probability, predicted_class)

    async def predict(self, model_id: str, features: Dict[str, Any]) -> LocalInferenceResponse:
        try:
            record = await self._models.get(model_id)
            if record is None:
                return LocalInferenceResponse(error=f"Model {model_id} not found")

            backend = ModelRecord(**record).backend
            if not isinstance(backend, LocalBackend):
                return LocalInferenceResponse(error=f"Model {model_id} has no artifact")

            estimator = await self._load_estimator(model_id, backend.file_url)
            data = await asyncio.to_thread(self._run, estimator, features)
        except Exception as exc:
            logger.exception("Local inference failed for model %s", model_id)
            return LocalInferenceResponse(error=str(exc) or exc.__class__.__name__)

        logger.info(
            "Local prediction model=%s risk_level=%s risk_score=%s",
            model_id,
            data["risk_level"],
            data["risk_score"],
        )
        return LocalInferenceResponse(data=data)
