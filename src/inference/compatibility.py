from typing import Dict, List, Optional

from src.inference.schemas import AnalysisType


# =================================================
# Analysis type -> acceptable model types
# =================================================
MODEL_TYPE_COMPATIBILITY: Dict[str, List[str]] = {
    AnalysisType.HEART_DISEASE.value: [
        AnalysisType.HEART_DISEASE.value,
        AnalysisType.SYMPTOM_ANALYSIS.value,
    ],
    AnalysisType.IMAGE_CLASSIFICATION.value: [
        AnalysisType.IMAGE_CLASSIFICATION.value,
    ],
}

# Activation buckets: at most one active model per (infrastructure, bucket)
_BUCKETS: Dict[str, str] = {
    AnalysisType.HEART_DISEASE.value: AnalysisType.HEART_DISEASE.value,
    AnalysisType.SYMPTOM_ANALYSIS.value: AnalysisType.HEART_DISEASE.value,
    AnalysisType.IMAGE_CLASSIFICATION.value: AnalysisType.IMAGE_CLASSIFICATION.value,
}


def compatible_types(analysis_type: str) -> List[str]:
    return MODEL_TYPE_COMPATIBILITY.get(analysis_type, [analysis_type])


def bucket_for(model_type: Optional[str]) -> Optional[str]:
    """Analysis bucket a model type activates into, or None if it has none."""
    if not model_type:
        return None
    return _BUCKETS.get(model_type)


def is_compatible(model_type: Optional[str], analysis_type: str) -> bool:
    if not model_type:
        return False
    return model_type in compatible_types(analysis_type)


# =================================================
# Legacy tolerance matching
# =================================================
def _normalize(value: str) -> str:
    return value.lower().replace("_", "").replace(" ", "")


def legacy_is_compatible(model_type: Optional[str], analysis_type: str) -> bool:
    """
    Loose match kept for records whose model_type drifted from the canonical
    tags ("Heart Disease", "HeartDisease_v2", ...).

    Both sides are lower-cased with underscores and spaces removed, then
    accepted on equality or substring containment in either direction.
    """
    if not model_type:
        return False

    normalized_model = _normalize(model_type)
    if not normalized_model:
        return False

    for candidate in compatible_types(analysis_type):
        normalized_candidate = _normalize(candidate)
        if (
            normalized_model == normalized_candidate
            or normalized_candidate in normalized_model
            or normalized_model in normalized_candidate
        ):
            return True
    return False
