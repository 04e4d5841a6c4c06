from typing import Any, Dict, Optional

from src.inference.schemas import AnalysisType


FALLBACK_DISCLOSURE = "System fallback prediction - clinical assessment required"

NO_HEART_MODEL_MESSAGE = (
    "No active heart disease or symptom analysis model found. "
    "Please activate a compatible model in ML Model Management."
)
NO_IMAGE_MODEL_MESSAGE = (
    "No active image analysis model found. OCR extraction completed successfully, "
    "but AI analysis requires an active model."
)
NO_MODEL_MESSAGE = "No active model found for the requested analysis."


def expects_document_analysis(response_schema: Optional[Dict[str, Any]]) -> bool:
    if not response_schema:
        return False
    properties = response_schema.get("properties") or {}
    return "document_analysis" in properties


# =================================================
# Default fallback prediction
# =================================================
def default_fallback(analysis_type: str) -> Dict[str, Any]:
    """
    Last-resort payload when neither the local model nor its mock output
    produced a prediction. Heart-disease requests get a moderate-risk object
    flagged for clinical review; anything else gets an explicit error body.
    """
    if analysis_type == AnalysisType.HEART_DISEASE.value:
        return {
            "risk_level": "moderate",
            "risk_score": 65,
            "confidence": 75,
            "predicted_conditions": [
                {
                    "condition": "Cardiovascular risk assessment unavailable",
                    "severity": "moderate",
                }
            ],
            "recommendations": {
                "lifestyle": [
                    "Maintain regular physical activity",
                    "Follow heart-healthy diet",
                ],
                "medications": ["Consult with physician"],
                "follow_up": "Schedule follow-up assessment",
                "referrals": [],
            },
            "urgent_warning_signs": [],
            "guideline_references": [],
            "decision_support_flags": [FALLBACK_DISCLOSURE],
        }

    return {
        "error": "Model prediction unavailable",
        "message": "Please use clinical judgment",
    }


# =================================================
# No-model-active sentinel
# =================================================
def no_model_active_payload(
    analysis_type: str,
    response_schema: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    if analysis_type == AnalysisType.HEART_DISEASE.value:
        return {
            "no_model_active": True,
            "message": NO_HEART_MODEL_MESSAGE,
            "model_type": analysis_type,
        }

    if (
        analysis_type == AnalysisType.IMAGE_CLASSIFICATION.value
        and expects_document_analysis(response_schema)
    ):
        # OCR output is still shown, so the stub mirrors the full analysis shape
        return {
            "no_model_active": True,
            "message": NO_IMAGE_MODEL_MESSAGE,
            "model_type": analysis_type,
            "document_analysis": {
                "document_type": "No Model Active",
                "key_findings": ["OCR extraction completed successfully"],
                "abnormal_values": [],
                "clinical_significance": (
                    "No active image analysis model found. Please activate a model "
                    "in ML Model Management to perform AI analysis."
                ),
            },
            "patient_correlation": {
                "symptom_correlation": [],
                "historical_comparison": "Analysis unavailable - no active model",
                "risk_progression": "unknown",
            },
            "clinical_recommendations": {
                "immediate_actions": [
                    "Activate an image analysis model",
                    "Review extracted information manually",
                ],
                "follow_up_tests": [],
                "medication_adjustments": [],
                "lifestyle_modifications": [],
            },
            "risk_assessment": {
                "overall_risk": "unknown",
                "confidence": 0,
                "risk_factors": ["No active model for analysis"],
                "protective_factors": [],
            },
        }

    return {
        "no_model_active": True,
        "message": NO_MODEL_MESSAGE,
        "model_type": analysis_type,
    }
