# JSON schemas the clinical workflows pass to the analysis endpoint.

STRING_LIST = {"type": "array", "items": {"type": "string"}}

HEART_DISEASE_PREDICTION_SCHEMA = {
    "type": "object",
    "properties": {
        "risk_level": {"type": "string", "enum": ["low", "moderate", "high", "critical"]},
        "risk_score": {
            "type": "number",
            "description": "A precise numeric risk score from 0 to 100.",
        },
        "confidence": {
            "type": "number",
            "description": "Confidence score for the overall assessment, from 0 to 100.",
        },
        "predicted_conditions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "condition": {"type": "string"},
                    "severity": {"type": "string", "enum": ["low", "moderate", "high"]},
                },
                "required": ["condition", "severity"],
            },
        },
        "recommendations": {
            "type": "object",
            "properties": {
                "lifestyle": STRING_LIST,
                "medications": STRING_LIST,
                "follow_up": {"type": "string"},
                "referrals": STRING_LIST,
            },
        },
        "urgent_warning_signs": STRING_LIST,
        "guideline_references": STRING_LIST,
        "decision_support_flags": STRING_LIST,
    },
    "required": [
        "risk_level",
        "risk_score",
        "confidence",
        "predicted_conditions",
        "recommendations",
    ],
}

DOCUMENT_ANALYSIS_SCHEMA = {
    "type": "object",
    "properties": {
        "document_analysis": {
            "type": "object",
            "properties": {
                "document_type": {"type": "string"},
                "key_findings": STRING_LIST,
                "abnormal_values": STRING_LIST,
                "clinical_significance": {"type": "string"},
            },
        },
        "patient_correlation": {
            "type": "object",
            "properties": {
                "symptom_correlation": STRING_LIST,
                "historical_comparison": {"type": "string"},
                "risk_progression": {
                    "type": "string",
                    "enum": ["improving", "stable", "worsening", "unknown"],
                },
            },
        },
        "clinical_recommendations": {
            "type": "object",
            "properties": {
                "immediate_actions": STRING_LIST,
                "follow_up_tests": STRING_LIST,
                "medication_adjustments": STRING_LIST,
                "lifestyle_modifications": STRING_LIST,
            },
        },
        "risk_assessment": {
            "type": "object",
            "properties": {
                "overall_risk": {
                    "type": "string",
                    "enum": ["low", "moderate", "high", "critical"],
                },
                "confidence": {"type": "number"},
                "risk_factors": STRING_LIST,
                "protective_factors": STRING_LIST,
            },
        },
    },
    "required": ["document_analysis", "clinical_recommendations", "risk_assessment"],
}

RESPONSE_SCHEMAS = {
    "heart_disease": HEART_DISEASE_PREDICTION_SCHEMA,
    "image_classification": DOCUMENT_ANALYSIS_SCHEMA,
}
