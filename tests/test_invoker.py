import pytest

from src.inference.errors import GenerativeAIError
from src.inference.fallbacks import FALLBACK_DISCLOSURE, default_fallback
from src.inference.invoker import InferenceInvoker, build_synthesis_prompt
from src.inference.response_schemas import (
    DOCUMENT_ANALYSIS_SCHEMA,
    HEART_DISEASE_PREDICTION_SCHEMA,
)
from src.inference.schemas import (
    Failure,
    ModelRecord,
    NoModelActive,
    Success,
    SystemConfiguration,
)


LOCAL = SystemConfiguration(id="cfg", active_model_type="local")
API = SystemConfiguration(id="cfg", active_model_type="api")
OCR = {"document_type": "lab_report", "ldl": "190 mg/dL"}
MOCK_OUTPUT = {
    "risk_level": "low",
    "risk_score": 15,
    "confidence": 95,
    "predicted_conditions": ["Mild dyslipidaemia"],
    "recommendations": {},
}


def local_model(**extra):
    return ModelRecord(
        id="m1",
        model_name="RF",
        model_type=extra.pop("model_type", "heart_disease"),
        is_active=True,
        model_file_url="/models/m1.pkl",
        **extra,
    )


@pytest.mark.asyncio
async def test_no_model_heart_disease_sentinel(fake_backend, fake_llm):
    invoker = InferenceInvoker(fake_backend(), fake_llm())

    outcome = await invoker.invoke(None, "heart_disease", "p", None, None, LOCAL)

    assert isinstance(outcome, NoModelActive)
    assert outcome.payload["no_model_active"] is True
    assert outcome.payload["model_type"] == "heart_disease"
    assert "document_analysis" not in outcome.payload


@pytest.mark.asyncio
async def test_no_model_image_sentinel_is_schema_shaped(fake_backend, fake_llm):
    invoker = InferenceInvoker(fake_backend(), fake_llm())

    outcome = await invoker.invoke(
        None, "image_classification", "p", DOCUMENT_ANALYSIS_SCHEMA, OCR, LOCAL
    )

    payload = outcome.payload
    assert payload["no_model_active"] is True
    assert payload["document_analysis"]["document_type"] == "No Model Active"
    for section in ("patient_correlation", "clinical_recommendations", "risk_assessment"):
        assert section in payload


@pytest.mark.asyncio
async def test_no_model_image_without_document_schema_is_flat(fake_backend, fake_llm):
    invoker = InferenceInvoker(fake_backend(), fake_llm())

    outcome = await invoker.invoke(None, "image_classification", "p", None, OCR, LOCAL)

    assert outcome.payload["no_model_active"] is True
    assert "document_analysis" not in outcome.payload


@pytest.mark.asyncio
async def test_api_mode_delegates_to_llm(fake_backend, fake_llm):
    backend, llm = fake_backend(), fake_llm(result={"risk_level": "moderate"})
    invoker = InferenceInvoker(backend, llm)
    model = ModelRecord(id="default-api", is_active=True)

    outcome = await invoker.invoke(
        model, "heart_disease", "assess", HEART_DISEASE_PREDICTION_SCHEMA, None, API
    )

    assert isinstance(outcome, Success)
    assert outcome.result == {"risk_level": "moderate"}
    assert llm.calls == [("assess", HEART_DISEASE_PREDICTION_SCHEMA)]
    assert backend.calls == []                  # Local backend never consulted


@pytest.mark.asyncio
async def test_api_mode_failure_is_not_recovered(fake_backend, fake_llm):
    invoker = InferenceInvoker(fake_backend(), fake_llm(error=GenerativeAIError("down")))

    outcome = await invoker.invoke(
        ModelRecord(id="default-api", is_active=True), "heart_disease", "p", None, None, API
    )

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, GenerativeAIError)


@pytest.mark.asyncio
async def test_local_prediction_returned_directly(fake_backend, fake_llm):
    prediction = {"risk_level": "high", "risk_score": 82, "confidence": 90}
    backend, llm = fake_backend(data=prediction), fake_llm()
    invoker = InferenceInvoker(backend, llm)

    outcome = await invoker.invoke(
        local_model(), "heart_disease", "p", HEART_DISEASE_PREDICTION_SCHEMA, {"age": 55}, LOCAL
    )

    assert outcome.result is prediction         # Unmodified, unsynthesised
    assert outcome.source == "local"
    assert backend.calls[0][0] == "m1"
    assert backend.calls[0][1]["age"] == 55     # Features came from structured input
    assert llm.calls == []


@pytest.mark.asyncio
async def test_backend_error_without_mock_uses_default_fallback(fake_backend, fake_llm):
    invoker = InferenceInvoker(fake_backend(error="x"), fake_llm())

    outcome = await invoker.invoke(local_model(), "heart_disease", "p", None, None, LOCAL)

    assert outcome.result == default_fallback("heart_disease")
    assert FALLBACK_DISCLOSURE in outcome.result["decision_support_flags"]
    assert outcome.source == "default"


@pytest.mark.asyncio
async def test_backend_error_for_image_without_mock(fake_backend, fake_llm):
    invoker = InferenceInvoker(fake_backend(error="x"), fake_llm())

    outcome = await invoker.invoke(
        local_model(model_type="image_classification"), "image_classification", "p", None, OCR, LOCAL
    )

    assert outcome.result == {
        "error": "Model prediction unavailable",
        "message": "Please use clinical judgment",
    }


@pytest.mark.asyncio
async def test_backend_error_with_mock_returns_mock(fake_backend, fake_llm):
    model = local_model(mock_prediction_output=MOCK_OUTPUT)
    invoker = InferenceInvoker(fake_backend(error="x"), fake_llm())

    outcome = await invoker.invoke(model, "heart_disease", "p", None, None, LOCAL)

    assert outcome.result == MOCK_OUTPUT
    assert outcome.result is not model.mock_prediction_output  # Record is not shared
    assert outcome.source == "mock"


@pytest.mark.asyncio
async def test_backend_error_with_mock_and_document_schema_is_synthesised(fake_backend, fake_llm):
    llm = fake_llm(result={"document_analysis": {"document_type": "lab_report"}})
    invoker = InferenceInvoker(fake_backend(error="x"), llm)
    model = local_model(model_type="image_classification", mock_prediction_output=MOCK_OUTPUT)

    outcome = await invoker.invoke(
        model, "image_classification", "p", DOCUMENT_ANALYSIS_SCHEMA, OCR, LOCAL
    )

    prompt, schema = llm.calls[0]
    assert outcome.source == "synthesized"
    assert schema is DOCUMENT_ANALYSIS_SCHEMA
    assert "Mock ML Model Prediction" in prompt
    assert "Mild dyslipidaemia" in prompt        # String conditions are accepted


@pytest.mark.asyncio
async def test_local_prediction_with_document_schema_is_synthesised(fake_backend, fake_llm):
    prediction = {
        "risk_level": "high",
        "risk_score": 82,
        "confidence": 90,
        "predicted_conditions": [{"condition": "Coronary artery disease", "severity": "high"}],
    }
    llm = fake_llm(result={"document_analysis": {"document_type": "lab_report"}})
    invoker = InferenceInvoker(fake_backend(data=prediction), llm)

    outcome = await invoker.invoke(
        local_model(model_type="image_classification"),
        "image_classification",
        "p",
        DOCUMENT_ANALYSIS_SCHEMA,
        OCR,
        LOCAL,
    )

    prompt, _ = llm.calls[0]
    assert outcome.result == {"document_analysis": {"document_type": "lab_report"}}
    assert "Internal ML Model Prediction" in prompt
    assert "Risk Score: 82" in prompt
    assert "190 mg/dL" in prompt                 # OCR data embedded
    assert "Coronary artery disease" in prompt


@pytest.mark.asyncio
async def test_synthesis_failure_propagates(fake_backend, fake_llm):
    invoker = InferenceInvoker(
        fake_backend(data={"risk_level": "high"}),
        fake_llm(error=GenerativeAIError("timeout")),
    )
    model = local_model(mock_prediction_output=MOCK_OUTPUT)

    outcome = await invoker.invoke(
        model, "image_classification", "p", DOCUMENT_ANALYSIS_SCHEMA, OCR, LOCAL
    )

    assert isinstance(outcome, Failure)
    assert outcome.reason == "synthesis"


@pytest.mark.asyncio
async def test_unexpected_exception_uses_mock(fake_backend, fake_llm):
    model = local_model(mock_prediction_output=MOCK_OUTPUT)
    invoker = InferenceInvoker(fake_backend(exc=RuntimeError("boom")), fake_llm())

    outcome = await invoker.invoke(model, "heart_disease", "p", None, None, LOCAL)

    assert outcome.result == MOCK_OUTPUT


@pytest.mark.asyncio
async def test_unexpected_exception_without_mock_uses_default(fake_backend, fake_llm):
    invoker = InferenceInvoker(fake_backend(exc=KeyError("age")), fake_llm())

    outcome = await invoker.invoke(local_model(), "heart_disease", "p", None, None, LOCAL)

    assert outcome.result == default_fallback("heart_disease")


def test_synthesis_prompt_without_conditions():
    prompt = build_synthesis_prompt(None, {"risk_level": "low"})

    assert "Key Findings: None" in prompt
    assert "null" in prompt                     # Missing OCR data serialised as JSON null
