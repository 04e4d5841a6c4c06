import copy
import json
import logging
from typing import Any, Dict, Optional

from src.inference.errors import GenerativeAIError
from src.inference.features import extract_features
from src.inference.fallbacks import (
    default_fallback,
    expects_document_analysis,
    no_model_active_payload,
)
from src.inference.schemas import (
    Failure,
    ModelRecord,
    NoModelActive,
    Outcome,
    Success,
    SystemConfiguration,
)


logger = logging.getLogger(__name__)


# =================================================
# Synthesis prompt
# =================================================
def _condition_names(prediction: Dict[str, Any]) -> str:
    conditions = prediction.get("predicted_conditions") or []
    names = [c if isinstance(c, str) else c.get("condition", "") for c in conditions]
    names = [n for n in names if n]
    return ", ".join(names) if names else "None"


def build_synthesis_prompt(
    structured_input: Optional[Dict[str, Any]],
    prediction: Dict[str, Any],
    simulated: bool = False,
) -> str:
    ocr_block = json.dumps(structured_input, indent=2, default=str)

    if simulated:
        header = (
            "As a clinical AI specialist, generate a comprehensive analysis based on the "
            "provided OCR data and this mock prediction output from our trusted ML model."
        )
        prediction_title = "Mock ML Model Prediction (simulated output)"
        footer = "Note that this is using simulated model output due to execution issues."
    else:
        header = (
            "As a clinical AI specialist, generate a comprehensive analysis based on the "
            "provided OCR data and the output from our internal, trusted ML model."
        )
        prediction_title = "Internal ML Model Prediction"
        footer = (
            "Correlate the OCR findings with the patient's history and expand upon "
            "the local model's prediction."
        )

    return (
        f"{header}\n\n"
        f"**OCR Data from Medical Document:**\n{ocr_block}\n\n"
        f"**{prediction_title}:**\n"
        f"- Risk Level: {prediction.get('risk_level')}\n"
        f"- Risk Score: {prediction.get('risk_score')}\n"
        f"- Confidence: {prediction.get('confidence')}%\n"
        f"- Key Findings: {_condition_names(prediction)}\n\n"
        "**Your Task:**\n"
        "Using ALL the information above, generate a complete, context-aware clinical "
        f"analysis that fills out the required JSON schema. {footer}\n"
    )


# =================================================
# Invoker
# =================================================
class InferenceInvoker:
    def __init__(self, local_backend, llm):
        self.local_backend = local_backend
        self.llm = llm

    async def invoke(
        self,
        model: Optional[ModelRecord],
        analysis_type: str,
        prompt: str,
        response_schema: Optional[Dict[str, Any]],
        structured_input: Optional[Dict[str, Any]],
        config: SystemConfiguration,
    ) -> Outcome:
        if model is None:
            return NoModelActive(
                model_type=analysis_type,
                payload=no_model_active_payload(analysis_type, response_schema),
            )

        if not config.is_local:
            return await self._invoke_api(prompt, response_schema)

        return await self._invoke_local(
            model, analysis_type, prompt, response_schema, structured_input
        )

    async def _invoke_api(
        self,
        prompt: str,
        response_schema: Optional[Dict[str, Any]],
    ) -> Outcome:
        try:
            result = await self.llm.invoke(prompt, response_schema)
        except GenerativeAIError as exc:
            return Failure(reason="generative_ai", error=exc)
        return Success(result=result, source="api")

    async def _invoke_local(
        self,
        model: ModelRecord,
        analysis_type: str,
        prompt: str,
        response_schema: Optional[Dict[str, Any]],
        structured_input: Optional[Dict[str, Any]],
    ) -> Outcome:
        try:
            features = extract_features(structured_input, prompt)
            response = await self.local_backend.predict(model.id, features)

            if response.error or response.data is None:
                logger.error("Local model inference backend error: %s", response.error)
                return await self._fallback(
                    model, analysis_type, response_schema, structured_input
                )

            return await self._from_prediction(
                response.data, response_schema, structured_input, simulated=False
            )
        except Exception:
            logger.exception("Local model prediction wrapper error for model %s", model.id)
            return await self._fallback(model, analysis_type, response_schema, structured_input)

    async def _from_prediction(
        self,
        prediction: Dict[str, Any],
        response_schema: Optional[Dict[str, Any]],
        structured_input: Optional[Dict[str, Any]],
        simulated: bool,
    ) -> Outcome:
        if not expects_document_analysis(response_schema):
            return Success(result=prediction, source="mock" if simulated else "local")

        # Local models supply the risk signal, the generative layer writes the analysis
        synthesis_prompt = build_synthesis_prompt(structured_input, prediction, simulated)
        try:
            result = await self.llm.invoke(synthesis_prompt, response_schema)
        except GenerativeAIError as exc:
            return Failure(reason="synthesis", error=exc)
        return Success(result=result, source="synthesized")

    async def _fallback(
        self,
        model: ModelRecord,
        analysis_type: str,
        response_schema: Optional[Dict[str, Any]],
        structured_input: Optional[Dict[str, Any]],
    ) -> Outcome:
        if model.mock_prediction_output:
            logger.warning("Using mock prediction output of model %s as fallback", model.id)
            try:
                return await self._from_prediction(
                    copy.deepcopy(model.mock_prediction_output),
                    response_schema,
                    structured_input,
                    simulated=True,
                )
            except Exception:
                logger.exception("Mock prediction fallback failed for model %s", model.id)

        logger.warning("Using default fallback prediction for %s", analysis_type)
        return Success(result=default_fallback(analysis_type), source="default")
