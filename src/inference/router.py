import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from src.inference.invoker import InferenceInvoker
from src.inference.resolver import resolve_model
from src.inference.schemas import (
    AnalysisType,
    Failure,
    Infrastructure,
    NoModelActive,
    Outcome,
    SystemConfiguration,
)


logger = logging.getLogger(__name__)


@dataclass
class InferenceServices:
    """Collaborators one analysis request needs."""

    models: Any
    configs: Any
    local_backend: Any
    llm: Any
    invoker: InferenceInvoker = field(init=False)

    def __post_init__(self):
        self.invoker = InferenceInvoker(self.local_backend, self.llm)


async def load_system_configuration(configs) -> SystemConfiguration:
    """Read the configuration singleton, creating the API-mode default if absent."""
    records = await configs.list()
    if records:
        return SystemConfiguration(**records[0])

    created = await configs.create({"active_model_type": Infrastructure.API.value})
    logger.info("No system configuration found, created default %s", created.get("id"))
    return SystemConfiguration(**created)


async def run_analysis(
    prompt: str,
    response_schema: Optional[Dict[str, Any]],
    structured_input: Optional[Dict[str, Any]],
    analysis_type: str,
    services: InferenceServices,
) -> Outcome:
    config = await load_system_configuration(services.configs)
    model = await resolve_model(analysis_type, config, services.models)

    outcome = await services.invoker.invoke(
        model,
        analysis_type,
        prompt,
        response_schema,
        structured_input,
        config,
    )

    logger.info(
        "Analysis type=%s mode=%s model=%s outcome=%s",
        analysis_type,
        config.active_model_type.value,
        model.id if model is not None else None,
        type(outcome).__name__,
    )
    return outcome


def outcome_payload(outcome: Outcome) -> Dict[str, Any]:
    """Collapse an outcome to the public contract: dict, sentinel dict, or raise."""
    if isinstance(outcome, Failure):
        logger.error("AI analysis failed (%s): %s", outcome.reason, outcome.error)
        raise outcome.error
    if isinstance(outcome, NoModelActive):
        return outcome.payload
    return outcome.result


async def get_ai_analysis(
    prompt: str,
    response_schema: Optional[Dict[str, Any]] = None,
    structured_input: Optional[Dict[str, Any]] = None,
    analysis_type: str = AnalysisType.HEART_DISEASE.value,
    *,
    services: InferenceServices,
) -> Dict[str, Any]:
    """
    Run one AI analysis through the active model.

    Returns the prediction dict, or the ``no_model_active`` sentinel when no
    model is available for ``analysis_type``. Local model failures are
    absorbed into mock/default predictions; generative-AI failures and
    persistence errors are raised to the caller.

    This is the library entry point. The ``/analysis`` endpoint calls
    ``run_analysis`` and ``outcome_payload`` itself so it can record
    outcome metrics between the two steps.
    """
    outcome = await run_analysis(
        prompt, response_schema, structured_input, analysis_type, services
    )
    return outcome_payload(outcome)
