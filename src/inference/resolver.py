import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from src.inference.compatibility import is_compatible, legacy_is_compatible
from src.inference.errors import PersistenceError
from src.inference.schemas import ModelRecord, SystemConfiguration


logger = logging.getLogger(__name__)

DEFAULT_API_MODEL_ID = "default-api"
DEFAULT_API_MODEL_NAME = "Default InvokeLLM API"


def parse_record(record: Dict[str, Any]) -> Optional[ModelRecord]:
    """Validate a persisted record, or None when it is malformed."""
    try:
        return ModelRecord(**record)
    except ValidationError as exc:
        logger.warning(
            "Skipping malformed model record %s: %s",
            record.get("id"),
            exc.errors(include_url=False),
        )
        return None


def parse_records(records: Iterable[Dict[str, Any]]) -> List[ModelRecord]:
    return [m for m in (parse_record(r) for r in records) if m is not None]


def default_api_model(analysis_type: str) -> ModelRecord:
    """Stand-in record for the built-in generative-AI model."""
    return ModelRecord(
        id=DEFAULT_API_MODEL_ID,
        model_name=DEFAULT_API_MODEL_NAME,
        model_type=analysis_type,
        is_active=True,
    )


async def _pinned_model(
    analysis_type: str,
    config: SystemConfiguration,
    models,
) -> Optional[ModelRecord]:
    model_id = config.pinned_model_id(analysis_type)
    if not model_id:
        return None

    try:
        record = await models.get(model_id)
    except PersistenceError:
        logger.exception("Error fetching pinned model %s", model_id)
        return None

    if record is None:
        return None

    model = parse_record(record)
    return model if model is not None and model.is_active else None


def _first_match(
    candidates: List[ModelRecord],
    analysis_type: str,
    matcher: Callable[[Optional[str], str], bool],
) -> Optional[ModelRecord]:
    for model in candidates:
        if matcher(model.model_type, analysis_type):
            return model
    return None


async def resolve_model(
    analysis_type: str,
    config: SystemConfiguration,
    models,
) -> Optional[ModelRecord]:
    """
    Pick the authoritative model for ``analysis_type`` under ``config``.

    Order: the configuration's pinned model (when it exists and is active),
    then the first active model of the current infrastructure whose type is
    compatible, then, in API mode only, the built-in default API model.
    Returns None when local mode has nothing usable.
    """
    model = await _pinned_model(analysis_type, config, models)
    if model is not None:
        return model

    try:
        records = await models.list()
    except PersistenceError:
        logger.exception("Error searching for compatible models")
        records = []

    candidates = [
        m
        for m in parse_records(records)
        if m.is_active and m.is_local == config.is_local
    ]

    model = _first_match(candidates, analysis_type, is_compatible)
    if model is None:
        model = _first_match(candidates, analysis_type, legacy_is_compatible)
        if model is not None:
            logger.warning(
                "Model %s matched %s only by legacy type tolerance (model_type=%r)",
                model.model_name,
                analysis_type,
                model.model_type,
            )

    if model is not None:
        logger.info(
            "Found compatible %s model for %s: %s",
            "local" if config.is_local else "API",
            analysis_type,
            model.model_name,
        )
        return model

    if not config.is_local:
        return default_api_model(analysis_type)

    return None
