"""
Admin-side mutations of model activation state.

Every operation here is a read-then-write sequence against the persistence
layer with no locking and no rollback: two admins acting at once can leave
more than one model active in a bucket until the next toggle, and a failure
half-way through leaves whatever was already written. Callers should not
blindly retry these operations.
"""

import logging
from typing import Any, Dict, List

from src.inference.compatibility import bucket_for
from src.inference.errors import ActivationError, ModelNotFoundError
from src.inference.resolver import DEFAULT_API_MODEL_ID, parse_records, resolve_model
from src.inference.schemas import (
    AnalysisType,
    Infrastructure,
    ModelRecord,
    SystemConfiguration,
    pointer_field,
)


logger = logging.getLogger(__name__)

MODE_LABELS = {
    Infrastructure.LOCAL: "Local Model",
    Infrastructure.API: "API Model",
}


async def _load_models(models) -> List[ModelRecord]:
    return parse_records(await models.list())


async def get_model(model_id: str, models) -> ModelRecord:
    record = await models.get(model_id)
    if record is None:
        raise ModelNotFoundError(model_id)
    return ModelRecord(**record)


# =================================================
# Switch infrastructure
# =================================================
async def switch_infrastructure(
    new_type: Any,
    config: SystemConfiguration,
    models,
    configs,
) -> SystemConfiguration:
    target = Infrastructure.parse(new_type)
    records = await _load_models(models)

    if target == Infrastructure.LOCAL and not any(m.is_local for m in records):
        raise ActivationError(
            "Cannot activate Local Model mode. Please upload at least one local model first."
        )

    updated = await configs.update(config.id, {"active_model_type": target.value})

    for model in records:
        if model.is_active and model.infrastructure != target:
            await models.update(model.id, {"is_active": False})
            logger.info("Deactivated %s model %s", model.infrastructure.value, model.id)

    existing = {m.id for m in records}
    for model_id in config.pinned_ids_for(target):
        # Orphaned pointers (deleted models) are skipped
        if model_id in existing:
            await models.update(model_id, {"is_active": True})
            logger.info("Reactivated pinned model %s", model_id)

    logger.info("Active infrastructure switched to %s", target.value)
    return SystemConfiguration(**updated)


# =================================================
# Toggle a single model
# =================================================
async def toggle_model_active(
    model: ModelRecord,
    config: SystemConfiguration,
    models,
    configs,
) -> ModelRecord:
    if model.infrastructure != config.active_model_type:
        raise ActivationError(
            f"Please activate '{MODE_LABELS[model.infrastructure]}' mode first "
            "to select a specific model."
        )

    activate = not model.is_active
    bucket = bucket_for(model.model_type)

    if activate and bucket is not None:
        for peer in await _load_models(models):
            if (
                peer.id != model.id
                and peer.is_active
                and peer.infrastructure == model.infrastructure
                and bucket_for(peer.model_type) == bucket
            ):
                await models.update(peer.id, {"is_active": False})
                logger.info("Deactivated peer model %s in bucket %s", peer.id, bucket)

    updated = await models.update(model.id, {"is_active": activate})

    if bucket is not None:
        field = pointer_field(model.infrastructure, bucket)
        await configs.update(config.id, {field: model.id if activate else None})

    logger.info(
        "Model %s %s",
        model.id,
        "activated" if activate else "deactivated",
    )
    return ModelRecord(**updated)


# =================================================
# Registration and reporting
# =================================================
async def register_model(payload: Dict[str, Any], models) -> ModelRecord:
    """Create a model record; new models always start inactive."""
    record = ModelRecord(id="pending", **{**payload, "is_active": False})
    data = record.model_dump(mode="json", exclude={"id"}, exclude_none=True)
    created = await models.create(data)
    logger.info(
        "Registered %s model %s (%s)",
        record.infrastructure.value,
        created.get("id"),
        record.model_type,
    )
    return ModelRecord(**created)


async def active_model_names(config: SystemConfiguration, models) -> Dict[str, str]:
    names = {}
    for analysis_type in (
        AnalysisType.HEART_DISEASE.value,
        AnalysisType.IMAGE_CLASSIFICATION.value,
    ):
        model = await resolve_model(analysis_type, config, models)
        if model is None:
            names[analysis_type] = "None"
        elif model.id == DEFAULT_API_MODEL_ID:
            names[analysis_type] = "Default InvokeLLM"
        else:
            names[analysis_type] = model.model_name
    return names
