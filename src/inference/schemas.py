import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =================================================
# Enumerations
# =================================================
class Infrastructure(str, Enum):
    LOCAL = "local"
    API = "api"

    @classmethod
    def parse(cls, value: Any) -> "Infrastructure":
        if isinstance(value, cls):
            return value
        token = str(value or "").strip().lower()
        if token == "remote":
            return cls.API
        return cls(token)


class AnalysisType(str, Enum):
    HEART_DISEASE = "heart_disease"
    SYMPTOM_ANALYSIS = "symptom_analysis"
    IMAGE_CLASSIFICATION = "image_classification"


# =================================================
# Model backend (tagged variant)
# =================================================
@dataclass(frozen=True)
class LocalBackend:
    file_url: str


@dataclass(frozen=True)
class RemoteBackend:
    endpoint: Optional[str] = None
    api_key: Optional[str] = None


ModelBackend = Union[LocalBackend, RemoteBackend]


# =================================================
# Model record
# =================================================
class PerformanceMetrics(BaseModel):
    precision: Optional[float] = Field(None, ge=0.0, le=1.0)
    recall: Optional[float] = Field(None, ge=0.0, le=1.0)
    f1_score: Optional[float] = Field(None, ge=0.0, le=1.0)


class ModelRecord(BaseModel):
    model_config = ConfigDict(extra="allow", protected_namespaces=())

    id: str
    model_name: str = ""
    version: Optional[str] = None
    description: Optional[str] = None
    model_type: Optional[str] = None
    is_active: bool = False
    model_file_url: Optional[str] = None
    api_endpoint: Optional[str] = None
    api_key: Optional[str] = None
    accuracy: Optional[float] = Field(None, ge=0.0, le=100.0)
    performance_metrics: Optional[PerformanceMetrics] = None
    mock_prediction_output: Optional[Dict[str, Any]] = None
    created_date: Optional[str] = None

    @field_validator("mock_prediction_output", mode="before")
    @classmethod
    def _parse_mock_output(cls, value: Any) -> Any:
        # The admin form submits the mock payload as JSON text
        if isinstance(value, str):
            if not value.strip():
                return None
            value = json.loads(value)
            if not isinstance(value, dict):
                raise ValueError("mock_prediction_output must be a JSON object")
        return value

    @property
    def is_local(self) -> bool:
        return bool(self.model_file_url)

    @property
    def infrastructure(self) -> Infrastructure:
        return Infrastructure.LOCAL if self.is_local else Infrastructure.API

    @property
    def backend(self) -> ModelBackend:
        if self.model_file_url:
            return LocalBackend(file_url=self.model_file_url)
        return RemoteBackend(endpoint=self.api_endpoint, api_key=self.api_key)


# =================================================
# System configuration (singleton)
# =================================================
_POINTER_CATEGORY = {
    AnalysisType.HEART_DISEASE.value: "heart_disease",
    AnalysisType.IMAGE_CLASSIFICATION.value: "image_analysis",
}


def pointer_field(infrastructure: Infrastructure, analysis_type: str) -> Optional[str]:
    """Name of the configuration field pinning a model for this mode and analysis."""
    category = _POINTER_CATEGORY.get(analysis_type)
    if category is None:
        return None
    return f"active_{infrastructure.value}_{category}_model_id"


class SystemConfiguration(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    active_model_type: Infrastructure = Infrastructure.API
    active_local_heart_disease_model_id: Optional[str] = None
    active_api_heart_disease_model_id: Optional[str] = None
    active_local_image_analysis_model_id: Optional[str] = None
    active_api_image_analysis_model_id: Optional[str] = None

    @field_validator("active_model_type", mode="before")
    @classmethod
    def _parse_infrastructure(cls, value: Any) -> Infrastructure:
        return Infrastructure.parse(value)

    @property
    def is_local(self) -> bool:
        return self.active_model_type == Infrastructure.LOCAL

    def pinned_model_id(self, analysis_type: str) -> Optional[str]:
        field = pointer_field(self.active_model_type, analysis_type)
        return getattr(self, field) if field else None

    def pinned_ids_for(self, infrastructure: Infrastructure) -> List[str]:
        ids = []
        for analysis_type in _POINTER_CATEGORY:
            value = getattr(self, pointer_field(infrastructure, analysis_type))
            if value:
                ids.append(value)
        return ids


# =================================================
# Internal outcome (tagged union)
# =================================================
@dataclass
class Success:
    result: Dict[str, Any]
    # api | local | mock | default | synthesized
    source: str = "api"


@dataclass
class NoModelActive:
    model_type: str
    payload: Dict[str, Any]


@dataclass
class Failure:
    reason: str
    error: Exception


Outcome = Union[Success, NoModelActive, Failure]
