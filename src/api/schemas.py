from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AnalysisRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    response_schema: Optional[Dict[str, Any]] = None
    schema_name: Optional[Literal["heart_disease", "image_classification"]] = None
    structured_input: Optional[Dict[str, Any]] = None
    analysis_type: str = "heart_disease"

    @model_validator(mode="after")
    def _one_schema_source(self):
        if self.response_schema is not None and self.schema_name is not None:
            raise ValueError("Give either response_schema or schema_name, not both")
        return self


class SwitchInfrastructureRequest(BaseModel):
    active_model_type: Literal["local", "api", "remote"]


class PerformanceMetricsIn(BaseModel):
    precision: Optional[float] = Field(None, ge=0.0, le=1.0)
    recall: Optional[float] = Field(None, ge=0.0, le=1.0)
    f1_score: Optional[float] = Field(None, ge=0.0, le=1.0)


class ModelCreateRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_name: str = Field(..., min_length=1)
    version: str = ""
    model_type: str = "heart_disease"
    description: str = ""
    accuracy: float = Field(0, ge=0, le=100)
    performance_metrics: Optional[PerformanceMetricsIn] = None
    model_file_url: Optional[str] = None
    api_endpoint: Optional[str] = None
    api_key: Optional[str] = None
    # Accepted as an object or as JSON text from the admin form
    mock_prediction_output: Optional[Any] = None
