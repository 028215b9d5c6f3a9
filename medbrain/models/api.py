"""
API request/response models.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str
    uptime_seconds: float
    generation_available: bool


class CompleteAnalysisRequest(_CamelModel):
    user_id: str = Field(..., alias="userId", min_length=1)
    document_ids: List[Any] = Field(..., alias="documentIds", min_length=1)


class CompleteAnalysisStarted(_CamelModel):
    record_id: str = Field(..., alias="recordId")
    status: str = "pending"


class BiomarkerInput(BaseModel):
    slug: str = Field(..., min_length=1)
    value: float
    unit: Optional[str] = None
    date: Optional[str] = None


class EvaluateRequest(BaseModel):
    biomarkers: List[BiomarkerInput] = Field(..., min_length=1)


class EvaluateResponse(BaseModel):
    success: bool = True
    evaluation: Dict[str, Any]
    summary: Dict[str, Any]


class BiomarkerCatalogResponse(BaseModel):
    total: int
    biomarkers: List[Dict[str, Any]]
