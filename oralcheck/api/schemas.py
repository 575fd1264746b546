from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field


class ClassificationRequest(BaseModel):
    image_base64: str = Field(..., description="Base64 encoded image (JPEG, PNG or WEBP)")


class ClassificationResponse(BaseModel):
    condition_key: str
    condition_name: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    description: str
    severity: Literal["low", "medium", "high"]
    recommendations: List[str]
    observed_at: datetime


class ModelStatusResponse(BaseModel):
    status: Literal["unloaded", "loading", "ready", "failed"]
    ready: bool
    initializing: bool


class ConditionModel(BaseModel):
    key: str
    display_name: str
    description: str
    severity: Literal["low", "medium", "high"]
    recommendations: List[str]


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool


__all__ = [
    "ClassificationRequest",
    "ClassificationResponse",
    "ConditionModel",
    "ErrorResponse",
    "ModelStatusResponse",
]
