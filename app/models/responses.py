"""
Pydantic models for API responses.
"""
from pydantic import BaseModel
from typing import Any, Dict
from datetime import datetime


class DataResponse(BaseModel):
    data: Any                       # upstream astrology body, passed through untouched


class ExplanationResponse(BaseModel):
    explanation: str


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: datetime
    cache: Dict[str, Any]           # {"backend": "file", "available": True}
