"""
Pydantic schemas for the assistant endpoints.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=500, examples=["我一共花了多少钱"])


class AskResponse(BaseModel):
    intent: str = Field(..., description="Name of the intent that produced the answer")
    answer: str


class AIAnswerResponse(BaseModel):
    answer: str


class VisitExtractionResponse(BaseModel):
    """Structured fields read from document images by the vision model."""
    type: Optional[str] = None
    date: Optional[str] = None
    hospital: Optional[str] = None
    department: Optional[str] = None
    doctor: Optional[str] = None
    diagnosis: Optional[str] = None
    cost: Optional[Any] = None
    medications: List[Dict[str, Any]] = Field(default_factory=list)
    inspection_headers: List[Any] = Field(default_factory=list)
    inspections: List[Dict[str, Any]] = Field(default_factory=list)
