# assess_core/schemas.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QuestionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    section_type: str = Field(alias="sectionType")
    category: Optional[str] = None
    candidate_profile: Dict[str, Any] = Field(alias="candidateProfile")
    requested_count: int = Field(alias="requestedCount", ge=1)


class QuestionSourceResponse(BaseModel):
    """Remote generator reply; question items stay raw until the validator coerces them."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    questions: List[Any]
    cached: bool = False
    cache_source: Optional[str] = Field(default=None, alias="cacheSource")
    is_personalized: bool = Field(default=False, alias="isPersonalized")


class ReportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    candidate_profile: Dict[str, Any] = Field(alias="candidateProfile")
    scores: Dict[str, Any]
