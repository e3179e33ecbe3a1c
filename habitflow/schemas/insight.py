"""
Insight feed schemas.

GET /insights → InsightListResponse
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class InsightResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str = Field(
        description='"streak" | "pattern" | "milestone" | "improvement" | "correlation" | "motivation"'
    )
    title: str
    message: str
    detail: Optional[str] = None
    priority: str = Field(description='"low" | "medium" | "high" | "urgent"')
    related_habit_id: Optional[str] = None
    related_habit_name: Optional[str] = None
    value: Optional[float] = None
    is_positive: bool
    actionable: bool


class InsightListResponse(BaseModel):
    as_of: str = Field(description="Day the feed was generated for.")
    total: int
    items: list[InsightResponse] = Field(description="Highest priority first.")
