"""
Insights router.

GET /insights   - ranked insight feed over every tracked habit
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from habitflow.core.config import settings
from habitflow.db.base import get_db
from habitflow.schemas.common import ErrorResponse
from habitflow.schemas.insight import InsightListResponse, InsightResponse
from habitflow.services.domain import Insight
from habitflow.services.habit_store import load_domain_habits
from habitflow.services.insights_engine import generate_insights

router = APIRouter(prefix="/insights", tags=["insights"])


def _insight_to_response(i: Insight) -> InsightResponse:
    return InsightResponse(
        type=i.type.value,
        title=i.title,
        message=i.message,
        detail=i.detail,
        priority=i.priority.name,
        related_habit_id=i.related_habit_id,
        related_habit_name=i.related_habit_name,
        value=i.value,
        is_positive=i.is_positive,
        actionable=i.actionable,
    )


@router.get(
    "",
    response_model=InsightListResponse,
    summary="Ranked insight feed",
    responses={
        200: {"description": "Insights, highest priority first."},
        422: {"model": ErrorResponse, "description": "A habit has invalid goal progression settings."},
    },
)
def list_insights(
    as_of: Optional[date] = Query(
        default=None,
        description="Day to generate the feed for. Defaults to today.",
        examples=["2026-02-21"],
    ),
    db: Session = Depends(get_db),
):
    """
    Generate insights fresh from the stored completion history. Nothing is
    persisted; calling twice with the same data returns the same list.

    ### Ordering
    Priority (`urgent` > `high` > `medium` > `low`), then type:
    milestone, streak, correlation, pattern, improvement, motivation.
    """
    day = as_of or settings.today()
    insights = generate_insights(load_domain_habits(db), day, settings.insight_rules())
    return InsightListResponse(
        as_of=str(day),
        total=len(insights),
        items=[_insight_to_response(i) for i in insights],
    )
