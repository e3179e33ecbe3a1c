"""
HabitFlow API entry point.

    uvicorn habitflow.main:app --reload
    gunicorn -c gunicorn.conf.py habitflow.main:app
"""
import logging

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from habitflow.core.config import settings
from habitflow.core.errors import (
    HabitFlowException,
    habitflow_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from habitflow.db.base import get_db
from habitflow.routers import habits, insights

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("habitflow")

app = FastAPI(
    title="HabitFlow API",
    description=(
        "**Habit Progress & Insight Engine**\n\n"
        "Turns a log of habit completions into streaks, a dynamically "
        "adjusted daily goal and a ranked feed of behavioural insights.\n\n"
        "Errors share one envelope: `{code, message, details}`."
    ),
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(HabitFlowException, habitflow_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(habits.router)
app.include_router(insights.router)

logger.info("HabitFlow starting (env=%s, tz=%s)", settings.APP_ENV, settings.TIMEZONE)


@app.get("/health", tags=["health"], summary="Liveness + database check")
def health(db: Session = Depends(get_db)):
    """200 with `{"status": "ok"}` when the database answers, 503 otherwise."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("health check: database unreachable", exc_info=True)
        return JSONResponse(status_code=503, content={"status": "error", "db": "unreachable"})
    return {"status": "ok", "db": "ok", "env": settings.APP_ENV}
