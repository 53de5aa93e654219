"""
Liveness and readiness endpoints for the TestDesk API.
"""
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import settings
from app.core.datetime_utils import utc_now
from app.models import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Report service health, including whether the test store answers.

    Returns 503 with ``database: "unavailable"`` when the store cannot be
    queried, so load balancers stop routing lifecycle writes here.
    """
    body = {
        "status": "healthy",
        "database": "ok",
        "timestamp": utc_now().isoformat(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Health check database probe failed: {e}")
        body.update(status="unhealthy", database="unavailable")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body


@router.get("/ping")
async def ping():
    """Liveness only; never touches the database."""
    return {"message": "pong"}
