import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rewardapi.database.session import get_db
from rewardapi.schemas.health import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
def health_check(db: Session = Depends(get_db)) -> HealthCheckResponse:
    """Health check endpoint (DB 연결 확인 포함)."""
    try:
        db.execute(text("SELECT 1"))
        return HealthCheckResponse(status="healthy", database=True)
    except SQLAlchemyError as e:
        logger.error(f"Health check database ping failed: {e}")
        return HealthCheckResponse(status="unhealthy", database=False, error=str(e))
