# cart_service/api/routers/health.py
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cart_service.data.database import get_db
from cart_service.domain.schemas import HealthOut
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthOut)
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "UP"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database = "DOWN"
    return HealthOut(status="UP", service="cart-service", database=database)
