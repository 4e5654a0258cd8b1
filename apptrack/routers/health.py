"""
Health Check Endpoint
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from .. import __version__
from ..config import get_config
from ..db.database import get_db
from ..db.models import utcnow
from ..services.ai import AIClient

router = APIRouter()


@router.get("/health")
@router.get("/api/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    config = get_config()
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "database": db_status,
        "version": __version__,
        "environment": config.environment,
        "timestamp": utcnow().isoformat(),
        "ai_available": AIClient(config.ai).is_available,
    }
