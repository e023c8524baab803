"""Health check routes."""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tradebook.database.db_manager import DatabaseManager
from tradebook.dependencies import get_db

router = APIRouter()


@router.get("/api/health")
async def health_check(db: DatabaseManager = Depends(get_db)):
    """Simple health check endpoint"""
    try:
        with db.get_session() as session:
            session.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        database = "unavailable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "service": "tradebook",
        "database": database,
        "timestamp": datetime.now().isoformat(),
    }
