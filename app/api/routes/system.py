from fastapi import APIRouter
from sqlalchemy import text
from app.db.session import SessionLocal
from app.services.daily_dispatch import get_scheduler

router = APIRouter(prefix="/system", tags=["System"])

@router.get("/health")
def system_health():
    db_ok = True
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
    except Exception:
        db_ok = False

    scheduler = get_scheduler()

    return {
        "status": "ok" if db_ok else "degraded",
        "database": "connected" if db_ok else "error",
        "scheduler": scheduler.status() if scheduler else {"running": False},
        "api_version": "1.0.0",
        "service": "Career Coach API"
    }
