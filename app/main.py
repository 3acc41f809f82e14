import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ✅ Import All API Routes
from app.api.routes import planner, interview, notifications, system

from app.core import config
from app.core.logging_config import setup_logging
from app.db.session import SessionLocal
from app.services.daily_dispatch import DailyDispatchScheduler, set_scheduler
from app.services.email_service import get_email_service

setup_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)


# ============================================
# ✅ STARTUP / SHUTDOWN
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.RUN_MIGRATIONS:
        from app.db.migrate import run_migrations
        run_migrations()
    else:
        from app.db.init_db import init_db
        init_db()

    scheduler = None
    if config.DISPATCH_ENABLED:
        scheduler = DailyDispatchScheduler(
            session_factory=SessionLocal,
            notifier=get_email_service(),
            dispatch_hour=config.DISPATCH_LOCAL_HOUR,
        )
        scheduler.start()
        set_scheduler(scheduler)
    else:
        logger.info("Daily dispatch disabled (DISPATCH_ENABLED=0)")

    yield

    if scheduler is not None:
        scheduler.stop()
        set_scheduler(None)


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="AI Career Coach", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_URL,
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(planner.router)
app.include_router(interview.router)
app.include_router(notifications.router)
app.include_router(system.router)


# ============================================
# ✅ HEALTH CHECK ROOT ENDPOINT
# ============================================

@app.get("/")
def root():
    return {"status": "Career Coach API running"}
