"""
AppTrack - Backend API
FastAPI + JWT + SQLAlchemy
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import get_config
from .db.database import init_db
from .errors import register_error_handlers
from .routers import (
    ai,
    analytics,
    applications,
    auth,
    automation,
    backup,
    contacts,
    csv,
    export,
    health,
    integrations,
    notifications,
    reminders,
    suggestions,
    user,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# Create tables on startup
@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"AppTrack API {__version__} started ({get_config().environment})")
    yield


app = FastAPI(
    title="AppTrack API",
    description="Job application tracking: applications, contacts, reminders, imports and insights",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors.origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(applications.router, prefix="/api/applications", tags=["Applications"])
app.include_router(contacts.router, prefix="/api/contacts", tags=["Contacts"])
app.include_router(reminders.router, prefix="/api/reminders", tags=["Reminders"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(csv.router, prefix="/api/csv", tags=["CSV"])
app.include_router(export.router, prefix="/api/export", tags=["Export"])
app.include_router(user.router, prefix="/api/user", tags=["User"])
app.include_router(backup.router, prefix="/api/backup", tags=["Backup"])
app.include_router(automation.router, prefix="/api/automation", tags=["Automation"])
app.include_router(integrations.router, prefix="/api/integrations", tags=["Integrations"])
app.include_router(ai.router, prefix="/api/ai", tags=["AI"])
app.include_router(suggestions.router, prefix="/api/suggestions", tags=["Suggestions"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])


@app.get("/")
async def root():
    return {
        "name": "AppTrack API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }
