"""
Placement Portal - Main Application

FastAPI backend with:
- MongoDB (pymongo) for all records
- JWT authentication with role and approval gates
- Admin-editable platform settings loaded once at startup

Run: uvicorn placement_portal.main:app --reload
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from placement_portal.api import api_router
from placement_portal.core.config import get_settings
from placement_portal.core.errors import register_exception_handlers
from placement_portal.db.mongodb import init_mongo_indexes, test_mongo_connection
from placement_portal.services.settings_service import SettingsService

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Placement Portal",
    description="""
    Multi-tenant placement management API.

    ## Roles
    - **Super admin**: approves colleges and companies, governs platform settings
    - **College admin**: manages and verifies students, grants company access
    - **Company / placement agency**: posts jobs, searches students, runs the hiring pipeline
    - **Student**: browses eligible jobs, applies, answers offers
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include API routes
app.include_router(api_router, prefix="/api")


# Startup event
@app.on_event("startup")
async def startup_event():
    """Create MongoDB indexes and load platform settings."""
    try:
        init_mongo_indexes()
        app.state.platform_settings = SettingsService().load()
        logger.info("MongoDB indexes initialized, platform settings loaded")
    except PyMongoError as e:
        logger.warning("Startup initialization failed: %s", e)


@app.get("/", tags=["Health"])
async def root():
    return {"status": "healthy", "app": "Placement Portal"}


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    mongo_ok = test_mongo_connection()
    return {
        "status": "healthy" if mongo_ok else "degraded",
        "mongodb": "connected" if mongo_ok else "disconnected",
    }
