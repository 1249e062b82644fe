from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .core.config import settings
from .core.change_feed import ChangeFeed
from .core.database import SessionLocal, engine
from .models import Base
from .api.routes import auth, users, courses, podcasts, websocket
from .services.auth_service import AuthService
from .services.presence_relay import PresenceRelay
from .services.storage_service import StorageService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the real-time handles for the lifetime of the app"""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        AuthService(db).create_initial_admin()
    finally:
        db.close()

    app.state.change_feed = ChangeFeed(settings.redis_url)
    await app.state.change_feed.start()
    logger.info("Started change feed")

    app.state.presence_relay = PresenceRelay()

    app.state.storage = None
    if settings.storage_url:
        app.state.storage = StorageService(
            settings.storage_url,
            settings.storage_service_key,
            settings.storage_bucket
        )
        logger.info(f"Object storage bucket: {settings.storage_bucket}")
    else:
        logger.warning("No storage_url configured, uploads and signed URLs are disabled")

    yield

    await app.state.change_feed.close()
    logger.info("Stopped change feed")

    if app.state.storage:
        await app.state.storage.close()


app = FastAPI(
    title="CampusCast",
    description="Campus lecture podcasts and live sessions",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins in development, restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(courses.router, prefix="/api/courses", tags=["Courses"])
app.include_router(podcasts.router, prefix="/api/podcasts", tags=["Podcasts"])
app.include_router(websocket.router, prefix="/api", tags=["WebSocket"])


@app.get("/")
async def root():
    return {"message": "CampusCast API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
