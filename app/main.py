import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.app_logging import configure_logging
from app.config import settings
from app.database import create_tables, async_session
from app.dependencies import verify_api_key
from app.seed import seed_data
from app.routers.auth import router as auth_router
from app.routers.sessions import router as sessions_router
from app.routers.photos import router as photos_router
from app.routers.realtime import router as realtime_router
from app.utils.exceptions import register_exception_handlers

logger = logging.getLogger(__name__)

UPLOADS_DIR = os.path.join(settings.data_dir, "uploads")
os.makedirs(UPLOADS_DIR, exist_ok=True)
os.makedirs(os.path.join(settings.data_dir, "tmp"), exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await create_tables()
    async with async_session() as session:
        await seed_data(session)
    logger.info("Photo session API started (environment=%s)", settings.environment)
    yield


app = FastAPI(
    title="Live Photo Session API",
    description="Live photo sharing sessions: uploads, moderation and realtime fanout",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

_api_key_dep = [Depends(verify_api_key)]

app.include_router(auth_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(sessions_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(photos_router, prefix="/api/v1", dependencies=_api_key_dep)
app.include_router(realtime_router)

app.mount(settings.uploads_url_prefix, StaticFiles(directory=UPLOADS_DIR), name="uploads")


@app.get("/health")
async def health_check():
    return {"status": "success", "data": {"service": "photo-session-api", "version": "0.1.0"}, "message": None}
