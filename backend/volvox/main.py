"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from volvox.config import settings
from volvox.database import create_tables, engine, get_db
from volvox.services.posts.errors import MutationInProgressError, PostValidationError
from volvox.services.record_store import RecordNotFoundError

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, dispose the engine on shutdown."""
    await create_tables()

    yield

    await engine.dispose()


app = FastAPI(
    title="Volvox Posts API",
    version="1.0.0",
    description="Backend API for the posts page: ordered posts with images and content links.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error mapping ──

@app.exception_handler(PostValidationError)
async def validation_error_handler(request: Request, exc: PostValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(RecordNotFoundError)
async def not_found_handler(request: Request, exc: RecordNotFoundError):
    return JSONResponse(status_code=404, content={"detail": "Post not found"})


@app.exception_handler(MutationInProgressError)
async def mutation_in_progress_handler(request: Request, exc: MutationInProgressError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(OSError)
async def blob_store_error_handler(request: Request, exc: OSError):
    logger.error(f"Blob store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": f"Blob store failure: {exc}"})


@app.exception_handler(SQLAlchemyError)
async def record_store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Record store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Record store failure"})


@app.get("/api/health")
async def health_check():
    """Verify API and database connectivity."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


# Register routers
from volvox.routes.posts import router as posts_router
app.include_router(posts_router)

# Uploaded images and content files
app.mount(
    settings.BLOB_MOUNT_PATH,
    StaticFiles(directory=settings.BLOB_STORAGE_PATH, check_dir=False),
    name="blobs",
)


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("volvox.main:app", host=settings.API_HOST, port=settings.API_PORT)
