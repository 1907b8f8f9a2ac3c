from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from app.api.errors import register_exception_handlers
from app.api.routes import auth, files
from app.api.schemas import error_body
from app.core.config import settings
from app.core.database import engine, Base
from app.core.logging import configure_logging
from app.core.scheduler import scheduler, start_scheduler, stop_scheduler
from app.services.reset_tokens import reset_token_ledger
from app.storage.object_store import object_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage app lifecycle events.

    Startup: configure logging, create tables, start the scheduler the
    reset token ledger expires tokens on.
    Shutdown: drop outstanding reset tokens, stop the scheduler, close the
    object store connection pool.
    """
    configure_logging(settings.LOG_LEVEL)
    # In production, use migrations instead of create_all
    Base.metadata.create_all(bind=engine)
    start_scheduler()
    reset_token_ledger.init(scheduler)
    logger.info("DriveX API started")
    yield
    reset_token_ledger.shutdown()
    stop_scheduler()
    object_store.close()


app = FastAPI(
    title="DriveX API",
    description="Personal file locker backed by a cloud object store",
    version="1.0.0",
    lifespan=lifespan
)


@app.middleware("http")
async def limit_request_size(request: Request, call_next):
    """Reject bodies above MAX_REQUEST_SIZE before they reach a route"""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > settings.MAX_REQUEST_SIZE:
        logger.warning(f"Request body of {content_length} bytes rejected on {request.url.path}")
        return JSONResponse(
            status_code=413,
            content=error_body("File size exceeds maximum allowed size"),
        )
    return await call_next(request)


# CORS middleware - allows frontend to make requests to backend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


register_exception_handlers(app)

# All routes are prefixed with /api for consistency
app.include_router(auth.router, prefix="/api")
app.include_router(files.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint - API information"""
    return {"message": "DriveX API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check endpoint - used by monitoring/deployment tools"""
    return {"status": "healthy"}
