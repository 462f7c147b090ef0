"""FastAPI application entry point."""
import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inbound.config import settings
from inbound.database import engine, get_db, Base
from inbound.errors import InboundError
from inbound.logging_config import configure_logging
from inbound.routes import items, sessions
import inbound.models  # noqa: F401  registers the tables

configure_logging(settings.LOG_LEVEL, json=settings.LOG_JSON)
logger = structlog.get_logger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Inbound scanning of serialized products with exclusive inner box sessions",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InboundError)
async def inbound_error_handler(request: Request, exc: InboundError):
    """Translate protocol errors into their status code and structured body."""
    logger.warning(
        "request_rejected",
        method=request.method,
        path=request.url.path,
        status_code=exc.status_code,
        code=exc.code,
        reason=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(sessions.router, prefix="/api")
app.include_router(items.router, prefix="/api")


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint."""
    try:
        ok = db.execute(text("SELECT 1")).scalar() == 1
    except SQLAlchemyError as exc:
        logger.error("health_db_failed", error=str(exc))
        ok = False
    return {"api": True, "db": ok}
