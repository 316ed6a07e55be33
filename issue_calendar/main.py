"""Issue Calendar Sync web application."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from issue_calendar.core.config import settings
from issue_calendar.core.database import create_db_and_tables
from issue_calendar.routes import auth, issues, users

# Configure logging
if settings.log_file:
    log_file = Path(settings.log_file)
else:
    log_file = Path.home() / ".logs" / "issue-calendar" / "latest.log"
log_file.parent.mkdir(parents=True, exist_ok=True)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    logger.info("Starting Issue Calendar Sync")
    create_db_and_tables()
    yield
    logger.info("Issue Calendar Sync shut down")


app = FastAPI(
    title=settings.app_name,
    description="Keeps Google Calendar events in step with tracker issues",
    version="0.1.0",
    lifespan=lifespan,
)

origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(issues.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
