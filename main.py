import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlmodel import Session, select

from hackathon_core.adapters.identity import hash_password, normalize_email
from hackathon_core.config import ADMIN_EMAIL, ADMIN_PASSWORD, LOG_LEVEL, LOG_FILE
from hackathon_core.database import create_db_and_tables, engine
from hackathon_core.errors import DomainError, InternalError, ValidationError
from hackathon_core.logging_config import setup_logging
from hackathon_core.models import User

setup_logging(LOG_LEVEL, LOG_FILE)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: Create database tables
    create_db_and_tables()
    with Session(engine) as db:
        admin_email = normalize_email(ADMIN_EMAIL)
        admin_user = db.exec(select(User).where(User.email == admin_email)).first()
        if not admin_user:
            db.add(User(
                email=admin_email,
                display_name="admin",
                role="admin",
                password_hash=hash_password(ADMIN_PASSWORD)
            ))
            db.commit()
            logger.info("Seeded admin account %s", admin_email)
    yield
    # Shutdown: cleanup if needed


# Initialize FastAPI app
app = FastAPI(
    title="Hackathon Participation Engine",
    description="Registrations, teams, submissions, judging and winners for timed hackathons",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("Domain error on %s: %s - %s", request.url.path, exc.code, exc.message)
    else:
        logger.info("Rejected %s %s: %s - %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ValidationError("; ".join(messages) or "Invalid request").to_dict()
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_id = str(uuid.uuid4())[:8]
    logger.exception("Unhandled error [%s] on %s %s", log_id, request.method, request.url.path)
    body = InternalError().to_dict()
    body["log_id"] = log_id
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


# Include routers
from hackathon_core.routers import hackathons, registrations, teams, submissions, scores, notifications  # noqa: E402

app.include_router(hackathons.router)
app.include_router(registrations.router)
app.include_router(teams.router)
app.include_router(submissions.router)
app.include_router(scores.router)
app.include_router(notifications.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
