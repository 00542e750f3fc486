import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import logging

from crm.api.v1.router import router as api_v1_router
from crm.core.exceptions import (
    ContactNotFoundError,
    EmailDispatchError,
    EnrollmentNotFoundError,
    InvalidRuleConfigError,
    LeadScoreNotFoundError,
    MissingOwnerError,
    RuleNotFoundError,
    ScoreConflictError,
    UnsupportedEntityTypeError,
    WebhookDeliveryError,
)
from crm.core.config import settings as app_settings
from crm.core.rate_limit import limiter
from crm.core.database import AsyncSessionLocal
from crm.services.scheduler import start_automation_loop, start_sequence_loop

# Configure logging
logging.basicConfig(level=app_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage the sequence and automation poll loops."""
    tasks = []
    if app_settings.SCHEDULER_ENABLED:
        tasks.append(asyncio.create_task(start_sequence_loop(AsyncSessionLocal)))
        tasks.append(asyncio.create_task(start_automation_loop(AsyncSessionLocal)))
        logger.info("Background poll tasks scheduled")
    else:
        logger.info("Scheduler disabled; polls run only via the API")
    yield
    # Shutdown: cancel the background tasks
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    if tasks:
        logger.info("Background poll tasks stopped")


app = FastAPI(
    title="CRM Engagement Core",
    description="Lead scoring, email sequences and automation rules for the CRM",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware – restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(MissingOwnerError)
async def missing_owner_handler(request: Request, exc: MissingOwnerError):
    logger.warning("Request without owner: %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=401,
        content={"detail": exc.detail, "type": "missing_owner"},
    )


@app.exception_handler(ContactNotFoundError)
async def contact_not_found_handler(request: Request, exc: ContactNotFoundError):
    logger.warning("Contact not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "contact_not_found"},
    )


@app.exception_handler(LeadScoreNotFoundError)
async def lead_score_not_found_handler(request: Request, exc: LeadScoreNotFoundError):
    logger.warning("Lead score not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "lead_score_not_found"},
    )


@app.exception_handler(EnrollmentNotFoundError)
async def enrollment_not_found_handler(request: Request, exc: EnrollmentNotFoundError):
    logger.warning("Enrollment not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "enrollment_not_found"},
    )


@app.exception_handler(RuleNotFoundError)
async def rule_not_found_handler(request: Request, exc: RuleNotFoundError):
    logger.warning("Automation rule not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "rule_not_found"},
    )


@app.exception_handler(UnsupportedEntityTypeError)
async def unsupported_entity_type_handler(
    request: Request, exc: UnsupportedEntityTypeError
):
    logger.warning("Unsupported entity type: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "unsupported_entity_type"},
    )


@app.exception_handler(InvalidRuleConfigError)
async def invalid_rule_config_handler(request: Request, exc: InvalidRuleConfigError):
    logger.warning("Invalid rule config: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_rule_config"},
    )


@app.exception_handler(ScoreConflictError)
async def score_conflict_handler(request: Request, exc: ScoreConflictError):
    logger.warning("Score conflict: %s", exc.detail)
    return JSONResponse(
        status_code=409,
        content={"detail": exc.detail, "type": "score_conflict"},
    )


@app.exception_handler(EmailDispatchError)
async def email_dispatch_handler(request: Request, exc: EmailDispatchError):
    logger.error("Email dispatch failed: %s", exc.detail)
    return JSONResponse(
        status_code=502,
        content={"detail": exc.detail, "type": "email_dispatch_failed"},
    )


@app.exception_handler(WebhookDeliveryError)
async def webhook_delivery_handler(request: Request, exc: WebhookDeliveryError):
    logger.error("Webhook delivery failed: %s", exc.detail)
    return JSONResponse(
        status_code=502,
        content={"detail": exc.detail, "type": "webhook_delivery_failed"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": exc.errors(),
            "type": "validation_error",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )
