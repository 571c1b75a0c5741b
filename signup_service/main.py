# signup_service/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from signup_service.api.v1.api import api_router
from signup_service.core.config import settings
from signup_service.core.exceptions import SignupError
from signup_service.core.kafka_producer import close_kafka_singleton
from signup_service.scheduler import get_scheduler_status, init_scheduler, shutdown_scheduler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='[%(asctime)s] %(levelname)s [%(name)s] %(message)s',
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Signup service starting up...")
    if settings.SCHEDULER_ENABLED:
        init_scheduler()
    yield
    logger.info("Signup service shutting down...")
    shutdown_scheduler()
    close_kafka_singleton()


app = FastAPI(
    title="Session Signup Service",
    version="1.0.0",
    description="""
        Capacity-controlled signups for event sessions.

        ## Features

        * **Per-role capacity**: separate STUDENT and PARENT seat pools
        * **Waitlist**: FIFO queue with 12-hour acceptance offers
        * **Sweeper**: offer expiry, auto-completion, scheduled publishing and reminders
        * **Live updates**: signup events published to Kafka for the real-time service

        ## Authentication

        All endpoints require JWT authentication via the `Authorization: Bearer <token>` header.
        """,
    lifespan=lifespan,
)


@app.exception_handler(SignupError)
async def signup_error_handler(request: Request, exc: SignupError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, **exc.to_dict()},
    )


app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "Session Signup Service is running", "scheduler": get_scheduler_status()["status"]}
