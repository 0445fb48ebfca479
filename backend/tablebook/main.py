import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response

from .config import Settings, get_settings
from .database import async_session, create_schema
from .infrastructure.notifier import HttpReminderSender, LoggingReminderSender
from .routers import auth, reservations, slots
from .usecases.engine import ReservationEngine
from .usecases.notifications import CustomerMailer
from .usecases.reminders import ReminderScheduler
from .utils.request_id import accept_request_id, set_request_id

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def build_sender(settings: Settings) -> CustomerMailer:
    if settings.notifier_url:
        return HttpReminderSender(
            settings.notifier_url,
            restaurant_name=settings.restaurant_name,
            timeout=settings.notifier_timeout_seconds,
        )
    logger.warning("NOTIFIER_URL not set; customer emails will only be logged")
    return LoggingReminderSender(restaurant_name=settings.restaurant_name)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if settings.create_schema:
        await create_schema()
    engine = ReservationEngine(settings, async_session, build_sender(settings))
    scheduler = ReminderScheduler(engine.scan_reminders, interval_seconds=settings.reminder_interval_seconds)
    app.state.engine = engine
    app.state.reminder_scheduler = scheduler
    if settings.reminders_enabled:
        scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()


async def request_id_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


app = FastAPI(title="Table Reservation API", lifespan=lifespan)
app.middleware("http")(request_id_middleware)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(slots.router)
app.include_router(reservations.router)
app.include_router(reservations.staff_router)
app.include_router(auth.router)
