from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlmodel import Session, select

from toolcrib import db
from toolcrib.config import get_settings
from toolcrib.errors import ToolCribError
from toolcrib.logging_config import get_logger, setup_logging
from toolcrib.models import User
from toolcrib.routers import auth, issuances, reports, tools, users
from toolcrib.security import hash_password
from toolcrib.services.overdue import OverdueScanner, OverdueTicker
from toolcrib.services.report_job import generate_reports, seconds_until_next_month
from toolcrib.store import SqlModelStore

setup_logging()
logger = get_logger(__name__)


def ensure_admin(engine) -> None:
    settings = get_settings()
    if not settings.admin_password:
        return
    with Session(engine) as session:
        exists = session.exec(select(User).where(User.username == settings.admin_username)).first()
        if exists:
            return
        session.add(User(
            username=settings.admin_username,
            password_hash=hash_password(settings.admin_password),
            role="admin",
        ))
        session.commit()
        logger.info("admin account {} created", settings.admin_username)


def sweep_with_new_session(now: datetime) -> int:
    # 后台任务不走请求依赖，自己开 session
    with Session(db.engine) as session:
        return OverdueScanner(SqlModelStore(session)).sweep(now)


def reports_with_new_session(now: datetime) -> int:
    with Session(db.engine) as session:
        return len(generate_reports(SqlModelStore(session), get_settings().reports_dir, now))


def build_report_tickers(settings, now: datetime) -> list[OverdueTicker]:
    return [
        OverdueTicker(
            reports_with_new_session,
            interval=settings.report_interval_seconds,
            first_delay=settings.report_first_delay_seconds,
            label="10-day reports",
        ),
        OverdueTicker(
            reports_with_new_session,
            interval=settings.monthly_report_interval_seconds,
            first_delay=seconds_until_next_month(now),
            label="monthly reports",
        ),
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    db.create_db_and_tables()
    ensure_admin(db.engine)

    ticker = None
    if settings.overdue_sweep_enabled:
        ticker = OverdueTicker(
            sweep_with_new_session,
            interval=settings.overdue_sweep_interval_seconds,
            first_delay=settings.overdue_first_sweep_delay_seconds,
        )
        ticker.start()
    app.state.overdue_ticker = ticker

    report_tickers = build_report_tickers(settings, datetime.now()) if settings.auto_reports_enabled else []
    for t in report_tickers:
        t.start()
    app.state.report_tickers = report_tickers
    logger.info("tool crib service started")

    yield

    if ticker is not None:
        await ticker.stop()
    for t in report_tickers:
        await t.stop()
    logger.info("tool crib service stopped")


app = FastAPI(title="Tool Crib - Issuance Ledger", lifespan=lifespan)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(tools.router)
app.include_router(issuances.router)
app.include_router(reports.router)


@app.get("/health")
def health():
    return {"ok": True}


@app.exception_handler(ToolCribError)
async def toolcrib_error_handler(request: Request, exc: ToolCribError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"code": "VALIDATION_ERROR", "message": "Request validation failed", "errors": jsonable_encoder(exc.errors())},
    )
