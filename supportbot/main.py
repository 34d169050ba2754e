"""
Support chatbot API.

FastAPI application: lifespan-managed services, middleware, error handlers
and routes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import memories, moderation, turns
from .api.errors import install_exception_handlers
from .config.app_config import get_app_config
from .db.session import init_db
from .middleware.correlation import CorrelationIdMiddleware
from .middleware.rate_limiting import RateLimitMiddleware
from .scheduler.session_wrapup import session_wrapup_loop
from .services import build_services
from .utils.datetime import utc_iso
from .utils.logging_config import setup_logging

logger = logging.getLogger("supportbot.main")

config = get_app_config()
setup_logging(config.log_level, structured=config.log_structured)


@asynccontextmanager
async def lifespan(app: FastAPI):
    for problem in config.validate():
        logger.warning(f"Configuration: {problem}")

    app.state.services = build_services(config)
    services = app.state.services
    await init_db(services["database"])

    wrapup_task = None
    if config.wrapup_enabled:
        wrapup_task = asyncio.create_task(
            session_wrapup_loop(services, config.memory_inactivity_min, config.wrapup_scan_interval_s)
        )
    logger.info("Support chatbot started")

    try:
        yield
    finally:
        if wrapup_task is not None:
            wrapup_task.cancel()
            try:
                await wrapup_task
            except asyncio.CancelledError:
                pass
        await services["llm_controller"].close()
        await services["database"].dispose()
        logger.info("Support chatbot stopped")


app = FastAPI(
    title="Support Chatbot API",
    description="Screened, structured and streamed support conversations",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RateLimitMiddleware, requests_per_minute=config.rate_limit_requests,
                   burst_size=config.rate_limit_burst)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)
install_exception_handlers(app)


@app.get("/health")
async def health(request: Request):
    database = request.app.state.services["database"]
    db_ok = await database.ping()
    return {"status": "ok" if db_ok else "degraded", "time": utc_iso(), "database": db_ok}


app.include_router(turns.router)
app.include_router(moderation.router)
app.include_router(memories.router)
