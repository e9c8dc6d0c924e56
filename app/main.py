"""SafeWake FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api import alarm_config, auth, emergency, emergency_contact, health, users
from app.core.config import settings
from app.core.deps import build_dispatcher, get_store
from app.services.reconciler import EscalationReconciler
from app.worker import build_scheduler

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.reconciler_enabled:
        store = get_store()
        reconciler = EscalationReconciler(store, build_dispatcher(store))
        scheduler = build_scheduler(reconciler, settings.reconcile_interval_seconds)
        scheduler.start()
    app.state.scheduler = scheduler
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed ids and payloads are 400s, with one readable line per problem."""
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "; ".join(problems) or "Invalid request"},
    )


app.include_router(health.router)
app.include_router(auth.router, prefix=settings.api_prefix)
app.include_router(users.router, prefix=settings.api_prefix)
app.include_router(emergency_contact.router, prefix=settings.api_prefix)
app.include_router(alarm_config.router, prefix=settings.api_prefix)
app.include_router(emergency.router, prefix=settings.api_prefix)
