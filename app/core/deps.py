"""FastAPI dependencies and shared service wiring."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from app.core.config import settings
from app.db.store import RecordStore
from app.services.escalation_service import EmergencyDispatcher
from app.services.notifier import LoggingNotifier, Notifier, WhatsAppGatewayNotifier

logger = logging.getLogger(__name__)


def build_store(backend: str | None = None) -> RecordStore:
    """Create the record store selected by STORE_BACKEND."""
    backend = (backend or settings.store_backend).strip().lower()
    if backend == "memory":
        from app.db.memory_store import MemoryStore

        logger.info("Using in-memory record store")
        return MemoryStore()
    if backend == "sql":
        from app.db.session import SessionLocal, init_db
        from app.db.sql_store import SqlAlchemyStore

        init_db()
        logger.info("Using SQL record store")
        return SqlAlchemyStore(SessionLocal)
    raise ValueError(f"Unsupported STORE_BACKEND '{backend}'. Use 'sql' or 'memory'.")


def build_notifier() -> Notifier:
    """WhatsApp gateway when configured, otherwise log-only delivery."""
    if settings.whatsapp_gateway_url:
        return WhatsAppGatewayNotifier(
            url=settings.whatsapp_gateway_url,
            token=settings.whatsapp_gateway_token,
            max_attempts=settings.notify_max_attempts,
            backoff_seconds=settings.notify_backoff_seconds,
        )
    logger.warning("WHATSAPP_GATEWAY_URL not set; emergency messages will only be logged")
    return LoggingNotifier()


@lru_cache
def _default_store() -> RecordStore:
    return build_store()


@lru_cache
def _default_notifier() -> Notifier:
    return build_notifier()


def build_dispatcher(store: RecordStore, notifier: Notifier | None = None) -> EmergencyDispatcher:
    return EmergencyDispatcher(store, notifier or _default_notifier())


def get_store() -> RecordStore:
    """Dependency for FastAPI to get the record store."""
    return _default_store()


def get_dispatcher(store: Annotated[RecordStore, Depends(get_store)]) -> EmergencyDispatcher:
    """Dependency for FastAPI to get the emergency dispatcher."""
    return build_dispatcher(store)
