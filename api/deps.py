"""FastAPI dependencies wiring the ledger and sync engine to one EngineContext."""

from functools import lru_cache

from fastapi import Depends

from cascade.context import EngineContext
from cascade.ledger import HandlerRegistry, IdempotencyLedger
from cascade.services import CascadeSyncEngine


@lru_cache
def get_engine_context() -> EngineContext:
    return EngineContext.from_settings()


@lru_cache
def get_handler_registry() -> HandlerRegistry:
    """Application-wide handler registry; providers register handlers at import time."""
    return HandlerRegistry()


def get_ledger(context: EngineContext = Depends(get_engine_context)) -> IdempotencyLedger:
    return IdempotencyLedger(context)


def get_sync_engine(context: EngineContext = Depends(get_engine_context)) -> CascadeSyncEngine:
    return CascadeSyncEngine(context)
