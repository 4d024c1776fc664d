"""
FastAPI dependencies for shared clients.
"""

from functools import lru_cache

from stela_core.db import StelaStore
from stela_core.rpc import StarknetRPC, StarknetRPCConfig

from .config import get_settings


@lru_cache
def get_store() -> StelaStore:
    """Process-wide store (engine pools connections)."""
    return StelaStore(get_settings().database_url)


@lru_cache
def get_rpc() -> StarknetRPC:
    settings = get_settings()
    return StarknetRPC(
        StarknetRPCConfig(url=settings.rpc_url, timeout=settings.rpc_timeout_seconds)
    )
