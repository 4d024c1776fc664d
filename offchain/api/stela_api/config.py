"""
Configuration for Stela API.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stela_core.config import require
from stela_core.constants import DEFAULT_CHAIN_ID


class Settings(BaseSettings):
    """
    API configuration settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Server
    host: str = Field(default="127.0.0.1", description="API host")
    # Railway injects PORT env var
    port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Enable debug mode")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="CORS allowed origins",
    )

    # Storage
    database_url: str = Field(
        default="sqlite:///./stela.db",
        description="SQLAlchemy URL (sqlite:///... or postgresql://...)",
    )

    # Webhook
    # SECURITY: without WEBHOOK_SECRET the webhook endpoint refuses every batch
    webhook_secret: Optional[str] = Field(
        default=None,
        description="Bearer secret the indexer must present",
    )

    # StarkNet
    rpc_url: str = Field(default="", description="StarkNet JSON-RPC URL")
    rpc_timeout_seconds: float = Field(default=30.0, description="RPC request timeout")
    stela_address: Optional[str] = Field(default=None, description="Stela contract address")
    chain_id: str = Field(default=DEFAULT_CHAIN_ID, description="SNIP-12 domain chain id")
    verify_signatures: bool = Field(
        default=True,
        description="Verify SNIP-12 signatures and nonces on order / offer writes",
    )

    def validate_required(self) -> None:
        """Raise ConfigurationError if the server cannot run safely."""
        names = ["webhook_secret"]
        if self.verify_signatures:
            names += ["rpc_url", "stela_address"]
        require(self, names)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
