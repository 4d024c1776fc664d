"""
Configuration for the Stela indexer.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stela_core.config import require


class Settings(BaseSettings):
    """
    Indexer configuration settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # StarkNet
    rpc_url: str = Field(default="", description="StarkNet JSON-RPC URL")
    stela_address: str = Field(default="", description="Stela contract address")
    rpc_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for RPC requests and enrichment reads",
    )

    # Delivery
    # WEBHOOK_URL is the receiver base URL; batches go to /webhook/events
    webhook_url: str = Field(default="", description="Webhook receiver base URL")
    webhook_secret: str = Field(default="", description="Bearer secret shared with the receiver")

    # Stream
    start_block: int = Field(
        default=0,
        description="First block to index when the receiver has no cursor yet",
    )
    poll_interval_seconds: float = Field(default=10.0, description="Delay between polls")
    events_chunk_size: int = Field(default=100, description="starknet_getEvents page size")

    def validate_required(self) -> None:
        """Raise ConfigurationError if anything needed to run is missing."""
        require(self, ["rpc_url", "stela_address", "webhook_url", "webhook_secret"])


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
