"""
Configuration for the Stela settlement bot.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stela_core.config import ConfigurationError, require
from stela_core.constants import DEFAULT_CHAIN_ID


class Settings(BaseSettings):
    """Environment-based settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # StarkNet
    rpc_url: str = ""
    rpc_timeout_seconds: float = 30.0
    stela_address: str = ""
    chain_id: str = DEFAULT_CHAIN_ID

    # Bot account (pays for settle / liquidate)
    bot_address: str = ""
    bot_private_key: str = Field(default="", repr=False)

    # Database
    database_url: str = "sqlite:///./stela.db"

    # Bot settings
    lock_ttl_seconds: int = 300
    tx_timeout_seconds: float = 120.0
    liquidation_batch_size: int = 50
    settlement_batch_size: int = 20
    poll_interval_seconds: float = 120.0

    @property
    def run_budget_seconds(self) -> float:
        """
        Time a run may keep starting submissions after taking the lock.

        One more pair needs two nonce reads and a confirmation wait, and all
        of it must finish before the lock goes stale.
        """
        return self.lock_ttl_seconds - self.tx_timeout_seconds - 2 * self.rpc_timeout_seconds

    def validate_required(self) -> None:
        """Raise ConfigurationError if the bot cannot submit transactions safely."""
        require(self, ["rpc_url", "stela_address", "bot_address", "bot_private_key"])
        if self.run_budget_seconds <= 0:
            raise ConfigurationError(
                ["LOCK_TTL_SECONDS"],
                "LOCK_TTL_SECONDS must exceed TX_TIMEOUT_SECONDS + 2 * RPC_TIMEOUT_SECONDS",
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
