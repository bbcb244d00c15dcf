"""Configuration management using pydantic-settings."""

from functools import lru_cache
from typing import Any, Literal

from pydantic import ValidationError, model_validator
from pydantic_settings import BaseSettings

from .errors import ConfigError

ChainType = Literal["tendermint", "cosmos-lcd"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Node RPC
    rpc_host: str = "http://localhost:26657"
    request_timeout: float = 30.0

    # Validator roster source
    chain_type: ChainType = "tendermint"
    lcd_host: str | None = None
    provider_lcd_host: str | None = None
    consumer_chain_id: str | None = None

    # Refresh intervals, in seconds
    refresh_rate: float = 1.0
    validators_refresh_rate: float = 180.0
    chain_info_refresh_rate: float = 300.0
    upgrade_refresh_rate: float = 300.0
    block_time_refresh_rate: float = 1800.0

    # Upgrades
    halt_height: int = 0

    # Block time estimation
    blocks_behind: int = 1000

    # Display
    timezone: str = "UTC"
    log_level: str = "info"
    log_file: str | None = None

    class Config:
        env_prefix = "TMTOP_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    @model_validator(mode="after")
    def check_consistency(self) -> "Settings":
        if self.chain_type == "cosmos-lcd" and not self.lcd_host:
            raise ValueError("cosmos-lcd chain type requires lcd_host")

        if self.provider_lcd_host and not self.consumer_chain_id:
            raise ValueError("consumer chains require consumer_chain_id")

        rates = {
            "refresh_rate": self.refresh_rate,
            "validators_refresh_rate": self.validators_refresh_rate,
            "chain_info_refresh_rate": self.chain_info_refresh_rate,
            "upgrade_refresh_rate": self.upgrade_refresh_rate,
            "block_time_refresh_rate": self.block_time_refresh_rate,
        }
        for name, value in rates.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive")

        if self.blocks_behind <= 0:
            raise ValueError("blocks_behind must be positive")

        if self.halt_height < 0:
            raise ValueError("halt_height must not be negative")

        return self

    @property
    def is_consumer(self) -> bool:
        return bool(self.provider_lcd_host)


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment plus explicit overrides.

    Overrides set to None are ignored so CLI options left unset fall back to
    the environment. Validation failures become ConfigError.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        raise ConfigError(messages) from e


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
