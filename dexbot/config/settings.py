"""Application settings and configuration management."""

from datetime import timedelta
from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from ..core.types import BotConfig, SearchFilters, StrategyProfile

logger = structlog.get_logger(__name__)


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Environment and mode
    env: Literal["dev", "paper", "prod"] = Field(
        description="Environment: dev, paper, prod"
    )

    # Market data
    dexscreener_base: str = Field(
        default="https://api.dexscreener.com/latest/dex",
        description="DexScreener API base URL",
    )
    request_spacing_ms: int = Field(
        default=1000, ge=0, description="Minimum delay between API requests in ms"
    )
    cache_ttl_seconds: int = Field(
        default=300, gt=0, description="Cache TTL for search and trending results"
    )
    detail_cache_ttl_seconds: int = Field(
        default=1800, gt=0, description="Cache TTL for pair detail lookups"
    )
    http_timeout_seconds: float = Field(
        default=30.0, gt=0, description="HTTP request timeout in seconds"
    )
    trending_chains: list[str] = Field(
        default_factory=lambda: ["solana", "ethereum", "bsc"],
        description="Chains scanned by trending lookups",
    )

    # General scan floor
    trending_chain: str | None = Field(
        default="solana", description="Chain scanned by the general cycle"
    )
    trending_min_volume_usd: float = Field(
        default=1_000_000.0, ge=0, description="Minimum 24h volume for candidates"
    )
    trending_min_market_cap_usd: float = Field(
        default=150_000.0, ge=0, description="Minimum market cap for candidates"
    )

    # Orchestrator
    poll_interval_seconds: float = Field(
        default=60.0, gt=0, description="General cycle interval in seconds"
    )
    watchlist_poll_interval_seconds: float = Field(
        default=30.0, gt=0, description="Watchlist cycle interval in seconds"
    )
    max_positions: int = Field(default=5, ge=1, description="Max concurrent positions")
    max_investment_usd: float = Field(
        default=1000.0, gt=0, description="Total capital cap in USD"
    )
    strategy_profile: StrategyProfile = Field(
        default=StrategyProfile.BALANCED, description="Strategy profile"
    )
    prioritize_watchlisted: bool = Field(
        default=True, description="Run the watchlist cycle"
    )
    clip_to_headroom: bool = Field(
        default=True,
        description="Clip new positions to the capital left under max_investment_usd",
    )
    decision_engine: str | None = Field(
        default=None, description="Decision engine import path (module:attribute)"
    )

    # Data storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///./bot.sqlite",
        description="Database connection URL",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @property
    def db_path(self) -> str:
        """Filesystem path of the SQLite database."""
        return self.database_url.replace("sqlite+aiosqlite:///", "")

    def to_bot_config(self) -> BotConfig:
        """Build the orchestrator configuration."""
        return BotConfig(
            poll_interval=timedelta(seconds=self.poll_interval_seconds),
            watchlist_poll_interval=timedelta(
                seconds=self.watchlist_poll_interval_seconds
            ),
            max_positions=self.max_positions,
            max_investment=self.max_investment_usd,
            strategy_profile=self.strategy_profile,
            prioritize_watchlisted=self.prioritize_watchlisted,
        )

    def trending_filters(self) -> SearchFilters:
        """Build the floor filter used by the general cycle."""
        return SearchFilters(
            chain_id=self.trending_chain,
            min_volume=self.trending_min_volume_usd,
            min_market_cap=self.trending_min_market_cap_usd,
        )


def load_settings(profile: str, yaml_path: str) -> AppSettings:
    """Load settings from YAML file and environment variables.

    Args:
        profile: Configuration profile name (dev, paper, prod)
        yaml_path: Path to YAML configuration file

    Returns:
        AppSettings instance with loaded configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValidationError: If configuration is invalid
        ValueError: If profile is invalid
    """
    if profile not in ["dev", "paper", "prod"]:
        raise ValueError(
            f"Invalid profile: {profile}. Must be one of: dev, paper, prod"
        )

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError("Invalid YAML configuration: expected a mapping")

        yaml_config["env"] = profile

        logger.info("Loading configuration", profile=profile, yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            profile=profile,
            strategy_profile=settings.strategy_profile.value,
            max_positions=settings.max_positions,
            max_investment_usd=settings.max_investment_usd,
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise
