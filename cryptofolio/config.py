"""
Configuration management for cryptofolio.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from decimal import Decimal
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # Database
    database_url: str = "sqlite:///cryptofolio.db"
    db_echo: bool = False

    # Accounting
    base_currency: str = "USD"
    display_currencies: List[str] = ["USD", "VND"]
    stablecoins: List[str] = ["USDT", "USDC", "BUSD", "DAI", "FDUSD"]
    cross_asset_policy: str = "transfer"  # "transfer" or "disposal"

    # P2P
    p2p_default_crypto: str = "USDT"
    p2p_default_fiat: str = "VND"
    p2p_amount_tolerance: Decimal = Decimal("0.01")

    # Snapshot scheduler
    snapshot_cron_hour: str = "*/6"
    snapshot_cron_minute: str = "0"

    log_level: str = "INFO"

    @property
    def stablecoin_set(self) -> set:
        """Upper-cased stablecoin symbols."""
        return {symbol.upper() for symbol in self.stablecoins}

    def is_stablecoin(self, symbol: str) -> bool:
        return symbol.upper() in self.stablecoin_set


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
