# x402_bazaar/core/config.py
from decimal import Decimal
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings
from pydantic import AnyHttpUrl, Field, field_validator # AnyHttpUrl stays in pydantic core
from functools import lru_cache
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

DEFAULT_SERVER_URL = "https://x402-api.onrender.com"


def default_home_dir() -> Path:
    """Per-user directory holding the wallet file."""
    return Path.home() / ".x402-bazaar"


class Settings(BaseSettings):
    PROJECT_NAME: str = "x402 Bazaar"
    X402_SERVER_URL: AnyHttpUrl = DEFAULT_SERVER_URL

    # Payment network: Base mainnet or Base Sepolia
    NETWORK: Literal["mainnet", "testnet"] = "mainnet"
    # Overrides the public RPC endpoint of the selected network
    BASE_RPC_URL: Optional[str] = None

    # Session spending ceiling for the MCP server (USDC)
    MAX_BUDGET_USDC: Decimal = Field(Decimal("1.00"), gt=0, le=100)

    # Name of the environment variable holding the funding key
    FUNDING_KEY_ENV_VAR: str = "AGENT_PRIVATE_KEY"
    WALLET_FILE_PATH: Path = Field(default_factory=lambda: default_home_dir() / "wallet.json")

    # Timeouts in seconds
    HEALTH_TIMEOUT_SECONDS: float = 10
    QUERY_TIMEOUT_SECONDS: float = 15
    CALL_TIMEOUT_SECONDS: float = 30
    CONFIRMATION_TIMEOUT_SECONDS: float = 60

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        # LOG_LEVEL=info is as valid as LOG_LEVEL=INFO
        return v.strip().upper() if isinstance(v, str) else v

    @property
    def server_url(self) -> str:
        """Server URL without trailing slash."""
        return str(self.X402_SERVER_URL).rstrip("/")

@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
