# app/core/config.py
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import AnyHttpUrl # AnyHttpUrl stays in pydantic core
from functools import lru_cache
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "x402 Sandbox Gateway"
    PROJECT_DESCRIPTION: str = "Pay-per-request remote code execution over HTTP 402"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "production"  # "development" enables simulated settlement

    # x402 payment settings
    X402_ENABLED: bool = True
    X402_NETWORK: str = "base"
    X402_SCHEME: str = "eip3009"
    X402_PAY_TO_ADDRESS: Optional[str] = None
    X402_ASSET_ADDRESS: Optional[str] = None  # overrides the USDC address for X402_NETWORK
    X402_FACILITATOR_URL: AnyHttpUrl = "https://x402.org/facilitator"
    X402_FACILITATOR_TIMEOUT_SECONDS: float = 30.0
    X402_MAX_TIMEOUT_SECONDS: int = 60

    # Per-tier prices in USDC
    X402_PRICE_BASIC: Decimal = Decimal("0.01")
    X402_PRICE_STANDARD: Decimal = Decimal("0.02")
    X402_PRICE_PREMIUM: Decimal = Decimal("0.05")

    X402_REPLAY_PROTECTION_ENABLED: bool = True
    X402_REPLAY_MAX_ENTRIES: int = 100_000

    X402_AUDIT_ENABLED: bool = True
    X402_AUDIT_LOG_PATH: str = "logs/x402_audit.jsonl"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

    @property
    def simulate_settlement(self) -> bool:
        """Only development deployments may fake facilitator settlement."""
        return self.ENVIRONMENT.strip().lower() == "development"

@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
