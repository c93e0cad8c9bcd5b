from __future__ import annotations

import os
from pathlib import Path


def _as_bool(value: str | None, default: bool = False) -> bool:
    """Parse a truthy/falsey string into a boolean."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


class Settings:
    # API
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "3000"))
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3001")

    # Database (ledger is optional; the chain is the source of truth)
    LEDGER_ENABLED: bool = _as_bool(os.getenv("LEDGER_ENABLED"), True)
    DATABASE_URL: str = os.getenv("DATABASE_URL", str(Path(__file__).resolve().parents[2] / "data" / "relayer.db"))

    # Chain / sponsor
    SOLANA_RPC_URL: str = os.getenv("SOLANA_RPC_URL", "https://api.devnet.solana.com")
    SPONSOR_SECRET_KEY_BASE58: str = os.getenv("SPONSOR_SECRET_KEY_BASE58", "")
    CHAIN_RPC_TIMEOUT_SECONDS: float = float(os.getenv("CHAIN_RPC_TIMEOUT_SECONDS", "10"))
    CONFIRMATION_MAX_ATTEMPTS: int = int(os.getenv("CONFIRMATION_MAX_ATTEMPTS", "8"))
    CONFIRMATION_BACKOFF_SECONDS: float = float(os.getenv("CONFIRMATION_BACKOFF_SECONDS", "0.5"))
    PENDING_HOLD_MARGIN_SECONDS: int = int(os.getenv("PENDING_HOLD_MARGIN_SECONDS", "90"))
    PENDING_RECONCILE_INTERVAL_SECONDS: float = float(os.getenv("PENDING_RECONCILE_INTERVAL_SECONDS", "15"))

    # Stable token
    STABLE_TOKEN_MINT: str = os.getenv("STABLE_TOKEN_MINT", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")
    STABLE_TOKEN_DECIMALS: int = int(os.getenv("STABLE_TOKEN_DECIMALS", "6"))

    # Fee policy
    FEE_MARKUP_PERCENT: float = float(os.getenv("FEE_MARKUP_PERCENT", "20"))
    FEE_FRACTION: float = float(os.getenv("FEE_FRACTION", "0.001"))
    MIN_ABSOLUTE_FEE: int = int(os.getenv("MIN_ABSOLUTE_FEE", "1000"))
    TREASURY_ADDRESS: str = os.getenv("TREASURY_ADDRESS", "")
    TREASURY_SHARE_PERCENT: float = float(os.getenv("TREASURY_SHARE_PERCENT", "10"))
    MIN_SPONSOR_RESERVE_LAMPORTS: int = int(os.getenv("MIN_SPONSOR_RESERVE_LAMPORTS", "1000000000"))
    QUOTE_TTL_SECONDS: int = int(os.getenv("QUOTE_TTL_SECONDS", "60"))

    # Safety caps (stable token base units)
    MAX_SINGLE_TRANSACTION_AMOUNT: int = int(os.getenv("MAX_SINGLE_TRANSACTION_AMOUNT", "10000000"))
    MAX_ADDRESS_DAILY_AMOUNT: int = int(os.getenv("MAX_ADDRESS_DAILY_AMOUNT", "100000000"))
    MAX_GLOBAL_DAILY_AMOUNT: int = int(os.getenv("MAX_GLOBAL_DAILY_AMOUNT", "1000000000"))

    # Price oracle
    PYTH_HERMES_URL: str = os.getenv("PYTH_HERMES_URL", "https://hermes.pyth.network")
    PYTH_NATIVE_PRICE_FEED_ID: str = os.getenv(
        "PYTH_NATIVE_PRICE_FEED_ID",
        "0xef0d8b6fda2ceba41da15d4095d1da392a0d2f8ed0c6c7bc0f4cfac8c280b56d",
    )
    ORACLE_TIMEOUT_SECONDS: float = float(os.getenv("ORACLE_TIMEOUT_SECONDS", "5"))
    ORACLE_HIGH_VALUE_THRESHOLD: int = int(os.getenv("ORACLE_HIGH_VALUE_THRESHOLD", "100000000"))
    FALLBACK_NATIVE_PRICE: str = os.getenv("FALLBACK_NATIVE_PRICE", "250")
    PRICE_CACHE_TTL_SECONDS: int = int(os.getenv("PRICE_CACHE_TTL_SECONDS", "30"))
    PRICE_MAX_STALENESS_SECONDS: int = int(os.getenv("PRICE_MAX_STALENESS_SECONDS", "60"))

    # Gas estimation
    GAS_ESTIMATE_BUFFER_PERCENT: float = float(os.getenv("GAS_ESTIMATE_BUFFER_PERCENT", "20"))
    COMPUTE_UNIT_PRICE_MICRO_LAMPORTS: int = int(os.getenv("COMPUTE_UNIT_PRICE_MICRO_LAMPORTS", "1000"))
    LAMPORTS_PER_SIGNATURE: int = int(os.getenv("LAMPORTS_PER_SIGNATURE", "5000"))
    SIMULATION_COMPUTE_UNIT_LIMIT: int = int(os.getenv("SIMULATION_COMPUTE_UNIT_LIMIT", "200000"))
    FALLBACK_GAS_UNITS: int = int(os.getenv("FALLBACK_GAS_UNITS", "80000"))

    # Debug / logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "WARNING").upper()
    LOG_LEVEL_RELAYER: str = os.getenv("LOG_LEVEL_RELAYER", "INFO").upper()
    LOG_LEVEL_LIB_HTTPX: str = os.getenv("LOG_LEVEL_LIB_HTTPX", "WARNING").upper()
    LOG_LEVEL_LIB_HTTPCORE: str = os.getenv("LOG_LEVEL_LIB_HTTPCORE", "WARNING").upper()
    LOG_LEVEL_LIB_ASYNCIO: str = os.getenv("LOG_LEVEL_LIB_ASYNCIO", "WARNING").upper()
    LOG_LEVEL_LIB_SQLALCHEMY: str = os.getenv("LOG_LEVEL_LIB_SQLALCHEMY", "WARNING").upper()
    NO_COLOR: bool = _as_bool(os.getenv("NO_COLOR"), False)


settings = Settings()
