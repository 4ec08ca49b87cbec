"""Config package"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from dotenv import load_dotenv
from solders.pubkey import Pubkey

from ..exceptions import ConfigurationException

# Load environment variables
load_dotenv()

# ============================================
# ENDPOINT DEFAULTS
# ============================================
DEFAULT_RPC_WS = "wss://api.mainnet-beta.solana.com"
DEFAULT_RPC_HTTP = "https://api.mainnet-beta.solana.com"
DEFAULT_DEXSCREENER_API_BASE = "https://api.dexscreener.com"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationException(f"{name} must be a number", value=raw) from exc


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationException(f"{name} must be an integer", value=raw) from exc


@dataclass(frozen=True)
class Settings:
    # ============================================
    # TRACKED TOKEN & ENDPOINTS
    # ============================================
    MINT: str
    RPC_WS: str = DEFAULT_RPC_WS
    RPC_HTTP: str = DEFAULT_RPC_HTTP
    DEXSCREENER_API_BASE: str = DEFAULT_DEXSCREENER_API_BASE
    CHAIN_ID: str = "solana"

    # ============================================
    # HTTP SERVER
    # ============================================
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    PUBLIC_DIR: str = "public"

    # ============================================
    # TIMING
    # ============================================
    DEX_REFRESH_SEC: float = 10.0       # Pair / price poll
    MC_KEEPALIVE_SEC: float = 30.0      # Unconditional market cap re-broadcast
    RECONNECT_DELAY_SEC: float = 5.0    # Fixed log stream backoff
    PRICE_STALE_SEC: float = 60.0       # Price older than this forces a refresh before pricing a buy
    API_TIMEOUT_SEC: float = 10.0
    RPC_TIMEOUT_SEC: float = 15.0
    DEXSCREENER_MAX_RETRIES: int = 2
    DEXSCREENER_RETRY_BACKOFF_SEC: float = 1.0

    # ============================================
    # RESOURCE BOUNDS
    # ============================================
    DEDUP_CAPACITY: int = 100_000
    MAX_CONCURRENT_CLASSIFICATIONS: int = 8
    SUBSCRIBER_QUEUE_SIZE: int = 256

    # ============================================
    # LOGGING
    # ============================================
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from the environment.

        Raises:
            ConfigurationException: MINT is missing or not a valid public key,
                or a numeric variable cannot be parsed.
        """
        env = os.environ if env is None else env

        mint = (env.get("MINT") or "").strip()
        if not mint:
            raise ConfigurationException("Missing MINT in environment")
        try:
            Pubkey.from_string(mint)
        except ValueError as exc:
            raise ConfigurationException("MINT is not a valid public key", mint=mint) from exc

        log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigurationException(
                "LOG_LEVEL must be one of " + ", ".join(LOG_LEVELS), value=log_level
            )

        return cls(
            MINT=mint,
            RPC_WS=env.get("RPC_WS") or DEFAULT_RPC_WS,
            RPC_HTTP=env.get("RPC_HTTP") or DEFAULT_RPC_HTTP,
            DEXSCREENER_API_BASE=env.get("DEXSCREENER_API_BASE") or DEFAULT_DEXSCREENER_API_BASE,
            HOST=env.get("HOST") or "0.0.0.0",
            PORT=_get_int(env, "PORT", 3000),
            PUBLIC_DIR=env.get("PUBLIC_DIR") or "public",
            DEX_REFRESH_SEC=_get_float(env, "DEX_REFRESH_SEC", 10.0),
            MC_KEEPALIVE_SEC=_get_float(env, "MC_KEEPALIVE_SEC", 30.0),
            RECONNECT_DELAY_SEC=_get_float(env, "RECONNECT_DELAY_SEC", 5.0),
            PRICE_STALE_SEC=_get_float(env, "PRICE_STALE_SEC", 60.0),
            API_TIMEOUT_SEC=_get_float(env, "API_TIMEOUT_SEC", 10.0),
            RPC_TIMEOUT_SEC=_get_float(env, "RPC_TIMEOUT_SEC", 15.0),
            DEXSCREENER_MAX_RETRIES=_get_int(env, "DEXSCREENER_MAX_RETRIES", 2),
            DEXSCREENER_RETRY_BACKOFF_SEC=_get_float(env, "DEXSCREENER_RETRY_BACKOFF_SEC", 1.0),
            DEDUP_CAPACITY=_get_int(env, "DEDUP_CAPACITY", 100_000),
            MAX_CONCURRENT_CLASSIFICATIONS=_get_int(env, "MAX_CONCURRENT_CLASSIFICATIONS", 8),
            SUBSCRIBER_QUEUE_SIZE=_get_int(env, "SUBSCRIBER_QUEUE_SIZE", 256),
            LOG_LEVEL=log_level,
            LOG_DIR=env.get("LOG_DIR") or "logs",
        )
