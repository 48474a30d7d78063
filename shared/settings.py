"""
Runtime configuration.

All values come from the environment (optionally a local .env file) and are
resolved once at import time.
"""

import logging
import os

from dotenv import load_dotenv

# Ensure local .env is loaded before reading runtime configuration.
load_dotenv(override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


LOG_LEVEL = getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO)

# ─── Persistence ───────────────────────────────────────────────
INVESTMENTS_DB_PATH = os.getenv("INVESTMENTS_DB_PATH", "investments.db")

# ─── Market data (Brapi) ───────────────────────────────────────
BRAPI_BASE_URL = os.getenv("BRAPI_BASE_URL", "https://brapi.dev/api").strip().rstrip("/")
BRAPI_API_KEY = os.getenv("BRAPI_API_KEY", "").strip()
BRAPI_TIMEOUT_SECONDS = float(os.getenv("BRAPI_TIMEOUT_SECONDS", "10"))
BRAPI_RETRIES = max(1, int(os.getenv("BRAPI_RETRIES", "2")))
BRAPI_CACHE_TTL_SECONDS = float(os.getenv("BRAPI_CACHE_TTL_SECONDS", "300"))
MARKET_DATA_ENABLED = _env_bool("MARKET_DATA_ENABLED", "true")

# ─── Benchmarks ────────────────────────────────────────────────
BENCHMARK_DATA_DIR = os.getenv("BENCHMARK_DATA_DIR", "data/benchmarks").strip()
ANCHOR_MAX_POINTS = max(2, int(os.getenv("ANCHOR_MAX_POINTS", "24")))

# ─── Orchestrator ──────────────────────────────────────────────
AGENT_TIMEOUT_SECONDS = float(os.getenv("AGENT_TIMEOUT_SECONDS", "80"))
ORCHESTRATOR_MODEL = os.getenv("ORCHESTRATOR_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
COORDINATOR_MODEL = os.getenv("COORDINATOR_MODEL", ORCHESTRATOR_MODEL).strip() or ORCHESTRATOR_MODEL
MODEL_BASE_URL = os.getenv("MODEL_BASE_URL", "http://localhost:11434").strip()
