# RoiEngine_core/config.py
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)


def get_secret(key: str, default: Optional[str] = None) -> Optional[str]:
    """
    Look up a setting: OS environment first (cron, CLI scripts), then
    Streamlit secrets (dashboard deployment).
    """
    value = os.getenv(key)
    if value:
        return value

    try:
        import streamlit as st
        value = st.secrets.get(key)
    except Exception:
        # st.secrets raises outside a Streamlit runtime or without secrets.toml
        value = None

    return value if value else default


DATABASE_URL = get_secret("DATABASE_URL")
COINGECKO_API_KEY = get_secret("COINGECKO_API_KEY")

if not DATABASE_URL:
    logger.debug("DATABASE_URL not configured; a default engine cannot be created")

# === Job lock row (scope JOB_LOCK) ===
JOB_LOCK_NAME = "portfolio-roi"
JOB_LOCK_TTL_MINUTES = int(get_secret("ROI_JOB_LOCK_TTL_MINUTES", "30"))

# === NAV & metrics ===
NAV_BASE = 100
PRICE_LOOKBACK_DAYS = 2      # prior closes available to forward-fill the first NAV day
ROI_LOOKBACK_DAYS = 30
ANNUALIZATION_DAYS = 365     # calendar days, crypto trades every day
MISSING_DAY_LOG_SAMPLE = 5

# === Decimal arithmetic ===
DECIMAL_PRECISION = 50

# === Price supplier ===
COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
SUPPLIER_MAX_RETRIES = 3
SUPPLIER_BASE_DELAY_SECONDS = 0.75
SUPPLIER_TIMEOUT_SECONDS = 30

# === Trade simulator defaults ===
DEFAULT_BASE_CAPITAL_USD = "100000"
DEFAULT_FEE_BPS = 5
DEFAULT_SLIPPAGE_BPS = 0
FIXED_FRACTION = "0.01"
DEFAULT_RISK_PCT = "1"
