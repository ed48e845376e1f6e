"""
Configuration module for GlucoGuard.

Centralizes configuration with environment variable support and
validation. Values are read once at import time.
"""

import os
from typing import Dict, Optional

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("GLUCOGUARD_ENV", "dev")  # dev|stage|prod

LOG_LEVEL = os.getenv("GLUCOGUARD_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("GLUCOGUARD_LOG_JSON", "1").lower() in ("1", "true", "yes")

# Accepted submission range (mg/dL), inclusive
GLUCOSE_MIN = int(os.getenv("GLUCOSE_MIN", "1"))
GLUCOSE_MAX = int(os.getenv("GLUCOSE_MAX", "1000"))

# Values strictly above this are reported as high risk
RISK_THRESHOLD = int(os.getenv("RISK_THRESHOLD", "140"))

# Submissions shown in the recent history panel
HISTORY_SIZE = int(os.getenv("HISTORY_SIZE", "3"))

# ============================================================
# Networks
# ============================================================

LOCAL_CHAIN_ID = 31337
LOCAL_RPC_URL = os.getenv("LOCAL_RPC_URL", "http://localhost:8545")

SEPOLIA_CHAIN_ID = 11155111
SEPOLIA_RPC_URL = os.getenv("SEPOLIA_RPC_URL", "")

# Decryption signatures
DECRYPTION_SIGNATURE_TTL_DAYS = int(os.getenv("DECRYPTION_SIGNATURE_TTL_DAYS", "365"))


def rpc_url_for(chain_id: int) -> Optional[str]:
    """Return the configured RPC endpoint for a chain, if any."""
    urls = {
        LOCAL_CHAIN_ID: LOCAL_RPC_URL,
        SEPOLIA_CHAIN_ID: SEPOLIA_RPC_URL,
    }
    return urls.get(chain_id) or None


def mock_chains_for(chain_id: Optional[int]) -> Optional[Dict[int, str]]:
    """
    Return the mock-chain map used to bootstrap a local encryption engine.

    Only the local development chain runs against the mock engine;
    every other network gets None.
    """
    if chain_id == LOCAL_CHAIN_ID:
        return {LOCAL_CHAIN_ID: LOCAL_RPC_URL}
    return None


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate configured values.
    Returns dict of check name -> passed.
    """
    return {
        "glucose_range": 0 < GLUCOSE_MIN <= GLUCOSE_MAX,
        "risk_threshold": GLUCOSE_MIN <= RISK_THRESHOLD <= GLUCOSE_MAX,
        "history_size": HISTORY_SIZE >= 0,
        "signature_ttl": DECRYPTION_SIGNATURE_TTL_DAYS > 0,
        "local_rpc_url": bool(LOCAL_RPC_URL),
    }


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("GLUCOGUARD_DEBUG", "").lower() in ("1", "true", "yes")
