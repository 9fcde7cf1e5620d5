"""
=============================================================================
CONFIGURATION FOR THE MEETING FEEDBACK ENGINE (config.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This file holds the runtime-tunable settings for the feedback engine in one
place. Values come from the environment (your .env file or system
variables) so the same code can run with different cooldowns and feature
switches in development and production.

MAIN GROUPS OF SETTINGS:
------------------------
  1. Feedback core     - Host inclusion, global debounce, delivery buffer, log level.
  2. Sales detectors   - Client indecision and "solution understood" switches and tuning.
  3. Engagement        - Threshold reduction applied when the room is calm.
  4. Server            - Host, port, and debug mode for the web server.

HOW VALUES ARE CHOSEN:
---------------------
  - Environment variables override everything.
  - If an env var is not set (or cannot be parsed) we use the documented default.
  - Some values have a floor; anything below it is raised to the floor.

Detection thresholds that are not meant to be tuned per deployment live in
utils/thresholds.py. Detectors read the values below as `config.X` at call
time, so tests can patch them.
=============================================================================
"""

import os
from typing import List


# ============================================================================
# Parsing helpers
# ============================================================================
# Remove surrounding quotes from env values (sometimes .env has "value")
# ----------------------------------------------------------------------------
def _strip_quotes(s: str) -> str:
    if not s:
        return s
    s = s.strip()
    if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
        return s[1:-1].strip()
    return s


# Problems found while parsing; reported by warn_missing_config().
_CONFIG_WARNINGS: List[str] = []

_TRUE_VALUES = ("true", "1", "yes", "y", "on")
_FALSE_VALUES = ("false", "0", "no", "n", "off")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    v = _strip_quotes(raw).lower()
    if v in _TRUE_VALUES:
        return True
    if v in _FALSE_VALUES:
        return False
    _CONFIG_WARNINGS.append(f"{name}={raw!r} is not a boolean; using {default}")
    return default


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not _strip_quotes(raw):
        return default
    try:
        value = int(_strip_quotes(raw))
    except ValueError:
        _CONFIG_WARNINGS.append(f"{name}={raw!r} is not an integer; using {default}")
        return default
    return max(minimum, value)


def _env_float(name: str, default: float, low: float = 0.0, high: float = 1.0) -> float:
    raw = os.getenv(name)
    if raw is None or not _strip_quotes(raw):
        return default
    try:
        value = float(_strip_quotes(raw))
    except ValueError:
        _CONFIG_WARNINGS.append(f"{name}={raw!r} is not a number; using {default}")
        return default
    return min(high, max(low, value))


# ============================================================================
# FEEDBACK CORE
# ============================================================================
# Host audio is usually the coach's own microphone; skip it unless asked.
FEEDBACK_INCLUDE_HOST: bool = _env_bool("FEEDBACK_INCLUDE_HOST", False)
# Minimum gap between any two alerts for the same participant (ms).
FEEDBACK_GLOBAL_COOLDOWN_MS: int = _env_int("FEEDBACK_GLOBAL_COOLDOWN_MS", 2000)
# Delivered alerts kept per meeting for GET /feedback/<meeting_id>.
FEEDBACK_HISTORY_MAX: int = _env_int("FEEDBACK_HISTORY_MAX", 100, minimum=1)
FEEDBACK_LOG_LEVEL: str = (os.getenv("FEEDBACK_LOG_LEVEL") or "INFO").strip().upper()

# ============================================================================
# SALES: CLIENT INDECISION
# ============================================================================
SALES_CLIENT_INDECISION_ENABLED: bool = _env_bool("SALES_CLIENT_INDECISION_ENABLED", True)
# 0 disables the cooldown entirely (stale cooldown state is ignored too).
SALES_CLIENT_INDECISION_COOLDOWN_MS: int = _env_int("SALES_CLIENT_INDECISION_COOLDOWN_MS", 120_000)
SALES_CLIENT_INDECISION_MIN_CONFIDENCE: float = _env_float("SALES_CLIENT_INDECISION_MIN_CONFIDENCE", 0.5)

# ============================================================================
# SALES: SOLUTION UNDERSTOOD
# ============================================================================
# A guest reformulating what the host explained, in their own words.
SALES_SOLUTION_UNDERSTOOD_ENABLED: bool = _env_bool("SALES_SOLUTION_UNDERSTOOD_ENABLED", True)
SALES_SOLUTION_UNDERSTOOD_COOLDOWN_MS: int = _env_int("SALES_SOLUTION_UNDERSTOOD_COOLDOWN_MS", 120_000)
SALES_SOLUTION_UNDERSTOOD_THRESHOLD: float = _env_float("SALES_SOLUTION_UNDERSTOOD_THRESHOLD", 0.7)
SALES_SOLUTION_UNDERSTOOD_MIN_REFORMULATION_CHARS: int = _env_int(
    "SALES_SOLUTION_UNDERSTOOD_MIN_REFORMULATION_CHARS", 40, minimum=10)
SALES_SOLUTION_CONTEXT_WINDOW_MS: int = _env_int("SALES_SOLUTION_CONTEXT_WINDOW_MS", 90_000, minimum=10_000)
SALES_SOLUTION_CONTEXT_MAX_ENTRIES: int = _env_int("SALES_SOLUTION_CONTEXT_MAX_ENTRIES", 12, minimum=3)
# Logs every rejected gate at DEBUG level.
SALES_SOLUTION_UNDERSTOOD_DEBUG: bool = _env_bool("SALES_SOLUTION_UNDERSTOOD_DEBUG", False)

# ============================================================================
# ENGAGEMENT
# ============================================================================
# Fraction removed from the engagement threshold when tension is low.
ENGAGEMENT_LOW_TENSION_REDUCTION: float = _env_float("ENGAGEMENT_LOW_TENSION_REDUCTION", 0.10, 0.0, 0.5)

# ============================================================================
# Application Configuration
# ============================================================================
FLASK_PORT: int = int(os.getenv("FLASK_PORT", "5000"))
FLASK_DEBUG: bool = os.getenv("FLASK_DEBUG", "false").lower() == "true"
FLASK_HOST: str = os.getenv("FLASK_HOST", "0.0.0.0")

# ============================================================================
# Helper Functions
# ============================================================================

def warn_missing_config() -> None:
    """
    Print warnings for env values that could not be parsed and fell back to defaults.
    Call from app startup (e.g. app.py) to help operators. Does not raise.
    """
    import sys
    if _CONFIG_WARNINGS:
        print("Config warning: some env vars were invalid and defaults were used:",
              "; ".join(_CONFIG_WARNINGS), file=sys.stderr)


def build_config_response() -> dict:
    """
    Build the complete configuration response for GET /config/all.
    Reads the module globals at call time so patched values are reported.
    """
    return {
        "feedback": {
            "includeHost": FEEDBACK_INCLUDE_HOST,
            "globalCooldownMs": FEEDBACK_GLOBAL_COOLDOWN_MS,
            "historyMax": FEEDBACK_HISTORY_MAX,
            "logLevel": FEEDBACK_LOG_LEVEL,
        },
        "salesClientIndecision": {
            "enabled": SALES_CLIENT_INDECISION_ENABLED,
            "cooldownMs": SALES_CLIENT_INDECISION_COOLDOWN_MS,
            "minConfidence": SALES_CLIENT_INDECISION_MIN_CONFIDENCE,
        },
        "salesSolutionUnderstood": {
            "enabled": SALES_SOLUTION_UNDERSTOOD_ENABLED,
            "cooldownMs": SALES_SOLUTION_UNDERSTOOD_COOLDOWN_MS,
            "threshold": SALES_SOLUTION_UNDERSTOOD_THRESHOLD,
            "minReformulationChars": SALES_SOLUTION_UNDERSTOOD_MIN_REFORMULATION_CHARS,
            "contextWindowMs": SALES_SOLUTION_CONTEXT_WINDOW_MS,
            "contextMaxEntries": SALES_SOLUTION_CONTEXT_MAX_ENTRIES,
        },
        "engagement": {
            "lowTensionReduction": ENGAGEMENT_LOW_TENSION_REDUCTION,
        },
        "server": {
            "host": FLASK_HOST,
            "port": FLASK_PORT,
            "debug": FLASK_DEBUG,
        },
    }
