import os
import secrets
import logging
from datetime import timezone, tzinfo
from typing import Dict, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "y", "on")

_generated_secret: str = ""


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in _TRUE_VALUES


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)) or default)
    except Exception:
        return default


def env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default) or ""
    return [p.strip() for p in raw.split(",") if p.strip()]


def is_production() -> bool:
    env = (os.getenv("ENV") or os.getenv("APP_ENV") or "").strip().lower()
    return env in ("prod", "production")


def simulator_enabled() -> bool:
    return env_bool("ENABLE_SIMULATOR", not is_production())


def get_session_secret() -> str:
    """Token signing secret. Falls back to a per-process random value outside production."""
    global _generated_secret
    secret = str(os.getenv("SESSION_SECRET") or "").strip()
    if secret:
        return secret
    if is_production():
        raise RuntimeError("SESSION_SECRET must be configured in production")
    if not _generated_secret:
        logger.warning("SESSION_SECRET not set, using an ephemeral secret")
        _generated_secret = secrets.token_urlsafe(32)
    return _generated_secret


def token_ttl_seconds() -> int:
    return env_int("TOKEN_TTL_SECONDS", 86400)


def operator_token_ttl_seconds() -> int:
    return env_int("OPERATOR_TOKEN_TTL_SECONDS", 43200)


def membership_days() -> int:
    return env_int("MEMBERSHIP_DAYS", 30)


def checkin_max_retries() -> int:
    return max(1, env_int("CHECKIN_MAX_RETRIES", 3))


_DEFAULT_MEMBERSHIP_PRICES = "BASIC=19990,SMARTFIT=24990,POWERFIT=29990,PREMIUM=34990,CUSTOM=24990"


def membership_prices() -> Dict[str, int]:
    """Monthly price per membership type (CLP), from MEMBERSHIP_PRICES='TYPE=price,...'."""
    prices: Dict[str, int] = {}
    for item in env_list("MEMBERSHIP_PRICES", _DEFAULT_MEMBERSHIP_PRICES):
        name, _, value = item.partition("=")
        try:
            prices[name.strip().upper()] = int(value.strip())
        except ValueError:
            logger.warning(f"MEMBERSHIP_PRICES: ignoring '{item}'")
    return prices


def app_timezone() -> tzinfo:
    """Zone used to cut days and hours in dashboards."""
    tz_name = os.getenv("APP_TIMEZONE") or os.getenv("TZ") or "America/Santiago"
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown APP_TIMEZONE '{tz_name}', using UTC")
        return timezone.utc
