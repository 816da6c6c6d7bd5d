import re
import secrets
from datetime import datetime, timezone
from typing import Optional

_RUT_RE = re.compile(r"^\d{7,8}-[\dK]$")


def now_utc_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if getattr(dt, "tzinfo", None) is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_rut(rut: Optional[str]) -> Optional[str]:
    """'12.345.678-k' -> '12345678-K'. Returns None for blank input."""
    if rut is None:
        return None
    r = str(rut).strip().replace(".", "").replace(" ", "").upper()
    if not r:
        return None
    if "-" not in r and len(r) >= 2:
        r = f"{r[:-1]}-{r[-1]}"
    return r


def is_valid_rut_format(rut: Optional[str]) -> bool:
    r = normalize_rut(rut)
    return bool(r and _RUT_RE.match(r))


def generate_qr_code() -> str:
    # 16 hex chars, upper case
    return secrets.token_hex(8).upper()


def capacity_percentage(current: int, maximum: int) -> int:
    """round(current / max * 100) rounding halves up; 0 when max is 0."""
    if not maximum or maximum <= 0:
        return 0
    return int((current * 100 * 2 + maximum) // (maximum * 2))


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat()
