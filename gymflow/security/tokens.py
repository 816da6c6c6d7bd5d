"""
HS256 tokens signed with the session secret.

User tokens are issued at login/registration. Operator tokens authorise a
kiosk (turnstile screen) for one gym and are passed explicitly with every
kiosk call.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from gymflow.config import get_session_secret, operator_token_ttl_seconds, token_ttl_seconds


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _unb64(data: str) -> bytes:
    pad = "=" * ((4 - (len(data) % 4)) % 4)
    return base64.urlsafe_b64decode((data + pad).encode("utf-8"))


def _sign(signing_input: bytes) -> bytes:
    secret = get_session_secret().encode("utf-8")
    return hmac.new(secret, signing_input, hashlib.sha256).digest()


def issue_token(claims: Dict[str, Any], ttl_seconds: int) -> str:
    hdr = {"alg": "HS256", "typ": "JWT"}
    now = int(time.time())
    pl = dict(claims)
    pl.setdefault("iat", now)
    pl["exp"] = now + int(ttl_seconds)
    h_b64 = _b64(json.dumps(hdr, separators=(",", ":")).encode("utf-8"))
    p_b64 = _b64(json.dumps(pl, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{h_b64}.{p_b64}".encode("utf-8")
    return f"{h_b64}.{p_b64}.{_b64(_sign(signing_input))}"


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a valid, unexpired token; None otherwise."""
    try:
        h_b64, p_b64, s_b64 = str(token or "").strip().split(".")
        expected = _sign(f"{h_b64}.{p_b64}".encode("utf-8"))
        if not hmac.compare_digest(expected, _unb64(s_b64)):
            return None
        hdr = json.loads(_unb64(h_b64))
        if hdr.get("alg") != "HS256":
            return None
        claims = json.loads(_unb64(p_b64))
    except (ValueError, TypeError):
        return None
    if int(claims.get("exp") or 0) < int(time.time()):
        return None
    return claims


def issue_user_token(user_id: str, email: str, role: str) -> str:
    return issue_token(
        {"sub": str(user_id), "email": email, "role": role, "typ": "user"},
        token_ttl_seconds(),
    )


def issue_operator_token(user_id: str, role: str, gym_id: str) -> str:
    return issue_token(
        {"sub": str(user_id), "role": role, "gym_id": str(gym_id), "typ": "operator"},
        operator_token_ttl_seconds(),
    )
