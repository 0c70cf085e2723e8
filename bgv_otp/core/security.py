from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def create_token(
    subject: str,
    token_type: str,
    expires_delta: timedelta,
    secret_key: str,
    claims: Optional[dict] = None,
) -> tuple[str, datetime]:
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + expires_delta
    payload = dict(claims or {})
    payload.update({"sub": subject, "type": token_type, "iat": issued_at, "exp": expire})
    return jwt.encode(payload, secret_key, algorithm=ALGORITHM), expire


def decode_token(token: str, secret_key: str, expected_type: str) -> dict:
    """Decode and validate a token; raises JWTError on any problem"""
    payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise JWTError("Unexpected token type")
    return payload
