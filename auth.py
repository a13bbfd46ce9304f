from typing import Optional

from fastapi import Depends, Header
from jose import JWTError, jwt

from config import Settings, get_settings
from logs import log_json

ALGORITHM = "HS256"


def decode_user_id(token: str, settings: Settings) -> Optional[str]:
    if not settings.jwt_secret:
        log_json("WARN", "Bearer token received but JWT_SECRET is not configured")
        return None
    kwargs = {"algorithms": [ALGORITHM]}
    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        kwargs["options"] = {"verify_aud": False}
    try:
        payload = jwt.decode(token, settings.jwt_secret, **kwargs)
    except JWTError as e:
        log_json("WARN", "Ignoring invalid bearer token", reason=str(e))
        return None
    return payload.get("sub")


def get_current_user_id(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """Resolve the optional bearer identity. ``None`` means guest."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return decode_user_id(token.strip(), settings)
