import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import Settings, get_settings
from errors import AuthenticationError, PermissionDeniedError
from schemas import AdminIdentity

logger = logging.getLogger(__name__)

ADMIN_SUBJECT = "admin"
ADMIN_NAME = "Administrator"
ADMIN_ROLE = "admin"
JWT_ALGORITHM = "HS256"

ADMIN_IDENTITY = AdminIdentity(id=ADMIN_SUBJECT, name=ADMIN_NAME, role=ADMIN_ROLE)

_bearer = HTTPBearer(auto_error=False)


def _same(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def check_admin_credentials(admin_id: Optional[str], password: Optional[str], settings: Settings) -> bool:
    """Exact match against the configured pair. Unconfigured means nobody gets in."""
    if not settings.admin_id or not settings.admin_password:
        logger.warning("Admin login attempted but ADMIN_ID/ADMIN_PASSWORD are not configured")
        return False
    # どちらが違ったのか処理時間から分からないよう両方とも比較する
    id_ok = _same(admin_id, settings.admin_id)
    password_ok = _same(password, settings.admin_password)
    return id_ok and password_ok


def create_admin_token(settings: Settings, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": ADMIN_SUBJECT,
        "role": ADMIN_ROLE,
        "name": ADMIN_NAME,
        "iat": now,
        "exp": now + timedelta(hours=settings.admin_token_ttl_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: Optional[str], settings: Settings) -> dict:
    if not token:
        raise AuthenticationError("Access token required")
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid token") from e


def decode_admin_token(token: Optional[str], settings: Settings) -> AdminIdentity:
    claims = decode_token(token, settings)
    if claims.get("role") != ADMIN_ROLE:
        raise PermissionDeniedError("Admin access required")
    return AdminIdentity(
        id=str(claims.get("sub")),
        name=str(claims.get("name") or ADMIN_NAME),
        role=ADMIN_ROLE,
    )


def _token_from(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials


def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> AdminIdentity:
    return decode_admin_token(_token_from(credentials), settings)


def current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> AdminIdentity:
    """Any validly signed, unexpired token; used by verify/me."""
    claims = decode_token(_token_from(credentials), settings)
    return AdminIdentity(
        id=str(claims.get("sub")),
        name=str(claims.get("name") or ""),
        role=str(claims.get("role") or ""),
    )
