"""Bearer token verification. Tokens are issued elsewhere; we only read them."""
import logging
import time

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import settings
from .security import Identity, Role

logger = logging.getLogger(__name__)

# Bearer token scheme
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> dict:
    """Decode JWT token, applying our own leeway to exp and iat."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _credentials_error()

    now = int(time.time())
    leeway = int(settings.JWT_LEEWAY_SECONDS)
    try:
        exp = int(payload["exp"])
    except (KeyError, TypeError, ValueError):
        raise _credentials_error()
    if now > exp + leeway:
        raise _credentials_error("Token expired")

    iat = payload.get("iat")
    if iat is not None:
        try:
            iat_int = int(iat)
        except (TypeError, ValueError):
            raise _credentials_error()
        # Reject tokens issued in the future.
        if iat_int > now + leeway:
            raise _credentials_error()
    return payload


def identity_from_claims(payload: dict) -> Identity:
    if payload.get("type", "access") != "access":
        raise _credentials_error("Invalid token type")
    emp_id = payload.get("sub")
    if not emp_id:
        raise _credentials_error()
    try:
        role = Role.parse(payload.get("role", ""))
    except ValueError:
        logger.warning("Token for %s carries unknown role %r", emp_id, payload.get("role"))
        raise _credentials_error()
    return Identity(emp_id=str(emp_id), role=role, name=payload.get("name"))


def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Identity:
    """Caller identity from the bearer token."""
    return identity_from_claims(decode_token(credentials.credentials))
