from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
from app.config import settings
from app.errors import ApiError

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The caller as asserted by the identity provider's session token."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or "User"


def decode_session_token(token: str) -> dict:
    options = {"verify_aud": False}
    kwargs = {}
    if settings.clerk_issuer:
        kwargs["issuer"] = settings.clerk_issuer
    return jwt.decode(
        token,
        settings.clerk_jwt_key,
        algorithms=[settings.clerk_jwt_algorithm],
        options=options,
        **kwargs,
    )


def identity_from_claims(payload: dict) -> Identity:
    name = payload.get("name") or payload.get("full_name") or payload.get("first_name")
    email = payload.get("email") or payload.get("primary_email")
    return Identity(id=payload["sub"], name=name, email=email)


def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Identity]:
    """Identity of the caller, or None when no usable token was sent."""
    if credentials is None:
        return None
    try:
        payload = decode_session_token(credentials.credentials)
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return identity_from_claims(payload)


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    """Authenticated caller; any missing or invalid token is a 401."""
    if credentials is None:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    try:
        payload = decode_session_token(credentials.credentials)
    except ExpiredSignatureError:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized", details="Token expired")
    except JWTError:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized", details="Could not validate credentials")

    if not payload.get("sub"):
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized", details="Invalid token payload")

    return identity_from_claims(payload)
