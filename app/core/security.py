"""Bearer token verification for identities issued by the external identity provider."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from app.config import settings
from app.core.exceptions import AuthenticationError

ADMIN_ROLE = "ADMIN"
DEFAULT_ROLE = "USER"


@dataclass(frozen=True)
class Visitor:
    """Authenticated caller as asserted by the identity provider."""

    id: str
    email: str | None = None
    role: str = DEFAULT_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def verify_token(token: str) -> dict[str, Any]:
    """Verify and decode an identity provider JWT."""
    options = {"verify_aud": settings.identity_jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.identity_jwt_key,
            algorithms=settings.identity_jwt_algorithms,
            audience=settings.identity_jwt_audience,
            issuer=settings.identity_jwt_issuer,
            options=options,
        )
    except JWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")


def visitor_from_claims(claims: dict[str, Any]) -> Visitor:
    """Map token claims to a Visitor."""
    subject = claims.get("sub")
    if not subject:
        raise AuthenticationError("Invalid token payload")

    role = claims.get("custom:role") or claims.get("role") or DEFAULT_ROLE
    return Visitor(id=str(subject), email=claims.get("email"), role=str(role).upper())


def create_access_token(
    subject: str,
    email: str | None = None,
    role: str = DEFAULT_ROLE,
    expires_delta: timedelta | None = None,
) -> str:
    """Mint a token signed with the local key.

    Only meaningful with a symmetric algorithm; used by local tooling and tests.
    """
    to_encode: dict[str, Any] = {"sub": subject, "role": role}
    if email:
        to_encode["email"] = email
    if settings.identity_jwt_audience:
        to_encode["aud"] = settings.identity_jwt_audience
    if settings.identity_jwt_issuer:
        to_encode["iss"] = settings.identity_jwt_issuer
    to_encode["exp"] = datetime.now(UTC) + (expires_delta or timedelta(minutes=15))
    return jwt.encode(
        to_encode, settings.identity_jwt_key, algorithm=settings.identity_jwt_algorithms[0]
    )
