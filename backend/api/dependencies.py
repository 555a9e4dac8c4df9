"""
API dependencies for authentication.

The workspace schema has no users table: the authenticated principal is
whatever the access token's ``sub`` and ``email`` claims say.
"""

from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from core.security.tokens import TokenService
from infrastructure.config.settings import settings

token_service = TokenService(
    secret_key=settings.jwt_secret_key,
    algorithm=settings.jwt_algorithm,
    access_token_expire_minutes=settings.jwt_access_token_expire_minutes,
)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None


def get_token_service() -> TokenService:
    return token_service


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    tokens: TokenService = Depends(get_token_service),
) -> CurrentUser:
    """Resolve the caller from a ``Authorization: Bearer <token>`` header."""
    token = None
    if authorization and authorization.startswith("Bearer "):
        parts = authorization.split(" ", 1)
        token = parts[1].strip() if len(parts) > 1 else None

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = tokens.verify_access_token(token)
    if not payload or not payload.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(id=payload.sub, email=payload.email)
