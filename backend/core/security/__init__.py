"""Bearer token handling for the workspace API."""

from .tokens import ACCESS_TOKEN_TYPE, TokenPayload, TokenService

__all__ = ["ACCESS_TOKEN_TYPE", "TokenPayload", "TokenService"]
