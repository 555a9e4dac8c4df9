"""
Access tokens for the workspace API.

The workspace keeps no user records, so a token is the whole identity:
``sub`` is the user id every ownership and membership check compares
against, ``email`` is informational.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

ACCESS_TOKEN_TYPE = "access"
_REQUIRED_CLAIMS = ("sub", "exp", "type")


@dataclass
class TokenPayload:
    """Decoded claims of a workspace token."""

    sub: str
    exp: datetime
    iat: datetime
    type: str
    email: str | None = None

    @classmethod
    def from_claims(cls, claims: dict) -> "TokenPayload":
        return cls(
            sub=claims["sub"],
            exp=datetime.fromtimestamp(claims["exp"], tz=UTC),
            iat=datetime.fromtimestamp(claims.get("iat", 0), tz=UTC),
            type=claims["type"],
            email=claims.get("email"),
        )


class TokenService:
    """Signs and checks HS256 (by default) workspace access tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60,
    ):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._lifetime = timedelta(minutes=access_token_expire_minutes)

    def create_access_token(
        self,
        user_id: str,
        email: str | None = None,
        expires_delta: timedelta | None = None,
    ) -> str:
        """
        Issue a token for ``user_id``.

        Args:
            user_id: Becomes the ``sub`` claim
            email: Optional ``email`` claim
            expires_delta: Lifetime override; negative values give an
                already expired token
        """
        issued_at = datetime.now(UTC)
        claims = {
            "sub": user_id,
            "iat": issued_at,
            "exp": issued_at + (expires_delta if expires_delta is not None else self._lifetime),
            "type": ACCESS_TOKEN_TYPE,
        }
        if email:
            claims["email"] = email
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def decode_token(self, token: str) -> TokenPayload | None:
        """Signature- and expiry-checked claims of any token type, or None."""
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            return None

        if any(not claims.get(name) for name in _REQUIRED_CLAIMS):
            return None
        return TokenPayload.from_claims(claims)

    def verify_access_token(self, token: str) -> TokenPayload | None:
        payload = self.decode_token(token)
        if payload is None or payload.type != ACCESS_TOKEN_TYPE:
            return None
        return payload
