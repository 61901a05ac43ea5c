"""
Core Service — Session Token Verification
===========================================

What:  Verifies bearer session tokens issued by the auth provider (Clerk).
How:   Session tokens are RS256 JWTs. The signing key is looked up by `kid` in
       the provider's JWKS, fetched with the secret key as a bearer credential
       and cached by PyJWT. A PEM public key may be configured instead, which
       skips the fetch. PyJWT checks signature and expiry; the subject claim
       becomes the session's user id.
Who:   AuthMiddleware hands every well-formed bearer token to a TokenVerifier.

Verifier contract: verify(token) returns a Session
or raises AuthenticationError. Nothing else about the provider is assumed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Sequence

import jwt

from core.exceptions import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)

PEM_PREFIX = "-----BEGIN"
CLERK_JWKS_URL = "https://api.clerk.com/v1/jwks"


@dataclass(frozen=True)
class Session:
    """Verified session attached to request.state for one request only."""

    user_id: str
    session_id: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> Session: ...


class JWTSessionVerifier:
    """
    TokenVerifier backed by PyJWT.

    Args:
        key:          Static verification key (PEM public key, or an HS256
                      secret together with algorithms=["HS256"]).
        algorithms:   Accepted algorithms. Defaults to RS256.
        leeway:       Clock skew tolerance in seconds for exp/nbf checks.
        jwks_client:  jwt.PyJWKClient resolving the key per token. Takes
                      precedence over `key`.
    """

    def __init__(
        self,
        key: Optional[str] = None,
        algorithms: Optional[Sequence[str]] = None,
        leeway: float = 5.0,
        jwks_client: Optional[jwt.PyJWKClient] = None,
    ):
        if not key and jwks_client is None:
            raise ConfigurationError("auth verification key is not configured")
        self._key = key
        self._jwks_client = jwks_client
        self.algorithms = list(algorithms) if algorithms is not None else ["RS256"]
        self.leeway = leeway

    @classmethod
    def from_settings(cls, settings) -> "JWTSessionVerifier":
        """PEM key → static RS256 verifier; secret key → Clerk JWKS lookup."""
        secret = settings.clerk_key
        if not secret:
            raise ConfigurationError("auth verification key is not configured")
        if secret.lstrip().startswith(PEM_PREFIX):
            return cls(secret)

        jwks_client = jwt.PyJWKClient(
            CLERK_JWKS_URL,
            headers={"Authorization": f"Bearer {secret}"},
        )
        return cls(jwks_client=jwks_client)

    def _signing_key(self, token: str) -> Any:
        if self._jwks_client is not None:
            return self._jwks_client.get_signing_key_from_jwt(token).key
        return self._key

    def verify(self, token: str) -> Session:
        try:
            claims = jwt.decode(
                token,
                self._signing_key(token),
                algorithms=self.algorithms,
                leeway=self.leeway,
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            logger.info("Rejected expired session token")
            raise AuthenticationError("Invalid session", reason="token_expired") from None
        except jwt.PyJWKClientError as e:
            logger.warning("Signing key lookup failed: %s", e)
            raise AuthenticationError("Invalid session", reason="signing_key_unavailable") from None
        except jwt.InvalidTokenError as e:
            logger.info("Rejected session token: %s", e)
            raise AuthenticationError("Invalid session", reason="token_invalid") from None

        user_id = claims.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise AuthenticationError("Invalid session", reason="missing_subject")
        return Session(user_id=user_id, session_id=claims.get("sid"), claims=claims)
