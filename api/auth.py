"""
Bearer token authentication for the FastAPI API.

The gate runs before every protected route. It never raises: callers get an
``Authorized`` carrying the resolved identity or a ``Rejected`` carrying the
401 response to send back, and must return that response themselves.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

import structlog
from fastapi import status
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from pydantic import ValidationError

from api.config import APIConfig
from api.errors import (
    AuthError, InvalidToken, MissingToken, UnknownIdentity, error_body
)
from api.models import CredentialClaim, Identity

logger = structlog.get_logger(__name__)

BEARER_PREFIX = "Bearer "


def extract_token(authorization_header: Optional[str]) -> Optional[str]:
    """
    Pull the raw token out of an Authorization header value.

    Returns:
        The token, or None when the header is absent or carries nothing
    """
    if not authorization_header:
        return None
    token = authorization_header.replace(BEARER_PREFIX, "", 1).strip()
    return token or None


class TokenVerifier:
    """Signs and verifies bearer tokens with the process-wide secret."""

    def __init__(self, config: APIConfig):
        self.secret = config.jwt_secret
        self.algorithm = config.jwt_algorithm
        self.expire_minutes = config.access_token_expire_minutes

    def issue(self, user_id: str, expires_minutes: Optional[int] = None) -> str:
        """
        Create a signed token for a user.

        Args:
            user_id: Identifier stored in the ``id`` claim
            expires_minutes: Lifetime override (defaults to configuration)

        Returns:
            Encoded token string
        """
        now = datetime.now(timezone.utc)
        lifetime = self.expire_minutes if expires_minutes is None else expires_minutes
        payload = {
            "id": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=lifetime)).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, raw_token: Optional[str]) -> CredentialClaim:
        """
        Decode a token and check its signature and expiry.

        Raises:
            MissingToken: No token was supplied
            InvalidToken: Signature mismatch, expiry or malformed payload
        """
        if not raw_token:
            raise MissingToken()

        try:
            payload = jwt.decode(raw_token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidToken(str(e)) from e

        if not isinstance(payload, dict) or not payload.get("id"):
            raise InvalidToken("Token payload has no user id")

        try:
            return CredentialClaim(**{**payload, "id": str(payload["id"])})
        except ValidationError as e:
            raise InvalidToken(str(e)) from e


class IdentityResolver:
    """Maps a verified claim to a live user record."""

    def __init__(self, db_service):
        self.db_service = db_service

    async def resolve(self, claim: CredentialClaim) -> Identity:
        """
        Load the user named by the claim, without sensitive fields.

        Raises:
            UnknownIdentity: No such user (e.g. deleted after the token was issued)
        """
        user_doc = await self.db_service.get_user_by_id(claim.id)
        if not user_doc:
            raise UnknownIdentity(f"No user with id {claim.id}")
        return Identity.from_document(user_doc)


@dataclass(frozen=True)
class Authorized:
    identity: Identity


@dataclass(frozen=True)
class Rejected:
    body: Dict[str, Any]
    status_code: int = status.HTTP_401_UNAUTHORIZED

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.body)


AuthOutcome = Union[Authorized, Rejected]


class AuthGate:
    """Token verification followed by identity resolution."""

    def __init__(self, verifier: TokenVerifier, resolver: IdentityResolver):
        self.verifier = verifier
        self.resolver = resolver

    async def authorize(self, authorization_header: Optional[str]) -> AuthOutcome:
        """
        Authenticate a request from its Authorization header.

        Infrastructure failures during resolution are reported exactly like an
        invalid credential.
        """
        try:
            claim = self.verifier.verify(extract_token(authorization_header))
            identity = await self.resolver.resolve(claim)
        except MissingToken as e:
            logger.info("Request without bearer token")
            return Rejected(error_body(e.message))
        except UnknownIdentity as e:
            logger.warning("Token references unknown user", detail=e.detail)
            return Rejected(error_body(e.message))
        except AuthError as e:
            logger.warning("Invalid bearer token", detail=e.detail)
            return Rejected(error_body(e.message, e.detail))
        except Exception as e:
            logger.error("Authorization failed", error=str(e))
            return Rejected(error_body(InvalidToken.message, str(e)))

        return Authorized(identity)
