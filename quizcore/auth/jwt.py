"""
JWT token handling for authentication.

This module provides:
- TokenIssuer: signs access tokens carrying identity and role claims
- TokenValidator: verifies signature, issuer, audience and expiration

Expiration is enforced with zero leeway: a token is rejected from the
instant ``exp`` is reached.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
import jwt
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    ImmatureSignatureError,
    InvalidAlgorithmError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    MissingRequiredClaimError,
)
from pydantic import ValidationError
from quizcore.auth.errors import TokenValidationError, TokenValidationErrorKind
from quizcore.auth.schemas import Identity, IssuedToken, TokenClaims
from quizcore.auth.settings import AuthSettings

REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Creates signed access tokens for authenticated identities."""

    def __init__(self, settings: AuthSettings, clock: Optional[Clock] = None):
        self._settings = settings
        self._clock = clock or _utcnow

    def issue_token(self, identity: Identity) -> IssuedToken:
        """
        Create a JWT access token for an identity.

        Args:
            identity: The authenticated identity

        Returns:
            IssuedToken with the encoded token and the claims it carries
        """
        issued_at = int(self._clock().timestamp())
        expires_at = issued_at + int(self._settings.access_token_lifetime.total_seconds())

        claims = TokenClaims(
            sub=identity.id,
            username=identity.username,
            roles=frozenset(identity.roles),
            iss=self._settings.issuer,
            aud=self._settings.audience,
            iat=issued_at,
            exp=expires_at,
            jti=uuid.uuid4().hex,
        )
        payload = claims.model_dump()
        payload["roles"] = sorted(claims.roles)

        headers = {"kid": self._settings.key_id} if self._settings.key_id else None
        encoded_jwt = jwt.encode(
            payload,
            self._settings.signing_key.get_secret_value(),
            algorithm=self._settings.algorithm,
            headers=headers,
        )
        return IssuedToken(access_token=encoded_jwt, expires_at=expires_at, claims=claims)


class TokenValidator:
    """Verifies bearer tokens and reconstructs their claims."""

    def __init__(self, settings: AuthSettings):
        self._settings = settings

    def validate_token(self, token: str) -> TokenClaims:
        """
        Verify a JWT token and return its claims.

        Args:
            token: JWT token string

        Returns:
            TokenClaims if every check passes

        Raises:
            TokenValidationError: with the kind of the failed check
        """
        if not token or not isinstance(token, str):
            raise TokenValidationError(TokenValidationErrorKind.MALFORMED, "Token is empty")
        # Compact JWS is base64url segments joined by dots
        try:
            token.encode("ascii")
        except UnicodeError as e:
            raise TokenValidationError(TokenValidationErrorKind.MALFORMED, "Token is not ASCII") from e

        payload = self._decode(token)

        roles = payload.get("roles", [])
        if isinstance(roles, str):
            roles = [roles]
        try:
            return TokenClaims(
                sub=payload["sub"],
                username=payload.get("username"),
                roles=frozenset(roles),
                iss=payload["iss"],
                aud=self._settings.audience,
                iat=payload["iat"],
                exp=payload["exp"],
                jti=payload.get("jti"),
            )
        except (ValidationError, TypeError) as e:
            raise TokenValidationError(TokenValidationErrorKind.MALFORMED, "Token claims have the wrong shape") from e

    def _decode(self, token: str) -> Dict[str, Any]:
        kind = TokenValidationErrorKind
        try:
            if self._settings.key_id is not None:
                header = jwt.get_unverified_header(token)
                if header.get("kid") != self._settings.key_id:
                    raise TokenValidationError(kind.BAD_SIGNATURE, "Unknown signing key")

            return jwt.decode(
                token,
                self._settings.signing_key.get_secret_value(),
                algorithms=[self._settings.algorithm],
                audience=self._settings.audience,
                issuer=self._settings.issuer,
                leeway=0,
                options={"require": REQUIRED_CLAIMS},
            )
        except ExpiredSignatureError as e:
            raise TokenValidationError(kind.EXPIRED, "Token has expired") from e
        except ImmatureSignatureError as e:
            raise TokenValidationError(kind.NOT_YET_VALID, "Token is not yet valid") from e
        except (InvalidSignatureError, InvalidAlgorithmError) as e:
            raise TokenValidationError(kind.BAD_SIGNATURE, "Token signature is invalid") from e
        except InvalidIssuerError as e:
            raise TokenValidationError(kind.ISSUER_MISMATCH, "Token issuer is not accepted") from e
        except InvalidAudienceError as e:
            raise TokenValidationError(kind.AUDIENCE_MISMATCH, "Token audience is not accepted") from e
        except MissingRequiredClaimError as e:
            if e.claim == "iss":
                raise TokenValidationError(kind.ISSUER_MISMATCH, "Token has no issuer") from e
            if e.claim == "aud":
                raise TokenValidationError(kind.AUDIENCE_MISMATCH, "Token has no audience") from e
            raise TokenValidationError(kind.MALFORMED, f"Token is missing the '{e.claim}' claim") from e
        except DecodeError as e:
            raise TokenValidationError(kind.MALFORMED, "Token could not be decoded") from e
        except InvalidTokenError as e:
            raise TokenValidationError(kind.MALFORMED, f"Token is invalid: {e.__class__.__name__}") from e
