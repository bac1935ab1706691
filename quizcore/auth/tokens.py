"""
Access/refresh token pairs.

Access tokens are stateless JWTs. Refresh tokens are opaque random values
kept in the credential store and exchanged exactly once.
"""
from datetime import datetime, timezone
from typing import Callable, Optional
from quizcore.auth.errors import AuthenticationError
from quizcore.auth.jwt import TokenIssuer
from quizcore.auth.schemas import Identity, RefreshTokenRecord, TokenPair
from quizcore.auth.security import generate_refresh_token
from quizcore.auth.settings import AuthSettings
from quizcore.auth.store import CredentialStore

DEFAULT_CLIENT_ID = "quizcore-spa"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issues and refreshes token pairs."""

    def __init__(
        self,
        store: CredentialStore,
        issuer: TokenIssuer,
        settings: AuthSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._issuer = issuer
        self._settings = settings
        self._clock = clock or _utcnow

    async def issue_for(self, identity: Identity, client_id: str = DEFAULT_CLIENT_ID) -> TokenPair:
        """
        Create an access token and a stored refresh token for an identity.
        """
        access = self._issuer.issue_token(identity)
        now = self._clock()
        refresh = RefreshTokenRecord(
            value=generate_refresh_token(),
            client_id=client_id,
            user_id=identity.id,
            created_at=now,
            expires_at=now + self._settings.refresh_token_lifetime,
        )
        await self._store.save_refresh_token(refresh)

        return TokenPair(
            access_token=access.access_token,
            refresh_token=refresh.value,
            token_type=access.token_type,
            expires_at=access.expires_at,
            refresh_expires_at=int(refresh.expires_at.timestamp()),
        )

    async def refresh(self, refresh_token: str, client_id: str = DEFAULT_CLIENT_ID) -> TokenPair:
        """
        Exchange a refresh token for a new token pair.

        Raises:
            AuthenticationError: token unknown, already used, expired or
                issued to another client
        """
        record = await self._store.consume_refresh_token(refresh_token)
        if record is None:
            raise AuthenticationError("Invalid or expired refresh token")
        if record.client_id != client_id or record.expires_at <= self._clock():
            raise AuthenticationError("Invalid or expired refresh token")

        identity = await self._store.find_by_id(record.user_id)
        if identity is None:
            raise AuthenticationError("Invalid or expired refresh token")

        return await self.issue_for(identity.public(), client_id)
