"""
Identity and token data shapes shared by the stores, services and router.
"""
from datetime import datetime
from typing import FrozenSet, List, Optional
from pydantic import BaseModel, ConfigDict


def normalize_key(value: str) -> str:
    """Lookup key for usernames and emails; uniqueness is case-insensitive."""
    return value.strip().casefold()


class Identity(BaseModel):
    """Caller-facing view of a registered account."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    display_name: Optional[str] = None
    roles: List[str] = []
    created_at: datetime
    last_modified_at: datetime


class IdentityRecord(Identity):
    """Store-facing view; never returned to callers."""
    password_hash: str

    def public(self) -> Identity:
        return Identity(**self.model_dump(exclude={"password_hash"}))


class RefreshTokenRecord(BaseModel):
    value: str
    client_id: str
    user_id: str
    created_at: datetime
    expires_at: datetime


class TokenClaims(BaseModel):
    """Validated claim set of an access token."""
    model_config = ConfigDict(frozen=True)

    sub: str
    username: str
    roles: FrozenSet[str] = frozenset()
    iss: str
    aud: str
    iat: int
    exp: int
    jti: Optional[str] = None

    def has_role(self, role_name: str) -> bool:
        return role_name in self.roles


class IssuedToken(BaseModel):
    """Signed access token plus the claims it carries."""
    access_token: str
    token_type: str = "bearer"
    expires_at: int  # Unix timestamp
    claims: TokenClaims


class TokenPair(BaseModel):
    """Token response model."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: int  # Unix timestamp
    refresh_expires_at: int
