"""
Authentication configuration.

Settings are read from the environment once at startup and frozen; the token
issuer, validator and registration service receive them at construction.
"""
import os
import secrets
from datetime import timedelta
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from quizcore.auth.password_policy import PasswordPolicy

SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")
MIN_KEY_BYTES = 32


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


class AuthSettings(BaseModel):
    """Immutable authentication settings."""
    model_config = ConfigDict(frozen=True)

    signing_key: SecretStr
    issuer: str = "quizcore"
    audience: str = "quizcore-client"
    algorithm: str = "HS256"
    key_id: Optional[str] = None
    access_token_lifetime: timedelta = timedelta(minutes=30)
    refresh_token_lifetime: timedelta = timedelta(days=7)
    bcrypt_rounds: int = Field(12, ge=4, le=31)
    password_policy: PasswordPolicy = PasswordPolicy()

    @field_validator("signing_key")
    @classmethod
    def key_must_be_long_enough(cls, v: SecretStr) -> SecretStr:
        if len(v.get_secret_value().encode("utf-8")) < MIN_KEY_BYTES:
            raise ValueError(f"Signing key must be at least {MIN_KEY_BYTES} bytes")
        return v

    @field_validator("algorithm")
    @classmethod
    def algorithm_must_be_symmetric(cls, v: str) -> str:
        if v not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported signing algorithm: {v}")
        return v

    @field_validator("access_token_lifetime", "refresh_token_lifetime")
    @classmethod
    def lifetime_must_be_positive(cls, v: timedelta) -> timedelta:
        if v < timedelta(seconds=1):
            raise ValueError("Token lifetime must be at least one second")
        return v

    @classmethod
    def from_env(cls) -> "AuthSettings":
        """Build settings from environment variables."""
        key = os.getenv("AUTH_JWT_KEY")
        if key is None:
            if os.getenv("ENVIRONMENT", "development") == "production":
                raise RuntimeError("AUTH_JWT_KEY must be set in production")
            # Tokens will not survive a restart
            key = secrets.token_urlsafe(48)

        return cls(
            signing_key=SecretStr(key),
            issuer=os.getenv("AUTH_JWT_ISSUER", "quizcore"),
            audience=os.getenv("AUTH_JWT_AUDIENCE", "quizcore-client"),
            algorithm=os.getenv("AUTH_JWT_ALGORITHM", "HS256"),
            key_id=os.getenv("AUTH_JWT_KEY_ID") or None,
            access_token_lifetime=timedelta(minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 30))),
            refresh_token_lifetime=timedelta(days=int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", 7))),
            bcrypt_rounds=int(os.getenv("AUTH_BCRYPT_ROUNDS", 12)),
            password_policy=PasswordPolicy(
                min_length=int(os.getenv("AUTH_PASSWORD_MIN_LENGTH", 8)),
                require_digit=_env_bool("AUTH_PASSWORD_REQUIRE_DIGIT", True),
                require_lowercase=_env_bool("AUTH_PASSWORD_REQUIRE_LOWERCASE", True),
                require_uppercase=_env_bool("AUTH_PASSWORD_REQUIRE_UPPERCASE", True),
                require_non_alphanumeric=_env_bool("AUTH_PASSWORD_REQUIRE_NON_ALPHANUMERIC", True),
            ),
        )
