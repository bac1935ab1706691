"""
User management service.

This module provides functionality for:
- User registration
- User authentication
"""
import asyncio
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence
from pydantic import BaseModel, EmailStr, Field, ValidationError, field_validator
from quizcore.auth.errors import (
    AuthenticationError,
    RegistrationError,
    RegistrationErrorKind,
    StorageError,
    UniqueViolation,
    UnknownRoleError,
)
from quizcore.auth.models import USERNAME_MAX_LENGTH
from quizcore.auth.schemas import Identity, IdentityRecord
from quizcore.auth.security import hash_password, verify_password
from quizcore.auth.settings import AuthSettings
from quizcore.auth.store import REGISTERED_USER, CredentialStore

logger = logging.getLogger("quizcore.auth.users")

WHITESPACE = re.compile(r"\s")


# Pydantic models for request validation
class UserCreate(BaseModel):
    """Model for user registration."""
    username: str = Field(..., min_length=1, max_length=USERNAME_MAX_LENGTH)
    email: EmailStr
    password: str
    display_name: Optional[str] = Field(None, max_length=256)

    @field_validator('username')
    @classmethod
    def username_must_be_valid(cls, v):
        if WHITESPACE.search(v):
            raise ValueError('Username must not contain whitespace')
        return v


class UserLogin(BaseModel):
    """Model for user login."""
    username: str
    password: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _describe_errors(error: ValidationError) -> List[str]:
    # Only location and message; the input may be a password
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    ]


class RegistrationService:
    """
    Registers new identities and authenticates existing ones.

    Registration order: shape, username uniqueness, email uniqueness,
    password policy, then an atomic create. The uniqueness pre-checks only
    give early feedback; the store's unique constraints decide.
    """

    def __init__(
        self,
        store: CredentialStore,
        settings: AuthSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._settings = settings
        self._clock = clock or _utcnow
        self._dummy_hash: Optional[str] = None

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        roles: Optional[Sequence[str]] = None,
        display_name: Optional[str] = None,
    ) -> Identity:
        """
        Register a new user.

        Args:
            username: Unique username
            email: Unique email address
            password: Plaintext password, checked against the password policy
            roles: Role names to assign, defaults to RegisteredUser
            display_name: Optional display name

        Returns:
            The created identity, without its password hash

        Raises:
            RegistrationError: with the kind of rejection
        """
        try:
            user_data = UserCreate(
                username=username,
                email=email,
                password=password,
                display_name=display_name,
            )
        except ValidationError as e:
            raise RegistrationError(
                RegistrationErrorKind.INVALID_INPUT,
                "Registration data is invalid",
                violations=_describe_errors(e),
            ) from e

        roles = list(roles) if roles is not None else [REGISTERED_USER]

        try:
            if await self._store.find_by_username(user_data.username) is not None:
                raise RegistrationError(
                    RegistrationErrorKind.DUPLICATE_USERNAME,
                    "User with given username already exists",
                )
            if await self._store.find_by_email(user_data.email) is not None:
                raise RegistrationError(
                    RegistrationErrorKind.DUPLICATE_EMAIL,
                    "User with given e-mail already exists",
                )
        except StorageError as e:
            raise self._storage_failure(e) from e

        policy = self._settings.password_policy
        check = policy.validate_password(user_data.password)
        if not check.ok:
            raise RegistrationError(
                RegistrationErrorKind.WEAK_PASSWORD,
                "; ".join(policy.describe(rule) for rule in check.violations),
                violations=[rule.value for rule in check.violations],
            )

        password_hash = await asyncio.to_thread(
            hash_password, user_data.password, self._settings.bcrypt_rounds
        )
        now = self._clock()
        record = IdentityRecord(
            id=str(uuid.uuid4()),
            username=user_data.username,
            email=user_data.email,
            display_name=user_data.display_name,
            password_hash=password_hash,
            roles=[],
            created_at=now,
            last_modified_at=now,
        )

        try:
            created = await self._store.create(record, roles)
        except UniqueViolation as e:
            raise await self._classify_late_duplicate(e, user_data) from e
        except UnknownRoleError as e:
            raise RegistrationError(
                RegistrationErrorKind.UNKNOWN_ROLE,
                str(e),
                violations=e.roles,
            ) from e
        except StorageError as e:
            raise self._storage_failure(e) from e

        return created.public()

    async def _classify_late_duplicate(self, error: UniqueViolation, user_data: UserCreate) -> RegistrationError:
        """Map a commit-time unique violation onto the matching duplicate kind."""
        field = error.field
        if field is None:
            try:
                if await self._store.find_by_username(user_data.username) is not None:
                    field = "username"
                elif await self._store.find_by_email(user_data.email) is not None:
                    field = "email"
            except StorageError as e:
                return self._storage_failure(e)

        logger.info("Concurrent registration lost the race on %s", field or "an unknown field")
        if field == "username":
            return RegistrationError(
                RegistrationErrorKind.DUPLICATE_USERNAME,
                "User with given username already exists",
            )
        if field == "email":
            return RegistrationError(
                RegistrationErrorKind.DUPLICATE_EMAIL,
                "User with given e-mail already exists",
            )
        return RegistrationError(RegistrationErrorKind.STORAGE, str(error))

    @staticmethod
    def _storage_failure(error: StorageError) -> RegistrationError:
        return RegistrationError(
            RegistrationErrorKind.STORAGE,
            str(error),
            transient=error.transient,
        )

    async def authenticate(self, username: str, password: str) -> Identity:
        """
        Check a username and password.

        Raises:
            AuthenticationError: unknown user or wrong password
        """
        record = await self._store.find_by_username(username)
        if record is None:
            # Same bcrypt cost as a real check
            dummy_hash = await self._get_dummy_hash()
            await asyncio.to_thread(verify_password, password, dummy_hash)
            raise AuthenticationError("Incorrect username or password")

        if not await asyncio.to_thread(verify_password, password, record.password_hash):
            raise AuthenticationError("Incorrect username or password")

        return record.public()

    async def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = await asyncio.to_thread(
                hash_password, uuid.uuid4().hex, self._settings.bcrypt_rounds
            )
        return self._dummy_hash
