"""
Credential stores.

``CredentialStore`` is the persistence contract the registration and token
services depend on. Uniqueness of usernames and emails is enforced here, on
the write path, not by the callers' pre-checks:

- ``SqlAlchemyCredentialStore`` relies on unique indexes and reports a
  violated index as ``UniqueViolation``.
- ``InMemoryCredentialStore`` checks and inserts without yielding to the
  event loop in between.
"""
import abc
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from quizcore.auth.errors import StorageError, UniqueViolation, UnknownRoleError
from quizcore.auth.models import RefreshToken, Role, User
from quizcore.auth.schemas import IdentityRecord, RefreshTokenRecord, normalize_key

REGISTERED_USER = "RegisteredUser"
ADMINISTRATOR = "Administrator"

DEFAULT_ROLES = {
    REGISTERED_USER: "Self-registered user who can author and take tests",
    ADMINISTRATOR: "Administrator with full access to all features",
}


class CredentialStore(abc.ABC):
    """Persistence contract for identities, roles and refresh tokens."""

    @abc.abstractmethod
    async def find_by_username(self, username: str) -> Optional[IdentityRecord]:
        ...

    @abc.abstractmethod
    async def find_by_email(self, email: str) -> Optional[IdentityRecord]:
        ...

    @abc.abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[IdentityRecord]:
        ...

    @abc.abstractmethod
    async def create(self, record: IdentityRecord, roles: Iterable[str]) -> IdentityRecord:
        """
        Persist an identity together with its roles, all or nothing.

        Raises:
            UniqueViolation: username or email already taken
            UnknownRoleError: a role name does not exist
            StorageError: the store could not be reached
        """

    @abc.abstractmethod
    async def ensure_roles(self, roles: Mapping[str, str]) -> None:
        """Create any of the named roles that do not exist yet."""

    @abc.abstractmethod
    async def save_refresh_token(self, token: RefreshTokenRecord) -> None:
        ...

    @abc.abstractmethod
    async def consume_refresh_token(self, value: str) -> Optional[RefreshTokenRecord]:
        """Remove and return a refresh token; ``None`` if it is unknown or already used."""


class InMemoryCredentialStore(CredentialStore):
    """Reference store, used for tests and local experiments."""

    def __init__(self, roles: Optional[Mapping[str, str]] = None):
        self._users: Dict[str, IdentityRecord] = {}
        self._by_username: Dict[str, str] = {}
        self._by_email: Dict[str, str] = {}
        self._roles: Dict[str, str] = dict(DEFAULT_ROLES if roles is None else roles)
        self._refresh_tokens: Dict[str, RefreshTokenRecord] = {}

    async def find_by_username(self, username: str) -> Optional[IdentityRecord]:
        user_id = self._by_username.get(normalize_key(username))
        return self._users.get(user_id) if user_id else None

    async def find_by_email(self, email: str) -> Optional[IdentityRecord]:
        user_id = self._by_email.get(normalize_key(email))
        return self._users.get(user_id) if user_id else None

    async def find_by_id(self, user_id: str) -> Optional[IdentityRecord]:
        return self._users.get(user_id)

    async def create(self, record: IdentityRecord, roles: Iterable[str]) -> IdentityRecord:
        # No await from here to the insert: this is the atomic section.
        roles = list(dict.fromkeys(roles))
        missing = [name for name in roles if name not in self._roles]
        if missing:
            raise UnknownRoleError(missing)
        username_key = normalize_key(record.username)
        email_key = normalize_key(record.email)
        if username_key in self._by_username:
            raise UniqueViolation("username")
        if email_key in self._by_email:
            raise UniqueViolation("email")

        stored = record.model_copy(update={"roles": sorted(roles)})
        self._users[stored.id] = stored
        self._by_username[username_key] = stored.id
        self._by_email[email_key] = stored.id
        return stored

    async def ensure_roles(self, roles: Mapping[str, str]) -> None:
        for name, description in roles.items():
            self._roles.setdefault(name, description)

    async def save_refresh_token(self, token: RefreshTokenRecord) -> None:
        self._refresh_tokens[token.value] = token

    async def consume_refresh_token(self, value: str) -> Optional[RefreshTokenRecord]:
        return self._refresh_tokens.pop(value, None)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(user: User) -> IdentityRecord:
    return IdentityRecord(
        id=user.id,
        username=user.username,
        email=user.email,
        display_name=user.display_name,
        password_hash=user.password_hash,
        roles=sorted(role.name for role in user.roles),
        created_at=_as_utc(user.created_at),
        last_modified_at=_as_utc(user.last_modified_at),
    )


def _violated_field(error: IntegrityError) -> Optional[str]:
    message = str(error.orig).lower()
    if "normalized_username" in message:
        return "username"
    if "normalized_email" in message:
        return "email"
    return None


class SqlAlchemyCredentialStore(CredentialStore):
    """Credential store backed by an async SQLAlchemy engine."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self):
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError as e:
            raise UniqueViolation(_violated_field(e)) from e
        except (OperationalError, InterfaceError, OSError) as e:
            raise StorageError(f"Credential store unavailable: {e.__class__.__name__}", transient=True) from e

    async def _find_one(self, session: AsyncSession, *criteria) -> Optional[IdentityRecord]:
        result = await session.execute(select(User).where(*criteria))
        user = result.scalar_one_or_none()
        return _to_record(user) if user is not None else None

    async def find_by_username(self, username: str) -> Optional[IdentityRecord]:
        async with self._session() as session:
            return await self._find_one(session, User.normalized_username == normalize_key(username))

    async def find_by_email(self, email: str) -> Optional[IdentityRecord]:
        async with self._session() as session:
            return await self._find_one(session, User.normalized_email == normalize_key(email))

    async def find_by_id(self, user_id: str) -> Optional[IdentityRecord]:
        async with self._session() as session:
            return await self._find_one(session, User.id == user_id)

    async def create(self, record: IdentityRecord, roles: Iterable[str]) -> IdentityRecord:
        roles = list(dict.fromkeys(roles))
        async with self._session() as session:
            async with session.begin():
                found: List[Role] = []
                if roles:
                    result = await session.execute(select(Role).where(Role.name.in_(roles)))
                    found = list(result.scalars().all())
                missing = sorted(set(roles) - {role.name for role in found})
                if missing:
                    raise UnknownRoleError(missing)

                user = User(
                    id=record.id,
                    username=record.username,
                    normalized_username=normalize_key(record.username),
                    email=record.email,
                    normalized_email=normalize_key(record.email),
                    display_name=record.display_name,
                    password_hash=record.password_hash,
                    created_at=record.created_at,
                    last_modified_at=record.last_modified_at,
                    roles=found,
                )
                session.add(user)
        return record.model_copy(update={"roles": sorted(roles)})

    async def ensure_roles(self, roles: Mapping[str, str]) -> None:
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(select(Role.name))
                existing = set(result.scalars().all())
                for name, description in roles.items():
                    if name not in existing:
                        session.add(Role(name=name, description=description))

    async def save_refresh_token(self, token: RefreshTokenRecord) -> None:
        async with self._session() as session:
            async with session.begin():
                session.add(RefreshToken(
                    value=token.value,
                    client_id=token.client_id,
                    user_id=token.user_id,
                    created_at=token.created_at,
                    expires_at=token.expires_at,
                ))

    async def consume_refresh_token(self, value: str) -> Optional[RefreshTokenRecord]:
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(select(RefreshToken).where(RefreshToken.value == value))
                token = result.scalar_one_or_none()
                if token is None:
                    return None
                deleted = await session.execute(delete(RefreshToken).where(RefreshToken.id == token.id))
                if deleted.rowcount != 1:
                    # Lost the race to another consumer
                    return None
                return RefreshTokenRecord(
                    value=token.value,
                    client_id=token.client_id,
                    user_id=token.user_id,
                    created_at=_as_utc(token.created_at),
                    expires_at=_as_utc(token.expires_at),
                )
