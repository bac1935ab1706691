"""
Test cases for the SQLAlchemy credential store on a temporary SQLite database.
"""
import uuid
from datetime import datetime, timedelta, timezone
import pytest
from quizcore.auth.errors import RegistrationErrorKind, RegistrationError, UniqueViolation, UnknownRoleError
from quizcore.auth.schemas import IdentityRecord, RefreshTokenRecord
from quizcore.auth.store import ADMINISTRATOR, REGISTERED_USER, SqlAlchemyCredentialStore
from quizcore.auth.users import RegistrationService


def make_record(username="alice", email="alice@example.com"):
    now = datetime.now(timezone.utc)
    return IdentityRecord(
        id=str(uuid.uuid4()),
        username=username,
        email=email,
        password_hash="$2b$04$not-a-real-hash",
        created_at=now,
        last_modified_at=now,
    )


@pytest.mark.asyncio
async def test_create_and_find(sql_store):
    record = make_record()
    created = await sql_store.create(record, [REGISTERED_USER])
    assert created.roles == [REGISTERED_USER]

    by_name = await sql_store.find_by_username("Alice")
    by_email = await sql_store.find_by_email("ALICE@example.com")
    by_id = await sql_store.find_by_id(record.id)

    assert by_name.id == by_email.id == by_id.id == record.id
    assert by_id.roles == [REGISTERED_USER]
    assert by_id.password_hash == record.password_hash
    assert by_id.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_missing_user_is_none(sql_store):
    assert await sql_store.find_by_username("nobody") is None
    assert await sql_store.find_by_email("nobody@example.com") is None
    assert await sql_store.find_by_id(str(uuid.uuid4())) is None


@pytest.mark.asyncio
async def test_unique_username_enforced_at_commit(sql_store):
    await sql_store.create(make_record(), [REGISTERED_USER])

    with pytest.raises(UniqueViolation) as exc_info:
        await sql_store.create(make_record(email="other@example.com"), [REGISTERED_USER])
    assert exc_info.value.field == "username"


@pytest.mark.asyncio
async def test_unique_email_enforced_at_commit(sql_store):
    await sql_store.create(make_record(), [REGISTERED_USER])

    with pytest.raises(UniqueViolation) as exc_info:
        await sql_store.create(make_record(username="bob", email="Alice@Example.com"), [REGISTERED_USER])
    assert exc_info.value.field == "email"


@pytest.mark.asyncio
async def test_unknown_role_leaves_no_identity(sql_store):
    record = make_record()

    with pytest.raises(UnknownRoleError) as exc_info:
        await sql_store.create(record, [REGISTERED_USER, "Moderator"])

    assert exc_info.value.roles == ["Moderator"]
    assert await sql_store.find_by_id(record.id) is None


@pytest.mark.asyncio
async def test_ensure_roles_is_idempotent(sql_store):
    await sql_store.ensure_roles({ADMINISTRATOR: "again", "Moderator": "Reviews tests"})
    created = await sql_store.create(make_record(), ["Moderator", ADMINISTRATOR])
    assert created.roles == [ADMINISTRATOR, "Moderator"]


@pytest.mark.asyncio
async def test_refresh_token_is_consumed_once(sql_store):
    record = make_record()
    await sql_store.create(record, [REGISTERED_USER])
    now = datetime.now(timezone.utc)
    token = RefreshTokenRecord(
        value="refresh-value",
        client_id="quizcore-spa",
        user_id=record.id,
        created_at=now,
        expires_at=now + timedelta(days=1),
    )
    await sql_store.save_refresh_token(token)

    consumed = await sql_store.consume_refresh_token("refresh-value")
    assert consumed.user_id == record.id
    assert consumed.client_id == "quizcore-spa"
    assert consumed.expires_at > now

    assert await sql_store.consume_refresh_token("refresh-value") is None


class BlindSqlStore(SqlAlchemyCredentialStore):
    """Lookups miss, so only the unique indexes stand between two writers."""

    async def find_by_username(self, username):
        return None

    async def find_by_email(self, email):
        return None


@pytest.mark.asyncio
async def test_registration_race_is_caught_by_unique_index(sql_store, settings):
    registration = RegistrationService(BlindSqlStore(sql_store._session_factory), settings)
    await registration.register("alice", "alice@example.com", "Str0ng!Pwd")

    with pytest.raises(RegistrationError) as exc_info:
        await registration.register("alice", "second@example.com", "Str0ng!Pwd")
    assert exc_info.value.kind == RegistrationErrorKind.DUPLICATE_USERNAME

    with pytest.raises(RegistrationError) as exc_info:
        await registration.register("bob", "alice@example.com", "Str0ng!Pwd")
    assert exc_info.value.kind == RegistrationErrorKind.DUPLICATE_EMAIL
