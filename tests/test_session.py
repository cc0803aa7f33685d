import pytest

from school_admin.errors import AuthError, InvalidInputError
from school_admin.models import Role
from school_admin.session import Session

from .conftest import TEST_PASSWORD


pytestmark = pytest.mark.anyio


async def test_session_is_loading_until_first_identity_notification(context):
    session = context.new_session()
    assert session.loading
    assert not session.ready

    await session.start()

    assert session.ready
    assert not session.authenticated
    assert session.role is None


async def test_readiness_flips_only_once(context, make_session):
    observed = []
    session = context.new_session()

    async def watch(identity):
        observed.append(session.ready)

    await session.start()
    await session.identity_provider.on_identity_change(watch)

    other = await make_session("teacher", email="t1@school.test")
    await other.logout()
    await session.login("t1@school.test", TEST_PASSWORD)
    await session.logout()

    assert session.ready
    assert observed and all(observed)


async def test_login_rejects_bad_credentials(context, make_session):
    await make_session("admin", email="head@school.test")
    session = context.new_session()

    with pytest.raises(AuthError):
        await session.login("head@school.test", "wrong-password")
    with pytest.raises(AuthError):
        await session.login("nobody@school.test", TEST_PASSWORD)
    assert not session.authenticated


async def test_login_requires_both_fields(context):
    with pytest.raises(InvalidInputError):
        await context.new_session().login("", "")


async def test_login_defaults_to_student_without_role_record(context):
    await context.identity_provider.sign_up("norole@school.test", TEST_PASSWORD)

    session = context.new_session()
    await session.login("norole@school.test", TEST_PASSWORD)

    assert session.role == Role.STUDENT


async def test_signup_persists_role_record(context, make_session):
    session = await make_session("teacher", email="maths@school.test")

    record = await context.store.get("users", session.identity.uid)
    assert record["role"] == "teacher"
    assert record["email"] == "maths@school.test"
    assert "createdAt" in record
    assert session.greeting == "Welcome, maths@school.test (teacher)"


async def test_signup_rejects_unknown_role(context):
    with pytest.raises(InvalidInputError):
        await context.new_session().signup("x@school.test", TEST_PASSWORD, "janitor")


async def test_signup_rejects_duplicate_email(context, make_session):
    await make_session("admin", email="dup@school.test")
    with pytest.raises(AuthError):
        await context.new_session().signup("dup@school.test", TEST_PASSWORD, "admin")


async def test_listening_session_follows_sign_in_and_out(context, make_session):
    await make_session("parent", email="mum@school.test")
    await context.identity_provider.sign_out()
    session = await context.open_session()

    await context.identity_provider.sign_in("mum@school.test", TEST_PASSWORD)
    assert session.authenticated
    assert session.role == Role.PARENT

    await context.identity_provider.sign_out()
    assert not session.authenticated
    assert session.role is None
    session.stop()


async def test_restore_rebuilds_session_from_token(context, make_session):
    original = await make_session("admin")

    restored = await Session.restore(context.identity_provider, context.store, original.identity.token)

    assert restored.ready
    assert restored.identity.uid == original.identity.uid
    assert restored.role == Role.ADMIN


async def test_restore_rejects_garbage_token(context):
    with pytest.raises(AuthError):
        await context.restore_session("not-a-token")


async def test_logout_clears_identity_and_role(make_session):
    session = await make_session("admin")
    await session.logout()

    assert session.identity is None
    assert session.role is None
    assert session.linked_id is None


async def test_logout_revokes_the_token(context, make_session):
    session = await make_session("teacher")
    token = session.identity.token
    assert (await context.restore_session(token)).role == Role.TEACHER

    await session.logout()

    with pytest.raises(AuthError):
        await context.restore_session(token)


async def test_restored_session_logout_revokes_only_its_token(context, make_session):
    original = await make_session("admin", email="two.tabs@school.test")
    second = context.new_session()
    await second.login("two.tabs@school.test", TEST_PASSWORD)

    restored = await context.restore_session(second.identity.token)
    await restored.logout()

    with pytest.raises(AuthError):
        await context.restore_session(second.identity.token)
    assert (await context.restore_session(original.identity.token)).authenticated


async def test_sessions_do_not_share_sign_in_state(context, make_session):
    listener = await context.open_session()
    first = await make_session("teacher", email="a@school.test")
    second = await make_session("parent", email="b@school.test")

    await first.logout()

    assert second.authenticated
    assert second.role == Role.PARENT
    assert not listener.authenticated
    assert context.identity_provider.current is None
    listener.stop()
