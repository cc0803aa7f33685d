import uuid

import anyio
import pytest
from fastapi.testclient import TestClient

from school_admin import Settings, build_context, create_app


TEST_PASSWORD = "secret123"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        upload_dir=str(tmp_path / "uploads"),
        export_dir=str(tmp_path / "exports"),
        public_base_url="http://testserver",
    )


@pytest.fixture
def context(settings):
    ctx = build_context(settings)
    yield ctx
    ctx.engine.dispose()


@pytest.fixture
def make_session(context):
    """
    Returns a coroutine function that signs up a fresh account with the given role
    and yields its session.
    """

    async def factory(role, email=None, linked_id=None):
        session = context.new_session()
        await session.signup(email or f"{role}-{uuid.uuid4().hex[:8]}@school.test", TEST_PASSWORD, role, linked_id=linked_id)
        return session

    return factory


@pytest.fixture
def client(context):
    with TestClient(create_app(context=context)) as client_instance:
        yield client_instance


@pytest.fixture
def auth_headers(client, context):
    """
    Returns the Authorization header for a new user with the given role.
    Students and parents sign up over HTTP; admin and teacher accounts are created
    directly, as the bootstrap command does, and then log in over HTTP.
    """

    def factory(role, email=None):
        email = email or f"{role}-{uuid.uuid4().hex[:8]}@school.test"
        if role in ("student", "parent"):
            payload = {"email": email, "password": TEST_PASSWORD, "role": role}
            response = client.post("/api/v1/school/auth/signup", json=payload)
            assert response.status_code == 201, response.text
        else:
            anyio.run(context.new_session().signup, email, TEST_PASSWORD, role)
            response = client.post("/api/v1/school/auth/login", json={"email": email, "password": TEST_PASSWORD})
            assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return factory
