import os

os.environ.setdefault("TESTING", "1")

from datetime import timedelta
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from mediatrack import db
from mediatrack.main import app
from mediatrack.models import User, utcnow
from mediatrack.routers.auth import create_access_token
from mediatrack.services.catalog import CatalogClient, get_catalog_client
from mediatrack.services.email import get_email_sender

from helpers import FakeJikan, RecordingEmailSender


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def fresh_db():
    db.init_db()
    assert db.engine is not None
    SQLModel.metadata.drop_all(db.engine)
    SQLModel.metadata.create_all(db.engine)
    yield


@pytest.fixture
def session():
    assert db.engine is not None
    with Session(db.engine) as s:
        yield s


@pytest.fixture
def user(session: Session) -> User:
    u = User(email="alice@example.com", name="Alice", hashed_password="!unused!", email_verified=utcnow())
    session.add(u)
    session.commit()
    session.refresh(u)
    return u


@pytest.fixture
def other_user(session: Session) -> User:
    u = User(email="bob@example.com", name="Bob", hashed_password="!unused!", email_verified=utcnow())
    session.add(u)
    session.commit()
    session.refresh(u)
    return u


@pytest.fixture
def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token({"sub": user.email}, expires_delta=timedelta(minutes=5))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def mailer():
    sender = RecordingEmailSender()
    app.dependency_overrides[get_email_sender] = lambda: sender
    yield sender
    app.dependency_overrides.pop(get_email_sender, None)


@pytest.fixture
def jikan():
    fake = FakeJikan()

    async def override():
        async with fake.http_client() as http:
            yield CatalogClient(http)

    app.dependency_overrides[get_catalog_client] = override
    yield fake
    app.dependency_overrides.pop(get_catalog_client, None)


@pytest.fixture
def client():
    return TestClient(app)
