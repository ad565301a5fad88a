import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import store
from auth import COOKIE_NAME, issue_token
from main import app


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    test_db = client["TaskManagementApp_test"]
    database.ensure_indexes(test_db)
    yield test_db
    client.close()


@pytest.fixture
def client(db):
    app.dependency_overrides[database.get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    return store.register_user(db, {"email": "alice@example.com", "name": "Alice"})


@pytest.fixture
def owner_id(user):
    return str(user["_id"])


@pytest.fixture
def auth_client(client, user):
    token = issue_token({"email": user["email"], "sub": str(user["_id"])})
    client.cookies.set(COOKIE_NAME, token)
    return client
