import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from wigbank.main import app
from wigbank.database import Base, get_db
from wigbank import auth, models, pubsub

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def fresh_redis():
    # each TestClient runs its own event loop
    pubsub._redis = None
    yield
    pubsub._redis = None


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_user(db, role: str = "requester", name: str | None = None) -> models.User:
    """
    purpose: persist a user with a unique email for a given actor role
    inputs: open session, role value, optional display name
    outputs: committed models.User
    """

    user = models.User(
        email=f"{role}-{uuid.uuid4()}@example.com",
        name=name or role.title(),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: models.User) -> dict:
    token = auth.create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


def new_user_headers(role: str = "requester", name: str | None = None):
    db = TestingSessionLocal()
    try:
        user = create_user(db, role, name)
        return user.id, auth_headers(user)
    finally:
        db.close()


EVIDENCE = b"%PDF-1.4 medical report"


def submit_request(client, headers, note: str | None = "need a wig") -> dict:
    files = {"evidence": ("report.pdf", EVIDENCE, "application/pdf")}
    data = {"note": note} if note is not None else {}
    resp = client.post("/api/requests/", files=files, data=data, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()
