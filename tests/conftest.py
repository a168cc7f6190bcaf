"""Shared fixtures: an in-memory Mongo database and a FastAPI test client."""
import os

# configure the app before it is imported
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app, rate_limiter


@pytest.fixture
def mongo_db(monkeypatch):
    db = mongomock.MongoClient()["bookstore_test"]
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def client(mongo_db, monkeypatch):
    # the startup ping is covered in test_database; mongomock has no server to ping
    monkeypatch.setattr(database, "check_connection", lambda: True)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def seed_book(mongo_db):
    book_id = database.create_document(
        "book", {"title": "Dune", "author": "Frank Herbert", "year": 1965}
    )
    return book_id
