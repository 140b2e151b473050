"""
Pytest configuration and shared fixtures.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from library_api.auth import sessions
from library_api.books import BookStore
from library_api.config import config
from library_api.main import app


class FakeCursor:
    """Minimal stand-in for a motor cursor."""

    def __init__(self, documents):
        self.documents = documents

    def sort(self, key, direction=1):
        self.documents = sorted(self.documents, key=lambda doc: doc[key], reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        return [dict(doc) for doc in self.documents[:length]]


class FakeBooksCollection:
    """In-memory double for the motor books collection used by BookStore."""

    def __init__(self):
        self.documents = {}

    def _matches(self, filter_query):
        if "_id" in filter_query:
            doc = self.documents.get(filter_query["_id"])
            return [doc] if doc else []
        return list(self.documents.values())

    def find(self, filter_query):
        return FakeCursor(self._matches(filter_query))

    async def find_one(self, filter_query):
        matches = self._matches(filter_query)
        return dict(matches[0]) if matches else None

    async def insert_one(self, document):
        document = dict(document)
        document["_id"] = ObjectId()
        self.documents[document["_id"]] = document
        return SimpleNamespace(inserted_id=document["_id"], acknowledged=True)

    async def update_one(self, filter_query, update):
        matches = self._matches(filter_query)
        for doc in matches:
            doc.update(update["$set"])
        return SimpleNamespace(matched_count=len(matches), modified_count=len(matches))

    async def delete_one(self, filter_query):
        matches = self._matches(filter_query)
        for doc in matches:
            del self.documents[doc["_id"]]
        return SimpleNamespace(deleted_count=len(matches))

    async def count_documents(self, filter_query, limit=0):
        count = len(self._matches(filter_query))
        return min(count, limit) if limit else count


@pytest.fixture
def books_collection():
    """Empty fake books collection."""
    return FakeBooksCollection()


@pytest.fixture
def book_store(books_collection):
    """BookStore backed by the fake collection."""
    return BookStore(books_collection)


@pytest.fixture
def mock_gateway(books_collection):
    """Healthy gateway serving the fake collection, patched into the app."""
    gateway = MagicMock()
    gateway.check_connection = AsyncMock(return_value=None)
    gateway.health_check = AsyncMock(return_value={"status": "healthy", "books_count": 0})
    gateway.books = books_collection
    with patch("library_api.main.db_gateway", gateway):
        yield gateway


@pytest.fixture
def principal_data():
    """Session principal as stored after a GitHub login."""
    return {
        "username": "octocat",
        "provider": "github",
        "profile": {"login": "octocat", "id": 583231, "name": "The Octocat"}
    }


@pytest.fixture
def session_id(principal_data):
    """A logged-in server-side session."""
    sid = sessions.create({"principal": principal_data})
    yield sid
    sessions.delete(sid)


@pytest.fixture
def client():
    """Test client without a session."""
    return TestClient(app)


@pytest.fixture
def auth_client(session_id):
    """Test client carrying a logged-in session cookie."""
    return TestClient(app, cookies={config.session_cookie_name: session_id})


@pytest.fixture
def sample_book():
    """Valid book payload."""
    return {
        "title": "Dune",
        "authorId": "a1",
        "publishedDate": "1965-08-01",
        "pages": 412
    }
