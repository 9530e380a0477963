"""
Pytest configuration and shared fixtures.
"""

import asyncio
import os

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "test-secret")

from types import SimpleNamespace

import pytest
import pytest_asyncio
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from api.pubsub import PubSub
from api.resolvers import LibraryResolvers
from library.database import LibraryDatabase
from utilities.config import config


def _matches(document, filter_query):
    for key, expected in filter_query.items():
        value = document.get(key)
        if isinstance(expected, dict) and "$in" in expected:
            if value not in expected["$in"]:
                return False
        elif isinstance(value, list):
            if expected not in value:
                return False
        elif value != expected:
            return False
    return True


class FakeCursor:
    """Stands in for a motor cursor."""

    def __init__(self, documents):
        self._documents = documents

    async def to_list(self, length=None):
        await asyncio.sleep(0)
        documents = [dict(document) for document in self._documents]
        return documents if length is None else documents[:length]


class FakeCollection:
    """
    In-memory collection covering the motor calls LibraryDatabase makes.
    Every call yields to the event loop first, so overlapping requests
    interleave the way they do against a real server.
    """

    def __init__(self):
        self.documents = []
        self.unique_fields = set()

    async def create_index(self, keys, unique=False):
        if unique:
            self.unique_fields.add(keys)
        return keys

    def find(self, filter_query=None):
        return FakeCursor([d for d in self.documents if _matches(d, filter_query or {})])

    async def find_one(self, filter_query):
        await asyncio.sleep(0)
        for document in self.documents:
            if _matches(document, filter_query):
                return dict(document)
        return None

    async def insert_one(self, document):
        await asyncio.sleep(0)
        for field in self.unique_fields:
            if any(existing.get(field) == document.get(field) for existing in self.documents):
                raise DuplicateKeyError(f"E11000 duplicate key error dup key: {{ {field}: ... }}")
        stored = dict(document)
        stored["_id"] = ObjectId()
        self.documents.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one_and_update(self, filter_query, update, return_document=ReturnDocument.BEFORE):
        await asyncio.sleep(0)
        for document in self.documents:
            if _matches(document, filter_query):
                before = dict(document)
                document.update(update.get("$set", {}))
                for field, value in update.get("$push", {}).items():
                    document[field] = list(document.get(field, [])) + [value]
                return dict(document) if return_document == ReturnDocument.AFTER else before
        return None

    async def count_documents(self, filter_query):
        await asyncio.sleep(0)
        return len([d for d in self.documents if _matches(d, filter_query)])


class FakeDatabase:
    """In-memory database with the three library collections."""

    def __init__(self):
        self.users = FakeCollection()
        self.authors = FakeCollection()
        self.books = FakeCollection()

    async def command(self, name):
        return {"ok": 1.0}


@pytest.fixture
def fake_database():
    """Create an empty in-memory database."""
    database = FakeDatabase()
    database.users.unique_fields.add("username")
    return database


@pytest.fixture
def library_db(fake_database):
    """LibraryDatabase bound to the in-memory database."""
    db = LibraryDatabase(config.mongodb_uri, "library_test")
    db.bind(fake_database)
    return db


@pytest.fixture
def pubsub():
    return PubSub()


@pytest.fixture
def resolvers(library_db, pubsub):
    """Resolver service over the in-memory database."""
    return LibraryResolvers(library_db, pubsub)


@pytest_asyncio.fixture
async def alice(library_db):
    """A registered user."""
    return await library_db.insert_user("alice", "fantasy")


@pytest.fixture
def login_password():
    """The shared password login accepts."""
    return config.login_password
