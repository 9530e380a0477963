"""
Tests for the MongoDB database manager.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from library.database import DocumentValidationError, LibraryDatabase


class TestConnection:
    """Connection and index setup."""

    @pytest.mark.asyncio
    async def test_connect_creates_indexes(self):
        client = MagicMock()
        client.admin.command = AsyncMock(return_value={"ok": 1.0})
        database = MagicMock()
        for name in ("users", "authors", "books"):
            getattr(database, name).create_index = AsyncMock()
        client.__getitem__.return_value = database

        with patch("library.database.AsyncIOMotorClient", return_value=client):
            db = LibraryDatabase("mongodb://localhost:27017", "library")
            await db.connect()

        database.users.create_index.assert_awaited_once_with("username", unique=True)
        database.authors.create_index.assert_awaited_once_with("name")
        assert db.books is database.books

    @pytest.mark.asyncio
    async def test_connect_failure_is_raised(self):
        client = MagicMock()
        client.admin.command = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))

        with patch("library.database.AsyncIOMotorClient", return_value=client):
            db = LibraryDatabase("mongodb://localhost:27017", "library")
            with pytest.raises(ServerSelectionTimeoutError):
                await db.connect()

    @pytest.mark.asyncio
    async def test_health_check_reports_unhealthy_database(self):
        db = LibraryDatabase("mongodb://localhost:27017", "library")
        database = MagicMock()
        database.command = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
        db.bind(database)

        health = await db.health_check()

        assert health["status"] == "unhealthy"
        assert "no servers" in health["error"]

    @pytest.mark.asyncio
    async def test_health_check_counts_documents(self, library_db):
        await library_db.insert_author("Fyodor Dostoevsky")

        health = await library_db.health_check()

        assert health == {"status": "healthy", "books_count": 0, "authors_count": 1}


class TestUsers:
    """User reads and writes."""

    @pytest.mark.asyncio
    async def test_insert_and_find_user(self, library_db):
        user = await library_db.insert_user("alice", "fantasy")

        assert ObjectId.is_valid(user.id)
        assert (await library_db.find_user_by_username("alice")).id == user.id
        assert (await library_db.find_user_by_id(user.id)).username == "alice"

    @pytest.mark.asyncio
    async def test_duplicate_username_rejected(self, library_db):
        await library_db.insert_user("alice", "fantasy")

        with pytest.raises(DocumentValidationError) as exc_info:
            await library_db.insert_user("alice", "crime")

        assert "unique" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_user_rejected_before_insert(self, library_db, fake_database):
        with pytest.raises(DocumentValidationError) as exc_info:
            await library_db.insert_user("al", "fantasy")

        assert str(exc_info.value).startswith("User validation failed: username")
        assert fake_database.users.documents == []

    @pytest.mark.asyncio
    async def test_find_user_by_malformed_id(self, library_db):
        assert await library_db.find_user_by_id("not-an-id") is None


class TestAuthorsAndBooks:
    """Author and book reads and writes."""

    @pytest.mark.asyncio
    async def test_insert_book_stores_author_reference(self, library_db, fake_database):
        author = await library_db.insert_author("Robert Martin")
        book = await library_db.insert_book("Clean Code", author.id, 2008, ["refactoring"])

        stored = fake_database.books.documents[0]
        assert stored["author"] == ObjectId(author.id)
        assert book.id == str(stored["_id"])

    @pytest.mark.asyncio
    async def test_insert_book_with_bad_title(self, library_db):
        author = await library_db.insert_author("Robert Martin")

        with pytest.raises(DocumentValidationError) as exc_info:
            await library_db.insert_book("", author.id, None, [])

        assert "Book validation failed: title" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_find_books_by_genre_and_author(self, library_db):
        martin = await library_db.insert_author("Robert Martin")
        fowler = await library_db.insert_author("Martin Fowler")
        await library_db.insert_book("Clean Code", martin.id, 2008, ["refactoring"])
        await library_db.insert_book("Agile software development", martin.id, 2002, ["agile", "patterns"])
        await library_db.insert_book("Refactoring", fowler.id, 2018, ["refactoring"])

        refactoring = await library_db.find_books(genre="refactoring")
        by_martin = await library_db.find_books(author_id=martin.id)
        both = await library_db.find_books(genre="refactoring", author_id=martin.id)

        assert [b.title for b in refactoring] == ["Clean Code", "Refactoring"]
        assert [b.title for b in by_martin] == ["Clean Code", "Agile software development"]
        assert [b.title for b in both] == ["Clean Code"]

    @pytest.mark.asyncio
    async def test_find_books_by_ids_keeps_order(self, library_db):
        author = await library_db.insert_author("Robert Martin")
        first = await library_db.insert_book("Clean Code", author.id, 2008, [])
        second = await library_db.insert_book("Clean Coder", author.id, 2011, [])

        books = await library_db.find_books_by_ids([second.id, "bogus", first.id])

        assert [b.id for b in books] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_add_book_to_author_pushes_id(self, library_db, fake_database):
        author = await library_db.insert_author("Robert Martin")
        first = await library_db.insert_book("Clean Code", author.id, 2008, [])
        second = await library_db.insert_book("Clean Coder", author.id, 2011, [])

        await library_db.add_book_to_author(author.id, first.id)
        updated = await library_db.add_book_to_author(author.id, second.id)

        assert updated.books == [first.id, second.id]
        assert fake_database.authors.documents[0]["books"] == [ObjectId(first.id), ObjectId(second.id)]

    @pytest.mark.asyncio
    async def test_add_book_to_missing_author(self, library_db):
        assert await library_db.add_book_to_author(str(ObjectId()), str(ObjectId())) is None

    @pytest.mark.asyncio
    async def test_set_author_born_writes_only_born(self, library_db, fake_database):
        author = await library_db.insert_author("Robert Martin")
        book = await library_db.insert_book("Clean Code", author.id, 2008, [])
        await library_db.add_book_to_author(author.id, book.id)

        # author still carries the empty books list it was inserted with
        updated = await library_db.set_author_born(author, 1952)

        assert updated.born == 1952
        assert updated.books == [book.id]
        assert fake_database.authors.documents[0]["books"] == [ObjectId(book.id)]

    @pytest.mark.asyncio
    async def test_set_author_born_revalidates(self, library_db, fake_database):
        author = await library_db.insert_author("Robert Martin")
        author.name = "R"

        with pytest.raises(DocumentValidationError):
            await library_db.set_author_born(author, 1952)

        assert fake_database.authors.documents[0].get("born") is None

    @pytest.mark.asyncio
    async def test_find_authors_by_ids(self, library_db):
        author = await library_db.insert_author("Robert Martin")

        found = await library_db.find_authors_by_ids([author.id, author.id, "bogus"])

        assert list(found) == [author.id]
        assert await library_db.find_author_by_name("Robert Martin") == author
