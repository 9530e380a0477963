"""
MongoDB database utilities for async operations.
Handles connection, indexing, and the reads and writes behind the GraphQL resolvers.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from .models import AuthorDocument, BookDocument, LibraryDocument, UserDocument, to_object_id

logger = structlog.get_logger(__name__)

DocumentT = TypeVar("DocumentT", bound=LibraryDocument)


class DocumentValidationError(Exception):
    """A document was rejected by model validation or a unique index."""


def describe_validation_error(model_name: str, error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into a single readable message."""
    problems = []
    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"]) or "document"
        problems.append(f"{field}: {item['msg']}")
    return f"{model_name} validation failed: " + "; ".join(problems)


def _parse_id(document_id: str) -> Optional[Any]:
    try:
        return to_object_id(document_id)
    except ValueError:
        return None


class LibraryDatabase:
    """
    Async MongoDB access for users, authors and books.

    Every write validates the document against its pydantic model first and
    raises DocumentValidationError when the document is rejected.
    """

    def __init__(self, connection_url: str, database_name: str, timeout_ms: int = 5000):
        """
        Initialize the database manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            timeout_ms: Server selection timeout in milliseconds
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.timeout_ms = timeout_ms
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.users = None
        self.authors = None
        self.books = None

    def bind(self, database: AsyncIOMotorDatabase) -> None:
        """Attach the collections of an already opened database."""
        self.database = database
        self.users = database.users
        self.authors = database.authors
        self.books = database.books

    async def connect(self) -> None:
        """Establish connection to MongoDB and make sure indexes exist."""
        self.client = AsyncIOMotorClient(self.connection_url, serverSelectionTimeoutMS=self.timeout_ms)
        self.bind(self.client[self.database_name])

        try:
            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB", database=self.database_name)
            await self._create_indexes()
        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """
        Create indexes for lookups and the username uniqueness rule.
        Author names are indexed but deliberately not unique.
        """
        await self.users.create_index("username", unique=True)
        await self.authors.create_index("name")
        await self.books.create_index("genres")
        await self.books.create_index("author")
        logger.info("Successfully created MongoDB indexes")

    @staticmethod
    def _validate(model: Type[DocumentT], data: Dict[str, Any]) -> DocumentT:
        try:
            return model(**data)
        except ValidationError as e:
            name = model.__name__.replace("Document", "")
            raise DocumentValidationError(describe_validation_error(name, e)) from e

    # Counts

    async def count_books(self) -> int:
        """Get total number of books."""
        return await self.books.count_documents({})

    async def count_authors(self) -> int:
        """Get total number of authors."""
        return await self.authors.count_documents({})

    # Books

    async def find_books(self, genre: Optional[str] = None, author_id: Optional[str] = None) -> List[BookDocument]:
        """
        Retrieve books, optionally filtered.

        Args:
            genre: Only books whose genres contain this exact value
            author_id: Only books by this author

        Returns:
            List of BookDocument instances in insertion order
        """
        filter_query: Dict[str, Any] = {}
        if genre:
            filter_query["genres"] = genre
        if author_id:
            object_id = _parse_id(author_id)
            if object_id is None:
                return []
            filter_query["author"] = object_id

        cursor = self.books.find(filter_query)
        documents = await cursor.to_list(length=None)
        logger.debug("Retrieved books", genre=genre, author_id=author_id, count=len(documents))
        return [BookDocument.from_mongo(document) for document in documents]

    async def find_books_by_ids(self, book_ids: List[str]) -> List[BookDocument]:
        """Retrieve books by id, in the order the ids are given. Unknown ids are skipped."""
        object_ids = [oid for oid in (_parse_id(book_id) for book_id in book_ids) if oid is not None]
        if not object_ids:
            return []

        cursor = self.books.find({"_id": {"$in": object_ids}})
        documents = await cursor.to_list(length=None)
        by_id = {str(document["_id"]): BookDocument.from_mongo(document) for document in documents}
        return [by_id[book_id] for book_id in book_ids if book_id in by_id]

    async def insert_book(
        self,
        title: str,
        author_id: str,
        published: Optional[int] = None,
        genres: Optional[List[str]] = None,
    ) -> BookDocument:
        """
        Validate and insert a new book.

        Returns:
            The stored BookDocument with its id

        Raises:
            DocumentValidationError: If the book fails validation
        """
        book = self._validate(BookDocument, {
            "title": title,
            "author": author_id,
            "published": published,
            "genres": genres if genres is not None else [],
        })
        try:
            result = await self.books.insert_one(book.to_mongo())
        except ValueError as e:
            raise DocumentValidationError(f"Book validation failed: author: {e}") from e

        book.id = str(result.inserted_id)
        logger.debug("Successfully inserted book", title=title, book_id=book.id)
        return book

    # Authors

    async def find_authors(self) -> List[AuthorDocument]:
        """Retrieve every author."""
        cursor = self.authors.find({})
        documents = await cursor.to_list(length=None)
        return [AuthorDocument.from_mongo(document) for document in documents]

    async def find_authors_by_ids(self, author_ids: List[str]) -> Dict[str, AuthorDocument]:
        """Retrieve authors keyed by id. Unknown ids are left out."""
        object_ids = list({oid for oid in (_parse_id(author_id) for author_id in author_ids) if oid is not None})
        if not object_ids:
            return {}

        cursor = self.authors.find({"_id": {"$in": object_ids}})
        documents = await cursor.to_list(length=None)
        return {str(document["_id"]): AuthorDocument.from_mongo(document) for document in documents}

    async def find_author_by_id(self, author_id: str) -> Optional[AuthorDocument]:
        """Retrieve an author by id."""
        object_id = _parse_id(author_id)
        if object_id is None:
            return None
        document = await self.authors.find_one({"_id": object_id})
        return AuthorDocument.from_mongo(document) if document else None

    async def find_author_by_name(self, name: str) -> Optional[AuthorDocument]:
        """Retrieve an author by exact name."""
        document = await self.authors.find_one({"name": name})
        return AuthorDocument.from_mongo(document) if document else None

    async def insert_author(self, name: str) -> AuthorDocument:
        """
        Validate and insert a new author with only a name.

        Raises:
            DocumentValidationError: If the author fails validation
        """
        author = self._validate(AuthorDocument, {"name": name})
        result = await self.authors.insert_one(author.to_mongo())
        author.id = str(result.inserted_id)
        logger.debug("Successfully inserted author", name=name, author_id=author.id)
        return author

    async def add_book_to_author(self, author_id: str, book_id: str) -> Optional[AuthorDocument]:
        """
        Append a book id to an author's books with a single atomic $push.

        Returns:
            The updated author, or None if the author no longer exists
        """
        document = await self.authors.find_one_and_update(
            {"_id": to_object_id(author_id)},
            {"$push": {"books": to_object_id(book_id)}},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            logger.warning("Author disappeared before book was linked", author_id=author_id, book_id=book_id)
            return None

        logger.debug("Linked book to author", author_id=author_id, book_id=book_id)
        return AuthorDocument.from_mongo(document)

    async def set_author_born(self, author: AuthorDocument, born: int) -> Optional[AuthorDocument]:
        """
        Validate and store an author's birth year. Only ``born`` is written,
        so book ids appended meanwhile are kept.

        Returns:
            The updated author, or None if the author no longer exists

        Raises:
            DocumentValidationError: If the author fails validation
        """
        validated = self._validate(AuthorDocument, {**author.model_dump(), "born": born})
        document = await self.authors.find_one_and_update(
            {"_id": to_object_id(author.id)},
            {"$set": {"born": validated.born}},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            return None

        logger.debug("Successfully updated author", author_id=author.id, born=validated.born)
        return AuthorDocument.from_mongo(document)

    # Users

    async def insert_user(self, username: str, favorite_genre: str) -> UserDocument:
        """
        Validate and insert a new user.

        Raises:
            DocumentValidationError: If validation fails or the username is taken
        """
        user = self._validate(UserDocument, {"username": username, "favorite_genre": favorite_genre})
        try:
            result = await self.users.insert_one(user.to_mongo())
        except DuplicateKeyError as e:
            logger.warning("Username already exists", username=username)
            raise DocumentValidationError(
                f"User validation failed: username: expected `username` to be unique, got '{username}'"
            ) from e

        user.id = str(result.inserted_id)
        logger.debug("Successfully inserted user", username=username, user_id=user.id)
        return user

    async def find_user_by_username(self, username: str) -> Optional[UserDocument]:
        """Retrieve a user by username."""
        document = await self.users.find_one({"username": username})
        return UserDocument.from_mongo(document) if document else None

    async def find_user_by_id(self, user_id: str) -> Optional[UserDocument]:
        """Retrieve a user by id. Malformed ids resolve to None."""
        object_id = _parse_id(user_id)
        if object_id is None:
            return None
        document = await self.users.find_one({"_id": object_id})
        return UserDocument.from_mongo(document) if document else None

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            return {
                "status": "healthy",
                "books_count": await self.count_books(),
                "authors_count": await self.count_authors(),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
