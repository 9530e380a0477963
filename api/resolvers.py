"""
Business logic behind the GraphQL operations.

The schema in api.schema only converts between documents and GraphQL types;
authentication checks, lookups, the addBook write sequence and the mapping of
persistence failures to GraphQL errors all live here.
"""

from typing import List, NamedTuple, Optional

import structlog

from api.auth import check_login_password, create_access_token
from api.errors import AuthenticationError, InputError
from api.pubsub import BOOK_ADDED, PubSub, TopicSubscription
from library.database import DocumentValidationError, LibraryDatabase
from library.models import AuthorDocument, BookDocument, UserDocument

logger = structlog.get_logger(__name__)


class BookWithAuthor(NamedTuple):
    """A book together with its resolved author."""
    book: BookDocument
    author: Optional[AuthorDocument]


def require_user(current_user: Optional[UserDocument]) -> UserDocument:
    if current_user is None:
        raise AuthenticationError("Not authenticated")
    return current_user


class LibraryResolvers:
    """
    Resolver service shared by every request.

    One instance lives for the whole process, holding the database manager
    and the event bus that feeds the bookAdded subscription.
    """

    def __init__(self, database: LibraryDatabase, pubsub: PubSub):
        self.database = database
        self.pubsub = pubsub

    # Queries

    async def book_count(self) -> int:
        return await self.database.count_books()

    async def author_count(self) -> int:
        return await self.database.count_authors()

    async def all_books(self, author: Optional[str] = None, genre: Optional[str] = None) -> List[BookWithAuthor]:
        """
        List books, optionally by exact author name and/or genre.
        An author name nobody has yields no books.
        """
        author_id = None
        if author:
            author_doc = await self.database.find_author_by_name(author)
            if author_doc is None:
                return []
            author_id = author_doc.id

        books = await self.database.find_books(genre=genre, author_id=author_id)
        authors = await self.database.find_authors_by_ids([book.author for book in books])
        return [BookWithAuthor(book, authors.get(book.author)) for book in books]

    async def all_authors(self) -> List[AuthorDocument]:
        return await self.database.find_authors()

    def me(self, current_user: Optional[UserDocument]) -> Optional[UserDocument]:
        return current_user

    async def author_of(self, book: BookDocument) -> Optional[AuthorDocument]:
        return await self.database.find_author_by_id(book.author)

    async def books_of(self, author: AuthorDocument) -> List[BookDocument]:
        return await self.database.find_books_by_ids(author.books)

    # Mutations

    async def add_book(
        self,
        current_user: Optional[UserDocument],
        title: str,
        author: str,
        genres: List[str],
        published: Optional[int] = None,
    ) -> BookWithAuthor:
        """
        Add a book, creating its author on first use, then announce it on
        BOOK_ADDED.

        The book insert and the author's back-reference update are two
        separate writes. If the second one fails the book stays stored
        without being listed on its author. The back-reference is a $push,
        so overlapping additions for the same author all land.
        """
        user = require_user(current_user)
        args = {"title": title, "author": author, "published": published, "genres": genres}

        try:
            author_doc = await self.database.find_author_by_name(author)
            if author_doc is None:
                author_doc = await self.database.insert_author(author)
                logger.info("Author created", name=author, author_id=author_doc.id)

            book = await self.database.insert_book(
                title=title,
                author_id=author_doc.id,
                published=published,
                genres=genres,
            )

            linked = await self.database.add_book_to_author(author_doc.id, book.id)
        except DocumentValidationError as e:
            logger.warning("Book rejected", error=str(e), title=title, author=author)
            raise InputError(str(e), invalid_args=args) from e

        logger.info("Book added", book_id=book.id, title=title, author=author, added_by=user.username)

        if linked is not None:
            author_doc = linked
        added = BookWithAuthor(book, author_doc)
        await self.pubsub.publish(BOOK_ADDED, added)
        return added

    async def edit_author(
        self,
        current_user: Optional[UserDocument],
        name: str,
        set_born_to: int,
    ) -> Optional[AuthorDocument]:
        """Set an author's birth year. Unknown authors give None, not an error."""
        require_user(current_user)

        author = await self.database.find_author_by_name(name)
        if author is None:
            return None

        try:
            author = await self.database.set_author_born(author, set_born_to)
        except DocumentValidationError as e:
            raise InputError(str(e), invalid_args={"name": name, "setBornTo": set_born_to}) from e
        if author is None:
            return None

        logger.info("Author updated", name=name, born=set_born_to)
        return author

    async def create_user(self, username: str, favorite_genre: str) -> UserDocument:
        try:
            user = await self.database.insert_user(username, favorite_genre)
        except DocumentValidationError as e:
            raise InputError(
                str(e), invalid_args={"username": username, "favoriteGenre": favorite_genre}
            ) from e

        logger.info("User created", username=username, user_id=user.id)
        return user

    async def login(self, username: str, password: str) -> str:
        """
        Issue a token when the user exists and the shared login password
        matches.

        Raises:
            AuthenticationError: "Wrong credentials" otherwise
        """
        user = await self.database.find_user_by_username(username)
        if user is None or not check_login_password(password):
            logger.warning("Login failed", username=username)
            raise AuthenticationError("Wrong credentials")

        logger.info("User logged in", username=username)
        return create_access_token(user)

    # Subscriptions

    def book_added(self) -> TopicSubscription:
        return self.pubsub.subscribe(BOOK_ADDED)
