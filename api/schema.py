"""
Strawberry GraphQL schema: types, queries, mutations and the bookAdded subscription.
"""

from typing import AsyncGenerator, List, Optional

import strawberry
from graphql import GraphQLError
from strawberry.types import Info

from api.context import LibraryContext
from api.resolvers import BookWithAuthor
from library.models import AuthorDocument, BookDocument, UserDocument


@strawberry.type
class User:
    id: strawberry.ID
    username: str
    favorite_genre: str

    @classmethod
    def from_document(cls, document: UserDocument) -> "User":
        return cls(
            id=strawberry.ID(document.id),
            username=document.username,
            favorite_genre=document.favorite_genre,
        )


@strawberry.type
class Token:
    value: str


@strawberry.type
class Author:
    id: strawberry.ID
    name: str
    born: Optional[int]
    document: strawberry.Private[AuthorDocument]

    @strawberry.field
    async def books(self, info: Info[LibraryContext, None]) -> List["Book"]:
        documents = await info.context.resolvers.books_of(self.document)
        return [Book.from_document(document) for document in documents]

    @strawberry.field
    def book_count(self) -> int:
        return len(self.document.books)

    @classmethod
    def from_document(cls, document: AuthorDocument) -> "Author":
        return cls(
            id=strawberry.ID(document.id),
            name=document.name,
            born=document.born,
            document=document,
        )


@strawberry.type
class Book:
    id: strawberry.ID
    title: str
    published: Optional[int]
    genres: List[str]
    document: strawberry.Private[BookDocument]
    author_document: strawberry.Private[Optional[AuthorDocument]] = None

    @strawberry.field
    async def author(self, info: Info[LibraryContext, None]) -> Author:
        document = self.author_document
        if document is None:
            document = await info.context.resolvers.author_of(self.document)
        if document is None:
            raise GraphQLError(f"Author {self.document.author} of book '{self.title}' not found")
        return Author.from_document(document)

    @classmethod
    def from_document(cls, document: BookDocument, author: Optional[AuthorDocument] = None) -> "Book":
        return cls(
            id=strawberry.ID(document.id),
            title=document.title,
            published=document.published,
            genres=list(document.genres),
            document=document,
            author_document=author,
        )

    @classmethod
    def from_result(cls, result: BookWithAuthor) -> "Book":
        return cls.from_document(result.book, author=result.author)


@strawberry.type
class Query:
    @strawberry.field
    async def book_count(self, info: Info[LibraryContext, None]) -> int:
        return await info.context.resolvers.book_count()

    @strawberry.field
    async def author_count(self, info: Info[LibraryContext, None]) -> int:
        return await info.context.resolvers.author_count()

    @strawberry.field
    async def all_books(
        self,
        info: Info[LibraryContext, None],
        author: Optional[str] = None,
        genre: Optional[str] = None,
    ) -> List[Book]:
        results = await info.context.resolvers.all_books(author=author, genre=genre)
        return [Book.from_result(result) for result in results]

    @strawberry.field
    async def all_authors(self, info: Info[LibraryContext, None]) -> List[Author]:
        documents = await info.context.resolvers.all_authors()
        return [Author.from_document(document) for document in documents]

    @strawberry.field
    def me(self, info: Info[LibraryContext, None]) -> Optional[User]:
        user = info.context.resolvers.me(info.context.current_user)
        return User.from_document(user) if user else None


@strawberry.type
class Mutation:
    @strawberry.mutation
    async def add_book(
        self,
        info: Info[LibraryContext, None],
        title: str,
        author: str,
        genres: List[str],
        published: Optional[int] = None,
    ) -> Optional[Book]:
        result = await info.context.resolvers.add_book(
            info.context.current_user,
            title=title,
            author=author,
            genres=genres,
            published=published,
        )
        return Book.from_result(result)

    @strawberry.mutation
    async def edit_author(
        self,
        info: Info[LibraryContext, None],
        name: str,
        set_born_to: int,
    ) -> Optional[Author]:
        document = await info.context.resolvers.edit_author(
            info.context.current_user, name=name, set_born_to=set_born_to
        )
        return Author.from_document(document) if document else None

    @strawberry.mutation
    async def create_user(
        self,
        info: Info[LibraryContext, None],
        username: str,
        favorite_genre: str,
    ) -> Optional[User]:
        document = await info.context.resolvers.create_user(username, favorite_genre)
        return User.from_document(document)

    @strawberry.mutation
    async def login(self, info: Info[LibraryContext, None], username: str, password: str) -> Optional[Token]:
        value = await info.context.resolvers.login(username, password)
        return Token(value=value)


@strawberry.type
class Subscription:
    @strawberry.subscription
    async def book_added(self, info: Info[LibraryContext, None]) -> AsyncGenerator[Book, None]:
        async with info.context.resolvers.book_added() as events:
            async for result in events:
                yield Book.from_result(result)


schema = strawberry.Schema(query=Query, mutation=Mutation, subscription=Subscription)
