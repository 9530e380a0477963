"""
Pydantic models for the library documents.
Field constraints here are the only schema-level validation the service has.
"""

from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, Field


def to_object_id(value: str) -> ObjectId:
    """Convert a string id to an ObjectId, raising ValueError when malformed."""
    if not ObjectId.is_valid(value):
        raise ValueError(f"'{value}' is not a valid document id")
    return ObjectId(value)


class LibraryDocument(BaseModel):
    """Base for documents stored in MongoDB with an ``_id``."""

    id: Optional[str] = Field(None, description="MongoDB document id")

    @classmethod
    def from_mongo(cls, document: Dict[str, Any]):
        """Build a model from a raw MongoDB document."""
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls(**data)

    def to_mongo(self) -> Dict[str, Any]:
        """Serialize for MongoDB, leaving out the id."""
        return self.model_dump(exclude={"id"})


class UserDocument(LibraryDocument):
    """A registered user."""
    username: str = Field(..., min_length=3, description="Unique login name")
    favorite_genre: str = Field(..., min_length=1, description="Preferred genre")


class AuthorDocument(LibraryDocument):
    """
    An author. ``books`` is a denormalised list of book ids, appended
    whenever a book by this author is added.
    """
    name: str = Field(..., min_length=2, description="Author name")
    born: Optional[int] = Field(None, description="Year of birth")
    books: List[str] = Field(default_factory=list, description="Ids of the author's books")

    @classmethod
    def from_mongo(cls, document: Dict[str, Any]):
        data = dict(document)
        data["books"] = [str(book_id) for book_id in data.get("books", [])]
        return super().from_mongo(data)

    def to_mongo(self) -> Dict[str, Any]:
        data = super().to_mongo()
        data["books"] = [to_object_id(book_id) for book_id in self.books]
        return data


class BookDocument(LibraryDocument):
    """A book referencing its author by id."""
    title: str = Field(..., min_length=2, description="Book title")
    author: str = Field(..., description="Id of the author document")
    published: Optional[int] = Field(None, description="Publication year")
    genres: List[str] = Field(default_factory=list, description="Genres of the book")

    @classmethod
    def from_mongo(cls, document: Dict[str, Any]):
        data = dict(document)
        if "author" in data:
            data["author"] = str(data["author"])
        return super().from_mongo(data)

    def to_mongo(self) -> Dict[str, Any]:
        data = super().to_mongo()
        data["author"] = to_object_id(self.author)
        return data
