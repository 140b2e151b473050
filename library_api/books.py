"""
Book resource model.
Maps book fields to and from MongoDB documents and runs the CRUD queries.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from library_api.exceptions import StorageError, ValidationError
from library_api.models import Book

logger = structlog.get_logger(__name__)


def _object_id(book_id: str) -> ObjectId:
    try:
        return ObjectId(book_id)
    except (InvalidId, TypeError) as e:
        raise StorageError(str(e)) from e


def to_document(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Convert request fields to a MongoDB-compatible document."""
    document = {}
    for key, value in fields.items():
        # BSON has no date type without a time component
        if isinstance(value, date):
            value = value.isoformat()
        document[key] = value
    return document


def from_document(document: Dict[str, Any]) -> Book:
    """Convert a stored document to a Book."""
    document = dict(document)
    document["_id"] = str(document["_id"])
    return Book(**document)


class BookStore:
    """CRUD operations on the books collection."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def find_all(self) -> List[Book]:
        """
        Get every stored book in insertion order.

        Returns:
            List of books, empty if none exist
        """
        try:
            cursor = self.collection.find({}).sort("_id", 1)
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error("Failed to fetch books", error=str(e))
            raise StorageError(str(e)) from e
        return [from_document(doc) for doc in documents]

    async def find_by_id(self, book_id: str) -> Optional[Book]:
        """
        Get a single book by ID.

        Args:
            book_id: Book identifier (MongoDB ObjectId string)

        Returns:
            Book if found, None otherwise
        """
        object_id = _object_id(book_id)
        try:
            document = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to fetch book", book_id=book_id, error=str(e))
            raise StorageError(str(e)) from e
        if document is None:
            return None
        return from_document(document)

    async def create(self, fields: Dict[str, Any]) -> str:
        """
        Insert a new book exactly as supplied.

        Args:
            fields: Book fields; title and authorId are required

        Returns:
            The new book identifier
        """
        if not fields.get("title"):
            raise ValidationError("Book title is required")
        if fields.get("authorId") is None:
            raise ValidationError("Book authorId is required")

        try:
            result = await self.collection.insert_one(to_document(fields))
        except PyMongoError as e:
            logger.error("Failed to insert book", title=fields.get("title"), error=str(e))
            raise StorageError(str(e)) from e

        book_id = str(result.inserted_id)
        logger.info("Book created", book_id=book_id, title=fields["title"])
        return book_id

    async def update(self, book_id: str, fields: Dict[str, Any]) -> bool:
        """
        Set the supplied fields on a book. Fields not supplied are kept.

        Args:
            book_id: Book identifier
            fields: Fields to write

        Returns:
            True if a book matched, False otherwise
        """
        if "title" in fields and not fields["title"]:
            raise ValidationError("Book title cannot be empty")
        if "authorId" in fields and fields["authorId"] is None:
            raise ValidationError("Book authorId cannot be empty")

        object_id = _object_id(book_id)
        try:
            if not fields:
                # $set rejects an empty document
                return await self.collection.count_documents({"_id": object_id}, limit=1) > 0
            result = await self.collection.update_one(
                {"_id": object_id},
                {"$set": to_document(fields)}
            )
        except PyMongoError as e:
            logger.error("Failed to update book", book_id=book_id, error=str(e))
            raise StorageError(str(e)) from e

        logger.info("Book update", book_id=book_id, matched=result.matched_count)
        return result.matched_count > 0

    async def delete(self, book_id: str) -> bool:
        """
        Remove a book permanently.

        Returns:
            True if a book was deleted, False if none matched
        """
        object_id = _object_id(book_id)
        try:
            result = await self.collection.delete_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to delete book", book_id=book_id, error=str(e))
            raise StorageError(str(e)) from e

        logger.info("Book delete", book_id=book_id, deleted=result.deleted_count)
        return result.deleted_count > 0
