"""
Database service layer for the FastAPI application.
"""

from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

logger = structlog.get_logger(__name__)

# Newest first; _id breaks ties between books created in the same millisecond
# so that skip/limit pages never overlap.
NEWEST_FIRST = [("createdAt", -1), ("_id", -1)]

# Owner fields exposed when a listing expands the ``user`` reference
OWNER_PROJECTION = {"username": 1, "profileImage": 1}


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an identifier, returning None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class APIDatabaseService:
    """Database service for API operations."""

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        users_collection: str = "users",
        books_collection: str = "books",
    ):
        self.database = database
        self.users_collection = database[users_collection]
        self.books_collection = database[books_collection]

    async def create_indexes(self) -> None:
        """Create the indexes backing the listing queries."""
        try:
            await self.books_collection.create_index([("createdAt", -1)])
            await self.books_collection.create_index([("user", 1), ("createdAt", -1)])
            logger.info("Successfully created MongoDB indexes")
        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def get_user_by_id(self, user_id: str) -> Optional[Dict]:
        """
        Get a user record without its password.

        Args:
            user_id: User identifier

        Returns:
            User document if found, None otherwise
        """
        object_id = to_object_id(user_id)
        if object_id is None:
            return None
        return await self.users_collection.find_one({"_id": object_id}, {"password": 0})

    async def insert_book(self, book_doc: Dict) -> Dict:
        """
        Insert a new book document.

        Args:
            book_doc: Book fields; ``user`` may be an id string

        Returns:
            The stored document including its ``_id``
        """
        doc = dict(book_doc)
        doc["user"] = to_object_id(doc["user"]) or doc["user"]
        result = await self.books_collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.debug("Inserted book", book_id=str(result.inserted_id), user=str(doc["user"]))
        return doc

    async def get_books_page(self, skip: int, limit: int) -> List[Dict]:
        """
        Get one page of books, newest first, with owners expanded.

        Args:
            skip: Number of books to skip
            limit: Maximum number of books to return

        Returns:
            Book documents whose ``user`` is replaced by the owner's public
            fields, or None if the owner no longer exists
        """
        cursor = self.books_collection.find({}).sort(NEWEST_FIRST).skip(skip).limit(limit)
        books_docs = await cursor.to_list(length=limit)

        owner_ids = list({doc["user"] for doc in books_docs if doc.get("user") is not None})
        owners = {}
        if owner_ids:
            owner_cursor = self.users_collection.find({"_id": {"$in": owner_ids}}, OWNER_PROJECTION)
            for owner in await owner_cursor.to_list(length=len(owner_ids)):
                owners[owner["_id"]] = owner

        for doc in books_docs:
            doc["user"] = owners.get(doc.get("user"))
        return books_docs

    async def count_books(self) -> int:
        """Count every book in the collection."""
        return await self.books_collection.count_documents({})

    async def get_books_by_owner(self, user_id: str) -> List[Dict]:
        """Get all books owned by a user, newest first."""
        owner = to_object_id(user_id) or user_id
        cursor = self.books_collection.find({"user": owner}).sort(NEWEST_FIRST)
        return await cursor.to_list(length=None)

    async def get_book_by_id(self, book_id: str) -> Optional[Dict]:
        """
        Get a single book by ID.

        Args:
            book_id: Book identifier

        Returns:
            Book document if found, None otherwise (including malformed ids)
        """
        object_id = to_object_id(book_id)
        if object_id is None:
            return None
        return await self.books_collection.find_one({"_id": object_id})

    async def delete_book(self, book_id: Any) -> bool:
        """Delete a book by ID. Returns True if a document was removed."""
        object_id = to_object_id(book_id)
        if object_id is None:
            return False
        result = await self.books_collection.delete_one({"_id": object_id})
        return result.deleted_count == 1

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            books_count = await self.books_collection.count_documents({})

            return {
                "status": "healthy",
                "books_collection": "accessible",
                "books_count": books_count,
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
