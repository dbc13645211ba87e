"""
Book resource operations.

Every operation expects an identity already resolved by the auth gate.
Failures are raised as ``BookServiceError`` subclasses which the route layer
renders with their own status code.
"""

import math
from datetime import datetime, timezone
from typing import Optional

import structlog

from api.config import APIConfig
from api.errors import (
    BookNotFound, NotBookOwner, StoreFailed, UploadFailed, ValidationFailed
)
from api.images import public_id_from_url
from api.models import (
    BookCreateRequest, BookListResponse, BookResponse, Identity, UserBooksResponse
)

logger = structlog.get_logger(__name__)


class BookResourceService:
    """Create, list and delete books on behalf of an authenticated user."""

    def __init__(self, db_service, image_host, config: APIConfig):
        self.db_service = db_service
        self.image_host = image_host
        self.default_page = config.default_page
        self.default_limit = config.default_limit
        self.max_page_limit = config.max_page_limit

    async def create(self, fields: BookCreateRequest, owner: Identity) -> BookResponse:
        """
        Upload the image and store a new book owned by ``owner``.

        Raises:
            ValidationFailed: A required field is missing, empty or zero
            UploadFailed: The image host or the store failed
        """
        if not (fields.title and fields.caption and fields.rating and fields.image):
            raise ValidationFailed()

        try:
            image_url = await self.image_host.upload(fields.image)

            now = datetime.now(timezone.utc)
            book_doc = await self.db_service.insert_book({
                "title": fields.title,
                "caption": fields.caption,
                "rating": fields.rating,
                "image": image_url,
                "user": owner.id,
                "createdAt": now,
                "updatedAt": now,
            })
        except Exception as e:
            logger.error("Failed to create book", user=owner.id, error=str(e))
            raise UploadFailed(error=str(e)) from e

        logger.info("Book created", book_id=str(book_doc["_id"]), user=owner.id)
        return BookResponse.from_document(book_doc)

    def _page_bounds(self, page: Optional[int], limit: Optional[int]):
        page = page or self.default_page
        limit = min(limit or self.default_limit, self.max_page_limit)
        return max(page, 1), max(limit, 1)

    async def list(self, page: Optional[int] = None, limit: Optional[int] = None) -> BookListResponse:
        """
        Get one page of all books, newest first, with owners expanded.

        The total is counted separately from the page fetch, so under
        concurrent writes it can briefly disagree with the returned page.
        """
        page, limit = self._page_bounds(page, limit)
        skip = (page - 1) * limit

        try:
            books_docs = await self.db_service.get_books_page(skip, limit)
            total_books = await self.db_service.count_books()
        except Exception as e:
            logger.error("Failed to list books", page=page, limit=limit, error=str(e))
            raise StoreFailed(error=str(e)) from e

        return BookListResponse(
            books=[BookResponse.from_document(doc) for doc in books_docs],
            current_page=page,
            total_books=total_books,
            total_pages=math.ceil(total_books / limit),
        )

    async def list_mine(self, owner: Identity) -> UserBooksResponse:
        """Get every book owned by ``owner``, newest first."""
        try:
            books_docs = await self.db_service.get_books_by_owner(owner.id)
        except Exception as e:
            logger.error("Failed to list user books", user=owner.id, error=str(e))
            raise StoreFailed(error=str(e)) from e

        return UserBooksResponse(books=[BookResponse.from_document(doc) for doc in books_docs])

    async def delete(self, book_id: str, requester: Identity) -> None:
        """
        Delete a book owned by ``requester`` and release its hosted image.

        Raises:
            BookNotFound: No book with that id
            NotBookOwner: The book belongs to someone else
        """
        try:
            book_doc = await self.db_service.get_book_by_id(book_id)
        except Exception as e:
            logger.error("Failed to load book", book_id=book_id, error=str(e))
            raise StoreFailed(error=str(e)) from e

        if not book_doc:
            raise BookNotFound()

        if str(book_doc.get("user")) != str(requester.id):
            logger.warning("Delete refused for non-owner", book_id=book_id, user=requester.id)
            raise NotBookOwner()

        await self._release_image(book_doc.get("image"))

        try:
            await self.db_service.delete_book(book_doc["_id"])
        except Exception as e:
            logger.error("Failed to delete book", book_id=book_id, error=str(e))
            raise StoreFailed(error=str(e)) from e

        logger.info("Book deleted", book_id=book_id, user=requester.id)

    async def _release_image(self, image_url: Optional[str]) -> None:
        """
        Best-effort removal of a book's hosted image.

        Never raises and never blocks the record deletion; a failure is
        logged and may leave an orphaned image on the host.
        """
        if not self.image_host.is_hosted(image_url):
            return

        try:
            public_id = public_id_from_url(image_url)
            await self.image_host.destroy(public_id)
        except Exception as e:
            logger.error("Error deleting image from image host", image=image_url, error=str(e))
