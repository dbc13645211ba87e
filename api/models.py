"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """Authenticated user, as loaded for the current request."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="User identifier")
    username: str = Field(..., description="Display name")
    profile_image: Optional[str] = Field(None, alias="profileImage", description="Avatar URL")
    email: Optional[str] = Field(None, description="Contact email")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Identity":
        return cls(
            id=str(doc["_id"]),
            username=doc.get("username", ""),
            profile_image=doc.get("profileImage"),
            email=doc.get("email"),
        )


class CredentialClaim(BaseModel):
    """Decoded bearer token payload."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Identifier of the user the token was issued to")
    iat: Optional[int] = Field(None, description="Issued-at (epoch seconds)")
    exp: Optional[int] = Field(None, description="Expiry (epoch seconds)")


class BookCreateRequest(BaseModel):
    """Body of POST /books. Presence of every field is checked by the service."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    title: Optional[str] = Field(None, description="Book title")
    caption: Optional[str] = Field(None, description="Short recommendation text")
    rating: Optional[Union[int, float]] = Field(None, description="Rating given by the owner")
    image: Optional[str] = Field(None, description="Image payload (data URI or remote URL)")


class BookOwner(BaseModel):
    """Owner fields exposed in the public book listing."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    username: Optional[str] = None
    profile_image: Optional[str] = Field(None, alias="profileImage")


class BookResponse(BaseModel):
    """Book response model for API."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id", description="Unique book identifier")
    title: str = Field(..., description="Book title")
    caption: str = Field(..., description="Short recommendation text")
    rating: Union[int, float] = Field(..., description="Rating given by the owner")
    image: str = Field(..., description="Hosted image URL")
    user: Union[BookOwner, str, None] = Field(
        None, description="Owner id, or expanded owner in the public listing"
    )
    created_at: datetime = Field(..., alias="createdAt", description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt", description="Last update timestamp")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "BookResponse":
        """
        Convert a stored book document.

        ``user`` is either the owner id or, for documents whose owner has been
        populated by the store, a dict of the exposed owner fields.
        """
        owner = doc.get("user")
        if isinstance(owner, dict):
            user = BookOwner(
                id=str(owner["_id"]),
                username=owner.get("username"),
                profile_image=owner.get("profileImage"),
            )
        elif owner is not None:
            user = str(owner)
        else:
            user = None

        return cls(
            id=str(doc["_id"]),
            title=doc["title"],
            caption=doc["caption"],
            rating=doc["rating"],
            image=doc["image"],
            user=user,
            created_at=doc["createdAt"],
            updated_at=doc.get("updatedAt"),
        )

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class BookListResponse(BaseModel):
    """Response model for book list with pagination."""
    model_config = ConfigDict(populate_by_name=True)

    books: List[BookResponse] = Field(..., description="List of books")
    current_page: int = Field(..., alias="currentPage", description="Current page number")
    total_books: int = Field(..., alias="totalBooks", description="Total number of books")
    total_pages: int = Field(..., alias="totalPages", description="Total number of pages")

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class UserBooksResponse(BaseModel):
    """Books owned by the authenticated user."""
    books: List[BookResponse] = Field(..., description="Books, newest first")

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class MessageResponse(BaseModel):
    """Plain message response."""
    message: str = Field(..., description="Outcome message")


class ErrorResponse(BaseModel):
    """Error response model."""
    message: str = Field(..., description="Error message")
    error: Optional[str] = Field(None, description="Underlying error detail")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
