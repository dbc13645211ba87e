"""
Pytest configuration and shared fixtures.
"""

import copy
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from bson import ObjectId

from api.auth import AuthGate, IdentityResolver, TokenVerifier
from api.books import BookResourceService
from api.config import APIConfig
from api.images import ImageHostError
from api.models import Identity


class InMemoryDatabaseService:
    """
    Dict-backed stand-in for APIDatabaseService.

    Mirrors the query semantics the service relies on: newest-first ordering
    with an _id tie-break, password-free user projection and owner expansion
    in the paginated listing.
    """

    def __init__(self):
        self.users: Dict[ObjectId, Dict] = {}
        self.books: Dict[ObjectId, Dict] = {}
        self.calls: List[str] = []

    def add_user(self, username: str, profile_image: str = None, password: str = "hashed") -> Dict:
        doc = {
            "_id": ObjectId(),
            "username": username,
            "email": f"{username}@example.com",
            "password": password,
            "profileImage": profile_image or f"https://api.dicebear.com/avatar/{username}.svg",
        }
        self.users[doc["_id"]] = doc
        return doc

    def add_book(self, owner_id, created_at: datetime, title: str = "Book", image: str = None) -> Dict:
        doc = {
            "_id": ObjectId(),
            "title": title,
            "caption": f"About {title}",
            "rating": 4,
            "image": image or "https://res.cloudinary.com/demo/image/upload/v1/cover.jpg",
            "user": ObjectId(str(owner_id)),
            "createdAt": created_at,
            "updatedAt": created_at,
        }
        self.books[doc["_id"]] = doc
        return doc

    @staticmethod
    def _parse(value) -> Optional[ObjectId]:
        if isinstance(value, ObjectId):
            return value
        if isinstance(value, str) and ObjectId.is_valid(value):
            return ObjectId(value)
        return None

    def _sorted_books(self, docs):
        return sorted(docs, key=lambda d: (d["createdAt"], d["_id"]), reverse=True)

    async def get_user_by_id(self, user_id):
        self.calls.append("get_user_by_id")
        user = self.users.get(self._parse(user_id))
        if user is None:
            return None
        return {k: v for k, v in user.items() if k != "password"}

    async def insert_book(self, book_doc):
        self.calls.append("insert_book")
        doc = dict(book_doc)
        doc["_id"] = ObjectId()
        doc["user"] = self._parse(doc["user"]) or doc["user"]
        self.books[doc["_id"]] = doc
        return copy.deepcopy(doc)

    async def get_books_page(self, skip, limit):
        self.calls.append("get_books_page")
        page = self._sorted_books(self.books.values())[skip:skip + limit]
        result = []
        for doc in page:
            doc = copy.deepcopy(doc)
            owner = self.users.get(doc["user"])
            doc["user"] = None if owner is None else {
                "_id": owner["_id"],
                "username": owner["username"],
                "profileImage": owner["profileImage"],
            }
            result.append(doc)
        return result

    async def count_books(self):
        self.calls.append("count_books")
        return len(self.books)

    async def get_books_by_owner(self, user_id):
        self.calls.append("get_books_by_owner")
        owner = self._parse(user_id)
        mine = [d for d in self.books.values() if d["user"] == owner]
        return copy.deepcopy(self._sorted_books(mine))

    async def get_book_by_id(self, book_id):
        self.calls.append("get_book_by_id")
        doc = self.books.get(self._parse(book_id))
        return copy.deepcopy(doc) if doc else None

    async def delete_book(self, book_id):
        self.calls.append("delete_book")
        return self.books.pop(self._parse(book_id), None) is not None

    async def health_check(self):
        return {"status": "healthy", "books_count": len(self.books)}


class RecordingImageHost:
    """Image host double that records uploads and deletions."""

    def __init__(self, marker: str = "cloudinary"):
        self.marker = marker
        self.uploads: List[str] = []
        self.destroyed: List[str] = []
        self.fail_upload = False
        self.fail_destroy = False

    def is_hosted(self, url):
        return bool(url) and self.marker in url

    async def upload(self, payload):
        if self.fail_upload:
            raise ImageHostError("upload rejected")
        self.uploads.append(payload)
        return f"https://res.cloudinary.com/demo/image/upload/v1/img{len(self.uploads)}.jpg"

    async def destroy(self, public_id):
        self.destroyed.append(public_id)
        if self.fail_destroy:
            raise ImageHostError("destroy rejected")


@pytest.fixture
def api_config():
    """Configuration isolated from the environment."""
    return APIConfig(
        _env_file=None,
        jwt_secret="test-secret",
        jwt_algorithm="HS256",
        access_token_expire_minutes=60,
        cloudinary_cloud_name="demo",
        cloudinary_api_key="123456",
        cloudinary_api_secret="shhh",
        default_page=1,
        default_limit=10,
        max_page_limit=100,
    )


@pytest.fixture
def store():
    return InMemoryDatabaseService()


@pytest.fixture
def image_host():
    return RecordingImageHost()


@pytest.fixture
def user_a(store):
    return Identity.from_document(store.add_user("alice"))


@pytest.fixture
def user_b(store):
    return Identity.from_document(store.add_user("bob"))


@pytest.fixture
def verifier(api_config):
    return TokenVerifier(api_config)


@pytest.fixture
def gate(verifier, store):
    return AuthGate(verifier, IdentityResolver(store))


@pytest.fixture
def book_service(store, image_host, api_config):
    return BookResourceService(store, image_host, api_config)


@pytest.fixture
def base_time():
    return datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def seed_books(store, base_time):
    """Insert ``count`` books for an owner, one minute apart, oldest first."""
    def _seed(owner: Identity, count: int, start: int = 0):
        return [
            store.add_book(owner.id, base_time + timedelta(minutes=start + i), title=f"Book {start + i}")
            for i in range(count)
        ]
    return _seed
