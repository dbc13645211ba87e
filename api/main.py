"""
FastAPI main application for the Bookworm API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import ValidationError

from api.auth import AuthGate, AuthOutcome, IdentityResolver, Rejected, TokenVerifier
from api.books import BookResourceService
from api.config import config
from api.database import APIDatabaseService
from api.errors import BookServiceError, StoreFailed, UploadFailed, ValidationFailed, error_body
from api.images import CloudinaryImageHost
from api.models import BookCreateRequest, HealthResponse, MessageResponse
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)

# Services wired up at startup
db_service: Optional[APIDatabaseService] = None
auth_gate: Optional[AuthGate] = None
book_service: Optional[BookResourceService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Bookworm API")

    global db_service, auth_gate, book_service
    client = AsyncIOMotorClient(config.mongodb_url)
    try:
        database = client[config.mongodb_database]
        await database.command("ping")
        logger.info("Database connection established")

        db_service = APIDatabaseService(
            database,
            users_collection=config.users_collection,
            books_collection=config.books_collection,
        )
        await db_service.create_indexes()
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        client.close()
        raise

    image_host = CloudinaryImageHost(config)
    auth_gate = AuthGate(TokenVerifier(config), IdentityResolver(db_service))
    book_service = BookResourceService(db_service, image_host, config)

    yield

    logger.info("Shutting down Bookworm API")
    await image_host.close()
    client.close()


app = FastAPI(
    title=config.api_title,
    description=config.api_description,
    version=config.api_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=config.cors_allow_credentials,
    allow_methods=config.cors_allow_methods,
    allow_headers=config.cors_allow_headers,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures in the common error shape."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid request", str(exc.errors())),
    )


async def authorize_request(request: Request) -> AuthOutcome:
    """Run the auth gate for the current request."""
    if auth_gate is None:
        return Rejected(error_body("Token is not valid", "Authentication service not available"))
    return await auth_gate.authorize(request.headers.get("Authorization"))


def _service() -> BookResourceService:
    if book_service is None:
        raise StoreFailed(error="Book service not available")
    return book_service


def _parse_page_param(value: Optional[str], name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except ValueError:
        raise ValidationFailed("Invalid pagination parameters", error=f"{name} must be an integer")
    if number < 1:
        raise ValidationFailed("Invalid pagination parameters", error=f"{name} must be at least 1")
    return number


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    db_status = "unavailable"
    if db_service:
        health_info = await db_service.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=config.api_version,
        database_status=db_status
    )


# Books endpoints
@app.post("/books", tags=["Books"], status_code=status.HTTP_201_CREATED)
async def create_book(request: Request, auth: AuthOutcome = Depends(authorize_request)):
    """
    Create a book owned by the caller.

    Body: **title**, **caption**, **rating** and **image** (data URI or URL), all required.
    """
    if isinstance(auth, Rejected):
        return auth.to_response()

    try:
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
        try:
            fields = BookCreateRequest.model_validate(payload if isinstance(payload, dict) else {})
        except ValidationError as e:
            raise ValidationFailed(error=str(e))

        book = await _service().create(fields, auth.identity)
    except BookServiceError as e:
        return e.to_response()
    except Exception as e:
        logger.error("Failed to create book", error=str(e))
        return UploadFailed(error=str(e)).to_response()

    return JSONResponse(status_code=status.HTTP_201_CREATED, content=book.to_json())


@app.get("/books", tags=["Books"])
async def list_books(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    auth: AuthOutcome = Depends(authorize_request),
):
    """
    Get all books, newest first.

    - **page**: Page number (starts from 1, default 1)
    - **limit**: Books per page (default 10)
    """
    if isinstance(auth, Rejected):
        return auth.to_response()

    try:
        result = await _service().list(
            page=_parse_page_param(page, "page"),
            limit=_parse_page_param(limit, "limit"),
        )
    except BookServiceError as e:
        return e.to_response()
    except Exception as e:
        logger.error("Failed to get books", error=str(e))
        return StoreFailed(error=str(e)).to_response()

    return JSONResponse(content=result.to_json())


@app.get("/books/user", tags=["Books"])
async def list_user_books(auth: AuthOutcome = Depends(authorize_request)):
    """Get the caller's own books, newest first."""
    if isinstance(auth, Rejected):
        return auth.to_response()

    try:
        result = await _service().list_mine(auth.identity)
    except BookServiceError as e:
        return e.to_response()
    except Exception as e:
        logger.error("Failed to get user books", error=str(e))
        return StoreFailed(error=str(e)).to_response()

    return JSONResponse(content=result.to_json())


@app.delete("/books/{book_id}", tags=["Books"])
async def delete_book(book_id: str, auth: AuthOutcome = Depends(authorize_request)):
    """
    Delete one of the caller's books.

    - **book_id**: Book identifier
    """
    if isinstance(auth, Rejected):
        return auth.to_response()

    try:
        await _service().delete(book_id, auth.identity)
    except BookServiceError as e:
        return e.to_response()
    except Exception as e:
        logger.error("Failed to delete book", book_id=book_id, error=str(e))
        return StoreFailed(error=str(e)).to_response()

    return JSONResponse(content=MessageResponse(message="Book deleted successfully").model_dump())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
