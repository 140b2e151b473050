"""
FastAPI main application for the Library Management API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from library_api.auth import (
    authenticate_github_user, build_authorization_url, exchange_code_for_token,
    fetch_github_profile, generate_state, require_principal, sessions
)
from library_api.books import BookStore
from library_api.config import config
from library_api.database import MongoDBGateway
from library_api.docs import install_openapi
from library_api.exceptions import (
    AuthenticationError, StorageError, UnauthorizedError, ValidationError
)
from library_api.models import (
    BookCreate, BookListResponse, BookResponse, BookUpdate, ErrorResponse,
    HealthResponse, HomeResponse, MessageResponse, Principal, RequestContext
)
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)

# Global database gateway
db_gateway: Optional[MongoDBGateway] = None

# Pending-login sessions only need to survive the round trip to GitHub
LOGIN_TTL_SECONDS = 600


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )
    logger.info("Starting Library Management API", environment=config.environment)

    global db_gateway
    gateway = MongoDBGateway(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        collection_name=config.books_collection,
        timeout_ms=config.mongodb_timeout_ms
    )
    # Fails startup if MongoDB is unreachable
    await gateway.connect()
    db_gateway = gateway
    logger.info("Database connected",
                docs_url=f"http://localhost:{config.port}/api-docs",
                callback_url=config.get_callback_url())

    yield

    logger.info("Shutting down Library Management API")
    await gateway.disconnect()
    db_gateway = None


app = FastAPI(
    title=config.api_title,
    description=f"""
    {config.api_description}.

    ## Authentication

    Log in with GitHub at `/auth/github`. The session cookie set by the
    callback authorizes every `/books` request. Log out at `/logout`.

    ## Responses

    Every `/books` response is an envelope with a `success` flag and either
    `data` (plus `count` for listings) or a `message`.
    """,
    version=config.api_version,
    docs_url="/api-docs",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=config.cors_allow_credentials,
    allow_methods=config.cors_allow_methods,
    allow_headers=config.cors_allow_headers,
)

install_openapi(app, config)


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP exceptions in the response envelope."""
    if isinstance(exc.detail, dict):
        content = {"success": False, **exc.detail}
    else:
        content = {"success": False, "message": str(exc.detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    """Reject requests without a logged-in principal."""
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=ErrorResponse(message=str(exc)).model_dump(exclude_none=True)
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            message="Invalid request body",
            error=jsonable_encoder(exc.errors())
        ).model_dump(exclude_none=True)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(message=str(exc) or "Something went wrong.").model_dump(exclude_none=True)
    )


async def get_book_store(ctx: RequestContext = Depends(require_principal)) -> BookStore:
    """Check MongoDB is reachable before handing out the store."""
    if db_gateway is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Database connection failed", "error": "Database service not available"}
        )
    try:
        await db_gateway.check_connection()
    except StorageError as e:
        logger.error("Database connection error", error=str(e), username=ctx.principal.username)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Database connection failed", "error": str(e)}
        )
    return BookStore(db_gateway.books)


def _set_session_cookie(response, session_id: str, max_age: int) -> None:
    response.set_cookie(
        key=config.session_cookie_name,
        value=session_id,
        max_age=max_age,
        httponly=True,
        secure=config.cookie_secure(),
        samesite="lax",
        path="/"
    )


def _login_failed(reason: str, session_id: Optional[str] = None) -> RedirectResponse:
    sessions.delete(session_id)
    response = RedirectResponse(url=f"/?error={reason}", status_code=status.HTTP_302_FOUND)
    response.delete_cookie(config.session_cookie_name, path="/")
    return response


# Home and authentication endpoints
@app.get("/", response_model=HomeResponse, tags=["Auth"])
async def home(request: Request, error: Optional[str] = None):
    """Show whether the current session is logged in."""
    session = sessions.get(request.cookies.get(config.session_cookie_name))
    principal = None
    if session and "principal" in session:
        principal = Principal(**session["principal"])

    if principal:
        message = f"Logged in as {principal.username}"
    else:
        message = "Welcome to the Library Management API. Log in at /auth/github"

    return HomeResponse(
        message=message,
        authenticated=principal is not None,
        user=principal,
        error=error
    )


@app.get("/auth/github", tags=["Auth"])
async def github_login():
    """Start the GitHub OAuth handshake."""
    if not config.github_client_id:
        logger.warning("GitHub OAuth is not configured")
        return _login_failed("oauth_not_configured")

    state = generate_state()
    session_id = sessions.create({"oauth_state": state}, ttl_seconds=LOGIN_TTL_SECONDS)
    response = RedirectResponse(url=build_authorization_url(state), status_code=status.HTTP_302_FOUND)
    _set_session_cookie(response, session_id, max_age=LOGIN_TTL_SECONDS)
    return response


@app.get("/auth/github/callback", tags=["Auth"])
async def github_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None
):
    """Complete the GitHub OAuth handshake and log the user in."""
    session_id = request.cookies.get(config.session_cookie_name)
    session = sessions.get(session_id)

    if not session or not state or session.get("oauth_state") != state:
        logger.warning("OAuth callback with invalid state")
        return _login_failed("invalid_state", session_id)

    if error or not code:
        logger.warning("GitHub denied authorization", error=error)
        return _login_failed("access_denied", session_id)

    try:
        access_token = await exchange_code_for_token(code)
        profile = await fetch_github_profile(access_token)
        principal = authenticate_github_user(access_token, profile)
    except (AuthenticationError, httpx.HTTPError, ValueError) as e:
        logger.error("GitHub OAuth failed", error=str(e))
        return _login_failed("internal_error", session_id)

    # Rotate the session id on login
    sessions.delete(session_id)
    user_session_id = sessions.create({"principal": principal.model_dump()})

    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    _set_session_cookie(response, user_session_id, max_age=config.session_max_age)
    return response


@app.get("/logout", tags=["Auth"])
async def logout(request: Request):
    """Destroy the session and return home."""
    sessions.delete(request.cookies.get(config.session_cookie_name))
    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    response.delete_cookie(config.session_cookie_name, path="/")
    return response


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    db_status = "unavailable"
    if db_gateway is not None:
        health_info = await db_gateway.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=config.api_version,
        database_status=db_status
    )


# Books endpoints
BOOK_ERRORS = {
    401: {"model": ErrorResponse, "description": "Not logged in"},
    500: {"model": ErrorResponse, "description": "Internal Server Error"},
}


@app.get("/books", response_model=BookListResponse, responses=BOOK_ERRORS, tags=["Books"])
async def get_books(
    ctx: RequestContext = Depends(require_principal),
    store: BookStore = Depends(get_book_store)
):
    """Get all books in insertion order."""
    try:
        books = await store.find_all()
    except Exception as e:
        logger.error("Error fetching books", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": str(e), "details": "Failed to fetch books"}
        )

    logger.info("Fetched books", count=len(books), username=ctx.principal.username)
    return JSONResponse(content={
        "success": True,
        "count": len(books),
        "data": [book.to_response() for book in books]
    })


@app.get(
    "/books/{book_id}",
    response_model=BookResponse,
    responses={**BOOK_ERRORS, 404: {"model": ErrorResponse, "description": "Not Found"}},
    tags=["Books"]
)
async def get_book(
    book_id: str,
    ctx: RequestContext = Depends(require_principal),
    store: BookStore = Depends(get_book_store)
):
    """
    Get a single book by ID.

    - **book_id**: MongoDB ObjectId of the book
    """
    try:
        book = await store.find_by_id(book_id)
    except Exception as e:
        logger.error("Error fetching book", book_id=book_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if book is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

    return JSONResponse(content={"success": True, "data": book.to_response()})


@app.post(
    "/books",
    response_model=BookResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**BOOK_ERRORS, 400: {"model": ErrorResponse, "description": "Bad Request"}},
    tags=["Books"]
)
async def create_book(
    payload: BookCreate,
    ctx: RequestContext = Depends(require_principal),
    store: BookStore = Depends(get_book_store)
):
    """
    Create a new book.

    - **title**: required, non-empty
    - **authorId**: required
    - **publishedDate**: optional, YYYY-MM-DD
    - **pages**: optional integer
    """
    fields = payload.model_dump(exclude_unset=True)
    logger.info("Creating book", fields=jsonable_encoder(fields), username=ctx.principal.username)

    try:
        book_id = await store.create(fields)
        book = await store.find_by_id(book_id)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error("Error creating book", error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "success": True,
            "data": book.to_response() if book else None,
            "message": "Book created successfully"
        }
    )


@app.put(
    "/books/{book_id}",
    response_model=BookResponse,
    responses={
        **BOOK_ERRORS,
        400: {"model": ErrorResponse, "description": "Bad Request"},
        404: {"model": ErrorResponse, "description": "Not Found"},
    },
    tags=["Books"]
)
async def update_book(
    book_id: str,
    payload: BookUpdate,
    ctx: RequestContext = Depends(require_principal),
    store: BookStore = Depends(get_book_store)
):
    """
    Update a book by ID. Supplied fields overwrite stored ones; omitted
    fields are left unchanged.
    """
    fields = payload.model_dump(exclude_unset=True)

    try:
        matched = await store.update(book_id, fields)
        book = await store.find_by_id(book_id) if matched else None
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error("Error updating book", book_id=book_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if not matched or book is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

    logger.info("Book updated", book_id=book_id, username=ctx.principal.username)
    return JSONResponse(content={
        "success": True,
        "data": book.to_response(),
        "message": "Book updated successfully"
    })


@app.delete(
    "/books/{book_id}",
    response_model=MessageResponse,
    responses={**BOOK_ERRORS, 404: {"model": ErrorResponse, "description": "Not Found"}},
    tags=["Books"]
)
async def delete_book(
    book_id: str,
    ctx: RequestContext = Depends(require_principal),
    store: BookStore = Depends(get_book_store)
):
    """Delete a book by ID."""
    try:
        deleted = await store.delete(book_id)
    except Exception as e:
        logger.error("Error deleting book", book_id=book_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

    logger.info("Book deleted", book_id=book_id, username=ctx.principal.username)
    return JSONResponse(content={"success": True, "message": "Book deleted successfully"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "library_api.main:app",
        host=config.host,
        port=config.port,
        reload=True,
        log_level="info"
    )
