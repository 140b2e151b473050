"""
API models and schemas for the FastAPI application.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class BookCreate(BaseModel):
    """Request body for creating a book."""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(None, description="Book title (required)")
    authorId: Optional[str] = Field(None, description="Author identifier (required)")
    publishedDate: Optional[date] = Field(None, description="Publication date")
    pages: Optional[int] = Field(None, description="Number of pages")


class BookUpdate(BaseModel):
    """Request body for updating a book. Only supplied fields are written."""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(None, description="Book title")
    authorId: Optional[str] = Field(None, description="Author identifier")
    publishedDate: Optional[date] = Field(None, description="Publication date")
    pages: Optional[int] = Field(None, description="Number of pages")


class Book(BaseModel):
    """A stored book as returned by the API."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., alias="_id", description="MongoDB ObjectId")
    title: Optional[str] = Field(None, description="Book title")
    authorId: Optional[str] = Field(None, description="Author identifier")
    publishedDate: Optional[Union[date, datetime]] = Field(None, description="Publication date")
    pages: Optional[int] = Field(None, description="Number of pages")

    def to_response(self) -> Dict[str, Any]:
        """Serialize only the fields present on the stored document."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class BookListResponse(BaseModel):
    """Envelope for the book listing."""
    success: bool = Field(True, description="Whether the request succeeded")
    count: int = Field(..., description="Number of books returned")
    data: List[Book] = Field(..., description="List of books")


class BookResponse(BaseModel):
    """Envelope for a single book."""
    success: bool = Field(True, description="Whether the request succeeded")
    data: Book = Field(..., description="The book")
    message: Optional[str] = Field(None, description="Outcome message")


class MessageResponse(BaseModel):
    """Envelope carrying only a message."""
    success: bool = Field(True, description="Whether the request succeeded")
    message: str = Field(..., description="Outcome message")


class ErrorResponse(BaseModel):
    """Error envelope."""
    success: bool = Field(False, description="Always false for errors")
    message: str = Field(..., description="Error message")
    details: Optional[str] = Field(None, description="Additional error details")
    error: Optional[Any] = Field(None, description="Underlying error")


class Principal(BaseModel):
    """The authenticated identity associated with a session."""
    username: str = Field(..., description="GitHub username")
    provider: str = Field("github", description="Identity provider")
    profile: Dict[str, Any] = Field(default_factory=dict, description="Provider profile")


class RequestContext(BaseModel):
    """Per-request context resolved by the authentication guard."""
    principal: Principal
    session_id: str


class HomeResponse(BaseModel):
    """Home page response model."""
    success: bool = True
    message: str
    authenticated: bool
    user: Optional[Principal] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
