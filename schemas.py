"""
Database Schemas for the Bookstore API

Each Pydantic model represents a collection in MongoDB. The collection name
is the lowercase of the class name (e.g., Book -> "book").
"""
from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field

MIN_BOOK_YEAR = 1000


def _not_in_future(year: int) -> int:
    if year > datetime.now().year:
        raise ValueError("Year cannot be in the future")
    return year


BookTitle = Annotated[str, Field(min_length=1, max_length=100)]
BookAuthor = Annotated[str, Field(min_length=1, max_length=100)]
BookYear = Annotated[int, Field(ge=MIN_BOOK_YEAR), AfterValidator(_not_in_future)]


class Book(BaseModel):
    """
    Books collection schema
    Titles and authors are trimmed; year must fall between 1000 and this year.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    title: BookTitle = Field(..., description="Book title")
    author: BookAuthor = Field(..., description="Author name")
    year: BookYear = Field(..., description="Publication year")


class BookUpdate(BaseModel):
    """Partial update payload; only the fields sent are written."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[BookTitle] = None
    author: Optional[BookAuthor] = None
    year: Optional[BookYear] = None


class User(BaseModel):
    """
    Users collection schema
    Passwords are stored as hashed strings in the database.
    """
    email: EmailStr = Field(..., description="Email address (unique)")
    name: Optional[str] = Field(None, description="Display name")
    password_hash: str = Field(..., description="BCrypt hash of the user's password")
    role: Literal["user", "admin"] = Field("user", description="Access role")
