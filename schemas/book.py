from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum
import constants


class BookStatus(str, Enum):
    TO_READ = constants.STATUS_TO_READ
    READING = constants.STATUS_READING
    READ = constants.STATUS_READ


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ReadingProgress(BaseModel):
    current_page: int = 0
    total_pages: int
    progress_percentage: int = 0
    last_updated: datetime | None = None


class Review(BaseModel):
    rating: int
    comment: str = ""
    date_added: datetime | None = None


class Note(BaseModel):
    content: str = Field(..., min_length=1, max_length=constants.NOTE_MAX)
    page: int | None = Field(None, ge=0)
    date_added: datetime | None = None


class Book(BaseModel):
    id: str
    user_id: str
    title: str
    author: str
    genre: str
    status: BookStatus = BookStatus.TO_READ
    isbn: str | None = None
    google_books_id: str | None = None
    cover_image: str = ""
    description: str | None = None
    published_date: str | None = None
    publisher: str | None = None
    page_count: int | None = None
    language: str = "en"
    reading_progress: ReadingProgress | None = None
    review: Review | None = None
    tags: list[str] = []
    notes: list[Note] = []
    favorite: bool = False
    priority: Priority = Priority.MEDIUM
    date_added: datetime | None = None
    date_started: datetime | None = None
    date_finished: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_doc(cls, doc: dict[str, any]) -> "Book":
        data = {k: v for k, v in doc.items() if k not in ("_id", "version")}
        return cls(id=str(doc["_id"]), **data)


class BookCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=constants.TITLE_MAX)
    author: str = Field(..., min_length=1, max_length=constants.AUTHOR_MAX)
    genre: str = Field(..., min_length=1)
    status: BookStatus = BookStatus.TO_READ
    isbn: str | None = None
    google_books_id: str | None = None
    cover_image: str = ""
    description: str | None = Field(None, max_length=constants.DESCRIPTION_MAX)
    published_date: str | None = None
    publisher: str | None = Field(None, max_length=constants.PUBLISHER_MAX)
    page_count: int | None = Field(None, ge=1)
    current_page: int | None = Field(None, ge=0)
    language: str = "en"
    tags: list[str] = []
    notes: list[Note] = []
    favorite: bool = False
    priority: Priority = Priority.MEDIUM


class BookUpdate(BaseModel):
    """
    Partial update, only the fields the client sent are applied.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = Field(None, min_length=1, max_length=constants.TITLE_MAX)
    author: str | None = Field(None, min_length=1, max_length=constants.AUTHOR_MAX)
    genre: str | None = Field(None, min_length=1)
    status: BookStatus | None = None
    isbn: str | None = None
    google_books_id: str | None = None
    cover_image: str | None = None
    description: str | None = Field(None, max_length=constants.DESCRIPTION_MAX)
    published_date: str | None = None
    publisher: str | None = Field(None, max_length=constants.PUBLISHER_MAX)
    page_count: int | None = Field(None, ge=1)
    language: str | None = None
    tags: list[str] | None = None
    notes: list[Note] | None = None
    favorite: bool | None = None
    priority: Priority | None = None


class ProgressUpdate(BaseModel):
    current_page: int = Field(..., ge=0)


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(None, max_length=constants.REVIEW_COMMENT_MAX)


class BookListResponse(BaseModel):
    books: list[Book]
    current_page: int
    total_pages: int
    total_books: int
    has_next: bool
    has_prev: bool
