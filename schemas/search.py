from pydantic import BaseModel

class BookCandidate(BaseModel):
    google_books_id: str
    title: str = ""
    author: str = ""
    description: str = ""
    published_date: str = ""
    publisher: str = ""
    page_count: int = 0
    genre: str = ""
    cover_image: str = ""
    isbn: str = ""
    language: str = "en"
