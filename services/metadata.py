import httpx, os, json, logging, constants
from redis.exceptions import RedisError
from schemas.search import BookCandidate

logger = logging.getLogger(__name__)

BASE_URL = os.getenv("GOOGLE_BOOKS_URL", "https://www.googleapis.com/books/v1/volumes")


class MetadataLookupError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GoogleBooksClient:
    """
    Looks up candidate books on the Google Books volumes API so clients can
    pre-fill a new book. Results are cached in Redis for a few minutes.
    """
    def __init__(self, cache=None, api_key: str | None = None, base_url: str = BASE_URL, transport: httpx.AsyncBaseTransport | None = None):
        self.cache = cache
        self.api_key = api_key if api_key is not None else os.getenv("GOOGLE_BOOKS_API_KEY")
        self.base_url = base_url
        self.transport = transport

    async def search(self, query: str, max_results: int = 10) -> tuple[list[BookCandidate], bool]:
        """
        Returns (candidates, served_from_cache).
        """
        if not self.api_key:
            raise MetadataLookupError("Google Books API key not configured")

        cache_key = constants.SEARCH_CACHE_KEY(query, max_results)
        cached = self._cache_get(cache_key)
        if cached is not None:
            return [BookCandidate(**item) for item in json.loads(cached)], True

        params = {"q": query, "maxResults": max_results, "key": self.api_key}
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=10) as client:
                response = await client.get(self.base_url, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"Google Books search failed with HTTP {status_code}")
            if status_code == 403:
                raise MetadataLookupError("Google Books API quota exceeded or invalid API key", status_code)
            raise MetadataLookupError(f"HTTP error: {status_code}", status_code)
        except httpx.RequestError as e:
            logger.error(f"Google Books request error: {e}")
            raise MetadataLookupError("Error searching Google Books")

        books = [to_candidate(item) for item in data.get("items", [])]
        self._cache_set(cache_key, json.dumps([book.model_dump() for book in books]))
        return books, False

    def _cache_get(self, key: str) -> str | None:
        if self.cache is None:
            return None
        try:
            return self.cache.get(key)
        except RedisError as redis_err:
            logger.warning(f"Redis error (search cache bypassed): {redis_err}")
            return None

    def _cache_set(self, key: str, value: str):
        if self.cache is None:
            return
        try:
            self.cache.setex(key, constants.SEARCH_CACHE_TTL, value)
        except RedisError as redis_err:
            logger.warning(f"Redis error (search result not cached): {redis_err}")


def to_candidate(item: dict[str, any]) -> BookCandidate:
    volume_info = item.get("volumeInfo", {})
    identifiers = volume_info.get("industryIdentifiers", [])
    isbn = next((i["identifier"] for i in identifiers if i.get("type") == "ISBN_13"), None) \
        or next((i["identifier"] for i in identifiers if i.get("type") == "ISBN_10"), "")
    image_links = volume_info.get("imageLinks", {})

    return BookCandidate(
        google_books_id=item.get("id"),
        title=volume_info.get("title", ""),
        author=", ".join(volume_info.get("authors", [])),
        description=volume_info.get("description", ""),
        published_date=volume_info.get("publishedDate", ""),
        publisher=volume_info.get("publisher", ""),
        page_count=volume_info.get("pageCount") or 0,
        genre=", ".join(volume_info.get("categories", [])),
        cover_image=image_links.get("thumbnail") or image_links.get("smallThumbnail", ""),
        isbn=isbn,
        language=volume_info.get("language", "en"),
    )
