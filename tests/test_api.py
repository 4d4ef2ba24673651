"""
Integration tests for the HTTP API.
Run: pytest tests/ -v
"""

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

from services.metadata import GoogleBooksClient

VOLUMES = {
    "items": [
        {
            "id": "zyTCAlFPjgYC",
            "volumeInfo": {
                "title": "The Google Story",
                "authors": ["David A. Vise", "Mark Malseed"],
                "publisher": "Random House",
                "publishedDate": "2005-11-15",
                "pageCount": 207,
                "categories": ["Business & Economics"],
                "industryIdentifiers": [
                    {"type": "ISBN_10", "identifier": "055380457X"},
                    {"type": "ISBN_13", "identifier": "9780553804577"},
                ],
                "imageLinks": {"smallThumbnail": "http://img/s.jpg", "thumbnail": "http://img/t.jpg"},
                "language": "en",
            },
        }
    ]
}


class DictCache:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value


@pytest_asyncio.fixture
async def client(mongo, events, storage):
    """Create a test client for the FastAPI app."""
    from dependencies import get_asset_storage, get_event_publisher, get_metadata_client
    from main import app

    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=VOLUMES))
    metadata = GoogleBooksClient(cache=DictCache(), api_key="test-key", transport=transport)

    app.dependency_overrides[get_event_publisher] = lambda: events
    app.dependency_overrides[get_asset_storage] = lambda: storage
    app.dependency_overrides[get_metadata_client] = lambda: metadata
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def reader(client):
    response = await client.post("/user/register", json={"username": "reader", "email": "Reader@Example.com"})
    assert response.status_code == 201
    return {"X-User-Id": response.json()["user"]["id"]}


async def add_book(client, headers, **fields):
    body = {"title": "A", "author": "B", "genre": "Fiction", **fields}
    response = await client.post("/books", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["book"]


async def reading_goal(client, headers):
    response = await client.get("/user/me", headers=headers)
    return response.json()["user"]["reading_goal"]["current"]


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "OK"


class TestUsers:
    @pytest.mark.asyncio
    async def test_register_lowercases_email(self, client, reader):
        response = await client.get("/user/me", headers=reader)
        assert response.status_code == 200
        user = response.json()["user"]
        assert user["email"] == "reader@example.com"
        assert user["reading_goal"] == {"yearly": 12, "current": 0}

    @pytest.mark.asyncio
    async def test_register_duplicate_username(self, client, reader):
        response = await client.post("/user/register", json={"username": "reader", "email": "other@example.com"})
        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "conflict"

    @pytest.mark.asyncio
    async def test_register_invalid_email(self, client):
        response = await client.post("/user/register", json={"username": "someone", "email": "not-an-email"})
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["kind"] == "validation_error"
        assert detail["errors"][0]["field"] == "email"

    @pytest.mark.asyncio
    async def test_missing_identity(self, client):
        response = await client.get("/books")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_update_yearly_goal(self, client, reader):
        response = await client.put("/user/profile", json={"reading_goal": {"yearly": 30}, "bio": "Reads a lot"}, headers=reader)
        assert response.status_code == 200
        user = response.json()["user"]
        assert user["reading_goal"]["yearly"] == 30
        assert user["bio"] == "Reads a lot"

    @pytest.mark.asyncio
    async def test_yearly_goal_must_be_positive(self, client, reader):
        response = await client.put("/user/profile", json={"reading_goal": {"yearly": 0}}, headers=reader)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_profile_includes_stats(self, client, reader):
        await add_book(client, reader, status="Read")
        await add_book(client, reader)
        response = await client.get("/user/profile", headers=reader)
        stats = response.json()["stats"]
        assert stats == {"total_books": 2, "books_read": 1, "books_reading": 0, "books_to_read": 1}

    @pytest.mark.asyncio
    async def test_dashboard(self, client, reader):
        book = await add_book(client, reader, page_count=100)
        await client.put(f"/books/{book['id']}/progress", json={"current_page": 100}, headers=reader)

        response = await client.get("/user/dashboard", headers=reader)
        assert response.status_code == 200
        data = response.json()
        assert data["reading_goal_progress"]["current"] == 1
        assert data["reading_goal_progress"]["target"] == 12
        assert data["reading_goal_progress"]["percentage"] == 8
        assert data["stats"]["books_read"] == 1

    @pytest.mark.asyncio
    async def test_avatar_upload(self, client, reader, storage):
        response = await client.post("/user/avatar", files={"avatar": ("me.png", b"\x89PNG\r\n", "image/png")}, headers=reader)
        assert response.status_code == 200
        path = response.json()["avatar"]
        assert path.startswith("/uploads/avatars/avatar-")
        assert (storage.root / path[len("/uploads/"):]).exists()
        assert (await client.get("/user/me", headers=reader)).json()["user"]["avatar"] == path

    @pytest.mark.asyncio
    async def test_avatar_upload_requires_a_file(self, client, reader):
        response = await client.post("/user/avatar", headers=reader)
        assert response.status_code == 400


class TestFriends:
    @pytest.mark.asyncio
    async def test_add_and_list_friends(self, client, reader):
        created = await client.post("/user/register", json={"username": "friend", "email": "friend@example.com"})
        friend_id = created.json()["user"]["id"]

        response = await client.post("/user/friends", json={"friend_id": friend_id}, headers=reader)
        assert response.status_code == 200
        assert response.json()["msg"] == "Friend added successfully"

        again = await client.post("/user/friends", json={"friend_id": friend_id}, headers=reader)
        assert again.status_code == 400

        listing = (await client.get("/user/friends", headers=reader)).json()
        assert [f["username"] for f in listing["friends"]] == ["friend"]

    @pytest.mark.asyncio
    async def test_unknown_friend(self, client, reader):
        response = await client.post("/user/friends", json={"friend_id": str(ObjectId())}, headers=reader)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_search_users_with_stats(self, client, reader):
        created = await client.post("/user/register", json={"username": "bookworm", "email": "worm@example.com"})
        worm = {"X-User-Id": created.json()["user"]["id"]}
        await add_book(client, worm, status="Read")

        response = await client.get("/user/search", params={"q": "worm"}, headers=reader)
        assert response.status_code == 200
        users = response.json()["users"]
        assert [u["username"] for u in users] == ["bookworm"]
        assert users[0]["stats"] == {"total_books": 1, "books_read": 1, "books_reading": 0, "books_to_read": 0}

        assert (await client.get("/user/search", params={"q": "reader"}, headers=reader)).json()["users"] == []
        assert (await client.get("/user/search", headers=reader)).json()["users"] == []

    @pytest.mark.asyncio
    async def test_all_users(self, client, reader):
        await client.post("/user/register", json={"username": "second", "email": "second@example.com"})
        response = await client.get("/user/all", headers=reader)
        assert response.status_code == 200
        users = response.json()["users"]
        assert {u["username"] for u in users} == {"reader", "second"}
        assert all("stats" in u for u in users)

class TestBooks:
    @pytest.mark.asyncio
    async def test_progress_to_last_page_finishes_book(self, client, reader):
        book = await add_book(client, reader, page_count=200)

        response = await client.put(f"/books/{book['id']}/progress", json={"current_page": 200}, headers=reader)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Read"
        assert data["progress"]["progress_percentage"] == 100

        stored = (await client.get(f"/books/{book['id']}", headers=reader)).json()["book"]
        assert stored["date_finished"] is not None
        assert await reading_goal(client, reader) == 1

    @pytest.mark.asyncio
    async def test_create_as_read(self, client, reader):
        book = await add_book(client, reader, status="Read")
        assert book["date_started"] is not None
        assert book["date_finished"] == book["date_started"]
        assert await reading_goal(client, reader) == 1

    @pytest.mark.asyncio
    async def test_back_to_to_read(self, client, reader):
        book = await add_book(client, reader, status="Read")
        response = await client.put(f"/books/{book['id']}", json={"status": "To Read"}, headers=reader)
        assert response.status_code == 200
        assert response.json()["book"]["date_finished"] is None
        assert await reading_goal(client, reader) == 0

    @pytest.mark.asyncio
    async def test_missing_required_field(self, client, reader):
        response = await client.post("/books", json={"title": "A", "author": "B"}, headers=reader)
        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["field"] == "genre"

    @pytest.mark.asyncio
    async def test_invalid_status(self, client, reader):
        response = await client.post("/books", json={"title": "A", "author": "B", "genre": "C", "status": "Finished"}, headers=reader)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_duplicate_isbn(self, client, reader):
        await add_book(client, reader, isbn="9780553804577")
        response = await client.post("/books", json={"title": "X", "author": "Y", "genre": "Z", "isbn": "9780553804577"}, headers=reader)
        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "conflict"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"rating": 6}, {"rating": 4, "comment": "x" * 1001}])
    async def test_invalid_review(self, client, reader, body):
        book = await add_book(client, reader)
        response = await client.post(f"/books/{book['id']}/review", json=body, headers=reader)
        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "validation_error"

    @pytest.mark.asyncio
    async def test_review(self, client, reader):
        book = await add_book(client, reader)
        response = await client.post(f"/books/{book['id']}/review", json={"rating": 4, "comment": "Good"}, headers=reader)
        assert response.status_code == 200
        review = response.json()["review"]
        assert review["rating"] == 4
        assert review["comment"] == "Good"
        assert review["date_added"] is not None

    @pytest.mark.asyncio
    async def test_progress_without_page_count(self, client, reader):
        book = await add_book(client, reader)
        response = await client.put(f"/books/{book['id']}/progress", json={"current_page": 10}, headers=reader)
        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "invalid_state"

    @pytest.mark.asyncio
    async def test_not_found_hides_other_owners_books(self, client, reader):
        book = await add_book(client, reader)
        stranger = {"X-User-Id": str(ObjectId())}

        not_owned = await client.get(f"/books/{book['id']}", headers=stranger)
        missing = await client.get(f"/books/{ObjectId()}", headers=reader)

        assert not_owned.status_code == missing.status_code == 404
        assert not_owned.json() == missing.json()

    @pytest.mark.asyncio
    async def test_invalid_book_id(self, client, reader):
        response = await client.get("/books/123", headers=reader)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_read_book(self, client, reader):
        book = await add_book(client, reader, status="Read")
        response = await client.delete(f"/books/{book['id']}", headers=reader)
        assert response.status_code == 200
        assert await reading_goal(client, reader) == 0
        assert (await client.get(f"/books/{book['id']}", headers=reader)).status_code == 404

    @pytest.mark.asyncio
    async def test_list_books(self, client, reader):
        await add_book(client, reader, title="Dune", genre="Sci-Fi")
        await add_book(client, reader, title="Emma", genre="Classic", favorite=True)

        response = await client.get("/books", params={"genre": "sci"}, headers=reader)
        assert response.status_code == 200
        data = response.json()
        assert [b["title"] for b in data["books"]] == ["Dune"]
        assert data["total_books"] == 1

        favorites = (await client.get("/books", params={"favorite": "true"}, headers=reader)).json()
        assert [b["title"] for b in favorites["books"]] == ["Emma"]

    @pytest.mark.asyncio
    async def test_stats(self, client, reader):
        await add_book(client, reader, status="Read", genre="Fantasy")
        await add_book(client, reader, genre="Fantasy")
        await add_book(client, reader, status="Reading", genre="Poetry")

        response = await client.get("/books/stats", headers=reader)
        assert response.status_code == 200
        data = response.json()
        assert data["total_books"] == 3
        assert data["status_stats"] == {"To Read": 1, "Reading": 1, "Read": 1}
        assert data["genre_stats"][0] == {"genre": "Fantasy", "count": 2}
        assert len(data["monthly_reading"]) == 1

    @pytest.mark.asyncio
    async def test_cover_upload(self, client, reader, storage):
        book = await add_book(client, reader)
        response = await client.post(
            f"/books/{book['id']}/cover",
            files={"cover": ("front.png", b"\x89PNG\r\n", "image/png")},
            headers=reader,
        )
        assert response.status_code == 200
        path = response.json()["cover_image"]
        assert path.startswith("/uploads/books/cover-")
        assert (storage.root / path[len("/uploads/"):]).exists()

    @pytest.mark.asyncio
    async def test_cover_upload_rejects_non_images(self, client, reader):
        book = await add_book(client, reader)
        response = await client.post(
            f"/books/{book['id']}/cover",
            files={"cover": ("notes.txt", b"hello", "text/plain")},
            headers=reader,
        )
        assert response.status_code == 400


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_maps_candidates_and_caches(self, client, reader):
        response = await client.get("/books/search/google", params={"q": "google"}, headers=reader)
        assert response.status_code == 200
        data = response.json()
        assert data["cached"] is False
        candidate = data["books"][0]
        assert candidate["google_books_id"] == "zyTCAlFPjgYC"
        assert candidate["author"] == "David A. Vise, Mark Malseed"
        assert candidate["isbn"] == "9780553804577"
        assert candidate["cover_image"] == "http://img/t.jpg"
        assert candidate["page_count"] == 207

        again = await client.get("/books/search/google", params={"q": "google"}, headers=reader)
        assert again.json()["cached"] is True

    @pytest.mark.asyncio
    async def test_empty_query(self, client, reader):
        response = await client.get("/books/search/google", params={"q": "  "}, headers=reader)
        assert response.status_code == 400
