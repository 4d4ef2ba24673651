from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
import constants

EMAIL_PATTERN = r"^\w+([.+-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,})+$"


class ReadingGoal(BaseModel):
    yearly: int = constants.DEFAULT_YEARLY_GOAL
    current: int = 0


class PrivacySettings(BaseModel):
    show_profile: bool = True
    show_reading_progress: bool = True


class NotificationSettings(BaseModel):
    email: bool = True


class Preferences(BaseModel):
    favorite_genres: list[str] = []
    privacy: PrivacySettings = PrivacySettings()
    notifications: NotificationSettings = NotificationSettings()


class PreferencesUpdate(BaseModel):
    favorite_genres: list[str] | None = None
    privacy: PrivacySettings | None = None
    notifications: NotificationSettings | None = None


class User(BaseModel):
    id: str
    username: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    bio: str | None = None
    avatar: str = ""
    friends: list[str] = []
    reading_goal: ReadingGoal = ReadingGoal()
    preferences: Preferences = Preferences()
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_doc(cls, doc: dict[str, any]) -> "User":
        data = {k: v for k, v in doc.items() if k not in ("_id", "friends")}
        return cls(id=str(doc["_id"]), friends=[str(f) for f in doc.get("friends", [])], **data)


class UserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=3, max_length=30)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    first_name: str | None = Field(None, max_length=50)
    last_name: str | None = Field(None, max_length=50)
    yearly_goal: int = Field(constants.DEFAULT_YEARLY_GOAL, ge=1)


class ReadingGoalUpdate(BaseModel):
    yearly: int = Field(..., ge=1)


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str | None = Field(None, max_length=50)
    last_name: str | None = Field(None, max_length=50)
    bio: str | None = Field(None, max_length=500)
    reading_goal: ReadingGoalUpdate | None = None
    preferences: PreferencesUpdate | None = None


class UserStats(BaseModel):
    total_books: int = 0
    books_read: int = 0
    books_reading: int = 0
    books_to_read: int = 0


class UserWithStats(User):
    stats: UserStats = UserStats()


class FriendRequest(BaseModel):
    friend_id: str = Field(..., min_length=1)
