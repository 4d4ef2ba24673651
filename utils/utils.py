from datetime import datetime, date, timezone
from bson import ObjectId
from bson.errors import InvalidId

def datetime_serializer(obj):
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, ObjectId):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

def send_msg(msg: str, **kwargs: any) -> dict[str, any]:
    response = {
        "msg" : msg
    }
    response.update(kwargs)
    return response

def utcnow() -> datetime:
    # pymongo hands datetimes back as naive UTC, so everything stored is naive UTC too
    return datetime.now(timezone.utc).replace(tzinfo=None)

def parse_object_id(value: str) -> ObjectId | None:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None

def year_bounds(now: datetime) -> tuple[datetime, datetime]:
    """
    Returns [Jan 1 of the year of 'now', Jan 1 of the following year) as naive UTC datetimes.
    """
    return datetime(now.year, 1, 1), datetime(now.year + 1, 1, 1)
