from fastapi import HTTPException, status


class BookTrackerError(Exception):
    """
    Base for errors the book and user services raise to their callers.
    Every error carries a machine readable kind, a human message and
    optionally a list of field level errors.
    """
    kind = "error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, errors: list[dict[str, any]] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> dict[str, any]:
        body = {"kind": self.kind, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(BookTrackerError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST

    @classmethod
    def from_pydantic(cls, err, message: str = "Validation failed") -> "ValidationError":
        errors = [
            {"field": ".".join(str(loc) for loc in e["loc"]), "msg": e["msg"]}
            for e in err.errors()
        ]
        return cls(message, errors)

    @classmethod
    def for_field(cls, field: str, msg: str) -> "ValidationError":
        return cls("Validation failed", [{"field": field, "msg": msg}])


class NotFoundError(BookTrackerError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BookTrackerError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InvalidStateError(BookTrackerError):
    kind = "invalid_state"
    status_code = status.HTTP_400_BAD_REQUEST


def to_http_exception(err: BookTrackerError) -> HTTPException:
    return HTTPException(status_code=err.status_code, detail=err.to_dict())
