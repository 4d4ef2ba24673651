"""
Book status state machine and reading progress arithmetic.

Everything in here is pure: callers pass the current state in and persist
what comes back.
"""
from dataclasses import dataclass
from datetime import datetime
from schemas.book import BookStatus


@dataclass(frozen=True)
class StatusChange:
    status: BookStatus
    date_started: datetime | None
    date_finished: datetime | None
    goal_delta: int


def transition(old: BookStatus | None, new: BookStatus, now: datetime,
               date_started: datetime | None = None,
               date_finished: datetime | None = None) -> StatusChange:
    """
    Applies one status transition. 'old' is None when the book is being created.

    - entering Reading or Read stamps date_started if unset
    - entering Read stamps date_finished if unset and counts +1 toward the
      reading goal, unless the book already was Read
    - leaving Read clears date_finished and counts -1
    """
    old = BookStatus(old) if old is not None else None
    new = BookStatus(new)
    goal_delta = 0

    if new in (BookStatus.READING, BookStatus.READ) and date_started is None:
        date_started = now

    if new == BookStatus.READ:
        if date_finished is None:
            date_finished = now
        if old != BookStatus.READ:
            goal_delta = 1
    else:
        date_finished = None
        if old == BookStatus.READ:
            goal_delta = -1

    return StatusChange(new, date_started, date_finished, goal_delta)


def progress_percentage(current_page: int, total_pages: int) -> int | None:
    # round half up, as Math.round does for the non negative values seen here
    if not total_pages or total_pages <= 0:
        return None
    return (current_page * 200 + total_pages) // (total_pages * 2)


def status_for_progress(status: BookStatus, current_page: int, total_pages: int) -> BookStatus:
    """
    Status a book moves to after its current page changes.
    """
    status = BookStatus(status)
    if current_page >= total_pages and status != BookStatus.READ:
        return BookStatus.READ
    if current_page > 0 and status == BookStatus.TO_READ:
        return BookStatus.READING
    return status


def build_progress(current_page: int, total_pages: int, now: datetime) -> dict[str, any]:
    progress = {
        "current_page": current_page,
        "total_pages": total_pages,
        "progress_percentage": 0,
        "last_updated": now,
    }
    percentage = progress_percentage(current_page, total_pages)
    if percentage is not None:
        progress["progress_percentage"] = percentage
    return progress
