# Book status values, stored as-is in the books collection
STATUS_TO_READ = "To Read"
STATUS_READING = "Reading"
STATUS_READ = "Read"

# Actions for RabbitMQ receiver to handle
BOOK_ADDED = "book_added"
BOOK_UPDATED = "book_updated"
BOOK_STATUS_CHANGED = "book_status_changed"
BOOK_REMOVED = "book_removed"
GOAL_RECONCILE = "goal_reconcile"

# Actions after which the owner's goal counter has to be re-derived
GOAL_SYNC_ACTIONS = (BOOK_STATUS_CHANGED, BOOK_REMOVED, GOAL_RECONCILE)


# RabbitMQ declared queues
RABBIT_QUEUE_BOOKS = "book-events-queue"


# Redis cache keys
SEARCH_CACHE_KEY = lambda query, max_results: f"books_search_{query}_{max_results}"
SEARCH_CACHE_TTL = 600


# Mongo collections
BOOKS_COLLECTION = "books"
USERS_COLLECTION = "users"


# Field limits
TITLE_MAX = 200
AUTHOR_MAX = 100
PUBLISHER_MAX = 100
DESCRIPTION_MAX = 2000
REVIEW_COMMENT_MAX = 1000
NOTE_MAX = 500
DEFAULT_YEARLY_GOAL = 12

# Compare-and-swap attempts before a book write gives up with a conflict
MAX_WRITE_ATTEMPTS = 3

# Cover uploads
COVER_EXTENSIONS = ("jpeg", "jpg", "png", "gif", "webp")
COVER_MAX_BYTES = 5 * 1024 * 1024
