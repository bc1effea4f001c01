"""
Application-wide constants.

API endpoints, cache lifetimes, batch sizes, and other magic numbers live here.
"""
from datetime import datetime

# API Base URLs
CONGRESS_GOV_BASE_URL = "https://api.congress.gov/v3"
USER_AGENT = "LegisTrack-AI/1.0"

# Congress numbers - calculated dynamically
# Congress number = ((current_year - 1789) // 2) + 1
def _calculate_current_congress() -> int:
    """Calculate the current Congress number based on today's date."""
    current_year = datetime.now().year
    return ((current_year - 1789) // 2) + 1

CURRENT_CONGRESS = _calculate_current_congress()

# MongoDB Collection Names
COLLECTION_BILLS = "bills"
COLLECTION_SUBJECTS = "bill_subjects"
COLLECTION_TAGS = "bill_tags"
COLLECTION_TRACKED_BILLS = "user_tracked_bills"

# Request Gate
MIN_REQUEST_INTERVAL = 0.1  # seconds between request starts
API_TIMEOUT = 15.0          # seconds before a Congress.gov call is aborted
FULL_TEXT_TIMEOUT = 30.0    # seconds before a document download is aborted
MONGO_SERVER_SELECTION_TIMEOUT_MS = 5000

# Cache lifetimes (seconds)
BULK_CACHE_TTL = 10 * 60            # bill list / search queries
DETAIL_CACHE_TTL = 60 * 60          # per-bill detail queries
QUERY_CACHE_TTL = 5 * 60            # database query results
SUBJECTS_CACHE_TTL = 24 * 60 * 60   # subject taxonomy

# Pagination
DEFAULT_BILL_SORT = "updateDate+desc"
MAX_API_PAGE_SIZE = 250
MAX_QUERY_PAGE_SIZE = 50

# Sync Orchestrator
SYNC_BATCH_SIZE = 10
SYNC_BATCH_DELAY = 1.0    # seconds between batches
SYNC_MAX_RETRIES = 3
SYNC_RETRY_DELAY = 2.0    # seconds between retries of one bill
STALE_AFTER_HOURS = 24

# Full text
FULL_TEXT_BATCH_SIZE = 5
FULL_TEXT_BATCH_DELAY = 0.5

# Subject taxonomy
SUBJECT_BATCH_SIZE = 5
SUBJECT_BATCH_DELAY = 0.5
PREFERRED_TEXT_FORMAT = "Formatted XML"
TEXT_FORMAT_ORDER = ("Formatted XML", "XML", "Formatted Text", "Text", "PDF")
TEXTUAL_CONTENT_TYPES = ("text/", "application/xml", "application/xhtml+xml")
RESTRICTED_TEXT_HOSTS = ("govinfo.gov", "gpo.gov", "congress.gov")

# Tagging
MIN_CONFIDENCE_SCORE = 50
POLICY_AREA_CONFIDENCE = 90
SUBJECT_CONFIDENCE = 80
FEEDBACK_CONFIDENCE_PENALTY = 20
MAX_TAGS_PER_BILL = 10
FULL_TEXT_EXCERPT_CHARS = 5000
TAG_BATCH_SIZE = 5
TAG_BATCH_DELAY = 2.0
TAG_ITEM_DELAY = 0.5

# Bill Types
FEDERAL_BILL_TYPES = ["hr", "s", "hjres", "sjres", "hconres", "sconres", "hres", "sres"]
