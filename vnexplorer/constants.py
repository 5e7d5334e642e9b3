"""Constants shared across the explorer package."""
from __future__ import annotations

import os
from enum import Enum


API_ENDPOINT = os.environ.get("VNDB_API_ENDPOINT", "https://api.vndb.org/kana").rstrip("/")
HTTP_TIMEOUT = float(os.environ.get("VNEXPLORER_HTTP_TIMEOUT", "10"))

RESULTS_PER_PAGE = 26
TAG_SEARCH_MIN_LENGTH = 2
TAG_SEARCH_LIMIT = 10
CHARACTERS_PER_VN = 100

FETCH_ERROR_MESSAGE = (
    "Failed to fetch visual novels. The API might be down or your request was throttled."
)


class ErrorCode(Enum):
    REQUEST_REJECTED = "request_rejected"
    STORAGE_FAILURE = "storage_failure"


class ItemKind(str, Enum):
    """Detail entity kinds; values double as bookmark ``type`` keys."""

    VN = "vn"
    CHAR = "char"


class View(str, Enum):
    HOME = "home"
    BOOKMARKS = "bookmarks"


class SortOption(str, Enum):
    RATING = "rating"
    VOTECOUNT = "votecount"
    RELEASED = "released"
    ID = "id"


DEFAULT_SORT = SortOption.VOTECOUNT

# VNDB id prefixes used in the address bar path
VN_PATH_PREFIX = "v"
CHAR_PATH_PREFIX = "c"
