from .bookmarks import (
    BookmarkMutation,
    BookmarkSet,
    BookmarkStore,
    HttpBookmarkStore,
    MutationStatus,
    normalise_bookmark_ids,
)
from .constants import DEFAULT_SORT, ErrorCode, ItemKind, SortOption, View
from .explorer import ExplorerController
from .history import AddressBar, MemoryHistory
from .navigation import (
    NavigationState,
    NavigationSynchronizer,
    ParsedAddress,
    SelectedItem,
    parse_address,
    serialize_state,
)
from .types import Character, SearchPage, Tag, VisualNovel
from .utility import BookmarkStoreError, ExplorerError, VndbError, close_session
from .vndb import VndbService

__all__ = [
    "AddressBar",
    "BookmarkMutation",
    "BookmarkSet",
    "BookmarkStore",
    "BookmarkStoreError",
    "Character",
    "DEFAULT_SORT",
    "ErrorCode",
    "ExplorerController",
    "ExplorerError",
    "HttpBookmarkStore",
    "ItemKind",
    "MemoryHistory",
    "MutationStatus",
    "NavigationState",
    "NavigationSynchronizer",
    "ParsedAddress",
    "SearchPage",
    "SelectedItem",
    "SortOption",
    "Tag",
    "View",
    "VisualNovel",
    "VndbError",
    "VndbService",
    "close_session",
    "normalise_bookmark_ids",
    "parse_address",
    "serialize_state",
]
