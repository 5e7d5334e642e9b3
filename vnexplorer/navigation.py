"""Navigation state and its two-way mapping onto the address bar.

The synchronizer owns a single :class:`NavigationState`. Outbound, every
state change after initialization is serialized and written to history only
when the canonical address differs from the current one. Inbound, address
changes the synchronizer did not cause (back/forward, typed addresses)
overwrite the state wholesale.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlencode

from .constants import CHAR_PATH_PREFIX, DEFAULT_SORT, VN_PATH_PREFIX, ItemKind, SortOption, View
from .history import AddressBar, split_address
from .types import Tag

logger = logging.getLogger(__name__)

TagResolver = Callable[[List[str]], Awaitable[Sequence[Tag]]]
StateListener = Callable[["NavigationState"], None]
ErrorHook = Callable[[Exception], None]

VN_ID_RE = re.compile(rf"{VN_PATH_PREFIX}\d+")
CHAR_ID_RE = re.compile(rf"{CHAR_PATH_PREFIX}\d+")
VN_PATH_RE = re.compile(rf"^/({VN_ID_RE.pattern})/?$")
CHAR_PATH_RE = re.compile(rf"^/({CHAR_ID_RE.pattern})/?$")


@dataclass(frozen=True)
class SelectedItem:
    kind: ItemKind
    id: str


@dataclass
class NavigationState:
    selected_vn_id: Optional[str] = None
    selected_char_id: Optional[str] = None
    view: View = View.HOME
    search_text: str = ""
    selected_filters: List[Tag] = field(default_factory=list)
    sort_option: SortOption = DEFAULT_SORT
    current_page: int = 1

    @property
    def selected_item(self) -> Optional[SelectedItem]:
        # a character outranks its VN
        if self.selected_char_id:
            return SelectedItem(ItemKind.CHAR, self.selected_char_id)
        if self.selected_vn_id:
            return SelectedItem(ItemKind.VN, self.selected_vn_id)
        return None

    @property
    def filter_ids(self) -> List[str]:
        return [tag.id for tag in self.selected_filters]

    @property
    def shows_grid(self) -> bool:
        return self.view is View.HOME and self.selected_item is None


@dataclass(frozen=True)
class ParsedAddress:
    vn_id: Optional[str] = None
    char_id: Optional[str] = None
    view: View = View.HOME
    search_text: str = ""
    tag_ids: Tuple[str, ...] = ()
    sort_option: SortOption = DEFAULT_SORT
    current_page: int = 1


_STATE_FIELDS = frozenset(f.name for f in fields(NavigationState))


def _first(params: dict, key: str) -> Optional[str]:
    values = params.get(key)
    return values[0] if values else None


def _item_id(value: Optional[str], pattern: "re.Pattern[str]") -> Optional[str]:
    value = (value or "").strip()
    return value if pattern.fullmatch(value) else None


def _parse_sort(value: Optional[str]) -> SortOption:
    try:
        return SortOption(value)
    except ValueError:
        return DEFAULT_SORT


def _parse_page(value: Optional[str]) -> int:
    try:
        page = int((value or "").strip())
    except ValueError:
        return 1
    return page if page >= 1 else 1


def split_tag_ids(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(token.strip() for token in value.split(",") if token.strip())


def parse_address(address: str) -> ParsedAddress:
    """Derive navigation fields from ``/path?query``. Never raises."""
    path, query = split_address(address or "/")
    params = parse_qs(query, keep_blank_values=True)

    # legacy ids must survive a trip through the path form
    vn_id = _item_id(_first(params, "vn"), VN_ID_RE)
    char_id = _item_id(_first(params, "char"), CHAR_ID_RE)

    # path form wins over the legacy query parameters
    vn_match = VN_PATH_RE.match(path)
    char_match = CHAR_PATH_RE.match(path)
    if vn_match:
        vn_id = vn_match.group(1)
    elif char_match:
        char_id = char_match.group(1)

    return ParsedAddress(
        vn_id=vn_id,
        char_id=char_id,
        view=View.BOOKMARKS if _first(params, "view") == View.BOOKMARKS.value else View.HOME,
        search_text=_first(params, "q") or "",
        tag_ids=split_tag_ids(_first(params, "tags")),
        sort_option=_parse_sort(_first(params, "sort")),
        current_page=_parse_page(_first(params, "page")),
    )


def serialize_state(state: NavigationState) -> str:
    """Canonical address for ``state``; parameters at their defaults are omitted."""
    if state.selected_char_id:
        return f"/{state.selected_char_id}"
    if state.selected_vn_id:
        return f"/{state.selected_vn_id}"

    params: List[Tuple[str, str]] = []
    if state.view is View.BOOKMARKS:
        params.append(("view", View.BOOKMARKS.value))
    else:
        if state.search_text:
            params.append(("q", state.search_text))
        if state.selected_filters:
            params.append(("tags", ",".join(state.filter_ids)))
        if state.sort_option is not DEFAULT_SORT:
            params.append(("sort", state.sort_option.value))
        if state.current_page > 1:
            params.append(("page", str(state.current_page)))

    query = urlencode(params, safe=",")
    return f"/?{query}" if query else "/"


def _coerce(name: str, value: Any) -> Any:
    if name == "view":
        return View(value)
    if name == "sort_option":
        return SortOption(value)
    if name == "current_page":
        return max(1, int(value))
    if name == "selected_filters":
        return list(value or [])
    if name == "search_text":
        return value or ""
    if name in ("selected_vn_id", "selected_char_id"):
        if not value:
            return None
        pattern = VN_ID_RE if name == "selected_vn_id" else CHAR_ID_RE
        if not pattern.fullmatch(value):
            raise ValueError(f"{name} must look like {pattern.pattern!r}, got {value!r}")
        return value
    return value


class NavigationSynchronizer:
    """Keeps a :class:`NavigationState` and an :class:`AddressBar` in step."""

    def __init__(
        self,
        address_bar: AddressBar,
        resolve_filter_tags: TagResolver,
        *,
        state: Optional[NavigationState] = None,
        on_error: Optional[ErrorHook] = None,
    ) -> None:
        self.state = state or NavigationState()
        self._address_bar = address_bar
        self._resolve_filter_tags = resolve_filter_tags
        self._on_error = on_error
        self._listeners: List[StateListener] = []
        self._initialized = False
        self._attached = False
        self._inbound_generation = 0

    @property
    def initialized(self) -> bool:
        return self._initialized

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def initialize(self) -> None:
        if not self._attached:
            self._address_bar.add_listener(self.on_address_changed)
            self._attached = True
        await self._sync_from_address()

    async def on_address_changed(self) -> None:
        await self._sync_from_address()

    def close(self) -> None:
        if self._attached:
            self._address_bar.remove_listener(self.on_address_changed)
            self._attached = False

    def apply_state_change(self, **changes: Any) -> bool:
        """Apply a UI-driven mutation. Returns whether anything changed.

        Item ids that have no path form raise ``ValueError`` and leave the
        state untouched.
        """
        unknown = set(changes) - _STATE_FIELDS
        if unknown:
            raise TypeError(f"unknown navigation fields: {', '.join(sorted(unknown))}")

        values = {name: _coerce(name, raw) for name, raw in changes.items()}
        changed = False
        for name, value in values.items():
            if getattr(self.state, name) != value:
                setattr(self.state, name, value)
                changed = True
        if changed:
            self._state_changed()
        return changed

    def sync_to_address(self, *, replace_entry: bool = False) -> bool:
        """Write the canonical address if it differs from the current one."""
        target = serialize_state(self.state)
        if target == self._address_bar.location:
            logger.debug("address unchanged, skipping history write: %s", target)
            return False
        if replace_entry:
            self._address_bar.replace(target)
        else:
            self._address_bar.push(target)
        return True

    def _state_changed(self, *, inbound: bool = False) -> None:
        if self._initialized:
            # an inbound address only ever gets canonicalised in place
            self.sync_to_address(replace_entry=inbound)
        for listener in list(self._listeners):
            listener(self.state)

    async def _sync_from_address(self) -> None:
        self._inbound_generation += 1
        generation = self._inbound_generation

        parsed = parse_address(self._address_bar.location)
        filters = await self._resolve_filters(parsed.tag_ids)
        if generation != self._inbound_generation:
            logger.debug("discarding superseded address sync")
            return

        self.state.selected_vn_id = parsed.vn_id
        self.state.selected_char_id = parsed.char_id
        self.state.view = parsed.view
        self.state.search_text = parsed.search_text
        self.state.selected_filters = filters
        self.state.sort_option = parsed.sort_option
        self.state.current_page = parsed.current_page

        if not self._initialized:
            self._initialized = True
            logger.info("navigation initialised from %s", self._address_bar.location)
        self._state_changed(inbound=True)

    async def _resolve_filters(self, tag_ids: Tuple[str, ...]) -> List[Tag]:
        if not tag_ids:
            return []
        ids = list(tag_ids)
        if ids == self.state.filter_ids:
            return list(self.state.selected_filters)
        try:
            tags = await self._resolve_filter_tags(ids)
        except Exception as exc:
            logger.error("Failed to fetch tags from URL: %s", exc)
            if self._on_error is not None:
                self._on_error(exc)
            return []
        by_id = {tag.id: tag for tag in tags}
        return [by_id[tag_id] for tag_id in ids if tag_id in by_id]
