"""Explorer controller: the application shell around the navigation state.

The controller owns one :class:`NavigationSynchronizer` and one
:class:`BookmarkSet` per item kind, turns user interactions into state
transitions, fetches the result grid whenever it becomes visible or its
inputs change, and notifies the render layer.
"""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Set, Tuple, Union

from .bookmarks import BookmarkMutation, BookmarkSet, BookmarkStore
from .constants import FETCH_ERROR_MESSAGE, ItemKind, RESULTS_PER_PAGE, SortOption, View
from .history import AddressBar
from .navigation import NavigationState, NavigationSynchronizer
from .types import SearchPage, Tag, VisualNovel

logger = logging.getLogger(__name__)

RenderListener = Callable[["ExplorerController"], None]


class ExplorerBackend(Protocol):
    async def search_vns(
        self,
        query: str,
        tags: Sequence[Tag],
        sort: Union[SortOption, str],
        page: int,
        results_per_page: int,
    ) -> SearchPage[VisualNovel]: ...

    async def get_tags_by_ids(self, ids: Sequence[str]) -> List[Tag]: ...


def _grid_key(state: NavigationState) -> Optional[Tuple]:
    if not state.shows_grid:
        return None
    return (state.search_text, tuple(state.filter_ids), state.sort_option, state.current_page)


class ExplorerController:
    def __init__(
        self,
        address_bar: AddressBar,
        backend: ExplorerBackend,
        bookmark_store: BookmarkStore,
        *,
        results_per_page: int = RESULTS_PER_PAGE,
    ) -> None:
        self.backend = backend
        self.results_per_page = results_per_page
        self.navigation = NavigationSynchronizer(
            address_bar,
            backend.get_tags_by_ids,
            on_error=self._on_navigation_error,
        )
        self.bookmarks: Dict[ItemKind, BookmarkSet] = {
            kind: BookmarkSet(kind, bookmark_store) for kind in ItemKind
        }
        self.bookmarks_loading = True

        self.vns: List[VisualNovel] = []
        self.loading = False
        self.error: Optional[str] = None
        self.total_pages = 0

        self._listeners: List[RenderListener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._last_grid_key: Optional[Tuple] = None
        self._last_error: Optional[Exception] = None

        self.navigation.subscribe(self._on_state_changed)
        for bookmark_set in self.bookmarks.values():
            bookmark_set.subscribe(lambda _set: self._render())

    @property
    def state(self) -> NavigationState:
        return self.navigation.state

    @property
    def last_navigation_error(self) -> Optional[Exception]:
        return self._last_error

    # ---- lifecycle ----

    async def start(self) -> None:
        """Load bookmarks and initialise navigation from the current address."""
        await asyncio.gather(self.load_bookmarks(), self.navigation.initialize())

    async def close(self) -> None:
        self.navigation.close()
        await self.wait_idle()

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def load_bookmarks(self) -> None:
        self.bookmarks_loading = True
        try:
            await asyncio.gather(*(bookmark_set.load() for bookmark_set in self.bookmarks.values()))
        finally:
            self.bookmarks_loading = False
            self._render()

    # ---- render layer ----

    def subscribe(self, listener: RenderListener) -> None:
        self._listeners.append(listener)

    def _render(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ---- navigation handlers ----

    def select_vn(self, vn_id: str) -> None:
        self.navigation.apply_state_change(selected_vn_id=vn_id, selected_char_id=None)

    def select_char(self, char_id: str) -> None:
        self.navigation.apply_state_change(selected_char_id=char_id)

    def back_to_grid(self) -> None:
        self.navigation.apply_state_change(selected_vn_id=None, selected_char_id=None)

    def back_to_vn(self) -> None:
        self.navigation.apply_state_change(selected_char_id=None)

    def back_to_home(self) -> None:
        self.navigation.apply_state_change(
            selected_vn_id=None,
            selected_char_id=None,
            view=View.HOME,
            search_text="",
            selected_filters=[],
            sort_option=SortOption.VOTECOUNT,
            current_page=1,
        )

    def switch_view(self, view: Union[View, str]) -> None:
        self.navigation.apply_state_change(view=view, selected_vn_id=None, selected_char_id=None)

    def set_search_text(self, text: str) -> None:
        self.navigation.apply_state_change(search_text=text)

    def set_filters(self, tags: Sequence[Tag]) -> None:
        self.navigation.apply_state_change(selected_filters=list(tags))

    def add_filter(self, tag: Tag) -> None:
        if tag.id in self.state.filter_ids:
            return
        self.set_filters([*self.state.selected_filters, tag])

    def remove_filter(self, tag_id: str) -> None:
        self.set_filters([tag for tag in self.state.selected_filters if tag.id != tag_id])

    def set_sort(self, sort: Union[SortOption, str]) -> None:
        self.navigation.apply_state_change(sort_option=sort)

    def change_page(self, page: int) -> None:
        self.navigation.apply_state_change(current_page=page)

    def search(self) -> None:
        """Run the current search from page 1."""
        if self.state.current_page == 1:
            self._schedule_fetch(1)
        else:
            self.change_page(1)

    # ---- bookmarks ----

    def is_bookmarked(self, item_id: str, kind: Union[ItemKind, str]) -> bool:
        return item_id in self.bookmarks[ItemKind(kind)]

    async def toggle_bookmark(self, item_id: str, kind: Union[ItemKind, str]) -> BookmarkMutation:
        return await self.bookmarks[ItemKind(kind)].toggle(item_id)

    # ---- results ----

    async def fetch_visual_novels(self, page: int) -> None:
        state = self.state
        await self._fetch(state.search_text, list(state.selected_filters), state.sort_option, page)

    def _schedule_fetch(self, page: int) -> None:
        # the task may start after later state changes; capture the inputs now
        state = self.state
        self._schedule(
            self._fetch(state.search_text, list(state.selected_filters), state.sort_option, page)
        )

    async def _fetch(self, query: str, tags: List[Tag], sort: SortOption, page: int) -> None:
        self.loading = True
        self.error = None
        self._render()
        try:
            data = await self.backend.search_vns(query, tags, sort, page, self.results_per_page)
        except Exception as exc:
            logger.error("search failed: %s", exc)
            self.error = FETCH_ERROR_MESSAGE
        else:
            self.vns = list(data.results)
            self.total_pages = math.ceil(data.count / self.results_per_page) if data.count else 0
        finally:
            self.loading = False
            self._render()

    def _on_state_changed(self, state: NavigationState) -> None:
        if self.navigation.initialized:
            key = _grid_key(state)
            if key is not None and key != self._last_grid_key:
                self._schedule_fetch(state.current_page)
            self._last_grid_key = key
        self._render()

    def _on_navigation_error(self, exc: Exception) -> None:
        self._last_error = exc

    def _schedule(self, coro: Awaitable[None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
