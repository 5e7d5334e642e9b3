"""Bookmark membership with optimistic updates.

A :class:`BookmarkSet` changes its local membership immediately and then
persists the change through a :class:`BookmarkStore`. Each toggle is a
:class:`BookmarkMutation` that moves from ``PENDING`` to ``COMMITTED`` or
``ROLLED_BACK``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Protocol, Set

import httpx

from .constants import ItemKind
from .utility import BookmarkStoreError, _get_async_client

logger = logging.getLogger(__name__)


def normalise_bookmark_ids(raw_ids: Iterable[Any]) -> List[str]:
    """Clean stored members: unwrap legacy ``'["v24"]'`` values, drop blanks and duplicates."""
    seen: Set[str] = set()
    result: List[str] = []
    for item in raw_ids:
        value = item
        if isinstance(item, str):
            try:
                parsed = json.loads(item)
            except ValueError:
                parsed = None
            if isinstance(parsed, list) and parsed:
                value = parsed[0]
        if value is None:
            continue
        cleaned = str(value).strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


class BookmarkStore(Protocol):
    async def get_bookmark_ids(self, kind: ItemKind) -> List[str]: ...

    async def add_bookmark(self, item_id: str, kind: ItemKind) -> None: ...

    async def remove_bookmark(self, item_id: str, kind: ItemKind) -> None: ...


class HttpBookmarkStore:
    """Client for the ``/api/bookmarks`` endpoints served by ``main.py``."""

    def __init__(self, base_url: str = "", *, client: Optional[httpx.AsyncClient] = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client

    async def _request(self, method: str, params: dict) -> httpx.Response:
        url = f"{self._base_url}/api/bookmarks"
        try:
            http = self._client or await _get_async_client()
            response = await http.request(method, url, params=params)
        except httpx.HTTPError as exc:
            raise BookmarkStoreError(str(exc)) from exc
        if response.status_code >= 400:
            raise BookmarkStoreError(
                f"{method} {url} failed with status {response.status_code}",
                status=response.status_code,
            )
        return response

    async def get_bookmark_ids(self, kind: ItemKind) -> List[str]:
        response = await self._request("GET", {"type": ItemKind(kind).value})
        try:
            payload = response.json()
        except ValueError as exc:
            raise BookmarkStoreError("Failed to fetch bookmarks") from exc
        if not isinstance(payload, list):
            raise BookmarkStoreError("Failed to fetch bookmarks")
        return normalise_bookmark_ids(payload)

    async def add_bookmark(self, item_id: str, kind: ItemKind) -> None:
        await self._request("POST", {"type": ItemKind(kind).value, "id": item_id})

    async def remove_bookmark(self, item_id: str, kind: ItemKind) -> None:
        await self._request("DELETE", {"type": ItemKind(kind).value, "id": item_id})


class MutationStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class BookmarkOperation(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass
class BookmarkMutation:
    item_id: str
    kind: ItemKind
    operation: BookmarkOperation
    status: MutationStatus = MutationStatus.PENDING
    error: Optional[Exception] = None

    def commit(self) -> None:
        if self.status is not MutationStatus.PENDING:
            raise RuntimeError(f"mutation already {self.status.value}")
        self.status = MutationStatus.COMMITTED

    def roll_back(self, error: Exception) -> None:
        if self.status is not MutationStatus.PENDING:
            raise RuntimeError(f"mutation already {self.status.value}")
        self.status = MutationStatus.ROLLED_BACK
        self.error = error


MembershipListener = Callable[["BookmarkSet"], None]


class BookmarkSet:
    """Membership of one bookmark kind."""

    def __init__(self, kind: ItemKind, store: BookmarkStore) -> None:
        self.kind = ItemKind(kind)
        self._store = store
        self._ids: Set[str] = set()
        self._listeners: List[MembershipListener] = []
        self.loading = False

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def ids(self) -> frozenset:
        return frozenset(self._ids)

    def subscribe(self, listener: MembershipListener) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    async def load(self) -> bool:
        self.loading = True
        try:
            ids = await self._store.get_bookmark_ids(self.kind)
        except Exception as exc:
            logger.error("Failed to fetch bookmarks (%s): %s", self.kind.value, exc)
            return False
        else:
            self._ids = set(ids)
            return True
        finally:
            self.loading = False
            self._changed()

    async def toggle(self, item_id: str) -> BookmarkMutation:
        operation = BookmarkOperation.REMOVE if item_id in self._ids else BookmarkOperation.ADD
        mutation = BookmarkMutation(item_id, self.kind, operation)

        self._apply(item_id, operation)
        try:
            if operation is BookmarkOperation.REMOVE:
                await self._store.remove_bookmark(item_id, self.kind)
            else:
                await self._store.add_bookmark(item_id, self.kind)
        except Exception as exc:
            logger.error("Failed to update bookmark %s (%s): %s", item_id, self.kind.value, exc)
            # revert only this id, against whatever the set holds now
            self._apply(item_id, _inverse(operation))
            mutation.roll_back(exc)
        else:
            mutation.commit()
        return mutation

    def _apply(self, item_id: str, operation: BookmarkOperation) -> None:
        if operation is BookmarkOperation.ADD:
            self._ids.add(item_id)
        else:
            self._ids.discard(item_id)
        self._changed()


def _inverse(operation: BookmarkOperation) -> BookmarkOperation:
    if operation is BookmarkOperation.ADD:
        return BookmarkOperation.REMOVE
    return BookmarkOperation.ADD
