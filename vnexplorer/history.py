"""Address bar abstraction.

``AddressBar`` is the surface the navigation synchronizer talks to: read the
current location, push or replace an entry, and get told when the location
changes underneath it (back/forward or a typed address). ``MemoryHistory``
is an in-process implementation with a browser-like entry stack.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Protocol

logger = logging.getLogger(__name__)

AddressListener = Callable[[], Awaitable[None]]


def split_address(address: str) -> tuple[str, str]:
    """Split ``/path?query#frag`` into ``(path, query)``; the fragment is dropped."""
    address = address.split("#", 1)[0]
    path, _, query = address.partition("?")
    return path or "/", query


class AddressBar(Protocol):
    @property
    def location(self) -> str: ...

    def push(self, address: str) -> None: ...

    def replace(self, address: str) -> None: ...

    def add_listener(self, listener: AddressListener) -> None: ...

    def remove_listener(self, listener: AddressListener) -> None: ...


class MemoryHistory:
    """Entry stack with a cursor, mirroring ``window.history`` semantics.

    ``push``/``replace`` are silent like ``pushState``/``replaceState``;
    ``back``/``forward``/``go``/``visit`` notify listeners like ``popstate``.
    """

    def __init__(self, initial: str = "/") -> None:
        self._entries: List[str] = [initial or "/"]
        self._index = 0
        self._listeners: List[AddressListener] = []

    @property
    def location(self) -> str:
        return self._entries[self._index]

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    @property
    def index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._entries)

    def push(self, address: str) -> None:
        del self._entries[self._index + 1 :]
        self._entries.append(address)
        self._index += 1
        logger.debug("history push: %s", address)

    def replace(self, address: str) -> None:
        self._entries[self._index] = address
        logger.debug("history replace: %s", address)

    def add_listener(self, listener: AddressListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: AddressListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            await listener()

    async def go(self, delta: int) -> bool:
        target = self._index + delta
        if delta == 0 or not 0 <= target < len(self._entries):
            return False
        self._index = target
        await self._notify()
        return True

    async def back(self) -> bool:
        return await self.go(-1)

    async def forward(self) -> bool:
        return await self.go(1)

    async def visit(self, address: str) -> None:
        """Simulate a typed address: new entry, then notify."""
        self.push(address)
        await self._notify()
