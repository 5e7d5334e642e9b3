"""VNDB kana API client.

Builds the filter expressions and field selections the explorer needs and
parses responses into the models in :mod:`vnexplorer.types`.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from .constants import (
    API_ENDPOINT,
    CHARACTERS_PER_VN,
    ItemKind,
    SortOption,
    TAG_SEARCH_LIMIT,
    TAG_SEARCH_MIN_LENGTH,
)
from .types import Character, CharacterInList, SearchPage, Tag, VisualNovel
from .utility import async_post_json

logger = logging.getLogger(__name__)

SEARCH_FIELDS = "id, title, image.url, rating, votecount, length_minutes"
VN_DETAIL_FIELDS = (
    "id, title, alttitle, image{url,dims,sexual,violence,thumbnail}, description, "
    "rating, votecount, length_minutes, platforms, languages, "
    "tags{id,name,rating,spoiler,category}, screenshots{url,thumbnail,release{id,title}}, "
    "relations{id,title,image.url,rating,votecount,relation,relation_official}"
)
VN_LIST_FIELDS = "id, title, image.url, rating, votecount"
CHARACTER_LIST_FIELDS = "id, name, image.url, vns{id, role}"
CHARACTER_DETAIL_FIELDS = (
    "id, name, original, aliases, description, image.url, blood_type, height, weight, "
    "bust, waist, hips, cup, age, birthday, sex, gender, vns{id, title, role}, "
    "traits{id, name, spoiler, lie, group_name}"
)
CHARACTER_BATCH_FIELDS = "id, name, image.url"
TAG_FIELDS = "id, name, aliases, description, category"

Filter = List[Any]


def _sort_key(sort: Union[SortOption, str]) -> str:
    return sort.value if isinstance(sort, SortOption) else str(sort)


def build_search_filters(query: str, tag_ids: Sequence[str]) -> Filter:
    """Combine the free-text and tag predicates into one filter expression."""
    filters: List[Filter] = []
    if query:
        filters.append(["search", "=", query])
    if tag_ids:
        tag_filters: List[Filter] = [["tag", "=", tag_id] for tag_id in tag_ids]
        if len(tag_filters) == 1:
            filters.append(tag_filters[0])
        else:
            filters.append(["and", *tag_filters])

    if len(filters) > 1:
        return ["and", *filters]
    if len(filters) == 1:
        return filters[0]
    return []


def build_id_filter(ids: Sequence[str]) -> Filter:
    id_filters: List[Filter] = [["id", "=", item_id] for item_id in ids]
    if len(id_filters) > 1:
        return ["or", *id_filters]
    return id_filters[0]


class VndbService:
    """Thin async wrapper over the ``/vn``, ``/character`` and ``/tag`` endpoints."""

    def __init__(
        self,
        endpoint: str = API_ENDPOINT,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self._client = client

    async def _call(self, resource: str, body: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug("VNDB %s request: %s", resource, body)
        data = await async_post_json(f"{self.endpoint}/{resource}", body, client=self._client)
        if not isinstance(data, dict):
            return {"results": [], "more": False}
        data.setdefault("results", [])
        return data

    async def search_vns(
        self,
        query: str,
        tags: Sequence[Tag],
        sort: Union[SortOption, str],
        page: int,
        results_per_page: int,
    ) -> SearchPage[VisualNovel]:
        sort_key = _sort_key(sort)
        body = {
            "filters": build_search_filters(query, [tag.id for tag in tags]),
            "fields": SEARCH_FIELDS,
            "sort": sort_key,
            "reverse": sort_key != SortOption.ID.value,
            "page": page,
            "results": results_per_page,
            "count": True,
        }
        data = await self._call("vn", body)
        return SearchPage[VisualNovel].model_validate(data)

    async def get_vn_by_id(self, vn_id: str) -> Optional[VisualNovel]:
        data = await self._call("vn", {"filters": ["id", "=", vn_id], "fields": VN_DETAIL_FIELDS})
        results = data["results"]
        return VisualNovel.model_validate(results[0]) if results else None

    async def get_vns_by_ids(self, ids: Sequence[str]) -> List[VisualNovel]:
        if not ids:
            return []
        body = {
            "filters": build_id_filter(ids),
            "fields": VN_LIST_FIELDS,
            "results": len(ids),
            "sort": SortOption.VOTECOUNT.value,
            "reverse": True,
        }
        data = await self._call("vn", body)
        return [VisualNovel.model_validate(item) for item in data["results"]]

    async def get_characters_by_vn_id(self, vn_id: str) -> List[CharacterInList]:
        body = {
            "filters": ["vn", "=", ["id", "=", vn_id]],
            "fields": CHARACTER_LIST_FIELDS,
            "results": CHARACTERS_PER_VN,
        }
        data = await self._call("character", body)
        return [CharacterInList.model_validate(item) for item in data["results"]]

    async def get_character_by_id(self, char_id: str) -> Optional[Character]:
        body = {"filters": ["id", "=", char_id], "fields": CHARACTER_DETAIL_FIELDS}
        data = await self._call("character", body)
        results = data["results"]
        if not results:
            return None
        raw = dict(results[0])
        # group_name は category として扱う
        raw["traits"] = [
            {**trait, "category": trait.get("group_name") or "general"}
            for trait in raw.get("traits") or []
        ]
        return Character.model_validate(raw)

    async def get_characters_by_ids(self, ids: Sequence[str]) -> List[Character]:
        if not ids:
            return []
        body = {
            "filters": build_id_filter(ids),
            "fields": CHARACTER_BATCH_FIELDS,
            "results": len(ids),
        }
        data = await self._call("character", body)
        return [Character.model_validate(item) for item in data["results"]]

    async def fetch_item_by_id(
        self, kind: ItemKind, item_id: str
    ) -> Optional[Union[VisualNovel, Character]]:
        if ItemKind(kind) is ItemKind.CHAR:
            return await self.get_character_by_id(item_id)
        return await self.get_vn_by_id(item_id)

    async def search_tags(self, query: str) -> List[Tag]:
        if not query or len(query) < TAG_SEARCH_MIN_LENGTH:
            return []
        body = {
            "filters": ["search", "=", query],
            "fields": TAG_FIELDS,
            "results": TAG_SEARCH_LIMIT,
        }
        data = await self._call("tag", body)
        return [Tag.model_validate(item) for item in data["results"]]

    async def get_tags_by_ids(self, ids: Sequence[str]) -> List[Tag]:
        if not ids:
            return []
        body = {
            "filters": build_id_filter(ids),
            "fields": TAG_FIELDS,
            "results": len(ids),
        }
        data = await self._call("tag", body)
        return [Tag.model_validate(item) for item in data["results"]]
