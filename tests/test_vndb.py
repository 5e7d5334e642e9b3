import json

import httpx
import pytest
import pytest_asyncio

from vnexplorer import ItemKind, SortOption, Tag, VndbError, VndbService
from vnexplorer.constants import ErrorCode
from vnexplorer.utility import BookmarkStoreError
from vnexplorer.vndb import build_id_filter, build_search_filters


class Recorder:
    def __init__(self, payload=None, status=200):
        self.payload = payload if payload is not None else {"results": [], "more": False}
        self.status = status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.url.path, json.loads(request.content)))
        return httpx.Response(self.status, json=self.payload)

    @property
    def body(self):
        return self.requests[-1][1]


@pytest.fixture
def recorder():
    return Recorder()


@pytest_asyncio.fixture
async def service(recorder):
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
        yield VndbService("https://api.example/kana", client=http)


def test_build_search_filters():
    assert build_search_filters("", []) == []
    assert build_search_filters("fate", []) == ["search", "=", "fate"]
    assert build_search_filters("", ["g1"]) == ["tag", "=", "g1"]
    assert build_search_filters("", ["g1", "g2"]) == ["and", ["tag", "=", "g1"], ["tag", "=", "g2"]]
    assert build_search_filters("fate", ["g1", "g2"]) == [
        "and",
        ["search", "=", "fate"],
        ["and", ["tag", "=", "g1"], ["tag", "=", "g2"]],
    ]


def test_build_id_filter():
    assert build_id_filter(["v1"]) == ["id", "=", "v1"]
    assert build_id_filter(["v1", "v2"]) == ["or", ["id", "=", "v1"], ["id", "=", "v2"]]


@pytest.mark.asyncio
async def test_search_vns_request_shape(service, recorder):
    recorder.payload = {
        "results": [{"id": "v17", "title": "Ever17", "rating": 86.1, "votecount": 9000}],
        "more": True,
        "count": 53,
    }

    page = await service.search_vns("ever", [Tag(id="g7", name="Time Travel")], SortOption.RATING, 2, 26)

    path, body = recorder.requests[-1]
    assert path == "/kana/vn"
    assert body["filters"] == ["and", ["search", "=", "ever"], ["tag", "=", "g7"]]
    assert body["sort"] == "rating"
    assert body["reverse"] is True
    assert body["page"] == 2
    assert body["results"] == 26
    assert body["count"] is True
    assert page.count == 53
    assert page.more is True
    assert page.results[0].title == "Ever17"


@pytest.mark.asyncio
async def test_id_sort_is_ascending(service, recorder):
    await service.search_vns("", [], SortOption.ID, 1, 26)
    assert recorder.body["reverse"] is False
    assert recorder.body["filters"] == []


@pytest.mark.asyncio
async def test_get_vn_by_id(service, recorder):
    recorder.payload = {"results": [{"id": "v4", "title": "Clannad", "votecount": 1}], "more": False}

    vn = await service.get_vn_by_id("v4")

    assert vn.id == "v4"
    assert recorder.body["filters"] == ["id", "=", "v4"]


@pytest.mark.asyncio
async def test_missing_item_is_none(service):
    assert await service.get_vn_by_id("v0") is None
    assert await service.fetch_item_by_id(ItemKind.CHAR, "c0") is None


@pytest.mark.asyncio
async def test_character_traits_get_category(service, recorder):
    recorder.payload = {
        "results": [
            {
                "id": "c1",
                "name": "Nagisa",
                "traits": [
                    {"id": "i1", "name": "Shy", "group_name": "Personality"},
                    {"id": "i2", "name": "Short", "group_name": None},
                ],
            }
        ]
    }

    character = await service.fetch_item_by_id(ItemKind.CHAR, "c1")

    assert recorder.requests[-1][0] == "/kana/character"
    assert [trait.category for trait in character.traits] == ["Personality", "general"]


@pytest.mark.asyncio
async def test_empty_batches_make_no_request(service, recorder):
    assert await service.get_tags_by_ids([]) == []
    assert await service.get_vns_by_ids([]) == []
    assert await service.get_characters_by_ids([]) == []
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_get_tags_by_ids(service, recorder):
    recorder.payload = {"results": [{"id": "g2", "name": "Drama"}, {"id": "g1", "name": "Romance"}]}

    tags = await service.get_tags_by_ids(["g1", "g2"])

    assert recorder.requests[-1][0] == "/kana/tag"
    assert recorder.body["filters"] == ["or", ["id", "=", "g1"], ["id", "=", "g2"]]
    assert recorder.body["results"] == 2
    assert {tag.id for tag in tags} == {"g1", "g2"}


@pytest.mark.asyncio
async def test_short_tag_queries_are_skipped(service, recorder):
    assert await service.search_tags("a") == []
    assert recorder.requests == []

    await service.search_tags("ro")
    assert recorder.body["results"] == 10


@pytest.mark.asyncio
async def test_characters_by_vn(service, recorder):
    await service.get_characters_by_vn_id("v4")
    assert recorder.body["filters"] == ["vn", "=", ["id", "=", "v4"]]
    assert recorder.body["results"] == 100


@pytest.mark.asyncio
async def test_error_status_raises(recorder, service):
    recorder.status = 429
    recorder.payload = {"error": "throttled"}

    with pytest.raises(VndbError) as excinfo:
        await service.search_vns("", [], SortOption.VOTECOUNT, 1, 26)

    assert excinfo.value.status == 429
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        service = VndbService("https://api.example/kana", client=http)
        with pytest.raises(VndbError):
            await service.get_tags_by_ids(["g1"])


@pytest.mark.asyncio
async def test_invalid_json_raises_without_retry():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, content=b"<html>maintenance</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        service = VndbService("https://api.example/kana", client=http)
        with pytest.raises(VndbError) as excinfo:
            await service.search_tags("romance")

    assert "invalid JSON" in str(excinfo.value)
    assert len(calls) == 1


def test_error_messages():
    rejected = VndbError("https://api.example/kana/vn", 429, "throttled")
    assert rejected.code is ErrorCode.REQUEST_REJECTED
    assert str(rejected) == "Request to 'https://api.example/kana/vn (status=429)' was rejected: throttled"

    storage = BookmarkStoreError("disk full", status=500)
    assert storage.code is ErrorCode.STORAGE_FAILURE
    assert str(storage) == "Bookmark storage failed: disk full"
    assert set(ErrorCode) == {ErrorCode.REQUEST_REJECTED, ErrorCode.STORAGE_FAILURE}
