import httpx
import pytest

from helpers import FakeJikan
from factories import media_payload, page
from mediatrack.errors import UpstreamError
from mediatrack.models import MediaKind
from mediatrack.services.catalog import CatalogClient, CatalogQuery, dedupe

pytestmark = pytest.mark.anyio


def test_dedupe_keeps_first_occurrence_in_order():
    rows = [(1, "a"), (2, "b"), (1, "c"), (3, "d"), (2, "e")]
    assert dedupe(rows, key=lambda r: r[0]) == [(1, "a"), (2, "b"), (3, "d")]


def test_query_params_skip_unset_values():
    params = CatalogQuery(q="naruto", genres=[1, 4], sfw=True, sort="desc", min_score=7.5).to_params()
    assert params == {"q": "naruto", "genres": "1,4", "sfw": "true", "sort": "desc", "min_score": "7.5"}
    assert CatalogQuery().to_params() == {}


async def test_search_drops_duplicate_ids():
    fake = FakeJikan()
    fake.add(
        "/anime",
        page([media_payload(1, "Cowboy Bebop"), media_payload(5, "Trigun"), media_payload(1, "Cowboy Bebop (dup)")], has_next=True),
    )
    async with fake.http_client() as http:
        result = await CatalogClient(http).search(MediaKind.anime, CatalogQuery(q="bebop", limit=3))
    assert [m.external_id for m in result.items] == [1, 5]
    assert result.items[0].title == "Cowboy Bebop"
    assert result.pagination is not None and result.pagination.has_next_page
    assert fake.calls == [("/anime", {"q": "bebop", "limit": "3"})]


async def test_get_media_prefers_webp_large_image():
    fake = FakeJikan()
    fake.add("/manga/2", {"data": media_payload(2, "Berserk", score=9.4, chapters=380, volumes=42)})
    async with fake.http_client() as http:
        media = await CatalogClient(http).get_media(MediaKind.manga, 2)
    assert media.title == "Berserk"
    assert media.image_url == "https://cdn.example.com/2l.webp"
    assert media.total_units == 380
    assert media.volumes == 42
    assert media.genres == ["Action"]


async def test_non_2xx_raises_upstream_error():
    fake = FakeJikan()
    fake.add("/anime/1", {"status": 429, "message": "Too many requests"}, status=429)
    async with fake.http_client() as http:
        with pytest.raises(UpstreamError) as excinfo:
            await CatalogClient(http).get_media(MediaKind.anime, 1)
    assert excinfo.value.upstream_status == 429
    # No retry
    assert len(fake.calls) == 1


async def test_transport_failure_raises_upstream_error():
    fake = FakeJikan()
    fake.down = True
    async with fake.http_client() as http:
        with pytest.raises(UpstreamError):
            await CatalogClient(http).top(MediaKind.anime)


async def test_unexpected_payload_raises_upstream_error():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.jikan.moe/v4") as http:
        with pytest.raises(UpstreamError):
            await CatalogClient(http).genres(MediaKind.anime)


async def test_overview_fetches_both_lists_and_features_best_scored():
    fake = FakeJikan()
    fake.add("/top/anime", page([media_payload(10, "Top One", score=9.1)]))
    airing = [media_payload(i, f"Airing {i}", score=s) for i, s in [(1, 7.0), (2, None), (3, 8.5), (4, 6.0), (5, 9.0), (6, 7.5), (7, 0.0), (8, 8.0)]]
    fake.add("/seasons/now", page(airing))
    async with fake.http_client() as http:
        overview = await CatalogClient(http).overview(MediaKind.anime)
    assert [m.external_id for m in overview.top] == [10]
    assert len(overview.airing) == 8
    assert [m.external_id for m in overview.featured] == [5, 3, 8, 6, 1]
    assert {path for path, _ in fake.calls} == {"/top/anime", "/seasons/now"}


async def test_manga_overview_uses_publishing_search():
    fake = FakeJikan()
    fake.add("/top/manga", page([]))
    fake.add("/manga", page([media_payload(2, "Berserk", score=9.4)]))
    async with fake.http_client() as http:
        overview = await CatalogClient(http).overview(MediaKind.manga)
    assert [m.external_id for m in overview.featured] == [2]
    assert ("/manga", {"status": "publishing", "limit": "20"}) in fake.calls


async def test_overview_fails_when_either_request_fails():
    fake = FakeJikan()
    fake.add("/top/anime", page([media_payload(10, "Top One")]))
    fake.add("/seasons/now", {"status": 500}, status=500)
    async with fake.http_client() as http:
        with pytest.raises(UpstreamError):
            await CatalogClient(http).overview(MediaKind.anime)


async def test_recommendations_unwrap_entries():
    fake = FakeJikan()
    fake.add(
        "/anime/1/recommendations",
        {"data": [{"entry": media_payload(6, "Trigun"), "votes": 10}, {"entry": media_payload(6, "Trigun"), "votes": 2}]},
    )
    async with fake.http_client() as http:
        recs = await CatalogClient(http).recommendations(MediaKind.anime, 1)
    assert [m.external_id for m in recs] == [6]
