"""Read-only client for the Jikan v4 catalog (a public MyAnimeList mirror).

Responses come back as ``{"data": T | [T], "pagination": {...}}``. Lists are
deduplicated by MAL id because Jikan sometimes repeats an entry across pages.
Failures raise ``UpstreamError`` and are never retried.
"""
from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Literal, Optional, TypeVar, cast

import httpx
from pydantic import BaseModel

from ..config import settings
from ..errors import UpstreamError
from ..logging import get_logger
from ..models import MediaKind

logger = get_logger(__name__)

FEATURED_COUNT = 5
OVERVIEW_LIMIT = 20

T = TypeVar("T")


class Genre(BaseModel):
    id: int
    name: str
    count: Optional[int] = None


class CatalogMedia(BaseModel):
    external_id: int
    kind: MediaKind
    title: str
    title_english: Optional[str] = None
    image_url: Optional[str] = None
    url: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    score: Optional[float] = None
    rank: Optional[int] = None
    popularity: Optional[int] = None
    episodes: Optional[int] = None
    chapters: Optional[int] = None
    volumes: Optional[int] = None
    synopsis: Optional[str] = None
    year: Optional[int] = None
    genres: List[str] = []

    @property
    def total_units(self) -> Optional[int]:
        return self.episodes if self.kind is MediaKind.anime else self.chapters


class Pagination(BaseModel):
    last_visible_page: int = 1
    has_next_page: bool = False
    count: Optional[int] = None
    total: Optional[int] = None
    per_page: Optional[int] = None


class CatalogPage(BaseModel):
    items: List[CatalogMedia]
    pagination: Optional[Pagination] = None


class Overview(BaseModel):
    top: List[CatalogMedia]
    airing: List[CatalogMedia]
    featured: List[CatalogMedia]


class CatalogQuery(BaseModel):
    q: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    min_score: Optional[float] = None
    max_score: Optional[float] = None
    genres: List[int] = []
    order_by: Optional[str] = None
    sort: Optional[Literal["asc", "desc"]] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    sfw: Optional[bool] = None

    def to_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for key, value in self.model_dump(exclude_none=True).items():
            if key == "genres":
                if value:
                    params[key] = ",".join(str(g) for g in value)
            elif isinstance(value, bool):
                params[key] = "true" if value else "false"
            else:
                params[key] = str(value)
        return params


def dedupe(items: Iterable[T], key: Callable[[T], Any]) -> List[T]:
    """Drop repeated items by ``key``, keeping the first one in order."""
    seen: set[Any] = set()
    out: List[T] = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        out.append(item)
    return out


def _image_url(raw: Dict[str, Any]) -> Optional[str]:
    images: Dict[str, Any] = raw.get("images") or {}
    webp: Dict[str, Any] = images.get("webp") or {}
    jpg: Dict[str, Any] = images.get("jpg") or {}
    return webp.get("large_image_url") or jpg.get("large_image_url") or jpg.get("image_url")


def parse_media(raw: Dict[str, Any], kind: MediaKind) -> CatalogMedia:
    genres = cast(List[Dict[str, Any]], raw.get("genres") or [])
    return CatalogMedia(
        external_id=raw["mal_id"],
        kind=kind,
        title=raw.get("title") or raw.get("title_english") or "Untitled",
        title_english=raw.get("title_english"),
        image_url=_image_url(raw),
        url=raw.get("url"),
        type=raw.get("type"),
        status=raw.get("status"),
        score=raw.get("score"),
        rank=raw.get("rank"),
        popularity=raw.get("popularity"),
        episodes=raw.get("episodes"),
        chapters=raw.get("chapters"),
        volumes=raw.get("volumes"),
        synopsis=raw.get("synopsis"),
        year=raw.get("year"),
        genres=[g["name"] for g in genres if g.get("name")],
    )


def _parse_pagination(raw: Optional[Dict[str, Any]]) -> Optional[Pagination]:
    if not raw:
        return None
    items: Dict[str, Any] = raw.get("items") or {}
    return Pagination(
        last_visible_page=raw.get("last_visible_page") or 1,
        has_next_page=bool(raw.get("has_next_page")),
        count=items.get("count"),
        total=items.get("total"),
        per_page=items.get("per_page"),
    )


class CatalogClient:
    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            resp = await self._http.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning("catalog_unreachable", path=path, error=str(exc))
            raise UpstreamError("Catalog service unavailable") from exc
        if not resp.is_success:
            logger.warning("catalog_error_status", path=path, status=resp.status_code)
            raise UpstreamError(
                f"Catalog request failed with status {resp.status_code}",
                upstream_status=resp.status_code,
            )
        try:
            payload: Any = resp.json()
        except ValueError as exc:
            raise UpstreamError("Catalog returned malformed JSON") from exc
        if not isinstance(payload, dict) or "data" not in payload:
            raise UpstreamError("Catalog returned an unexpected payload")
        return cast(Dict[str, Any], payload)

    async def _page(self, path: str, kind: MediaKind, params: Optional[Dict[str, str]] = None) -> CatalogPage:
        payload = await self._get(path, params)
        rows = cast(List[Dict[str, Any]], payload.get("data") or [])
        items = dedupe((parse_media(r, kind) for r in rows), key=lambda m: m.external_id)
        return CatalogPage(items=items, pagination=_parse_pagination(payload.get("pagination")))

    async def get_media(self, kind: MediaKind, external_id: int) -> CatalogMedia:
        payload = await self._get(f"/{kind.value}/{external_id}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise UpstreamError("Catalog returned an unexpected payload")
        return parse_media(cast(Dict[str, Any], data), kind)

    async def search(self, kind: MediaKind, query: Optional[CatalogQuery] = None) -> CatalogPage:
        query = query or CatalogQuery()
        return await self._page(f"/{kind.value}", kind, query.to_params())

    async def top(
        self,
        kind: MediaKind,
        filter: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> CatalogPage:
        params = {k: str(v) for k, v in {"filter": filter, "page": page, "limit": limit}.items() if v is not None}
        return await self._page(f"/top/{kind.value}", kind, params)

    async def current_season(self, page: Optional[int] = None, limit: Optional[int] = None) -> CatalogPage:
        params = {k: str(v) for k, v in {"page": page, "limit": limit}.items() if v is not None}
        return await self._page("/seasons/now", MediaKind.anime, params)

    async def genres(self, kind: MediaKind) -> List[Genre]:
        payload = await self._get(f"/genres/{kind.value}")
        rows = cast(List[Dict[str, Any]], payload.get("data") or [])
        genres = [Genre(id=r["mal_id"], name=r.get("name") or "", count=r.get("count")) for r in rows]
        return dedupe(genres, key=lambda g: g.id)

    async def recommendations(self, kind: MediaKind, external_id: int) -> List[CatalogMedia]:
        payload = await self._get(f"/{kind.value}/{external_id}/recommendations")
        rows = cast(List[Dict[str, Any]], payload.get("data") or [])
        items = (parse_media(r["entry"], kind) for r in rows if isinstance(r.get("entry"), dict))
        return dedupe(items, key=lambda m: m.external_id)

    async def overview(self, kind: MediaKind) -> Overview:
        """Fetch the rankings and the currently airing/publishing list together.

        Both requests run concurrently; if either fails the whole call fails.
        """
        if kind is MediaKind.anime:
            airing_call = self.current_season()
        else:
            airing_call = self.search(kind, CatalogQuery(status="publishing", limit=OVERVIEW_LIMIT))
        top, airing = await asyncio.gather(self.top(kind, limit=OVERVIEW_LIMIT), airing_call)
        scored = [m for m in airing.items if m.score and m.score > 0]
        featured = sorted(scored, key=lambda m: m.score or 0, reverse=True)[:FEATURED_COUNT]
        return Overview(top=top.items, airing=airing.items, featured=featured)


def create_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.catalog_base_url,
        timeout=settings.catalog_timeout,
        headers={"Accept": "application/json", "User-Agent": "mediatrack/0.1"},
    )


async def get_catalog_client() -> AsyncIterator[CatalogClient]:
    async with create_http_client() as http:
        yield CatalogClient(http)
