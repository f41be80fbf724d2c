from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from .auth import get_current_user
from ..models import MediaKind, User
from ..services.catalog import (
    CatalogClient,
    CatalogMedia,
    CatalogPage,
    CatalogQuery,
    Genre,
    Overview,
    get_catalog_client,
)

router = APIRouter()

# Static segments are declared before "/{kind}/{external_id}" so they win the match.


@router.get("/anime/season/now", response_model=CatalogPage)
async def current_season(
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=25),
    current_user: User = Depends(get_current_user),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    return await catalog.current_season(page=page, limit=limit)


@router.get("/{kind}", response_model=CatalogPage)
async def search(
    kind: MediaKind,
    q: Optional[str] = None,
    type: Optional[str] = None,
    status: Optional[str] = None,
    min_score: Optional[float] = Query(default=None, ge=0, le=10),
    max_score: Optional[float] = Query(default=None, ge=0, le=10),
    genres: List[int] = Query(default=[]),
    order_by: Optional[str] = None,
    sort: Optional[Literal["asc", "desc"]] = None,
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=25),
    sfw: Optional[bool] = None,
    current_user: User = Depends(get_current_user),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    query = CatalogQuery(
        q=q,
        type=type,
        status=status,
        min_score=min_score,
        max_score=max_score,
        genres=genres,
        order_by=order_by,
        sort=sort,
        page=page,
        limit=limit,
        sfw=sfw,
    )
    return await catalog.search(kind, query)


@router.get("/{kind}/top", response_model=CatalogPage)
async def top(
    kind: MediaKind,
    filter: Optional[str] = None,
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=25),
    current_user: User = Depends(get_current_user),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    return await catalog.top(kind, filter=filter, page=page, limit=limit)


@router.get("/{kind}/overview", response_model=Overview)
async def overview(
    kind: MediaKind,
    current_user: User = Depends(get_current_user),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    return await catalog.overview(kind)


@router.get("/{kind}/genres", response_model=List[Genre])
async def genres(
    kind: MediaKind,
    current_user: User = Depends(get_current_user),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    return await catalog.genres(kind)


@router.get("/{kind}/{external_id}", response_model=CatalogMedia)
async def get_media(
    kind: MediaKind,
    external_id: int,
    current_user: User = Depends(get_current_user),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    return await catalog.get_media(kind, external_id)


@router.get("/{kind}/{external_id}/recommendations", response_model=List[CatalogMedia])
async def recommendations(
    kind: MediaKind,
    external_id: int,
    current_user: User = Depends(get_current_user),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    return await catalog.recommendations(kind, external_id)
