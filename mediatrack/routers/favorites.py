from __future__ import annotations
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlmodel import Session

from .auth import get_current_user
from ..db import get_session
from ..errors import UpstreamError
from ..logging import get_logger
from ..models import Favorite, MediaKind, User
from ..services import favorites as favorites_service
from ..services.catalog import CatalogClient, get_catalog_client
from ..services.favorites import TitleSnapshot

logger = get_logger(__name__)

router = APIRouter()


class FavoriteOut(BaseModel):
    id: int
    external_id: int
    media_type: MediaKind
    title: str
    image_url: str
    created_at: datetime


class ToggleRequest(BaseModel):
    title: Optional[str] = None
    image_url: Optional[str] = None


class ToggleResponse(BaseModel):
    action: Literal["added", "removed"]
    favorite: Optional[FavoriteOut] = None


def to_out(fav: Favorite) -> FavoriteOut:
    return FavoriteOut.model_validate(fav, from_attributes=True)


async def _snapshot(catalog: CatalogClient, kind: MediaKind, external_id: int) -> TitleSnapshot:
    # A catalog outage must not block favoriting; keep the marker with an empty snapshot
    try:
        media = await catalog.get_media(kind, external_id)
    except UpstreamError as exc:
        logger.warning("favorite_snapshot_failed", kind=kind.value, external_id=external_id, error=exc.message)
        return TitleSnapshot()
    return TitleSnapshot(title=media.title, image_url=media.image_url or "")


@router.get("", response_model=List[FavoriteOut])
async def list_favorites(
    type: Optional[MediaKind] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    assert current_user.id is not None
    return [to_out(f) for f in favorites_service.list_favorites(session, current_user.id, type)]


@router.post("/{kind}/{external_id}/toggle", response_model=ToggleResponse)
async def toggle(
    kind: MediaKind,
    external_id: int,
    req: Optional[ToggleRequest] = Body(default=None),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    assert current_user.id is not None
    req = req or ToggleRequest()
    if req.title:
        snapshot = TitleSnapshot(title=req.title, image_url=req.image_url or "")
    elif favorites_service.is_favorite(session, current_user.id, external_id, kind):
        # About to be removed; no snapshot needed
        snapshot = TitleSnapshot()
    else:
        snapshot = await _snapshot(catalog, kind, external_id)
    result = favorites_service.toggle_favorite(session, current_user.id, external_id, kind, snapshot)
    return ToggleResponse(
        action=result.action,
        favorite=to_out(result.favorite) if result.favorite is not None else None,
    )
