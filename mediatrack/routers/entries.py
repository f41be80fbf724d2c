from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from .auth import get_current_user
from ..db import get_session
from ..models import EntryStatus, MediaEntry, MediaKind, User
from ..services import favorites as favorites_service
from ..services import tracker
from ..services.catalog import CatalogClient, get_catalog_client
from ..services.tracker import EntryUpdate

router = APIRouter()


class EntryOut(BaseModel):
    id: int
    external_id: int
    media_type: MediaKind
    title: str
    image_url: Optional[str] = None
    status: EntryStatus
    progress: int = 0  # episodes or chapters
    total_units: Optional[int] = None
    total_volumes: Optional[int] = None
    score: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class EntryState(BaseModel):
    entry: Optional[EntryOut] = None
    is_favorite: bool = False


class ProgressDelta(BaseModel):
    delta: int = 1


def to_out(rec: MediaEntry) -> EntryOut:
    assert rec.id is not None
    return EntryOut.model_validate(rec, from_attributes=True)


def _user_id(user: User) -> int:
    assert user.id is not None
    return user.id


@router.get("", response_model=List[EntryOut])
async def list_entries(
    type: Optional[MediaKind] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return [to_out(i) for i in tracker.list_entries(session, _user_id(current_user), type)]


@router.get("/summary")
async def summary(
    current_user: User = Depends(get_current_user), session: Session = Depends(get_session)
) -> Dict[str, object]:
    return tracker.summarize(session, _user_id(current_user))


@router.get("/{kind}/{external_id}", response_model=EntryState)
async def get_entry(
    kind: MediaKind,
    external_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    user_id = _user_id(current_user)
    rec = tracker.get_entry(session, user_id, kind, external_id)
    return EntryState(
        entry=to_out(rec) if rec else None,
        is_favorite=favorites_service.is_favorite(session, user_id, external_id, kind),
    )


@router.put("/{kind}/{external_id}", response_model=EntryOut)
async def save_entry(
    kind: MediaKind,
    external_id: int,
    update: EntryUpdate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    user_id = _user_id(current_user)
    if not update.title and tracker.get_entry(session, user_id, kind, external_id) is None:
        # New entry without a title: cache title, image and totals from the catalog
        media = await catalog.get_media(kind, external_id)
        update = update.model_copy(
            update={
                "title": media.title,
                "image_url": update.image_url or media.image_url,
                "total_units": update.total_units if update.total_units is not None else media.total_units,
                "total_volumes": update.total_volumes if update.total_volumes is not None else media.volumes,
            }
        )
    rec = tracker.upsert_entry(session, user_id, kind, external_id, update)
    return to_out(rec)


@router.post("/{kind}/{external_id}/progress", response_model=EntryOut)
async def nudge_progress(
    kind: MediaKind,
    external_id: int,
    body: ProgressDelta,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    rec = tracker.adjust_progress(session, _user_id(current_user), kind, external_id, body.delta)
    return to_out(rec)


@router.delete("/{kind}/{external_id}")
async def delete_entry(
    kind: MediaKind,
    external_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Dict[str, bool]:
    tracker.remove_entry(session, _user_id(current_user), kind, external_id)
    return {"ok": True}
