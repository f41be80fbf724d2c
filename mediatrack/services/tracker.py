"""Entry tracking: status/progress reconciliation and list persistence.

``reconcile`` is the pure rule that turns a proposed change into the fields
to store. The persistence helpers below run it inside a single locked
transaction per (user, external id, kind) key so two quick progress clicks
from the same user cannot overwrite each other.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlmodel import Session, select

from ..db import atomic
from ..errors import NotFoundError, ValidationError
from ..logging import get_logger
from ..models import (
    STATUSES,
    EntryStatus,
    MediaEntry,
    MediaKind,
    in_progress_status,
    plan_status,
    utcnow,
)

logger = get_logger(__name__)

MIN_SCORE = 1
MAX_SCORE = 10


class EntryUpdate(BaseModel):
    """A proposed change to a list entry. Unset fields keep their stored value."""

    status: Optional[EntryStatus] = None
    progress: Optional[int] = None
    total_units: Optional[int] = None
    total_volumes: Optional[int] = None
    score: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    title: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class ReconciledEntry:
    status: EntryStatus
    progress: int
    total_units: Optional[int]
    total_volumes: Optional[int]
    score: Optional[int]
    start_date: Optional[datetime]
    end_date: Optional[datetime]


def _stored(current: Optional[MediaEntry], name: str):
    return getattr(current, name) if current is not None else None


def _pick(explicit, stored):
    return explicit if explicit is not None else stored


def reconcile(
    current: Optional[MediaEntry],
    update: EntryUpdate,
    kind: MediaKind,
    now: Optional[datetime] = None,
) -> ReconciledEntry:
    """Compute the authoritative status, progress and dates for an entry.

    Explicit progress above a known total is rejected rather than clamped.
    Leaving the plan status is automatic once progress starts from a stored
    zero, and reaching the total while in progress completes the entry.
    A manual COMPLETED is never downgraded. Dates are never cleared; moving
    into COMPLETED stamps the end date unless one is supplied.
    """
    now = now or utcnow()

    progress = _pick(update.progress, _stored(current, "progress"))
    if progress is None:
        progress = 0
    if progress < 0:
        raise ValidationError("progress must not be negative")

    total = _pick(update.total_units, _stored(current, "total_units"))
    if total is not None and total < 0:
        raise ValidationError("total must not be negative")
    if total is not None and progress > total:
        raise ValidationError("progress exceeds total")

    volumes = _pick(update.total_volumes, _stored(current, "total_volumes"))
    if volumes is not None:
        if kind is not MediaKind.manga:
            raise ValidationError("volumes only apply to manga")
        if volumes < 0:
            raise ValidationError("volumes must not be negative")

    score = _pick(update.score, _stored(current, "score"))
    if score is not None and not MIN_SCORE <= score <= MAX_SCORE:
        raise ValidationError(f"score must be between {MIN_SCORE} and {MAX_SCORE}")

    status = _pick(update.status, _stored(current, "status")) or plan_status(kind)
    if status not in STATUSES[kind]:
        raise ValidationError(f"{status.value} is not a valid {kind.value} status")

    # Starting progress always promotes out of the plan status
    started = (
        current is not None
        and current.status == plan_status(kind)
        and current.progress == 0
        and progress > 0
    )
    if started:
        status = in_progress_status(kind)

    if status == in_progress_status(kind) and total is not None and progress == total:
        status = EntryStatus.COMPLETED

    start_date = _pick(update.start_date, _stored(current, "start_date"))
    if (started or status == in_progress_status(kind)) and start_date is None:
        start_date = now

    # A fresh completion gets a fresh end date; an already completed entry keeps its own
    end_date = _pick(update.end_date, _stored(current, "end_date"))
    if (
        status == EntryStatus.COMPLETED
        and update.end_date is None
        and (end_date is None or _stored(current, "status") != EntryStatus.COMPLETED)
    ):
        end_date = now

    return ReconciledEntry(
        status=status,
        progress=progress,
        total_units=total,
        total_volumes=volumes,
        score=score,
        start_date=start_date,
        end_date=end_date,
    )


def _select_entry(user_id: int, kind: MediaKind, external_id: int):
    return select(MediaEntry).where(
        MediaEntry.user_id == user_id,
        MediaEntry.external_id == external_id,
        MediaEntry.media_type == kind,
    )


def _lock_entry(session: Session, user_id: int, kind: MediaKind, external_id: int) -> Optional[MediaEntry]:
    return session.exec(_select_entry(user_id, kind, external_id).with_for_update()).first()


def _apply(entry: MediaEntry, result: ReconciledEntry, now: datetime) -> None:
    entry.status = result.status
    entry.progress = result.progress
    entry.total_units = result.total_units
    entry.total_volumes = result.total_volumes
    entry.score = result.score
    entry.start_date = result.start_date
    entry.end_date = result.end_date
    entry.updated_at = now


def get_entry(session: Session, user_id: int, kind: MediaKind, external_id: int) -> Optional[MediaEntry]:
    return session.exec(_select_entry(user_id, kind, external_id)).first()


def list_entries(session: Session, user_id: int, kind: Optional[MediaKind] = None) -> List[MediaEntry]:
    stmt = select(MediaEntry).where(MediaEntry.user_id == user_id)
    if kind is not None:
        stmt = stmt.where(MediaEntry.media_type == kind)
    stmt = stmt.order_by(MediaEntry.updated_at.desc(), MediaEntry.id.desc())  # type: ignore[union-attr]
    return list(session.exec(stmt).all())


def upsert_entry(
    session: Session,
    user_id: int,
    kind: MediaKind,
    external_id: int,
    update: EntryUpdate,
    now: Optional[datetime] = None,
) -> MediaEntry:
    """Create or update the user's entry for a title in one locked transaction."""
    now = now or utcnow()
    with atomic(session, "upsert_entry", "Entry was created concurrently, retry"):
        current = _lock_entry(session, user_id, kind, external_id)
        result = reconcile(current, update, kind, now)
        if current is None:
            if not update.title:
                raise ValidationError("Title is required")
            entry = MediaEntry(
                user_id=user_id,
                external_id=external_id,
                media_type=kind,
                title=update.title,
                image_url=update.image_url,
                status=result.status,
                created_at=now,
            )
        else:
            entry = current
            if update.title:
                entry.title = update.title
            if update.image_url is not None:
                entry.image_url = update.image_url
        _apply(entry, result, now)
        session.add(entry)
    session.refresh(entry)
    logger.info(
        "entry_upserted",
        user_id=user_id,
        kind=kind.value,
        external_id=external_id,
        status=entry.status.value,
        progress=entry.progress,
    )
    return entry


def adjust_progress(
    session: Session,
    user_id: int,
    kind: MediaKind,
    external_id: int,
    delta: int,
    now: Optional[datetime] = None,
) -> MediaEntry:
    """Move progress by ``delta``, clamped to ``[0, total]``, then reconcile."""
    now = now or utcnow()
    with atomic(session, "adjust_progress"):
        entry = _lock_entry(session, user_id, kind, external_id)
        if entry is None:
            raise NotFoundError("Entry not found")
        progress = max(0, entry.progress + delta)
        if entry.total_units is not None:
            progress = min(progress, entry.total_units)
        result = reconcile(entry, EntryUpdate(progress=progress), kind, now)
        _apply(entry, result, now)
        session.add(entry)
    session.refresh(entry)
    return entry


def remove_entry(session: Session, user_id: int, kind: MediaKind, external_id: int) -> None:
    with atomic(session, "remove_entry"):
        entry = _lock_entry(session, user_id, kind, external_id)
        if entry is None:
            raise NotFoundError("Entry not found")
        session.delete(entry)
    logger.info("entry_removed", user_id=user_id, kind=kind.value, external_id=external_id)


def summarize(session: Session, user_id: int) -> Dict[str, object]:
    items = list_entries(session, user_id)
    by_type: Dict[str, int] = {k.value: 0 for k in MediaKind}
    by_status: Dict[str, Dict[str, int]] = {k.value: {} for k in MediaKind}
    for i in items:
        kind = i.media_type.value
        by_type[kind] += 1
        by_status[kind][i.status.value] = by_status[kind].get(i.status.value, 0) + 1
    return {"total": len(items), "by_type": by_type, "by_status": by_status}
