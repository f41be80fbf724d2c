from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional

from sqlmodel import Session, select

from ..db import atomic
from ..logging import get_logger
from ..models import Favorite, MediaKind

logger = get_logger(__name__)


@dataclass
class TitleSnapshot:
    title: str = ""
    image_url: str = ""


@dataclass
class ToggleResult:
    action: Literal["added", "removed"]
    favorite: Optional[Favorite] = None


def _select_favorite(user_id: int, external_id: int, kind: MediaKind):
    return select(Favorite).where(
        Favorite.user_id == user_id,
        Favorite.external_id == external_id,
        Favorite.media_type == kind,
    )


def is_favorite(session: Session, user_id: int, external_id: int, kind: MediaKind) -> bool:
    return session.exec(_select_favorite(user_id, external_id, kind)).first() is not None


def list_favorites(session: Session, user_id: int, kind: Optional[MediaKind] = None) -> List[Favorite]:
    stmt = select(Favorite).where(Favorite.user_id == user_id)
    if kind is not None:
        stmt = stmt.where(Favorite.media_type == kind)
    stmt = stmt.order_by(Favorite.created_at.desc(), Favorite.id.desc())  # type: ignore[union-attr]
    return list(session.exec(stmt).all())


def toggle_favorite(
    session: Session,
    user_id: int,
    external_id: int,
    kind: MediaKind,
    snapshot: Optional[TitleSnapshot] = None,
) -> ToggleResult:
    """Flip the favorite marker for a title.

    Every call flips: an existing favorite is deleted, a missing one is
    created with ``snapshot`` as its title and image.
    """
    snapshot = snapshot or TitleSnapshot()
    with atomic(session, "toggle_favorite", "Favorite was changed concurrently, retry"):
        existing = session.exec(_select_favorite(user_id, external_id, kind).with_for_update()).first()
        if existing is not None:
            session.delete(existing)
            result = ToggleResult(action="removed")
        else:
            fav = Favorite(
                user_id=user_id,
                external_id=external_id,
                media_type=kind,
                title=snapshot.title,
                image_url=snapshot.image_url,
            )
            session.add(fav)
            result = ToggleResult(action="added", favorite=fav)
    if result.favorite is not None:
        session.refresh(result.favorite)
    logger.info("favorite_toggled", user_id=user_id, kind=kind.value, external_id=external_id, action=result.action)
    return result
