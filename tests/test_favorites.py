import pytest
from sqlmodel import Session

from mediatrack.db import atomic
from mediatrack.errors import ConflictError
from mediatrack.models import Favorite, MediaKind, User
from mediatrack.services.favorites import TitleSnapshot, is_favorite, list_favorites, toggle_favorite


def test_toggle_flips_each_call(session: Session, user: User):
    assert user.id is not None
    actions = [toggle_favorite(session, user.id, 21, MediaKind.anime).action for _ in range(3)]
    assert actions == ["added", "removed", "added"]
    assert is_favorite(session, user.id, 21, MediaKind.anime)


def test_snapshot_is_captured_on_add(session: Session, user: User):
    assert user.id is not None
    result = toggle_favorite(
        session, user.id, 21, MediaKind.anime, TitleSnapshot(title="One Piece", image_url="https://cdn.example.com/21.jpg")
    )
    assert result.action == "added"
    assert result.favorite is not None
    assert result.favorite.title == "One Piece"
    assert result.favorite.image_url == "https://cdn.example.com/21.jpg"


def test_missing_snapshot_stores_empty_title(session: Session, user: User):
    assert user.id is not None
    result = toggle_favorite(session, user.id, 99, MediaKind.manga)
    assert result.favorite is not None
    assert result.favorite.title == ""
    assert result.favorite.image_url == ""


def test_kinds_are_independent(session: Session, user: User):
    assert user.id is not None
    assert toggle_favorite(session, user.id, 1, MediaKind.anime).action == "added"
    assert toggle_favorite(session, user.id, 1, MediaKind.manga).action == "added"
    assert len(list_favorites(session, user.id)) == 2
    assert [f.media_type for f in list_favorites(session, user.id, MediaKind.manga)] == [MediaKind.manga]


def test_list_is_newest_first(session: Session, user: User):
    assert user.id is not None
    for external_id in (1, 2, 3):
        toggle_favorite(session, user.id, external_id, MediaKind.anime)
    assert [f.external_id for f in list_favorites(session, user.id)] == [3, 2, 1]


def test_duplicate_key_surfaces_as_conflict(session: Session, user: User):
    assert user.id is not None
    toggle_favorite(session, user.id, 5, MediaKind.anime)
    with pytest.raises(ConflictError):
        with atomic(session, "duplicate_favorite"):
            session.add(Favorite(user_id=user.id, external_id=5, media_type=MediaKind.anime))
    assert len(list_favorites(session, user.id)) == 1
