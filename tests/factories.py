from typing import Any, Dict, List, Optional


def media_payload(
    mal_id: int,
    title: str,
    score: Optional[float] = None,
    episodes: Optional[int] = None,
    chapters: Optional[int] = None,
    volumes: Optional[int] = None,
) -> Dict[str, Any]:
    return {
        "mal_id": mal_id,
        "url": f"https://myanimelist.net/anime/{mal_id}",
        "images": {
            "jpg": {"image_url": f"https://cdn.example.com/{mal_id}.jpg", "large_image_url": f"https://cdn.example.com/{mal_id}l.jpg"},
            "webp": {"image_url": f"https://cdn.example.com/{mal_id}.webp", "large_image_url": f"https://cdn.example.com/{mal_id}l.webp"},
        },
        "title": title,
        "title_english": None,
        "type": "TV",
        "status": "Finished Airing",
        "score": score,
        "episodes": episodes,
        "chapters": chapters,
        "volumes": volumes,
        "genres": [{"mal_id": 1, "name": "Action", "url": "https://myanimelist.net/genre/1"}],
    }


def page(items: List[Dict[str, Any]], has_next: bool = False) -> Dict[str, Any]:
    return {
        "data": items,
        "pagination": {
            "last_visible_page": 2 if has_next else 1,
            "has_next_page": has_next,
            "items": {"count": len(items), "total": len(items), "per_page": 25},
        },
    }
