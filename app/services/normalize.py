"""
Reshape raw Supabase query rows into the app's view models.

PostgREST returns an embedded to-one relation either as an object, as a
one-element list, or as null depending on how the foreign key is declared.
Every relation goes through normalize_to_one() so callers never have to care.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from app.models.models import BlockReport, FeedReport, ReportReply

T = TypeVar("T")

COMMUNITY_MEMBER = {"display_name": "Community Member", "avatar_url": None}

AVATAR_POOL_SIZE = 70
AVATAR_URL = "https://i.pravatar.cc/150?img={index}"


def normalize_to_one(raw: Any, placeholder: T) -> Any:
    """Unwrap a to-one relation: first element of a list, the object itself, or the placeholder."""
    if isinstance(raw, list):
        raw = raw[0] if raw else None
    if raw is None:
        return placeholder
    return raw


def normalize_user(raw: Any) -> Dict[str, Any]:
    return dict(normalize_to_one(raw, COMMUNITY_MEMBER))


def normalize_block(raw: Any) -> Optional[Dict[str, Any]]:
    return normalize_to_one(raw, None)


def _to_many(raw: Any) -> List[Any]:
    return list(raw) if raw else []


def _normalize_rows(data: Optional[Iterable[Dict[str, Any]]], shape: Callable[[Dict[str, Any]], T]) -> List[T]:
    if not data:
        return []
    return [shape(row) for row in data]


def _reply_shape(row: Dict[str, Any]) -> ReportReply:
    return ReportReply(**{**row, "author": normalize_user(row.get("author"))})


def _feed_shape(row: Dict[str, Any]) -> FeedReport:
    return FeedReport(**{
        **row,
        "user": normalize_user(row.get("user")),
        "block": normalize_block(row.get("block")),
        "upvotes": _to_many(row.get("upvotes")),
        "verifications": _to_many(row.get("verifications")),
    })


def _block_report_shape(row: Dict[str, Any]) -> BlockReport:
    feed = _feed_shape(row)
    replies = sorted(normalize_replies(row.get("replies")), key=lambda r: r.created_at)
    return BlockReport(**{**feed.model_dump(), "replies": replies})


def normalize_replies(data: Optional[Iterable[Dict[str, Any]]]) -> List[ReportReply]:
    return _normalize_rows(data, _reply_shape)


def normalize_feed_reports(data: Optional[Iterable[Dict[str, Any]]]) -> List[FeedReport]:
    return _normalize_rows(data, _feed_shape)


def normalize_block_reports(data: Optional[Iterable[Dict[str, Any]]]) -> List[BlockReport]:
    return _normalize_rows(data, _block_report_shape)


def _hash_seed(seed: str) -> int:
    # 32-bit string hash, matches the avatars already handed out by the web client
    h = 0
    for ch in seed:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def get_avatar_url(seed: Optional[str] = None, existing: Optional[str] = None) -> str:
    """Keep an existing avatar, otherwise pick a stable one from the pool."""
    if existing:
        return existing
    source = (seed or "").strip() or "neighbor"
    index = _hash_seed(source) % AVATAR_POOL_SIZE
    return AVATAR_URL.format(index=index + 1)
