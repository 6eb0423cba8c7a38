"""
Table access over the Supabase client.

Every read names an explicit order: PostgREST gives no ordering guarantee
otherwise. Relation expansion uses PostgREST's embedded select syntax and the
results go through app.services.normalize before they reach a route.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from app.models.models import Block, BlockReport, FeedReport, ReportReply, ReportStatus, UserProfile
from app.services.normalize import normalize_block_reports, normalize_feed_reports, normalize_replies

logger = logging.getLogger(__name__)

USER_EMBED = "user:users!reports_created_by_fkey(display_name, avatar_url)"
BLOCK_EMBED = "block:blocks(name, slug)"
UPVOTES_EMBED = "upvotes(user_id)"
VERIFICATIONS_EMBED = "verifications:report_verifications(user_id)"
REPLIES_EMBED = "replies:report_replies(id, body, created_at, author_id, report_id, author:users(display_name, avatar_url))"
REPLY_SELECT = "id, body, created_at, author_id, report_id, author:users(display_name, avatar_url)"

FEED_SELECT = f"*, {USER_EMBED}, {BLOCK_EMBED}, {UPVOTES_EMBED}, {VERIFICATIONS_EMBED}"
BLOCK_REPORT_SELECT = f"*, {USER_EMBED}, {UPVOTES_EMBED}, {VERIFICATIONS_EMBED}, {REPLIES_EMBED}"
DETAIL_SELECT = f"*, {USER_EMBED}, {BLOCK_EMBED}, {UPVOTES_EMBED}, {VERIFICATIONS_EMBED}, {REPLIES_EMBED}"


def _first(rows: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    return rows[0] if rows else None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- Reports ---

def fetch_feed(db: Client) -> List[FeedReport]:
    res = db.table("reports").select(FEED_SELECT).order("created_at", desc=True).execute()
    return normalize_feed_reports(res.data)


def fetch_block_reports(db: Client, block_id: str) -> List[BlockReport]:
    res = (
        db.table("reports")
        .select(BLOCK_REPORT_SELECT)
        .eq("block_id", block_id)
        .order("created_at", desc=True)
        .execute()
    )
    return normalize_block_reports(res.data)


def get_report(db: Client, report_id: str) -> Optional[BlockReport]:
    res = db.table("reports").select(DETAIL_SELECT).eq("id", report_id).limit(1).execute()
    reports = normalize_block_reports(res.data)
    return reports[0] if reports else None


def get_report_row(db: Client, report_id: str) -> Optional[Dict[str, Any]]:
    res = db.table("reports").select("*").eq("id", report_id).limit(1).execute()
    return _first(res.data)


def create_report(db: Client, values: Dict[str, Any]) -> Dict[str, Any]:
    res = db.table("reports").insert(values).execute()
    row = _first(res.data)
    if not row:
        raise RuntimeError("Report insert returned no row")
    return row


def update_report(db: Client, report_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    res = db.table("reports").update(changes).eq("id", report_id).execute()
    return _first(res.data)


def resolve_report(db: Client, report_id: str, note: Optional[str]) -> Optional[Dict[str, Any]]:
    return update_report(db, report_id, {
        "status": ReportStatus.resolved.value,
        "resolved_at": _now_iso(),
        "resolved_note": note,
    })


def fetch_user_reports(db: Client, user_id: str) -> List[FeedReport]:
    res = (
        db.table("reports")
        .select(f"*, {USER_EMBED}, {BLOCK_EMBED}, {UPVOTES_EMBED}, {VERIFICATIONS_EMBED}")
        .eq("created_by", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return normalize_feed_reports(res.data)


# --- Upvotes & verifications ---

def insert_upvote(db: Client, report_id: str, user_id: str) -> None:
    db.table("upvotes").insert({"report_id": report_id, "user_id": user_id}).execute()


def delete_upvote(db: Client, report_id: str, user_id: str) -> None:
    db.table("upvotes").delete().eq("report_id", report_id).eq("user_id", user_id).execute()


def insert_verification(db: Client, report_id: str, user_id: str) -> None:
    db.table("report_verifications").insert({"report_id": report_id, "user_id": user_id}).execute()


# --- Replies ---

def fetch_replies(db: Client, report_id: str) -> List[ReportReply]:
    res = (
        db.table("report_replies")
        .select(REPLY_SELECT)
        .eq("report_id", report_id)
        .order("created_at")
        .execute()
    )
    return normalize_replies(res.data)


def insert_reply(db: Client, report_id: str, author_id: str, body: str) -> ReportReply:
    res = (
        db.table("report_replies")
        .insert({"report_id": report_id, "author_id": author_id, "body": body})
        .execute()
    )
    row = _first(res.data)
    if not row:
        raise RuntimeError("Reply insert returned no row")
    # Insert responses cannot embed relations, so fetch the author separately
    author = _first(
        db.table("users").select("display_name, avatar_url").eq("id", author_id).limit(1).execute().data
    )
    return normalize_replies([{**row, "author": author}])[0]


# --- Blocks ---

def get_block_by_slug(db: Client, slug: str) -> Optional[Block]:
    row = _first(db.table("blocks").select("*").eq("slug", slug).limit(1).execute().data)
    return Block(**row) if row else None


def list_blocks(db: Client) -> List[Block]:
    res = db.table("blocks").select("*").order("name").execute()
    return [Block(**row) for row in res.data or []]


def set_block_need_score(db: Client, block_id: str, need_score: int) -> None:
    db.table("blocks").update({"need_score": need_score}).eq("id", block_id).execute()


def fetch_map_reports(db: Client) -> List[FeedReport]:
    res = (
        db.table("reports")
        .select(f"*, {USER_EMBED}, {BLOCK_EMBED}, {UPVOTES_EMBED}")
        .order("created_at", desc=True)
        .execute()
    )
    return normalize_feed_reports(res.data)


# --- Users & leaderboard ---

def get_user(db: Client, user_id: str) -> Optional[UserProfile]:
    row = _first(db.table("users").select("*").eq("id", user_id).limit(1).execute().data)
    return UserProfile(**row) if row else None


def top_blocks(db: Client, limit: int) -> List[Block]:
    res = (
        db.table("blocks")
        .select("id, name, slug, need_score")
        .order("need_score", desc=True)
        .limit(limit)
        .execute()
    )
    return [Block(**row) for row in res.data or []]


def top_contributors(db: Client, limit: int) -> List[Dict[str, Any]]:
    res = (
        db.table("users")
        .select("id, display_name, avatar_url, contribution_score")
        .order("contribution_score", desc=True)
        .limit(limit)
        .execute()
    )
    contributors = []
    for user in res.data or []:
        reports_count = (
            db.table("reports").select("*", count="exact", head=True).eq("created_by", user["id"]).execute().count
        )
        report_ids = [
            r["id"] for r in db.table("reports").select("id").eq("created_by", user["id"]).order("id").execute().data or []
        ]
        upvotes_received = 0
        if report_ids:
            upvotes_received = (
                db.table("upvotes").select("*", count="exact", head=True).in_("report_id", report_ids).execute().count
            )
        contributors.append({
            **user,
            "reports_count": reports_count or 0,
            "upvotes_received": upvotes_received or 0,
        })
    return contributors


def admin_overview(db: Client) -> Dict[str, List[Dict[str, Any]]]:
    overview = {}
    for key, table in (
        ("profiles", "public_profiles"),
        ("blocks", "blocks"),
        ("reports", "reports"),
        ("upvotes", "upvotes"),
    ):
        overview[key] = db.table(table).select("*").order("created_at", desc=True).execute().data or []
    return overview
