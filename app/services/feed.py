from enum import Enum
from typing import List, Optional, Sequence

from app.models.models import FeedReport


class FeedSort(str, Enum):
    recent = "recent"
    top = "top"


def filter_reports(
    reports: Sequence[FeedReport],
    report_type: Optional[str] = None,
    status: Optional[str] = None,
    block_slug: Optional[str] = None,
) -> List[FeedReport]:
    result = list(reports)
    if report_type:
        result = [r for r in result if r.type == report_type]
    if status:
        result = [r for r in result if r.status == status]
    if block_slug:
        result = [r for r in result if r.block is not None and r.block.slug == block_slug]
    return result


def sort_reports(reports: Sequence[FeedReport], sort: FeedSort = FeedSort.recent) -> List[FeedReport]:
    by_recent = sorted(reports, key=lambda r: r.created_at, reverse=True)
    if sort == FeedSort.top:
        # stable sort keeps newest first among equal vote counts
        return sorted(by_recent, key=lambda r: len(r.upvotes), reverse=True)
    return by_recent


def has_upvoted(report: FeedReport, user_id: Optional[str]) -> bool:
    return user_id is not None and any(u.user_id == user_id for u in report.upvotes)
