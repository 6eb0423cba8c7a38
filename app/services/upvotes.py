"""
Upvote toggle for a (user, report) pair.

Adding is optimistic: the local upvote record is appended before the insert
and taken back out if the insert fails. Removing is not: the delete runs first
and local state only changes once it succeeded. A pair with a request already
in flight is refused so a double click cannot issue two inserts; the
backend's unique constraint on (report_id, user_id) stays the final word.
"""

import logging
from dataclasses import dataclass
from typing import Set, Tuple

from starlette.concurrency import run_in_threadpool
from supabase import Client

from app.core.database import is_unique_violation
from app.models.models import FeedReport, Upvote
from app.services import reports as repo
from app.services.auth import SessionContext
from app.services.feed import has_upvoted

logger = logging.getLogger(__name__)

ALREADY_UPVOTED = "You've already upvoted this report"


class SignInRequired(PermissionError):
    pass


class UpvoteInProgress(RuntimeError):
    pass


class UpvoteFailed(RuntimeError):
    pass


@dataclass
class UpvoteOutcome:
    report_id: str
    upvoted: bool
    upvote_count: int
    message: str
    notice: bool = False

    def as_dict(self) -> dict:
        return {
            "report_id": self.report_id,
            "upvoted": self.upvoted,
            "upvote_count": self.upvote_count,
            "message": self.message,
            "notice": self.notice,
        }


class UpvoteToggle:
    def __init__(self, allow_removal: bool = True):
        self.allow_removal = allow_removal
        self._in_flight: Set[Tuple[str, str]] = set()

    def is_in_flight(self, user_id: str, report_id: str) -> bool:
        return (user_id, report_id) in self._in_flight

    async def toggle(self, db: Client, session: SessionContext, report_id: str) -> UpvoteOutcome:
        if not session.is_authenticated:
            raise SignInRequired("Please sign in to upvote")

        key = (session.user_id, report_id)
        if key in self._in_flight:
            raise UpvoteInProgress("Upvote already in progress")

        self._in_flight.add(key)
        try:
            try:
                report = await run_in_threadpool(repo.get_report, db, report_id)
            except Exception as e:
                logger.error(f"Could not load report {report_id} for upvote: {e}")
                raise UpvoteFailed("Failed to load report")
            if report is None:
                raise LookupError("Report not found")
            if has_upvoted(report, session.user_id):
                return await self._remove(db, session, report)
            return await self._add(db, session, report)
        finally:
            self._in_flight.discard(key)

    async def _add(self, db: Client, session: SessionContext, report: FeedReport) -> UpvoteOutcome:
        local = Upvote(user_id=session.user_id, report_id=report.id)
        report.upvotes.append(local)
        try:
            await run_in_threadpool(repo.insert_upvote, db, report.id, session.user_id)
        except Exception as e:
            if is_unique_violation(e):
                # The row exists server-side, so the local record stays
                logger.info("Duplicate upvote rejected for report %s", report.id)
                return UpvoteOutcome(report.id, True, len(report.upvotes), ALREADY_UPVOTED, notice=True)
            report.upvotes.remove(local)
            logger.error(f"Upvote insert failed for report {report.id}: {e}")
            raise UpvoteFailed(f"Failed to upvote: {e}")
        return UpvoteOutcome(report.id, True, len(report.upvotes), "Upvote added!")

    async def _remove(self, db: Client, session: SessionContext, report: FeedReport) -> UpvoteOutcome:
        if not self.allow_removal:
            return UpvoteOutcome(report.id, True, len(report.upvotes), ALREADY_UPVOTED, notice=True)
        try:
            await run_in_threadpool(repo.delete_upvote, db, report.id, session.user_id)
        except Exception as e:
            logger.error(f"Upvote delete failed for report {report.id}: {e}")
            raise UpvoteFailed(f"Failed to remove upvote: {e}")
        report.upvotes = [u for u in report.upvotes if u.user_id != session.user_id]
        return UpvoteOutcome(report.id, False, len(report.upvotes), "Upvote removed")
