import logging

from fastapi import APIRouter, Depends
from supabase import Client

from app.api.deps import require_admin
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import NotFoundError, backend_call
from app.models.models import ReportStatus
from app.schemas.schemas import ResolveRequest
from app.services import reports as repo
from app.services.auth import SessionContext
from app.services.need_score import NeedScorePolicy, calculate_need_score, get_need_level

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/overview")
async def overview(db: Client = Depends(get_db), session: SessionContext = Depends(require_admin)):
    data = await backend_call("load admin overview", repo.admin_overview, db)
    return {**data, "counts": {key: len(rows) for key, rows in data.items()}}


@router.post("/reports/{report_id}/resolve")
async def resolve(
    report_id: str,
    payload: ResolveRequest,
    db: Client = Depends(get_db),
    session: SessionContext = Depends(require_admin),
):
    row = await backend_call("resolve report", repo.resolve_report, db, report_id, payload.resolved_note)
    if not row:
        raise NotFoundError("Report", home="/admin")
    logger.info("Report %s resolved by %s", report_id, session.user_id)
    return {"message": "Report marked as resolved", "report": row}


@router.post("/reports/{report_id}/notify")
async def notify_civic_bodies(report_id: str, db: Client = Depends(get_db), session: SessionContext = Depends(require_admin)):
    row = await backend_call(
        "update report", repo.update_report, db, report_id, {"status": ReportStatus.civic_bodies_notified.value}
    )
    if not row:
        raise NotFoundError("Report", home="/admin")
    logger.info("Civic bodies notified for report %s by %s", report_id, session.user_id)
    return {"message": "Civic bodies notified", "report": row}


@router.post("/blocks/{slug}/need-score")
async def recompute_need_score(slug: str, db: Client = Depends(get_db), session: SessionContext = Depends(require_admin)):
    """Store the computed heuristic as the block's need_score so the leaderboard can sort on it."""
    block = await backend_call("load block", repo.get_block_by_slug, db, slug)
    if not block:
        raise NotFoundError("Block", home="/admin")

    reports = await backend_call("load block reports", repo.fetch_block_reports, db, block.id)
    score = calculate_need_score(reports, NeedScorePolicy.from_settings())
    await backend_call("update block", repo.set_block_need_score, db, block.id, score)

    logger.info("Need score for %s: %s -> %s", slug, block.need_score, score)
    return {
        "message": "Need score updated",
        "slug": slug,
        "previous_need_score": block.need_score,
        "need_score": score,
        "need_level": get_need_level(score).as_dict(),
        "reports_considered": len(reports),
        "recent_days": settings.RECENT_DAYS,
    }
