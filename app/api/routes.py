import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile, status
from starlette.concurrency import run_in_threadpool
from supabase import Client

from disposable_email_domains import blocklist

from app.api.deps import ensure_signed_in, get_session, get_upvote_toggle, get_vision_client
from app.core.config import settings
from app.core.database import get_db, is_unique_violation
from app.core.exceptions import NotFoundError, backend_call
from app.models.models import FeedReport, ReportStatus, ReportType
from app.schemas.schemas import (
    ActionResponse,
    AuthResponse,
    Leaderboard,
    MapReport,
    OTPRequest,
    ProfileReport,
    ReplyRequest,
    ReportCreatedResponse,
    VerifyOTPRequest,
)
from app.services import reports as repo
from app.services.auth import SessionContext, send_otp_email, verify_otp_code
from app.services.feed import FeedSort, filter_reports, has_upvoted, sort_reports
from app.services.media import resolve_content_type, upload_image_to_storage
from app.services.need_score import NeedScorePolicy, calculate_need_score, get_need_level
from app.services.neighborhoods import CHICAGO_NEIGHBORHOODS, get_neighborhood_by_slug
from app.services.normalize import get_avatar_url
from app.services.stats import calculate_block_stats, total_upvotes
from app.services.upvotes import SignInRequired, UpvoteFailed, UpvoteInProgress, UpvoteToggle
from app.services.vision import VisionClient, run_enrichment

router = APIRouter()


def verify_not_burner(email: str):
    """Fails fast with a 422 if the email domain is a known burner."""
    domain = email.split('@')[-1].lower()
    if domain in blocklist:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Disposable/temporary email addresses are strictly prohibited."
        )


def report_card(report: FeedReport, session: SessionContext) -> Dict[str, Any]:
    card = report.model_dump(mode="json")
    card["upvote_count"] = len(report.upvotes)
    card["has_upvoted"] = has_upvoted(report, session.user_id)
    card["user"]["avatar_url"] = get_avatar_url(report.user.display_name, report.user.avatar_url)
    return card


def verified_badge(report: FeedReport) -> Optional[str]:
    count = len(report.verifications)
    if report.status == ReportStatus.resolved.value and count >= settings.VERIFIED_THRESHOLD:
        return f"Verified by {count} residents"
    return None


# --- Auth (delegated to Supabase Auth) ---

@router.post("/auth/send-otp/")
async def request_otp(payload: OTPRequest, db: Client = Depends(get_db)):
    """Step 1: Validate email, block burners, and send the OTP."""
    verify_not_burner(payload.email)

    try:
        await run_in_threadpool(send_otp_email, db, payload.email)
        return {"message": "OTP sent successfully. Please check your email."}
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/auth/verify-otp/", response_model=AuthResponse)
async def verify_otp(payload: VerifyOTPRequest, db: Client = Depends(get_db)):
    """Step 2: Verify the 6-digit code and hand back the Supabase session token."""
    verify_not_burner(payload.email)

    try:
        access_token, user_id = await run_in_threadpool(verify_otp_code, db, payload.email, payload.otp)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    return {"access_token": access_token, "token_type": "bearer", "user_id": user_id, "email": payload.email}


# --- Feed & reports ---

@router.get("/reports")
async def list_reports(
    report_type: Optional[str] = Query(None, alias="type"),
    report_status: Optional[str] = Query(None, alias="status"),
    block: Optional[str] = Query(None),
    sort: FeedSort = Query(FeedSort.recent),
    db: Client = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    reports = await backend_call("load reports", repo.fetch_feed, db)
    reports = sort_reports(filter_reports(reports, report_type, report_status, block), sort)
    return {"reports": [report_card(r, session) for r in reports], "count": len(reports)}


@router.post("/reports", response_model=ReportCreatedResponse, status_code=status.HTTP_201_CREATED)
async def submit_report(
    background_tasks: BackgroundTasks,
    report_type: Optional[str] = Form(None, alias="type"),
    description: Optional[str] = Form(None),
    lat: float = Form(..., ge=-90.0, le=90.0),
    lng: float = Form(..., ge=-180.0, le=180.0),
    block: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Client = Depends(get_db),
    session: SessionContext = Depends(get_session),
    vision: VisionClient = Depends(get_vision_client),
):
    user_id = ensure_signed_in(session, "report an issue")

    # Everything below up to the block lookup is validated before touching the backend
    if image is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please add a photo of the issue")
    if not report_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please choose an issue type")
    if report_type not in ReportType.__members__:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Unknown issue type: {report_type}")

    logging.info("Received photo content-type: %s", image.content_type)
    file_bytes = await image.read()
    if not file_bytes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please add a photo of the issue")

    content_type = resolve_content_type(image.content_type, file_bytes)
    if not content_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported image type: {image.content_type}")
    if len(file_bytes) > settings.MAX_UPLOAD_SIZE_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Image too large")

    block_id = None
    if block:
        found = await backend_call("look up block", repo.get_block_by_slug, db, block)
        if not found:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Unknown block: {block}")
        block_id = found.id

    # Photo goes up first so the report is created with its public URL
    try:
        photo_url = await run_in_threadpool(upload_image_to_storage, db, file_bytes, image.filename, content_type, user_id)
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=str(e))

    row = await backend_call("create report", repo.create_report, db, {
        "type": report_type,
        "description": (description or "").strip() or None,
        "status": ReportStatus.open.value,
        "lat": lat,
        "lng": lng,
        "photo_url": photo_url,
        "created_by": user_id,
        "block_id": block_id,
    })

    # Fire-and-forget: runs after the response is sent and can never undo the report
    background_tasks.add_task(run_enrichment, db, vision, row["id"])

    return {
        "id": row["id"],
        "status": row.get("status", ReportStatus.open.value),
        "photo_url": photo_url,
        "message": "Report submitted! Thanks for looking out for your block.",
    }


@router.get("/reports/{report_id}")
async def get_report(report_id: str, db: Client = Depends(get_db), session: SessionContext = Depends(get_session)):
    report = await backend_call("load report", repo.get_report, db, report_id)
    if not report:
        raise NotFoundError("Report")
    card = report_card(report, session)
    card["verified_badge"] = verified_badge(report)
    return card


@router.post("/reports/{report_id}/upvote")
async def toggle_upvote(
    report_id: str,
    db: Client = Depends(get_db),
    session: SessionContext = Depends(get_session),
    toggle: UpvoteToggle = Depends(get_upvote_toggle),
):
    try:
        outcome = await toggle.toggle(db, session, report_id)
    except SignInRequired as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except UpvoteInProgress as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except LookupError:
        raise NotFoundError("Report")
    except UpvoteFailed as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return outcome.as_dict()


@router.post("/reports/{report_id}/verify", response_model=ActionResponse)
async def verify_fix(report_id: str, db: Client = Depends(get_db), session: SessionContext = Depends(get_session)):
    user_id = ensure_signed_in(session, "verify a fix")

    report = await backend_call("load report", repo.get_report_row, db, report_id)
    if not report:
        raise NotFoundError("Report")
    if report.get("status") != ReportStatus.resolved.value:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only resolved reports can be verified")

    try:
        await run_in_threadpool(repo.insert_verification, db, report_id, user_id)
    except Exception as e:
        if is_unique_violation(e):
            return {"message": "You've already verified this fix", "notice": True}
        logging.exception("Verification insert failed")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to verify fix")

    return {"message": "Thanks for confirming the fix!"}


@router.get("/reports/{report_id}/replies")
async def list_replies(report_id: str, db: Client = Depends(get_db)):
    replies = await backend_call("load replies", repo.fetch_replies, db, report_id)
    return {"replies": [r.model_dump(mode="json") for r in replies], "count": len(replies)}


@router.post("/reports/{report_id}/replies", status_code=status.HTTP_201_CREATED)
async def post_reply(
    report_id: str,
    payload: ReplyRequest,
    db: Client = Depends(get_db),
    session: SessionContext = Depends(get_session),
):
    user_id = ensure_signed_in(session, "reply")
    body = payload.body.strip()
    if not body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reply cannot be empty")

    if not await backend_call("load report", repo.get_report_row, db, report_id):
        raise NotFoundError("Report")

    reply = await backend_call("post reply", repo.insert_reply, db, report_id, user_id, body)
    return {"message": "Reply posted", "reply": reply.model_dump(mode="json")}


# --- Blocks, map & leaderboard ---

@router.get("/blocks/{slug}")
async def block_detail(slug: str, db: Client = Depends(get_db), session: SessionContext = Depends(get_session)):
    block = await backend_call("load block", repo.get_block_by_slug, db, slug)
    if not block:
        raise NotFoundError("Block")

    reports = await backend_call("load block reports", repo.fetch_block_reports, db, block.id)
    stats = calculate_block_stats(reports, recent_days=settings.RECENT_DAYS)
    computed = calculate_need_score(reports, NeedScorePolicy.from_settings())

    return {
        "block": block.model_dump(mode="json"),
        "reports": [report_card(r, session) for r in reports],
        "stats": {**stats.as_dict(), "totalUpvotes": total_upvotes(reports)},
        "need_score": block.need_score,
        "computed_need_score": computed,
        "need_level": get_need_level(computed).as_dict(),
    }


@router.get("/map")
async def map_view(db: Client = Depends(get_db)):
    blocks = await backend_call("load blocks", repo.list_blocks, db)
    reports = await backend_call("load reports", repo.fetch_map_reports, db)

    block_pins = []
    for block in blocks:
        pin = block.model_dump(mode="json")
        hood = get_neighborhood_by_slug(block.slug)
        pin["center"] = {"lat": hood.lat, "lng": hood.lng} if hood else None
        pin["bounds"] = hood.bounds() if hood else None
        pin["need_level"] = get_need_level(block.need_score).as_dict()
        block_pins.append(pin)

    markers = [
        MapReport(
            id=r.id, lat=r.lat, lng=r.lng, type=r.type, description=r.description,
            status=r.status, block=r.block, upvote_count=len(r.upvotes),
        ).model_dump(mode="json")
        for r in reports
    ]
    return {"blocks": block_pins, "reports": markers}


@router.get("/neighborhoods")
async def list_neighborhoods():
    return {"neighborhoods": [n.as_dict() for n in CHICAGO_NEIGHBORHOODS]}


@router.get("/leaderboard", response_model=Leaderboard)
async def leaderboard(db: Client = Depends(get_db)):
    blocks = await backend_call("load block leaderboard", repo.top_blocks, db, settings.LEADERBOARD_LIMIT)
    contributors = await backend_call("load contributors", repo.top_contributors, db, settings.LEADERBOARD_LIMIT)
    return {
        "blocks": [
            {**b.model_dump(include={"id", "name", "slug", "need_score"}), "need_level": get_need_level(b.need_score).as_dict()}
            for b in blocks
        ],
        "contributors": [
            {**c, "avatar_url": get_avatar_url(c.get("display_name"), c.get("avatar_url"))} for c in contributors
        ],
    }


# --- Profiles ---

async def profile_view(db: Client, user_id: str) -> Dict[str, Any]:
    user = await backend_call("load profile", repo.get_user, db, user_id)
    if not user:
        raise NotFoundError("User")
    reports = await backend_call("load your reports", repo.fetch_user_reports, db, user_id)

    profile = user.model_dump(mode="json", exclude={"email"})
    profile["avatar_url"] = get_avatar_url(user.display_name, user.avatar_url)
    upvotes_received = total_upvotes(reports)
    return {
        "user": profile,
        "reports": [
            ProfileReport(
                id=r.id, type=r.type, description=r.description, status=r.status,
                created_at=r.created_at, photo_url=r.photo_url, block=r.block,
                upvote_count=len(r.upvotes), verification_count=len(r.verifications),
                verified_badge=verified_badge(r),
            ).model_dump(mode="json")
            for r in reports
        ],
        "totals": {
            "reports": len(reports),
            "resolved": sum(1 for r in reports if r.status == ReportStatus.resolved.value),
            "upvotes_received": upvotes_received,
            # A score of 0 means it was never computed server-side
            "contribution_score": user.contribution_score or 5 * len(reports) + upvotes_received,
        },
    }


@router.get("/profile")
async def my_profile(db: Client = Depends(get_db), session: SessionContext = Depends(get_session)):
    user_id = ensure_signed_in(session, "view your profile")
    return await profile_view(db, user_id)


@router.get("/users/{user_id}")
async def user_profile(user_id: str, db: Client = Depends(get_db)):
    return await profile_view(db, user_id)
