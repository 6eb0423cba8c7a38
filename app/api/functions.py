"""
The two photo-classification functions. Both always answer HTTP 200; callers
check `success` and fall back to manual input when it is false. That includes
malformed request bodies, so the payloads are validated here instead of by
FastAPI.
"""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ValidationError
from supabase import Client

from app.api.deps import get_vision_client
from app.core.database import get_db
from app.schemas.schemas import EnrichReportRequest, SuggestFieldsRequest
from app.services.vision import VisionClient, enrich_report, soft_failure, suggest_report_fields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["Functions"])

P = TypeVar("P", bound=BaseModel)


async def read_payload(request: Request, schema: Type[P]) -> Optional[P]:
    """Parse the JSON body into `schema`, or None when it is not usable."""
    try:
        body: Any = await request.json()
    except ValueError as e:
        logger.warning(f"Unreadable body on {request.url.path}: {e}")
        return None
    try:
        return schema.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Invalid body on {request.url.path}: {e.errors()}")
        return None


@router.post("/suggest-report-fields")
async def suggest_fields(request: Request, vision: VisionClient = Depends(get_vision_client)) -> Dict[str, Any]:
    payload = await read_payload(request, SuggestFieldsRequest)
    if payload is None:
        return soft_failure("Invalid request body")
    return await suggest_report_fields(vision, payload.imageData)


@router.post("/enrich-report")
async def enrich(
    request: Request,
    db: Client = Depends(get_db),
    vision: VisionClient = Depends(get_vision_client),
) -> Dict[str, Any]:
    payload = await read_payload(request, EnrichReportRequest)
    if payload is None:
        return soft_failure("Invalid request body")
    return await enrich_report(db, vision, payload.reportId)
