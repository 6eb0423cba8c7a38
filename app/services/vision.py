"""
Photo classification through an OpenAI-compatible vision chat endpoint.

Both entry points return soft results: {"success": False, "error": ...}
instead of raising, so report submission never depends on the model.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx
from starlette.concurrency import run_in_threadpool
from supabase import Client

from app.core.config import settings
from app.models.models import AICategory, ReportType, Severity
from app.services import reports as repo

logger = logging.getLogger(__name__)

SUGGEST_PROMPT = """You are a vision model helping with civic infrastructure. The image shows a public issue on a city street or public space. Look at the image and classify the issue for a civic reporting app. Respond with ONLY valid JSON and no extra text.

The JSON format must be:
{
  "category": "pothole|broken_light|trash|flooding|other",
  "short_description": "<one sentence, plain English>"
}"""

ENRICH_PROMPT = """You are a vision model helping a city maintenance team triage civic issue reports. Look at the photo and classify the issue. Respond with ONLY valid JSON and no extra text.

The JSON format must be:
{
  "category": "pothole|broken_light|trash|flooding|other",
  "severity": "low|medium|high",
  "short_description": "<one sentence, plain English>"
}"""


class VisionError(Exception):
    pass


def soft_failure(error: str, **extra: Any) -> Dict[str, Any]:
    return {"success": False, "error": error, **extra}


def strip_code_fences(content: str) -> str:
    cleaned = content.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def parse_classification(content: str) -> Dict[str, Any]:
    """Parse the model's JSON reply. Raises ValueError when it is not usable."""
    try:
        data = json.loads(strip_code_fences(content))
    except json.JSONDecodeError as e:
        raise ValueError(f"Model reply is not JSON: {e}")
    if not isinstance(data, dict) or not data.get("category") or not data.get("short_description"):
        raise ValueError("Invalid AI response structure")

    category = str(data["category"]).strip().lower()
    if category not in AICategory.__members__:
        category = AICategory.other.value
    result = {"category": category, "short_description": str(data["short_description"]).strip()}

    severity = str(data.get("severity") or "").strip().lower()
    if severity in Severity.__members__:
        result["severity"] = severity
    return result


class VisionClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.api_url = api_url or settings.OPENAI_API_URL
        self.model = model or settings.VISION_MODEL
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    async def classify(self, prompt: str, image_url: str, max_tokens: int = 200) -> str:
        """Send one image plus instructions, return the raw text of the reply."""
        if not self.is_available:
            raise VisionError("OpenAI API key not configured")

        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
            "max_tokens": max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.api_url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise VisionError(f"AI provider unreachable: {e}")

        if response.status_code != 200:
            logger.error("Vision API error: %s %s", response.status_code, response.text)
            raise VisionError(f"AI provider error: {response.status_code}")

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise VisionError("Malformed AI provider response")


async def suggest_report_fields(vision: VisionClient, image_data: Optional[str]) -> Dict[str, Any]:
    if not image_data:
        return soft_failure("imageData is required")

    logger.info("Analyzing image for report field suggestions")
    try:
        content = await vision.classify(SUGGEST_PROMPT, image_data)
    except VisionError as e:
        return soft_failure(str(e))

    try:
        suggestion = parse_classification(content)
    except ValueError as e:
        logger.error(f"Failed to parse AI response: {e}. Raw content: {content}")
        return soft_failure("Failed to parse AI response", raw_response=content)

    return {
        "success": True,
        "category": suggestion["category"],
        "short_description": suggestion["short_description"],
    }


async def enrich_report(db: Client, vision: VisionClient, report_id: Optional[str]) -> Dict[str, Any]:
    """Classify a stored report's photo and attach the result as ai_metadata."""
    if not report_id:
        return soft_failure("reportId is required")

    try:
        report = await run_in_threadpool(repo.get_report_row, db, report_id)
    except Exception as e:
        logger.error(f"Error fetching report {report_id}: {e}")
        return soft_failure("Failed to fetch report")
    if not report:
        return soft_failure("Report not found")
    if not report.get("photo_url"):
        return soft_failure("Report has no photo")

    logger.info("Enriching report: %s", report_id)
    try:
        content = await vision.classify(ENRICH_PROMPT, report["photo_url"], max_tokens=300)
        metadata = parse_classification(content)
    except VisionError as e:
        return soft_failure(str(e))
    except ValueError as e:
        logger.error(f"Failed to parse AI response for report {report_id}: {e}")
        return soft_failure("Failed to parse AI response")

    changes: Dict[str, Any] = {"ai_metadata": metadata}
    current_type = report.get("type")
    # Never overwrite a specific type the reporter picked
    if (not current_type or current_type == ReportType.other.value) and metadata["category"] != ReportType.other.value:
        changes["type"] = metadata["category"]

    try:
        await run_in_threadpool(repo.update_report, db, report_id, changes)
    except Exception as e:
        logger.error(f"Error updating report {report_id}: {e}")
        return soft_failure("Failed to store AI metadata")

    logger.info("Report enriched successfully: %s", report_id)
    return {"success": True, "ai_metadata": metadata, "type": changes.get("type", current_type)}


async def run_enrichment(db: Client, vision: VisionClient, report_id: str) -> None:
    """Background entry point: the report already exists, so failures are only logged."""
    try:
        result = await enrich_report(db, vision, report_id)
    except Exception:
        logger.exception("Enrichment crashed for report %s", report_id)
        return
    if not result.get("success"):
        logger.warning("Enrichment skipped for report %s: %s", report_id, result.get("error"))
