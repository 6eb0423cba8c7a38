"""Row shapes of the Supabase tables the app reads and writes."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReportStatus(str, Enum):
    open = "open"
    resolved = "resolved"
    civic_bodies_notified = "civic_bodies_notified"


class ReportType(str, Enum):
    pothole = "pothole"
    broken_light = "broken_light"
    trash = "trash"
    flooding = "flooding"
    other = "other"
    animals = "animals"
    consumer_employee_protection = "consumer_employee_protection"
    covid_19_assistance = "covid_19_assistance"
    disabilities = "disabilities"
    garbage_recycling = "garbage_recycling"
    health = "health"
    home_buildings = "home_buildings"
    parks_trees_environment = "parks_trees_environment"
    public_safety = "public_safety"
    seniors = "seniors"
    transportation_streets = "transportation_streets"


class AICategory(str, Enum):
    """Categories the vision model is allowed to suggest."""
    pothole = "pothole"
    broken_light = "broken_light"
    trash = "trash"
    flooding = "flooding"
    other = "other"


class Severity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class Row(BaseModel):
    # Supabase rows carry extra columns we do not model
    model_config = ConfigDict(extra="allow")


class UserSummary(Row):
    display_name: str
    avatar_url: Optional[str] = None


class BlockSummary(Row):
    name: str
    slug: str


class UserProfile(Row):
    id: str
    display_name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    contribution_score: Optional[int] = 0
    created_at: Optional[datetime] = None


class Block(Row):
    id: str
    name: str
    slug: str
    need_score: int = 0
    created_at: Optional[datetime] = None


class Upvote(Row):
    user_id: str
    report_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ReportVerification(Row):
    user_id: str
    report_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ReportReply(Row):
    id: str
    body: str
    created_at: datetime
    author_id: str
    report_id: Optional[str] = None
    author: UserSummary


class Report(Row):
    id: str
    type: str
    description: Optional[str] = None
    status: str = ReportStatus.open.value
    lat: float
    lng: float
    photo_url: Optional[str] = None
    created_by: str
    block_id: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_note: Optional[str] = None
    ai_metadata: Optional[Dict[str, Any]] = None


class FeedReport(Report):
    user: UserSummary
    block: Optional[BlockSummary] = None
    upvotes: List[Upvote] = Field(default_factory=list)
    verifications: List[ReportVerification] = Field(default_factory=list)


class BlockReport(FeedReport):
    replies: List[ReportReply] = Field(default_factory=list)
