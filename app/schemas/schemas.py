from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from app.models.models import BlockSummary


class OTPRequest(BaseModel):
    email: EmailStr

class VerifyOTPRequest(BaseModel):
    email: EmailStr
    otp: str

class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: Optional[str] = None
    email: str


class ReportCreatedResponse(BaseModel):
    id: str
    status: str
    photo_url: str
    message: str


class ReplyRequest(BaseModel):
    body: str = Field(..., max_length=2000)

class ResolveRequest(BaseModel):
    resolved_note: Optional[str] = Field(None, max_length=2000)


class ActionResponse(BaseModel):
    message: str
    notice: bool = False


class SuggestFieldsRequest(BaseModel):
    imageData: Optional[str] = None

class EnrichReportRequest(BaseModel):
    reportId: Optional[str] = None


class MapReport(BaseModel):
    id: str
    lat: float
    lng: float
    type: str
    description: Optional[str] = None
    status: str
    block: Optional[BlockSummary] = None
    upvote_count: int


class ProfileReport(BaseModel):
    id: str
    type: str
    description: Optional[str] = None
    status: str
    created_at: Any
    photo_url: Optional[str] = None
    block: Optional[BlockSummary] = None
    upvote_count: int
    verification_count: int
    verified_badge: Optional[str] = None


class Contributor(BaseModel):
    id: str
    display_name: str
    avatar_url: Optional[str] = None
    contribution_score: Optional[int] = 0
    reports_count: int = 0
    upvotes_received: int = 0


class LeaderboardBlock(BaseModel):
    id: str
    name: str
    slug: str
    need_score: int
    need_level: Dict[str, str]


class Leaderboard(BaseModel):
    blocks: List[LeaderboardBlock]
    contributors: List[Contributor]
