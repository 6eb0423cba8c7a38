"""
Block need score and need level.

The score is a presentation heuristic: five capped sub-scores summed and
clamped to 0..100. Weights and saturation points live in NeedScorePolicy so
they can be tuned from settings without touching the formula.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from app.core.config import settings
from app.models.models import Report, ReportStatus
from app.services.stats import MS_PER_HOUR, resolution_durations_ms


@dataclass(frozen=True)
class NeedScorePolicy:
    volume_weight: float = 30
    volume_saturation: float = 15
    open_weight: float = 25
    upvote_weight: float = 20
    upvote_saturation: float = 5
    backlog_weight: float = 15
    speed_weight: float = 10
    speed_saturation_hours: float = 72
    empty_score: int = 10

    @classmethod
    def from_settings(cls) -> "NeedScorePolicy":
        return cls(
            volume_weight=settings.NEED_VOLUME_WEIGHT,
            volume_saturation=settings.NEED_VOLUME_SATURATION,
            open_weight=settings.NEED_OPEN_WEIGHT,
            upvote_weight=settings.NEED_UPVOTE_WEIGHT,
            upvote_saturation=settings.NEED_UPVOTE_SATURATION,
            backlog_weight=settings.NEED_BACKLOG_WEIGHT,
            speed_weight=settings.NEED_SPEED_WEIGHT,
            speed_saturation_hours=settings.NEED_SPEED_SATURATION_HOURS,
            empty_score=settings.NEED_EMPTY_SCORE,
        )


def calculate_need_score(reports: Iterable[Report], policy: Optional[NeedScorePolicy] = None) -> int:
    policy = policy or NeedScorePolicy()
    reports = list(reports)
    total = len(reports)
    if total == 0:
        return policy.empty_score

    open_count = sum(1 for r in reports if r.status == ReportStatus.open.value)
    resolved_count = sum(1 for r in reports if r.status == ReportStatus.resolved.value)
    upvote_count = sum(len(getattr(r, "upvotes", None) or []) for r in reports)

    durations = resolution_durations_ms(reports)
    if durations:
        avg_resolution_hours = sum(durations) / len(durations) / MS_PER_HOUR
    else:
        # Nothing resolved yet: assume mid-scale speed
        avg_resolution_hours = policy.speed_saturation_hours

    volume_score = min(policy.volume_weight, total / policy.volume_saturation * policy.volume_weight)
    open_score = min(policy.open_weight, open_count / total * policy.open_weight)
    upvote_score = min(policy.upvote_weight, (upvote_count / total) / policy.upvote_saturation * policy.upvote_weight)
    backlog_score = min(policy.backlog_weight, (1 - resolved_count / total) * policy.backlog_weight)
    speed_score = min(policy.speed_weight, avg_resolution_hours / policy.speed_saturation_hours * policy.speed_weight)

    # Round half up, not half to even
    score = math.floor(volume_score + open_score + upvote_score + backlog_score + speed_score + 0.5)
    return max(0, min(100, score))


@dataclass(frozen=True)
class NeedLevel:
    label: str
    badge: str

    def as_dict(self) -> dict:
        return {"label": self.label, "badge": self.badge}


CRITICAL = NeedLevel("Critical attention needed", "destructive")
RISING = NeedLevel("Rising concern", "default")
HEALTHY = NeedLevel("Healthy momentum", "secondary")


def get_need_level(score: float) -> NeedLevel:
    if score >= 70:
        return CRITICAL
    if score >= 40:
        return RISING
    return HEALTHY
