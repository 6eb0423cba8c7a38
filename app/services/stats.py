from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from app.models.models import Report, ReportStatus

MS_PER_HOUR = 1000 * 60 * 60


@dataclass
class BlockStats:
    open_issues: int
    resolved_issues: int
    mean_resolution_time: Optional[str]
    recent_reports: int

    def as_dict(self) -> dict:
        return {
            "openIssues": self.open_issues,
            "resolvedIssues": self.resolved_issues,
            "meanResolutionTime": self.mean_resolution_time,
            "recentReports": self.recent_reports,
        }


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def resolution_durations_ms(reports: Iterable[Report]) -> List[float]:
    """Resolution time of every resolved report, clamped at zero for skewed clocks."""
    durations = []
    for report in reports:
        if report.status != ReportStatus.resolved.value or not report.resolved_at:
            continue
        delta = _aware(report.resolved_at) - _aware(report.created_at)
        durations.append(max(0.0, delta.total_seconds() * 1000))
    return durations


def format_mean_time(ms: float) -> str:
    hours = ms / MS_PER_HOUR
    if hours >= 24:
        return f"{hours / 24:.1f} days"
    return f"{hours:.1f} hrs"


def calendar_days_between(later: datetime, earlier: datetime) -> int:
    return (_aware(later).astimezone(timezone.utc).date() - _aware(earlier).astimezone(timezone.utc).date()).days


def calculate_block_stats(reports: Iterable[Report], now: Optional[datetime] = None, recent_days: int = 30) -> BlockStats:
    reports = list(reports)
    now = now or datetime.now(timezone.utc)

    open_issues = sum(1 for r in reports if r.status == ReportStatus.open.value)
    durations = resolution_durations_ms(reports)

    mean_resolution_time = None
    if durations:
        mean_resolution_time = format_mean_time(sum(durations) / len(durations))

    recent_reports = sum(1 for r in reports if calendar_days_between(now, r.created_at) <= recent_days)

    return BlockStats(
        open_issues=open_issues,
        resolved_issues=len(durations),
        mean_resolution_time=mean_resolution_time,
        recent_reports=recent_reports,
    )


def total_upvotes(reports: Iterable[Report]) -> int:
    return sum(len(getattr(r, "upvotes", None) or []) for r in reports)
