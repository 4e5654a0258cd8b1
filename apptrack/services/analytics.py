"""Dashboard analytics over a user's applications."""

import calendar
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Optional

import numpy as np
from sqlalchemy.orm import Session

from ..db.models import Application, utcnow
from ..errors import ValidationFailed

logger = logging.getLogger(__name__)

INTERVIEW_STATUSES = {"Interviewing", "Offered", "Accepted"}
OFFER_STATUSES = {"Offered", "Accepted"}
RESPONDED_STATUSES = {"Interviewing", "Offered", "Rejected", "Accepted"}
TOP_N = 10
TREND_PERIODS = ("weekly", "monthly")
STABLE_SLOPE = 0.1
WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
REPORT_SECTIONS = ("overview", "trends", "distributions", "benchmarks", "insights", "recommendations")
DEFAULT_REPORT_SECTIONS = ("overview", "trends", "insights")
# Typical rates across job seekers, used for comparison only
BENCHMARKS = {"interview_rate": 15.0, "offer_rate": 5.0, "average_response_days": 14.0}


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


def _applied(app: Application) -> datetime:
    return app.applied_date or app.created_at


def _response_days(apps: list[Application]) -> list[float]:
    return [
        (a.response_date - a.applied_date).total_seconds() / 86400
        for a in apps
        if a.response_date and a.applied_date and a.response_date >= a.applied_date
    ]


def _counts(apps: list[Application]) -> dict:
    return {
        "applications": len(apps),
        "interviews": sum(1 for a in apps if a.status in INTERVIEW_STATUSES),
        "offers": sum(1 for a in apps if a.status in OFFER_STATUSES),
        "rejections": sum(1 for a in apps if a.status == "Rejected"),
    }


def filter_applications(
    apps: list[Application],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    statuses: Optional[list[str]] = None,
) -> list[Application]:
    """Date range on applied date (created_at when unset), inclusive."""
    result = []
    for app in apps:
        applied = _applied(app)
        if start and applied < start:
            continue
        if end and applied > end:
            continue
        if statuses and app.status not in statuses:
            continue
        result.append(app)
    return result


def overview(apps: list[Application]) -> dict:
    counts = _counts(apps)
    total = counts["applications"]
    days = _response_days(apps)
    return {
        "total_applications": total,
        "interview_count": counts["interviews"],
        "offer_count": counts["offers"],
        "rejection_count": counts["rejections"],
        "interview_rate": _rate(counts["interviews"], total),
        "offer_rate": _rate(counts["offers"], total),
        "rejection_rate": _rate(counts["rejections"], total),
        "response_rate": _rate(sum(1 for a in apps if a.status in RESPONDED_STATUSES), total),
        "average_response_days": round(float(np.mean(days)), 2) if days else 0.0,
    }


def status_distribution(apps: list[Application]) -> list[dict]:
    counter = Counter(a.status for a in apps)
    return [
        {"status": status, "count": count, "percentage": _rate(count, len(apps))}
        for status, count in counter.most_common()
    ]


def _grouped_performance(apps: list[Application], key: str) -> list[dict]:
    groups: dict[str, list[Application]] = defaultdict(list)
    for app in apps:
        value = getattr(app, key)
        if value:
            groups[value].append(app)
    rows = []
    for value, members in groups.items():
        counts = _counts(members)
        rows.append({
            key: value,
            **counts,
            "interview_rate": _rate(counts["interviews"], counts["applications"]),
            "offer_rate": _rate(counts["offers"], counts["applications"]),
        })
    rows.sort(key=lambda r: (-r["applications"], r[key].lower()))
    return rows[:TOP_N]


def company_performance(apps: list[Application]) -> list[dict]:
    return _grouped_performance(apps, "company")


def location_analysis(apps: list[Application]) -> list[dict]:
    return _grouped_performance(apps, "location")


def monthly_stats(apps: list[Application], now: Optional[datetime] = None, months: int = 12) -> list[dict]:
    """Counts for the last ``months`` calendar months, oldest first."""
    now = now or utcnow()
    buckets: dict[tuple[int, int], list[Application]] = defaultdict(list)
    for app in apps:
        applied = _applied(app)
        buckets[(applied.year, applied.month)].append(app)

    result = []
    year, month = now.year, now.month
    keys = []
    for _ in range(months):
        keys.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    for year, month in reversed(keys):
        counts = _counts(buckets.get((year, month), []))
        result.append({
            "month": f"{year}-{month:02d}",
            "label": f"{calendar.month_abbr[month]} {year}",
            "applications": counts["applications"],
            "interviews": counts["interviews"],
            "offers": counts["offers"],
        })
    return result


def weekly_activity(apps: list[Application]) -> list[dict]:
    counter = Counter(_applied(a).weekday() for a in apps)
    return [{"day": day, "applications": counter.get(i, 0)} for i, day in enumerate(WEEKDAYS)]


def insights(summary: dict) -> list[dict]:
    items = []
    total = summary["total_applications"]
    if total == 0:
        return [{
            "type": "info",
            "title": "No applications yet",
            "description": "Add applications to see analytics.",
        }]
    if summary["interview_rate"] >= 15:
        items.append({
            "type": "positive",
            "title": "Strong interview rate",
            "description": f"{summary['interview_rate']}% of your applications reached an interview.",
        })
    elif total >= 10 and summary["interview_rate"] < 10:
        items.append({
            "type": "warning",
            "title": "Low interview rate",
            "description": "Consider tailoring your resume and cover letter to each role.",
        })
    if summary["average_response_days"] > 21:
        items.append({
            "type": "info",
            "title": "Slow responses",
            "description": f"Companies take {summary['average_response_days']} days on average to respond.",
        })
    return items


def dashboard(
    session: Session,
    user_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    statuses: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> dict:
    apps = session.query(Application).filter(Application.user_id == user_id).all()
    apps = filter_applications(apps, start, end, statuses)
    summary = overview(apps)
    return {
        "overview": summary,
        "status_distribution": status_distribution(apps),
        "company_performance": company_performance(apps),
        "location_analysis": location_analysis(apps),
        "monthly_stats": monthly_stats(apps, now),
        "weekly_activity": weekly_activity(apps),
        "insights": insights(summary),
    }


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------


def _bucket_key(moment: datetime, period: str) -> str:
    if period == "weekly":
        week_start = (moment - timedelta(days=moment.weekday())).date()
        return week_start.isoformat()
    return f"{moment.year}-{moment.month:02d}"


def trend_direction(values: list[float]) -> dict:
    """Least-squares slope over bucket index and its direction."""
    if len(values) < 2:
        return {"direction": "insufficient_data", "slope": 0.0, "change": 0.0, "change_percent": 0.0}
    slope = float(np.polyfit(np.arange(len(values)), np.asarray(values, dtype=float), 1)[0])
    if abs(slope) < STABLE_SLOPE:
        direction = "stable"
    elif slope > 0:
        direction = "increasing"
    else:
        direction = "decreasing"
    change = values[-1] - values[0]
    return {
        "direction": direction,
        "slope": round(slope, 3),
        "change": round(change, 2),
        "change_percent": round(change / values[0] * 100, 2) if values[0] else 0.0,
    }


def trends(session: Session, user_id: str, period: str = "monthly") -> dict:
    if period not in TREND_PERIODS:
        raise ValidationFailed(f"period must be one of {', '.join(TREND_PERIODS)}")
    apps = session.query(Application).filter(Application.user_id == user_id).all()

    buckets: dict[str, list[Application]] = defaultdict(list)
    for app in apps:
        buckets[_bucket_key(_applied(app), period)].append(app)

    series = []
    for key in sorted(buckets):
        members = buckets[key]
        counts = _counts(members)
        responded = sum(1 for a in members if a.status in RESPONDED_STATUSES)
        series.append({
            "period": key,
            **counts,
            "responses": responded,
            "response_rate": _rate(responded, counts["applications"]),
        })

    return {
        "period": period,
        "series": series,
        "applications_trend": trend_direction([p["applications"] for p in series]),
        "response_rate_trend": trend_direction([p["response_rate"] for p in series]),
    }


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def benchmarks(summary: dict) -> dict:
    """User rates next to BENCHMARKS; lower is better for response days."""
    comparison = {}
    for key, typical in BENCHMARKS.items():
        value = summary[key]
        better = value < typical if key == "average_response_days" else value > typical
        comparison[key] = {"value": value, "benchmark": typical, "above_average": better}
    return comparison


def recommendations(apps: list[Application], summary: dict) -> list[dict]:
    if not apps:
        return [{
            "category": "General",
            "title": "Continue Tracking",
            "description": "Keep tracking your applications to build more comprehensive analytics.",
            "priority": "medium",
            "actions": [],
        }]
    items = []
    if summary["interview_rate"] < 10:
        items.append({
            "category": "Application Strategy",
            "title": "Improve Application Quality",
            "description": "Focus on tailoring your resume and cover letter for each position.",
            "priority": "high",
            "actions": [
                "Customize your resume for each job application",
                "Write targeted cover letters",
                "Research companies before applying",
            ],
        })
    if summary["average_response_days"] > 21:
        items.append({
            "category": "Follow-up Strategy",
            "title": "Implement Follow-up Strategy",
            "description": "Companies are taking longer to respond. Follow up strategically.",
            "priority": "medium",
            "actions": [
                "Send a polite follow-up email after two weeks",
                "Connect with hiring managers",
            ],
        })
    companies = {a.company.lower() for a in apps}
    if len(apps) > 10 and len(companies) < len(apps) * 0.7:
        items.append({
            "category": "Diversification",
            "title": "Diversify Your Applications",
            "description": "Many applications go to the same companies. Consider expanding your search.",
            "priority": "medium",
            "actions": ["Research new companies in your field", "Consider remote opportunities"],
        })
    return items


def build_report(
    session: Session,
    user_id: str,
    sections: Optional[list[str]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_charts: bool = False,
    now: Optional[datetime] = None,
) -> dict:
    """Selected analytics sections for export, in REPORT_SECTIONS order."""
    now = now or utcnow()
    sections = list(sections or DEFAULT_REPORT_SECTIONS)
    unknown = [s for s in sections if s not in REPORT_SECTIONS]
    if unknown:
        raise ValidationFailed(
            f"Unknown report sections: {', '.join(unknown)}", {"supported": list(REPORT_SECTIONS)}
        )
    sections = [s for s in REPORT_SECTIONS if s in sections]

    apps = session.query(Application).filter(Application.user_id == user_id).all()
    apps = filter_applications(apps, start, end)
    summary = overview(apps)
    monthly = monthly_stats(apps, now)

    report = {
        "metadata": {
            "export_date": now.isoformat(),
            "sections": sections,
            "include_charts": include_charts,
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
        },
    }
    if "overview" in sections:
        report["overview"] = summary
    if "trends" in sections:
        report["trends"] = {
            "monthly": monthly,
            "applications_trend": trend_direction([m["applications"] for m in monthly]),
        }
    if "distributions" in sections:
        report["distributions"] = {
            "status": status_distribution(apps),
            "companies": company_performance(apps),
            "locations": location_analysis(apps),
            "weekdays": weekly_activity(apps),
        }
    if "benchmarks" in sections:
        report["benchmarks"] = benchmarks(summary)
    if "insights" in sections:
        report["insights"] = insights(summary)
    if "recommendations" in sections:
        report["recommendations"] = recommendations(apps, summary)
    if include_charts:
        report["chart_data"] = {
            "time_series": monthly,
            "status_distribution": status_distribution(apps),
            "company_performance": company_performance(apps),
        }
    logger.info(f"Built analytics report ({', '.join(sections)}) for user {user_id}")
    return report


# ---------------------------------------------------------------------------
# Client events
# ---------------------------------------------------------------------------


def record_events(user_id: str, events: list[dict], now: Optional[datetime] = None) -> dict:
    """Log a batch of client usage events; nothing is persisted."""
    for event in events:
        logger.debug(
            f"Event {event['event']} user={user_id} session={event['session_id']} "
            f"props={event.get('properties') or {}}"
        )
    names = Counter(e["event"] for e in events)
    logger.info(f"Received {len(events)} analytics events from user {user_id}: {dict(names)}")
    return {"processed": len(events), "timestamp": (now or utcnow()).isoformat()}
