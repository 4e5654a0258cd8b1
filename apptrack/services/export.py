"""Application export as CSV, JSON or a PDF report, plus full user data export."""

import csv
import html
import io
import json
import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session

from ..db.models import (
    AIAnalysis,
    Application,
    Contact,
    JobRecommendation,
    Reminder,
    User,
    utcnow,
)
from ..errors import ValidationFailed
from ..schemas import ApplicationResponse, ContactResponse, ReminderResponse, UserResponse, serialize
from . import analytics

logger = logging.getLogger(__name__)

FORMATS = {
    "csv": {"label": "CSV", "media_type": "text/csv", "extension": "csv"},
    "json": {"label": "JSON", "media_type": "application/json", "extension": "json"},
    "pdf": {"label": "PDF Report", "media_type": "application/pdf", "extension": "pdf"},
}

DEFAULT_FIELDS = [
    {"key": "company", "label": "Company", "selected": True, "type": "string"},
    {"key": "position", "label": "Position", "selected": True, "type": "string"},
    {"key": "location", "label": "Location", "selected": True, "type": "string"},
    {"key": "job_type", "label": "Job Type", "selected": True, "type": "string"},
    {"key": "salary_range", "label": "Salary", "selected": True, "type": "string"},
    {"key": "status", "label": "Status", "selected": True, "type": "string"},
    {"key": "priority", "label": "Priority", "selected": True, "type": "string"},
    {"key": "applied_date", "label": "Applied Date", "selected": True, "type": "date"},
    {"key": "response_date", "label": "Response Date", "selected": False, "type": "date"},
    {"key": "interview_date", "label": "Interview Date", "selected": False, "type": "date"},
    {"key": "offer_date", "label": "Offer Date", "selected": False, "type": "date"},
    {"key": "rejection_date", "label": "Rejection Date", "selected": False, "type": "date"},
    {"key": "follow_up_date", "label": "Follow Up Date", "selected": False, "type": "date"},
    {"key": "notes", "label": "Notes", "selected": False, "type": "string"},
    {"key": "job_description", "label": "Job Description", "selected": False, "type": "string"},
    {"key": "requirements", "label": "Requirements", "selected": False, "type": "array"},
    {"key": "contact_person", "label": "Contact Person", "selected": False, "type": "string"},
    {"key": "contact_email", "label": "Contact Email", "selected": False, "type": "string"},
    {"key": "contact_phone", "label": "Contact Phone", "selected": False, "type": "string"},
    {"key": "company_website", "label": "Company Website", "selected": False, "type": "string"},
    {"key": "job_url", "label": "Job URL", "selected": False, "type": "string"},
    {"key": "tags", "label": "Tags", "selected": False, "type": "array"},
    {"key": "ai_match_score", "label": "AI Match Score", "selected": False, "type": "number"},
    {"key": "created_at", "label": "Created At", "selected": False, "type": "date"},
    {"key": "updated_at", "label": "Updated At", "selected": False, "type": "date"},
]
FIELDS_BY_KEY = {f["key"]: f for f in DEFAULT_FIELDS}

PDF_TRUNCATE = 50


@dataclass
class ExportResult:
    filename: str
    media_type: str
    content: bytes
    record_count: int


def get_fields() -> list[dict]:
    return [dict(f) for f in DEFAULT_FIELDS]


def get_formats() -> list[dict]:
    return [{"format": key, **value} for key, value in FORMATS.items()]


def resolve_fields(keys: Optional[list[str]]) -> list[dict]:
    """Requested field keys in order; default selection when none given."""
    if not keys:
        return [f for f in DEFAULT_FIELDS if f["selected"]]
    unknown = [k for k in keys if k not in FIELDS_BY_KEY]
    if unknown:
        raise ValidationFailed("Unknown export fields", {"fields": unknown})
    return [FIELDS_BY_KEY[k] for k in keys]


def format_value(app: Application, field: dict, for_pdf: bool = False) -> str:
    value = getattr(app, field["key"], None)
    if value is None:
        return ""
    if field["type"] == "date":
        return value.strftime("%Y-%m-%d")
    if field["type"] == "array":
        return "; ".join(value) if isinstance(value, list) else str(value)
    text = str(value)
    if for_pdf and len(text) > PDF_TRUNCATE:
        return text[:PDF_TRUNCATE - 3] + "..."
    return text


def filter_by_date_range(
    apps: list[Application],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[Application]:
    """Keep applications whose applied_date falls within [start, end]."""
    if start is None and end is None:
        return apps
    result = []
    for app in apps:
        applied = app.applied_date
        if applied is None:
            continue
        if start is not None and applied < start:
            continue
        if end is not None and applied > end:
            continue
        result.append(app)
    return result


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


def calculate_statistics(apps: list[Application]) -> dict:
    total = len(apps)
    by_status = Counter(a.status for a in apps)
    responded = [a for a in apps if a.status not in ("Pending", "Applied")]
    interviewed = [a for a in apps if a.interview_date or a.status in ("Interviewing", "Offered", "Accepted")]
    offered = [a for a in apps if a.offer_date or a.status in ("Offered", "Accepted")]
    response_days = [
        (a.response_date - a.applied_date).days
        for a in apps
        if a.applied_date and a.response_date
    ]
    return {
        "total": total,
        "by_status": dict(by_status),
        "by_priority": dict(Counter(a.priority for a in apps)),
        "by_job_type": dict(Counter(a.job_type for a in apps if a.job_type)),
        "response_rate": _rate(len(responded), total),
        "interview_rate": _rate(len(interviewed), total),
        "offer_rate": _rate(len(offered), total),
        "average_response_days": (
            round(sum(response_days) / len(response_days), 1) if response_days else None
        ),
    }


def default_filename(fmt: str, now: Optional[datetime] = None) -> str:
    stamp = (now or utcnow()).strftime("%Y-%m-%d")
    prefix = "applications_report" if fmt == "pdf" else "applications_export"
    return f"{prefix}_{stamp}.{FORMATS[fmt]['extension']}"


def clean_filename(name: Optional[str]) -> Optional[str]:
    """Drop path separators, quotes and control characters from a requested name."""
    if not name:
        return None
    cleaned = re.sub(r'[\x00-\x1f\x7f"\\/]', "", name).strip(" .")
    return cleaned or None


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and an RFC 5987 UTF-8 name."""
    ascii_name = re.sub(r"[^A-Za-z0-9._ -]", "_", filename)
    header = f'attachment; filename="{ascii_name}"'
    if ascii_name != filename:
        header += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return header


def to_csv(apps: list[Application], fields: list[dict]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([f["label"] for f in fields])
    for app in apps:
        writer.writerow([format_value(app, f) for f in fields])
    return buffer.getvalue().encode("utf-8")


def to_json(
    apps: list[Application],
    fields: list[dict],
    include_statistics: bool = False,
    include_ai_insights: bool = False,
    now: Optional[datetime] = None,
) -> bytes:
    records = []
    for app in apps:
        record = serialize(ApplicationResponse, app)
        item = {f["key"]: record.get(f["key"]) for f in fields}
        if include_ai_insights:
            item["ai_insights"] = app.ai_insights
        records.append(item)

    payload = {
        "export_date": (now or utcnow()).isoformat(),
        "total_records": len(apps),
        "fields": [{"key": f["key"], "label": f["label"]} for f in fields],
        "applications": records,
    }
    if include_statistics:
        payload["statistics"] = calculate_statistics(apps)
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def to_pdf(
    apps: list[Application],
    fields: list[dict],
    include_statistics: bool = False,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        topMargin=0.6 * inch,
        bottomMargin=0.6 * inch,
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        title="Job Applications Report",
    )
    styles = getSampleStyleSheet()
    story = [Paragraph("Job Applications Report", styles["Title"])]

    if start or end:
        range_text = (
            f"Date Range: {start.strftime('%Y-%m-%d') if start else 'All'} "
            f"to {end.strftime('%Y-%m-%d') if end else 'All'}"
        )
        story.append(Paragraph(range_text, styles["Normal"]))
        story.append(Spacer(1, 12))

    if include_statistics:
        stats = calculate_statistics(apps)
        story.append(Paragraph("Summary Statistics", styles["Heading2"]))
        lines = [
            f"Total Applications: {stats['total']}",
            f"Response Rate: {stats['response_rate']}%",
            f"Interview Rate: {stats['interview_rate']}%",
            f"Offer Rate: {stats['offer_rate']}%",
            f"Average Response Time: {stats['average_response_days'] or 'n/a'} days",
        ]
        for line in lines:
            story.append(Paragraph(line, styles["Normal"]))
        story.append(Spacer(1, 12))

    story.append(Paragraph("Applications", styles["Heading2"]))
    cell_style = styles["BodyText"]
    cell_style.fontSize = 7
    cell_style.leading = 9
    rows = [[f["label"] for f in fields]]
    for app in apps:
        rows.append([
            Paragraph(html.escape(format_value(app, f, for_pdf=True)), cell_style)
            for f in fields
        ])
    table = Table(rows, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.Color(66 / 255, 139 / 255, 202 / 255)),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTSIZE", (0, 0), (-1, 0), 8),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.whitesmoke]),
    ]))
    story.append(table)

    def _page_number(canvas, document):
        canvas.setFont("Helvetica", 8)
        canvas.drawRightString(
            document.pagesize[0] - document.rightMargin,
            0.35 * inch,
            f"Page {document.page}",
        )

    doc.build(story, onFirstPage=_page_number, onLaterPages=_page_number)
    return buffer.getvalue()


def export_applications(
    session: Session,
    user_id: str,
    fmt: str = "csv",
    fields: Optional[list[str]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_statistics: bool = False,
    include_ai_insights: bool = False,
    custom_filename: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    if fmt not in FORMATS:
        raise ValidationFailed(f"Unsupported export format: {fmt}")
    selected = resolve_fields(fields)
    apps = (
        session.query(Application)
        .filter(Application.user_id == user_id)
        .order_by(Application.applied_date.desc(), Application.created_at.desc())
        .all()
    )
    apps = filter_by_date_range(apps, start, end)

    if fmt == "csv":
        content = to_csv(apps, selected)
    elif fmt == "json":
        content = to_json(apps, selected, include_statistics, include_ai_insights, now)
    else:
        content = to_pdf(apps, selected, include_statistics, start, end)

    filename = clean_filename(custom_filename) or default_filename(fmt, now)
    logger.info(f"Exported {len(apps)} applications as {fmt} for user {user_id}")
    return ExportResult(
        filename=filename,
        media_type=FORMATS[fmt]["media_type"],
        content=content,
        record_count=len(apps),
    )


def export_user_data(session: Session, user: User, now: Optional[datetime] = None) -> dict:
    """Everything stored for a user, without credentials."""
    def _rows(model):
        return session.query(model).filter(model.user_id == user.id).all()

    apps = _rows(Application)
    contacts = _rows(Contact)
    reminders = _rows(Reminder)
    analyses = _rows(AIAnalysis)
    recommendations = _rows(JobRecommendation)

    return {
        "export_date": (now or utcnow()).isoformat(),
        "user": serialize(UserResponse, user),
        "applications": [serialize(ApplicationResponse, a) for a in apps],
        "contacts": [serialize(ContactResponse, c) for c in contacts],
        "reminders": [serialize(ReminderResponse, r) for r in reminders],
        "ai_analyses": [
            {
                "id": a.id,
                "application_id": a.application_id,
                "analysis_type": a.analysis_type,
                "analysis_result": a.analysis_result,
                "confidence_score": a.confidence_score,
                "created_at": a.created_at.isoformat(),
            }
            for a in analyses
        ],
        "job_recommendations": [
            {
                "id": r.id,
                "job_title": r.job_title,
                "company": r.company,
                "location": r.location,
                "job_url": r.job_url,
                "match_score": r.match_score,
                "status": r.status,
                "created_at": r.created_at.isoformat(),
            }
            for r in recommendations
        ],
        "summary": {
            "applications": len(apps),
            "contacts": len(contacts),
            "reminders": len(reminders),
            "ai_analyses": len(analyses),
            "job_recommendations": len(recommendations),
        },
    }


# ---------------------------------------------------------------------------
# Analytics reports
# ---------------------------------------------------------------------------


def analytics_to_csv(report: dict) -> bytes:
    """One block per section: a title row, a header row, then values."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    def _block(title, header, rows):
        writer.writerow([title])
        writer.writerow(header)
        writer.writerows(rows)
        writer.writerow([])

    if "overview" in report:
        _block("OVERVIEW METRICS", ["Metric", "Value"], report["overview"].items())
    if "trends" in report:
        _block(
            "TRENDS DATA", ["Month", "Applications", "Interviews", "Offers"],
            [(m["month"], m["applications"], m["interviews"], m["offers"])
             for m in report["trends"]["monthly"]],
        )
    if "distributions" in report:
        distributions = report["distributions"]
        _block(
            "STATUS DISTRIBUTION", ["Status", "Count", "Percentage"],
            [(d["status"], d["count"], d["percentage"]) for d in distributions["status"]],
        )
        _block(
            "COMPANY PERFORMANCE", ["Company", "Applications", "Interview Rate", "Offer Rate"],
            [(c["company"], c["applications"], c["interview_rate"], c["offer_rate"])
             for c in distributions["companies"]],
        )
    if "benchmarks" in report:
        _block(
            "BENCHMARKS", ["Metric", "Value", "Benchmark", "Above Average"],
            [(key, b["value"], b["benchmark"], b["above_average"])
             for key, b in report["benchmarks"].items()],
        )
    if "insights" in report:
        _block(
            "INSIGHTS", ["Type", "Title", "Description"],
            [(i["type"], i["title"], i["description"]) for i in report["insights"]],
        )
    if "recommendations" in report:
        _block(
            "RECOMMENDATIONS", ["Category", "Title", "Description", "Priority"],
            [(r["category"], r["title"], r["description"], r["priority"])
             for r in report["recommendations"]],
        )
    return buffer.getvalue().encode("utf-8")


def analytics_to_pdf(report: dict) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title="Job Search Analytics Report")
    styles = getSampleStyleSheet()
    story = [
        Paragraph("Job Search Analytics Report", styles["Title"]),
        Paragraph(f"Generated {report['metadata']['export_date'][:10]}", styles["Normal"]),
        Spacer(1, 12),
    ]

    def _table(title, rows):
        story.append(Paragraph(title, styles["Heading2"]))
        table = Table([[html.escape(str(cell)) for cell in row] for row in rows], repeatRows=1)
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.Color(66 / 255, 139 / 255, 202 / 255)),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ]))
        story.append(table)
        story.append(Spacer(1, 12))

    if "overview" in report:
        _table("Overview", [("Metric", "Value"), *report["overview"].items()])
    if "trends" in report:
        _table("Monthly Trends", [
            ("Month", "Applications", "Interviews", "Offers"),
            *((m["label"], m["applications"], m["interviews"], m["offers"])
              for m in report["trends"]["monthly"]),
        ])
    if "distributions" in report:
        _table("Status Distribution", [
            ("Status", "Count", "Percentage"),
            *((d["status"], d["count"], f"{d['percentage']}%") for d in report["distributions"]["status"]),
        ])
    if "benchmarks" in report:
        _table("Benchmarks", [
            ("Metric", "Yours", "Typical"),
            *((key, b["value"], b["benchmark"]) for key, b in report["benchmarks"].items()),
        ])
    for key, title in (("insights", "Insights"), ("recommendations", "Recommendations")):
        if report.get(key):
            story.append(Paragraph(title, styles["Heading2"]))
            for item in report[key]:
                story.append(Paragraph(
                    f"<b>{html.escape(item['title'])}</b>: {html.escape(item['description'])}",
                    styles["Normal"],
                ))
            story.append(Spacer(1, 12))

    doc.build(story)
    return buffer.getvalue()


def export_analytics_report(
    session: Session,
    user_id: str,
    fmt: str = "json",
    sections: Optional[list[str]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_charts: bool = False,
    custom_filename: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    if fmt not in FORMATS:
        raise ValidationFailed(f"Unsupported export format: {fmt}")
    now = now or utcnow()
    report = analytics.build_report(session, user_id, sections, start, end, include_charts, now)
    report["metadata"]["format"] = fmt

    if fmt == "csv":
        content = analytics_to_csv(report)
    elif fmt == "json":
        content = json.dumps(report, indent=2, ensure_ascii=False).encode("utf-8")
    else:
        content = analytics_to_pdf(report)

    stamp = now.strftime("%Y-%m-%d")
    filename = clean_filename(custom_filename) or f"analytics_report_{stamp}.{FORMATS[fmt]['extension']}"
    return ExportResult(
        filename=filename,
        media_type=FORMATS[fmt]["media_type"],
        content=content,
        record_count=report.get("overview", {}).get("total_applications", 0),
    )
