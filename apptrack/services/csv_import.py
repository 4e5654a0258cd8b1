"""CSV import of applications.

Pipeline per file:
    decode (UTF-8 with BOM, latin-1 fallback) → DictReader → template
    detection or explicit mapping → per-row conversion and validation via
    ApplicationCreate → duplicate check → insert
"""

import csv
import io
import logging
import re
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..db.models import Application
from ..errors import NotFoundError, ValidationFailed
from ..schemas import ApplicationCreate, ApplicationStatus, JobType, Priority, normalize_choice
from . import applications, csv_templates, duplicates

logger = logging.getLogger(__name__)

DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%d/%m/%Y",
]

DATE_FIELDS = {
    "applied_date", "response_date", "interview_date",
    "offer_date", "rejection_date", "follow_up_date",
}
LIST_FIELDS = {"tags", "requirements"}

# Substring → status, checked in order
STATUS_KEYWORDS = [
    ("applied", "Applied"),
    ("interview", "Interviewing"),
    ("offer", "Offered"),
    ("reject", "Rejected"),
    ("accept", "Accepted"),
    ("withdraw", "Withdrawn"),
    ("başvuru yapıldı", "Applied"),
    ("başvuruldu", "Applied"),
    ("mülakat", "Interviewing"),
    ("görüşme", "Interviewing"),
    ("teklif", "Offered"),
    ("kabul edildi", "Offered"),
    ("reddedildi", "Rejected"),
    ("kabul ettim", "Accepted"),
    ("onayladım", "Accepted"),
    ("geri çektim", "Withdrawn"),
    ("iptal", "Withdrawn"),
]

JOB_TYPE_KEYWORDS = [
    ("part", "Part-time"),
    ("intern", "Internship"),
    ("staj", "Internship"),
    ("contract", "Contract"),
    ("freelance", "Freelance"),
]

# First match wins: specific sectors precede the broad "tech" keyword
SECTOR_POSITIONS = [
    (("fintech", "finance"), "Finance Intern"),
    (("cybersecurity", "security"), "Security Intern"),
    (("technology", "tech", "software"), "Software Developer Intern"),
    (("music", "media"), "Media Intern"),
    (("telecommunications", "telecom", "automotive", "engineering"), "Engineering Intern"),
    (("retail", "design"), "Design Intern"),
    (("gaming", "game"), "Game Developer Intern"),
    (("energy", "renewable"), "Energy Intern"),
    (("maritime", "logistics"), "Logistics Intern"),
    (("pharmaceuticals", "medical"), "Medical Intern"),
]


def decode_content(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.info("CSV is not UTF-8, decoding as latin-1")
        return content.decode("latin-1")


def parse_date(value: str) -> Optional[datetime]:
    value = (value or "").strip()
    if not value:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def split_list(value: str) -> list[str]:
    return [item.strip() for item in re.split(r"[;,|]", value or "") if item.strip()]


def normalize_status(value: str) -> str:
    exact = normalize_choice(value, ApplicationStatus)
    if exact:
        return exact
    lowered = value.lower()
    for keyword, status in STATUS_KEYWORDS:
        if keyword in lowered:
            return status
    return ApplicationStatus.PENDING.value


def normalize_job_type(value: str) -> str:
    exact = normalize_choice(value, JobType)
    if exact:
        return exact
    lowered = value.lower()
    for keyword, job_type in JOB_TYPE_KEYWORDS:
        if keyword in lowered:
            return job_type
    return JobType.FULL_TIME.value


def normalize_priority(value: str) -> str:
    lowered = value.lower()
    if "high" in lowered:
        return Priority.HIGH.value
    if "low" in lowered:
        return Priority.LOW.value
    return Priority.MEDIUM.value


def default_position(sector: str) -> str:
    """Position for rows that carry only a sector (internship trackers)."""
    lowered = (sector or "").lower()
    for keywords, position in SECTOR_POSITIONS:
        if any(k in lowered for k in keywords):
            return position
    return "Intern"


def convert_row(row: dict, mapping: dict[str, str]) -> dict:
    """CSV row → application field dict (unvalidated)."""
    data: dict = {}
    for header, field in mapping.items():
        raw = row.get(header)
        value = raw.strip() if isinstance(raw, str) else ""
        if not value:
            continue
        if field in DATE_FIELDS:
            parsed = parse_date(value)
            if parsed is not None:
                data[field] = parsed
        elif field in LIST_FIELDS:
            data[field] = split_list(value)
        elif field == "status":
            data[field] = normalize_status(value)
        elif field == "job_type":
            data[field] = normalize_job_type(value)
        elif field == "priority":
            data[field] = normalize_priority(value)
        else:
            data.setdefault(field, value)
    return data


def _resolve_mapping(
    headers: list[str],
    template_id: Optional[str],
    mapping: Optional[dict[str, str]],
) -> tuple[dict[str, str], Optional[str], float]:
    if mapping:
        unknown = [h for h in mapping if h not in headers]
        if unknown:
            raise ValidationFailed("Mapping references unknown columns", {"columns": unknown})
        return mapping, None, 1.0

    if template_id:
        template = csv_templates.get_template(template_id)
        if template is None:
            raise NotFoundError(f"Template not found: {template_id}")
        confidence = None
    else:
        detected = csv_templates.detect_template(headers)
        template = detected["template"]
        confidence = detected["confidence"]
        if template is None:
            raise ValidationFailed("Could not detect a CSV template for these headers")

    generated = csv_templates.generate_mapping(headers, template)
    if confidence is None:
        confidence = generated["confidence"]
    return generated["mapping"], template.id, confidence


def import_csv(
    session: Session,
    user_id: str,
    content: bytes,
    template_id: Optional[str] = None,
    mapping: Optional[dict[str, str]] = None,
    skip_duplicates: bool = True,
    dry_run: bool = False,
) -> dict:
    """Import applications from CSV bytes.

    Returns ``{imported, skipped, errors: [{row, message}], template,
    confidence}``. Row numbers count the header as row 1. With ``dry_run``
    rows are validated and counted but nothing is written.
    """
    reader = csv.DictReader(io.StringIO(decode_content(content)))
    headers = [h for h in (reader.fieldnames or []) if h is not None]
    if not headers:
        raise ValidationFailed("CSV file has no header row")

    field_mapping, used_template, confidence = _resolve_mapping(headers, template_id, mapping)
    position_mapped = "position" in field_mapping.values()

    existing = session.query(Application).filter(Application.user_id == user_id).all()
    seen: list = list(existing)

    imported, skipped, errors = 0, 0, []
    for index, row in enumerate(reader, start=2):
        data = convert_row(row, field_mapping)
        if not data.get("company"):
            errors.append({"row": index, "message": "Company is required"})
            continue
        if not data.get("position"):
            if position_mapped:
                errors.append({"row": index, "message": "Position is required"})
                continue
            data["position"] = default_position(" ".join(data.get("tags", [])))

        try:
            validated = ApplicationCreate(**data).model_dump()
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first["loc"])
            errors.append({"row": index, "message": f"{field}: {first['msg']}"})
            continue

        if skip_duplicates and duplicates.detect_duplicates(validated, seen)["is_duplicate"]:
            logger.debug(f"Row {index}: duplicate of existing application, skipped")
            skipped += 1
            continue

        if not dry_run:
            applications.create_application(session, user_id, validated, fire_workflows=False)
        seen.append(validated)
        imported += 1

    logger.info(
        f"CSV import for user {user_id}: {imported} imported, {skipped} skipped, "
        f"{len(errors)} errors (template={used_template}, dry_run={dry_run})"
    )
    return {
        "imported": imported,
        "skipped": skipped,
        "errors": errors,
        "template": used_template,
        "confidence": confidence,
    }
