"""Duplicate detection for job applications.

Works on ORM Application objects and on plain dicts (CSV rows, import
bundles) alike. Similarity is a weighted mean over identity fields;
string similarity falls back to difflib's SequenceMatcher ratio.
"""
import logging
import math
import re
from datetime import datetime
from difflib import SequenceMatcher
from typing import Any, Optional

logger = logging.getLogger(__name__)

CANDIDATE_THRESHOLD = 0.4
DUPLICATE_THRESHOLD = 0.8
BULK_THRESHOLD = 0.6
MAX_MATCHES = 5

# Weights; url/email only count when both records carry them
WEIGHTS = {
    "company": 0.35,
    "position": 0.30,
    "location": 0.10,
    "job_url": 0.15,
    "contact_email": 0.10,
}

STATUS_RANK = {
    "Pending": 1,
    "Applied": 2,
    "Withdrawn": 2,
    "Rejected": 3,
    "Interviewing": 4,
    "Offered": 5,
    "Accepted": 6,
}
PRIORITY_RANK = {"Low": 1, "Medium": 2, "High": 3}


def _get(record: Any, field: str) -> Any:
    if isinstance(record, dict):
        return record.get(field)
    return getattr(record, field, None)


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


def normalize(text: str) -> str:
    text = re.sub(r"[^\w\s]", "", text.lower())
    return re.sub(r"\s+", " ", text).strip()


def string_similarity(a: Optional[str], b: Optional[str]) -> float:
    """0..1 similarity: exact, substring-weighted, or SequenceMatcher ratio."""
    if not a or not b:
        return 0.0
    a, b = a.lower(), b.lower()
    if a == b:
        return 1.0
    na, nb = normalize(a), normalize(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    if na in nb or nb in na:
        shorter, longer = sorted((na, nb), key=len)
        return len(shorter) / len(longer) * 0.9
    return SequenceMatcher(None, na, nb).ratio()


def calculate_similarity(candidate: Any, existing: Any) -> float:
    total = 0.0
    matched = 0.0
    for field in ("company", "position", "location"):
        weight = WEIGHTS[field]
        total += weight
        matched += string_similarity(_get(candidate, field), _get(existing, field)) * weight

    url_a, url_b = _get(candidate, "job_url"), _get(existing, "job_url")
    if url_a and url_b:
        total += WEIGHTS["job_url"]
        matched += WEIGHTS["job_url"] if url_a == url_b else 0.0

    mail_a, mail_b = _get(candidate, "contact_email"), _get(existing, "contact_email")
    if mail_a and mail_b:
        total += WEIGHTS["contact_email"]
        matched += WEIGHTS["contact_email"] if mail_a.lower() == mail_b.lower() else 0.0

    return matched / total if total else 0.0


def _days_apart(candidate: Any, existing: Any) -> Optional[float]:
    d1 = _as_datetime(_get(candidate, "applied_date"))
    d2 = _as_datetime(_get(existing, "applied_date"))
    if d1 is None or d2 is None:
        return None
    return abs((d1 - d2).total_seconds()) / 86400


def match_reasons(candidate: Any, existing: Any) -> list[str]:
    reasons = []

    company = string_similarity(_get(candidate, "company"), _get(existing, "company"))
    if company == 1:
        reasons.append("Identical company name")
    elif company > 0.9:
        reasons.append("Very similar company names")
    elif company > 0.7:
        reasons.append("Similar company names")

    position = string_similarity(_get(candidate, "position"), _get(existing, "position"))
    if position == 1:
        reasons.append("Identical position title")
    elif position > 0.8:
        reasons.append("Very similar position titles")
    elif position > 0.6:
        reasons.append("Similar position titles")

    location = string_similarity(_get(candidate, "location"), _get(existing, "location"))
    if location == 1:
        reasons.append("Same location")
    elif location > 0.8:
        reasons.append("Similar locations")

    url_a, url_b = _get(candidate, "job_url"), _get(existing, "job_url")
    if url_a and url_b and url_a == url_b:
        reasons.append("Same job URL")

    mail_a, mail_b = _get(candidate, "contact_email"), _get(existing, "contact_email")
    if mail_a and mail_b and mail_a.lower() == mail_b.lower():
        reasons.append("Same contact email")

    days = _days_apart(candidate, existing)
    if days is not None:
        if days == 0:
            reasons.append("Applied on the same date")
        elif days <= 30:
            reasons.append(f"Applied within {math.ceil(days)} days")

    status = _get(candidate, "status")
    if status and status == _get(existing, "status"):
        reasons.append(f"Both have status: {status}")

    salary_a, salary_b = _get(candidate, "salary_range"), _get(existing, "salary_range")
    if salary_a and salary_b and salary_a.lower() == salary_b.lower():
        reasons.append("Same salary range")

    return reasons


def _has_strong_indicators(candidate: Any, existing: Any) -> bool:
    same_company = (_get(candidate, "company") or "").lower() == (_get(existing, "company") or "").lower()
    same_position = (_get(candidate, "position") or "").lower() == (_get(existing, "position") or "").lower()
    days = _days_apart(candidate, existing)
    if same_company and same_position and days is not None:
        return days <= 30

    mail_a, mail_b = _get(candidate, "contact_email"), _get(existing, "contact_email")
    return bool(mail_a and mail_b and mail_a.lower() == mail_b.lower())


def _confidence(matches: list[dict]) -> str:
    if not matches:
        return "low"
    best = matches[0]
    exact = any(
        r in ("Identical company name", "Same job URL") for r in best["match_reasons"]
    )
    if best["similarity"] > 0.9 or exact:
        return "high"
    if best["similarity"] > 0.7:
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# 1) Single candidate against existing records
# ---------------------------------------------------------------------------

def detect_duplicates(candidate: Any, existing: list) -> dict:
    """Find likely duplicates of `candidate` among `existing` records.

    Returns:
        {"is_duplicate": bool, "matches": [...top 5...], "confidence": str}
        Each match: {"application": record, "similarity": float, "match_reasons": [...]}
    """
    matches = []
    for record in existing:
        similarity = calculate_similarity(candidate, record)
        if similarity > CANDIDATE_THRESHOLD:
            matches.append({
                "application": record,
                "similarity": round(similarity, 4),
                "match_reasons": match_reasons(candidate, record),
            })
    matches.sort(key=lambda m: m["similarity"], reverse=True)

    is_duplicate = False
    if matches:
        best = matches[0]
        reasons = best["match_reasons"]
        is_duplicate = (
            best["similarity"] > DUPLICATE_THRESHOLD
            or "Same job URL" in reasons
            or ("Identical company name" in reasons and "Identical position title" in reasons)
            or _has_strong_indicators(candidate, best["application"])
        )

    return {
        "is_duplicate": is_duplicate,
        "matches": matches[:MAX_MATCHES],
        "confidence": _confidence(matches),
    }


# ---------------------------------------------------------------------------
# 2) Merging
# ---------------------------------------------------------------------------

def _longer(new: Optional[str], old: Optional[str]) -> Optional[str]:
    if not new:
        return old
    if not old:
        return new
    return new if len(new) > len(old) else old


def _merge_lists(new: list, old: list) -> list:
    merged, seen = [], set()
    for item in list(old or []) + list(new or []):
        key = str(item).lower()
        if key not in seen:
            seen.add(key)
            merged.append(item)
    return merged


def _combine_text(new: Optional[str], old: Optional[str], separator: str) -> Optional[str]:
    if not new:
        return old
    if not old:
        return new
    a, b = new.strip(), old.strip()
    if a.lower() == b.lower():
        return a if len(a) > len(b) else b
    if b.lower() in a.lower():
        return a
    if a.lower() in b.lower():
        return b
    return f"{b}{separator}{a}"


def _pick_date(new: Any, old: Any, latest: bool) -> Optional[datetime]:
    dates = [d for d in (_as_datetime(new), _as_datetime(old)) if d is not None]
    if not dates:
        return None
    return max(dates) if latest else min(dates)


def merge_applications(new: Any, existing: Any) -> dict:
    """Merge preview of two duplicate records (field dict)."""
    new_status, old_status = _get(new, "status"), _get(existing, "status")
    if not new_status or not old_status:
        status = new_status or old_status or "Pending"
    else:
        status = new_status if STATUS_RANK.get(new_status, 0) > STATUS_RANK.get(old_status, 0) else old_status

    new_prio, old_prio = _get(new, "priority"), _get(existing, "priority")
    if not new_prio or not old_prio:
        priority = new_prio or old_prio or "Medium"
    else:
        priority = new_prio if PRIORITY_RANK.get(new_prio, 0) > PRIORITY_RANK.get(old_prio, 0) else old_prio

    return {
        "company": _longer(_get(new, "company"), _get(existing, "company")),
        "position": _longer(_get(new, "position"), _get(existing, "position")),
        "location": _longer(_get(new, "location"), _get(existing, "location")),
        "job_type": _get(new, "job_type") or _get(existing, "job_type"),
        "salary_range": _get(new, "salary_range") or _get(existing, "salary_range"),
        "status": status,
        "priority": priority,
        "applied_date": _pick_date(_get(new, "applied_date"), _get(existing, "applied_date"), latest=False),
        "response_date": _pick_date(_get(new, "response_date"), _get(existing, "response_date"), latest=True),
        "interview_date": _pick_date(_get(new, "interview_date"), _get(existing, "interview_date"), latest=True),
        "contact_person": _longer(_get(new, "contact_person"), _get(existing, "contact_person")),
        "contact_email": _get(new, "contact_email") or _get(existing, "contact_email"),
        "job_url": _get(new, "job_url") or _get(existing, "job_url"),
        "company_website": _get(new, "company_website") or _get(existing, "company_website"),
        "tags": _merge_lists(_get(new, "tags") or [], _get(existing, "tags") or []),
        "requirements": _merge_lists(_get(new, "requirements") or [], _get(existing, "requirements") or []),
        "notes": _combine_text(_get(new, "notes"), _get(existing, "notes"), "\n\n---\n\n"),
        "job_description": _combine_text(
            _get(new, "job_description"), _get(existing, "job_description"), "\n\n"
        ),
    }


# ---------------------------------------------------------------------------
# 3) Bulk grouping
# ---------------------------------------------------------------------------

def _recommended_action(group: list, confidence: float) -> str:
    if confidence > 0.9:
        return "merge"
    if confidence > 0.8:
        statuses = {_get(r, "status") for r in group}
        return "keep_newest" if len(statuses) > 1 else "merge"
    if confidence > 0.7:
        return "keep_newest"
    return "manual_review"


def find_duplicate_groups(records: list) -> dict:
    """Group records that look like the same application.

    Returns:
        {"groups": [...], "total_duplicates": N,
         "high_confidence_count": N, "medium_confidence_count": N,
         "low_confidence_count": N}
    """
    groups = []
    used: set[int] = set()

    for i, first in enumerate(records):
        if i in used:
            continue
        used.add(i)
        members = [first]
        scores = []
        for j in range(i + 1, len(records)):
            if j in used:
                continue
            similarity = calculate_similarity(first, records[j])
            if similarity > BULK_THRESHOLD:
                members.append(records[j])
                scores.append(similarity)
                used.add(j)

        if len(members) < 2:
            continue

        confidence = max(scores)
        preview = dict(first) if isinstance(first, dict) else {}
        for other in members[1:]:
            preview = merge_applications(other, preview or first)
        groups.append({
            "id": f"group-{_get(first, 'id') or i}",
            "applications": members,
            "confidence": round(confidence, 4),
            "match_reasons": match_reasons(first, members[1]),
            "recommended_action": _recommended_action(members, confidence),
            "merge_preview": preview,
        })

    high = sum(1 for g in groups if g["confidence"] > 0.9)
    medium = sum(1 for g in groups if 0.7 < g["confidence"] <= 0.9)
    logger.info(f"Bulk duplicate scan: {len(records)} records → {len(groups)} groups")
    return {
        "groups": groups,
        "total_duplicates": sum(len(g["applications"]) - 1 for g in groups),
        "high_confidence_count": high,
        "medium_confidence_count": medium,
        "low_confidence_count": len(groups) - high - medium,
    }
