"""Autocomplete for companies, positions and locations, plus job-URL hints.

Suggestions come from seed lists of popular values, values added at runtime
(kept in a process-wide cache) and the values found in the user's own
applications.
"""

import logging
import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from sqlalchemy.orm import Session

from ..db.models import Application
from ..errors import ValidationFailed

logger = logging.getLogger(__name__)

KINDS = ("companies", "positions", "locations")
MAX_VALUE_LENGTH = 255

POPULAR_COMPANIES = [
    "Google", "Microsoft", "Apple", "Amazon", "Meta", "Netflix", "Tesla", "Spotify",
    "Uber", "Airbnb", "Stripe", "Shopify", "Slack", "Zoom", "Dropbox", "Adobe",
    "Salesforce", "Oracle", "IBM", "Intel", "NVIDIA", "AMD", "Cisco", "VMware",
    "ServiceNow", "Workday", "Atlassian", "GitHub", "GitLab", "Docker", "MongoDB",
    "Snowflake", "Databricks", "Palantir", "Twilio", "Square", "PayPal", "Coinbase",
    "Robinhood", "DoorDash", "Instacart", "Lyft", "Pinterest", "Snapchat", "Twitter",
    "LinkedIn", "Reddit", "Discord", "Figma", "Notion", "Airtable", "Canva",
]

STANDARD_POSITIONS = [
    # Software engineering
    "Software Engineer", "Senior Software Engineer", "Staff Software Engineer",
    "Principal Software Engineer", "Frontend Developer", "Backend Developer",
    "Full Stack Developer", "Mobile Developer", "DevOps Engineer",
    "Site Reliability Engineer", "Platform Engineer", "Cloud Engineer",
    "Software Architect", "Technical Lead", "Engineering Manager", "VP of Engineering",
    # Data
    "Data Scientist", "Senior Data Scientist", "Principal Data Scientist", "Data Engineer",
    "Machine Learning Engineer", "AI Engineer", "Data Analyst",
    "Business Intelligence Analyst", "Analytics Engineer", "Research Scientist",
    "Applied Scientist", "Data Architect",
    # Product and design
    "Product Manager", "Senior Product Manager", "Principal Product Manager", "VP of Product",
    "UX Designer", "UI Designer", "Product Designer", "UX Researcher", "Design Lead",
    "Creative Director", "Brand Designer", "Graphic Designer", "Motion Designer",
    # Marketing and sales
    "Marketing Manager", "Digital Marketing Manager", "Content Marketing Manager",
    "Growth Manager", "Sales Representative", "Account Executive", "Sales Manager",
    "Business Development Manager", "Customer Success Manager", "Marketing Director",
    "VP of Marketing", "VP of Sales",
    # Operations and finance
    "Operations Manager", "Program Manager", "Project Manager", "Scrum Master", "Agile Coach",
    "Financial Analyst", "Accountant", "Finance Manager", "Controller", "CFO",
    "HR Manager", "Recruiter", "People Operations", "Talent Acquisition",
    # Security
    "Security Engineer", "Information Security Analyst", "Cybersecurity Specialist",
    "Compliance Manager", "Risk Analyst", "Security Architect", "Penetration Tester",
    # Quality
    "QA Engineer", "Test Engineer", "Automation Engineer", "QA Manager", "Test Lead",
    # Entry level
    "Software Engineering Intern", "Data Science Intern", "Product Management Intern",
    "Marketing Intern", "Design Intern", "Junior Developer", "Associate Product Manager",
    "Graduate Software Engineer", "New Grad Software Engineer",
]

POPULAR_LOCATIONS = [
    "San Francisco, CA, USA", "New York, NY, USA", "Seattle, WA, USA", "Austin, TX, USA",
    "Los Angeles, CA, USA", "Boston, MA, USA", "Chicago, IL, USA", "Denver, CO, USA",
    "Atlanta, GA, USA", "Miami, FL, USA", "Portland, OR, USA", "Nashville, TN, USA",
    "Raleigh, NC, USA", "Salt Lake City, UT, USA", "Phoenix, AZ, USA", "Dallas, TX, USA",
    "London, UK", "Berlin, Germany", "Amsterdam, Netherlands", "Stockholm, Sweden",
    "Copenhagen, Denmark", "Oslo, Norway", "Helsinki, Finland", "Zurich, Switzerland",
    "Paris, France", "Barcelona, Spain", "Madrid, Spain", "Milan, Italy", "Rome, Italy",
    "Dublin, Ireland", "Edinburgh, UK", "Vienna, Austria", "Prague, Czech Republic",
    "Toronto, ON, Canada", "Vancouver, BC, Canada", "Montreal, QC, Canada", "Calgary, AB, Canada",
    "Tokyo, Japan", "Singapore", "Hong Kong", "Seoul, South Korea", "Bangalore, India",
    "Mumbai, India", "Delhi, India", "Sydney, Australia", "Melbourne, Australia",
    "Remote", "Remote - US", "Remote - Europe", "Remote - Global", "Hybrid", "Remote-first",
]

POSITION_ALIASES = {
    "swe": "Software Engineer",
    "sde": "Software Engineer",
    "software dev": "Software Developer",
    "web developer": "Frontend Developer",
    "frontend dev": "Frontend Developer",
    "backend dev": "Backend Developer",
    "fullstack": "Full Stack Developer",
    "full-stack": "Full Stack Developer",
    "ml engineer": "Machine Learning Engineer",
    "data eng": "Data Engineer",
    "pm": "Product Manager",
    "tpm": "Technical Program Manager",
    "ux/ui": "UX/UI Designer",
    "ui/ux": "UX/UI Designer",
    "devops": "DevOps Engineer",
    "sre": "Site Reliability Engineer",
    "qa": "QA Engineer",
    "qe": "QA Engineer",
}

LOCATION_ALIASES = {
    "sf": "San Francisco, CA, USA",
    "san francisco": "San Francisco, CA, USA",
    "nyc": "New York, NY, USA",
    "new york": "New York, NY, USA",
    "la": "Los Angeles, CA, USA",
    "los angeles": "Los Angeles, CA, USA",
    "boston": "Boston, MA, USA",
    "seattle": "Seattle, WA, USA",
    "austin": "Austin, TX, USA",
    "chicago": "Chicago, IL, USA",
    "london": "London, UK",
    "berlin": "Berlin, Germany",
    "amsterdam": "Amsterdam, Netherlands",
    "paris": "Paris, France",
    "toronto": "Toronto, ON, Canada",
    "tokyo": "Tokyo, Japan",
    "sydney": "Sydney, Australia",
}

SEEDS = {
    "companies": POPULAR_COMPANIES,
    "positions": STANDARD_POSITIONS,
    "locations": POPULAR_LOCATIONS,
}
ALIASES = {"positions": POSITION_ALIASES, "locations": LOCATION_ALIASES}
COLUMNS = {
    "companies": Application.company,
    "positions": Application.position,
    "locations": Application.location,
}

COMPANY_SUFFIXES = re.compile(r"\b(inc|llc|ltd|corp|corporation|company|co)\b", re.IGNORECASE)
POSITION_NOISE = re.compile(r"\b(job|position|role|opening)\b", re.IGNORECASE)


class SuggestionCache:
    """Insertion-ordered value sets per kind, seeded with popular values."""

    def __init__(self):
        self._values: dict[str, dict[str, None]] = {}
        self.reset()

    def reset(self) -> None:
        self._values = {kind: dict.fromkeys(SEEDS[kind]) for kind in KINDS}

    def values(self, kind: str) -> list[str]:
        return list(self._values[kind])

    def add(self, kind: str, value: str) -> bool:
        """Add a value; False when an equal value (case-insensitive) exists."""
        lowered = value.lower()
        if any(v.lower() == lowered for v in self._values[kind]):
            return False
        self._values[kind][value] = None
        return True


_cache = SuggestionCache()


def get_cache() -> SuggestionCache:
    return _cache


def _check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise ValidationFailed(f"Unknown suggestion type: {kind}", {"supported": list(KINDS)})


def _user_values(session: Session, user_id: str, kind: str) -> list[str]:
    column = COLUMNS[kind]
    rows = (
        session.query(column)
        .filter(Application.user_id == user_id, column.isnot(None))
        .distinct()
        .all()
    )
    return [value for (value,) in rows if value and value.strip()]


def rank_matches(candidates: list[str], query: str) -> list[str]:
    """Exact matches first, then prefix matches, then other substring matches.

    Ties are ordered alphabetically (case-insensitive).
    """
    query = query.lower()
    buckets: tuple[list, list, list] = ([], [], [])
    for value in candidates:
        lowered = value.lower()
        if lowered == query:
            buckets[0].append(value)
        elif lowered.startswith(query):
            buckets[1].append(value)
        elif query in lowered:
            buckets[2].append(value)
    return [v for bucket in buckets for v in sorted(bucket, key=str.lower)]


def suggest(
    session: Session,
    user_id: str,
    kind: str,
    query: str = "",
    limit: int = 10,
    cache: Optional[SuggestionCache] = None,
) -> list[str]:
    _check_kind(kind)
    cache = cache or _cache

    candidates = dict.fromkeys(_user_values(session, user_id, kind))
    for value in cache.values(kind):
        candidates.setdefault(value, None)
    values = list(candidates)

    query = (query or "").strip()
    if not query:
        return values[:limit]

    ranked = rank_matches(values, query)
    standard = ALIASES.get(kind, {}).get(query.lower())
    if standard:
        ranked = [standard] + [v for v in ranked if v != standard]
    return ranked[:limit]


def add_suggestion(kind: str, value: str, cache: Optional[SuggestionCache] = None) -> bool:
    _check_kind(kind)
    value = (value or "").strip()
    if not value:
        raise ValidationFailed(f"A value is required to add {kind} suggestions")
    if len(value) > MAX_VALUE_LENGTH:
        raise ValidationFailed(f"Suggestions must be at most {MAX_VALUE_LENGTH} characters")
    added = (cache or _cache).add(kind, value)
    if added:
        logger.debug(f"Added {kind} suggestion: {value}")
    return added


# ---------------------------------------------------------------------------
# Job URL hints
# ---------------------------------------------------------------------------


def _title(slug: str) -> str:
    return " ".join(w.capitalize() for w in slug.replace("-", " ").replace("_", " ").split())


def clean_company_name(company: str) -> str:
    return _title(COMPANY_SUFFIXES.sub("", company.replace("-", " ").replace("_", " ")))


def clean_position_title(position: str) -> str:
    return _title(POSITION_NOISE.sub("", position.replace("-", " ").replace("_", " ")))


def _first(params: dict, key: str) -> Optional[str]:
    values = params.get(key)
    return values[0] if values else None


def _generic_position(path: str) -> Optional[str]:
    parts = [p for p in path.split("/") if p]
    for index, part in enumerate(parts[:-1]):
        if any(k in part.lower() for k in ("job", "career", "position")):
            return parts[index + 1]
    return None


def parse_job_url(url: str) -> dict:
    """Source, company and position hints from a job posting URL."""
    if not url or not isinstance(url, str):
        raise ValidationFailed("Job URL is required")
    parsed = urlparse(url.strip())
    host = (parsed.hostname or "").lower()
    if parsed.scheme not in ("http", "https") or not host:
        raise ValidationFailed("Job URL must be an absolute http(s) URL")

    path = parsed.path
    params = parse_qs(parsed.query)
    result: dict = {"source": host, "company": None, "position": None, "company_website": f"https://{host}"}

    if "linkedin.com" in host:
        result["source"] = "LinkedIn"
        if re.search(r"/jobs/view/\d+", path) or _first(params, "currentJobId"):
            match = re.search(r"/company/([^/]+)", path)
            if match:
                result["company"] = match.group(1)
            result["position"] = _first(params, "keywords")
    elif "indeed.com" in host:
        result["source"] = "Indeed"
        if _first(params, "jk"):
            match = re.search(r"/cmp/([^/]+)", path)
            result["company"] = _first(params, "cmp") or (match.group(1) if match else None)
            result["position"] = _first(params, "q")
    elif "glassdoor.com" in host:
        result["source"] = "Glassdoor"
        match = re.search(r"/job-listing/(.+?)/(\d+)", path)
        if match:
            result["position"] = match.group(1)
    elif "wellfound.com" in host or "angel.co" in host:
        result["source"] = "Wellfound"
        parts = path.split("/")
        if "jobs" in parts:
            index = parts.index("jobs")
            if index + 1 < len(parts) and parts[index + 1]:
                result["company"] = parts[index + 1]
    else:
        result["source"] = "Company Website"
        domain_parts = host.split(".")
        if len(domain_parts) >= 2:
            result["company"] = domain_parts[-2]
        if "job" in path or "career" in path:
            result["position"] = _generic_position(path)

    if result["company"]:
        result["company"] = clean_company_name(result["company"]) or None
    if result["position"]:
        result["position"] = clean_position_title(result["position"]) or None
    return result
