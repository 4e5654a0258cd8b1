"""CSV templates for job-board exports and header → field matching.

Each template lists the CSV columns a source produces and the application
field each column fills. ``detect_template`` scores the incoming headers
against every template; ``generate_mapping`` then maps headers of a chosen
template to application fields.

Usage:
    result = detect_template(["Company Name", "Job Title", "Date Applied"])
    result["template"].id          # "indeed"
    mapping = generate_mapping(headers, result["template"])
"""

import logging
import random
from datetime import timedelta
from typing import Optional

from pydantic import BaseModel

from ..db.models import utcnow

logger = logging.getLogger(__name__)


class FieldMapping(BaseModel):
    csv_column: str
    application_field: str
    confidence: float = 1.0
    required: bool = False


class CSVTemplate(BaseModel):
    id: str
    name: str
    description: str
    source: str
    field_mappings: list[FieldMapping]
    sample_data: list[list[str]] = []

    @property
    def headers(self) -> list[str]:
        return [m.csv_column for m in self.field_mappings]


def _mappings(*columns, required=("company", "position")) -> list[FieldMapping]:
    """(column, field[, confidence]) tuples → FieldMapping list."""
    result = []
    for entry in columns:
        column, field = entry[0], entry[1]
        confidence = entry[2] if len(entry) > 2 else 1.0
        result.append(FieldMapping(
            csv_column=column,
            application_field=field,
            confidence=confidence,
            required=field in required,
        ))
    return result


TEMPLATES: dict[str, CSVTemplate] = {
    "linkedin": CSVTemplate(
        id="linkedin",
        name="LinkedIn Export",
        description="Standard format for LinkedIn job application exports",
        source="linkedin",
        field_mappings=_mappings(
            ("Company", "company"),
            ("Position", "position"),
            ("Location", "location"),
            ("Applied Date", "applied_date"),
            ("Status", "status"),
            ("Notes", "notes"),
        ),
        sample_data=[
            ["Company", "Position", "Location", "Applied Date", "Status", "Notes"],
            ["Google", "Software Engineer", "Mountain View, CA", "2024-01-15", "Applied", "Applied via LinkedIn"],
            ["Microsoft", "Product Manager", "Seattle, WA", "2024-01-20", "Interviewing", "Phone screen completed"],
            ["Apple", "iOS Developer", "Cupertino, CA", "2024-01-25", "Pending", "Waiting for response"],
        ],
    ),
    "indeed": CSVTemplate(
        id="indeed",
        name="Indeed Format",
        description="Format compatible with Indeed job applications",
        source="indeed",
        field_mappings=_mappings(
            ("Company Name", "company"),
            ("Job Title", "position"),
            ("Location", "location"),
            ("Date Applied", "applied_date"),
            ("Application Status", "status"),
            ("Salary", "salary_range"),
            ("Job Type", "job_type"),
        ),
        sample_data=[
            ["Company Name", "Job Title", "Location", "Date Applied", "Application Status", "Salary", "Job Type"],
            ["Apple", "iOS Developer", "Cupertino, CA", "2024-01-15", "Applied", "$120,000", "Full-time"],
            ["Netflix", "Data Scientist", "Los Gatos, CA", "2024-01-20", "Pending", "$140,000", "Full-time"],
            ["Tesla", "Software Engineer", "Palo Alto, CA", "2024-01-25", "Interviewing", "$110,000", "Full-time"],
        ],
    ),
    "glassdoor": CSVTemplate(
        id="glassdoor",
        name="Glassdoor Format",
        description="Format for Glassdoor job applications with company ratings",
        source="glassdoor",
        field_mappings=_mappings(
            ("Employer", "company"),
            ("Job Title", "position"),
            ("Location", "location"),
            ("Date Applied", "applied_date"),
            ("Status", "status"),
            ("Salary Estimate", "salary_range"),
        ),
        sample_data=[
            ["Employer", "Job Title", "Location", "Date Applied", "Status", "Salary Estimate", "Company Rating"],
            ["Tesla", "Software Engineer", "Palo Alto, CA", "2024-01-15", "Applied", "$110,000-130,000", "4.2"],
            ["Spotify", "Backend Engineer", "Stockholm, Sweden", "2024-01-20", "Interviewing", "45,000 SEK/month", "4.5"],
            ["Airbnb", "Product Designer", "San Francisco, CA", "2024-01-25", "Pending", "$130,000-150,000", "4.3"],
        ],
    ),
    "custom": CSVTemplate(
        id="custom",
        name="Complete Template",
        description="Comprehensive template with all available fields",
        source="custom",
        field_mappings=_mappings(
            ("Company", "company"),
            ("Position", "position"),
            ("Location", "location"),
            ("Type", "job_type"),
            ("Salary", "salary_range"),
            ("Status", "status"),
            ("Applied Date", "applied_date"),
            ("Response Date", "response_date"),
            ("Interview Date", "interview_date"),
            ("Offer Date", "offer_date"),
            ("Rejection Date", "rejection_date"),
            ("Notes", "notes"),
            ("Job Description", "job_description"),
            ("Requirements", "requirements"),
            ("Contact Person", "contact_person"),
            ("Contact Email", "contact_email"),
            ("Contact Phone", "contact_phone"),
            ("Website", "company_website"),
            ("Job URL", "job_url"),
            ("Company Website", "company_website"),
            ("Tags", "tags"),
            ("Priority", "priority"),
            ("Follow Up Date", "follow_up_date"),
        ),
        sample_data=[
            [
                "Company", "Position", "Location", "Type", "Salary", "Status", "Applied Date",
                "Response Date", "Interview Date", "Notes", "Contact Person", "Contact Email",
                "Website", "Tags", "Priority",
            ],
            [
                "Spotify", "Software Engineer Intern", "Stockholm, Sweden", "Internship",
                "15,000 SEK/month", "Applied", "2024-01-15", "", "",
                "Applied through LinkedIn", "Sarah Johnson", "careers@spotify.com",
                "https://spotify.com/careers", "Backend;Music;Sweden", "High",
            ],
            [
                "Klarna", "Data Scientist", "Stockholm, Sweden", "Full-time",
                "45,000 SEK/month", "Pending", "2024-01-20", "", "",
                "Waiting for response", "Marcus Andersson", "careers@klarna.com",
                "https://klarna.com/careers", "Data Science;Fintech;Sweden", "Medium",
            ],
        ],
    ),
    "minimal": CSVTemplate(
        id="minimal",
        name="Minimal Template",
        description="Simple template with only essential fields",
        source="custom",
        field_mappings=_mappings(
            ("Company", "company"),
            ("Position", "position"),
            ("Status", "status"),
            ("Applied Date", "applied_date"),
        ),
        sample_data=[
            ["Company", "Position", "Status", "Applied Date"],
            ["Google", "Software Engineer", "Applied", "2024-01-15"],
            ["Microsoft", "Product Manager", "Interviewing", "2024-01-20"],
            ["Apple", "iOS Developer", "Pending", "2024-01-25"],
        ],
    ),
    "european": CSVTemplate(
        id="european",
        name="European Format",
        description="Template optimized for European job markets",
        source="custom",
        field_mappings=_mappings(
            ("Company", "company"),
            ("Position", "position"),
            ("Location", "location"),
            ("Salary (Annual)", "salary_range"),
            ("Contract Type", "job_type"),
            ("Application Status", "status"),
            ("Application Date", "applied_date"),
            ("Notes", "notes"),
        ),
        sample_data=[
            ["Company", "Position", "Location", "Salary (Annual)", "Contract Type", "Application Status", "Application Date", "Notes"],
            ["Spotify", "Backend Developer", "Stockholm, Sweden", "550,000 SEK", "Permanent", "Applied", "2024-01-15", "Applied via company website"],
            ["SAP", "Software Engineer", "Berlin, Germany", "€75,000", "Permanent", "Interviewing", "2024-01-20", "Technical interview scheduled"],
            ["ASML", "Hardware Engineer", "Eindhoven, Netherlands", "€68,000", "Permanent", "Pending", "2024-01-25", "Waiting for response"],
        ],
    ),
    "erasmus_turkish": CSVTemplate(
        id="erasmus_turkish",
        name="Erasmus Staj Takip (Türkçe)",
        description="Türkçe Erasmus staj başvuru takip listesi formatı",
        source="custom",
        # Position is optional here; rows without one get a default on import
        field_mappings=_mappings(
            ("Şirket Adı", "company"),
            ("Ülke", "location"),
            ("Sektör", "tags"),
            ("E-posta Tarihi", "applied_date"),
            ("Cevap Tarihi", "response_date"),
            ("Durum", "status"),
            ("İletişim Bilgisi", "contact_email"),
            ("Notlar", "notes"),
            ("Pozisyon", "position", 0.8),
            required=("company",),
        ),
        sample_data=[
            ["Şirket Adı", "Ülke", "Sektör", "E-posta Tarihi", "Cevap Tarihi", "Durum", "İletişim Bilgisi", "Notlar", "Pozisyon"],
            ["Spotify", "İsveç", "Technology/Music", "2024-01-15", "", "Başvuru Planlanıyor", "careers@spotify.com", "Müzik teknolojisi alanında staj", "Stajyer"],
            ["Klarna", "İsveç", "Fintech", "2024-01-20", "2024-01-25", "Cevap Bekleniyor", "internships@klarna.com", "Fintech sektöründe deneyim", "Yazılım Geliştirici Stajyeri"],
            ["Ericsson", "İsveç", "Telecommunications", "2024-01-18", "", "Başvuru Yapıldı", "career@ericsson.com", "Telekomünikasyon mühendisliği", "Mühendislik Stajyeri"],
        ],
    ),
}

# Mis-decoded UTF-8 (read as latin-1) → intended character
MOJIBAKE = [
    ("ã¼", "ü"),
    ("ã¶", "ö"),
    ("ã§", "ç"),
    ("ä±", "ı"),
    ("ä°", "i"),
    ("åž", "ş"),
    ("å", "ğ"),
]

TURKISH_ALIASES = {
    "şirket adı": ["sirket", "company", "firma"],
    "ülke": ["ulke", "country", "location"],
    "sektör": ["sektor", "sector", "industry"],
    "e-posta tarihi": ["eposta", "email", "tarih", "date"],
    "cevap tarihi": ["cevap", "response", "yanitlama"],
    "durum": ["status", "state"],
    "iletişim bilgisi": ["iletisim", "contact", "email"],
    "notlar": ["notes", "note", "aciklama"],
}

FIELD_VARIATIONS = {
    "company": ["employer", "organization", "firm", "business", "corp"],
    "position": ["job title", "role", "title", "job", "position title"],
    "location": ["city", "place", "address", "where", "office"],
    "job_type": ["job type", "employment type", "contract", "work type"],
    "salary_range": ["pay", "wage", "compensation", "income", "remuneration"],
    "status": ["state", "stage", "progress", "application status"],
    "applied_date": ["date applied", "application date", "apply date", "submitted"],
    "response_date": ["response", "reply date", "heard back"],
    "interview_date": ["interview", "meeting date", "call date"],
    "notes": ["comments", "remarks", "description", "memo"],
    "contact_person": ["contact", "recruiter", "hr", "person"],
    "contact_email": ["email", "contact email", "recruiter email"],
    "company_website": ["url", "link", "site", "web"],
    "tags": ["keywords", "categories", "labels"],
}

SAMPLE_COMPANIES = [
    "Google", "Microsoft", "Apple", "Amazon", "Meta", "Netflix", "Tesla",
    "Spotify", "Airbnb", "Uber", "LinkedIn", "Twitter", "Adobe", "Salesforce",
]
SAMPLE_POSITIONS = [
    "Software Engineer", "Product Manager", "Data Scientist", "UX Designer",
    "DevOps Engineer", "Frontend Developer", "Backend Developer", "Full Stack Developer",
    "Machine Learning Engineer", "Product Designer", "Engineering Manager",
]
SAMPLE_LOCATIONS = [
    "San Francisco, CA", "Seattle, WA", "New York, NY", "Austin, TX",
    "Boston, MA", "Los Angeles, CA", "Chicago, IL", "Denver, CO",
    "Stockholm, Sweden", "London, UK", "Berlin, Germany", "Amsterdam, Netherlands",
]
SAMPLE_STATUSES = ["Applied", "Pending", "Interviewing", "Offered", "Rejected"]


def get_template(template_id: str) -> Optional[CSVTemplate]:
    return TEMPLATES.get(template_id)


def list_templates(source: Optional[str] = None) -> list[CSVTemplate]:
    templates = list(TEMPLATES.values())
    if source:
        templates = [t for t in templates if t.source == source]
    return templates


def normalize_header(header: str) -> str:
    """Lowercase, trim and repair common encoding damage."""
    value = header.lower().strip().replace("\u0307", "")
    for broken, fixed in MOJIBAKE:
        value = value.replace(broken, fixed)
    return value


def _partial(a: str, b: str) -> bool:
    return bool(a) and bool(b) and (a in b or b in a)


def _turkish_match(normalized_headers: list[str], column: str) -> bool:
    aliases = TURKISH_ALIASES.get(normalize_header(column), [])
    return any(
        _partial(header, alias)
        for header in normalized_headers
        for alias in aliases
    )


def detect_template(headers: list[str]) -> dict:
    """Best-scoring template for the headers.

    Required mappings weigh 2, optional ones 1. An exact header match counts
    the full weight, a substring match 0.7 of it, and for the Turkish
    template an alias match another 0.9.
    """
    normalized = [normalize_header(h) for h in headers]
    best, best_confidence, best_matched = None, 0.0, 0

    for template in TEMPLATES.values():
        matched = 0
        total_weight = 0.0
        matched_weight = 0.0
        for mapping in template.field_mappings:
            column = normalize_header(mapping.csv_column)
            weight = 2 if mapping.required else 1
            total_weight += weight

            if column in normalized:
                matched += 1
                matched_weight += weight
                continue
            if any(_partial(header, column) for header in normalized):
                matched += 1
                matched_weight += weight * 0.7
            if template.id == "erasmus_turkish" and _turkish_match(normalized, mapping.csv_column):
                matched += 1
                matched_weight += weight * 0.9

        confidence = matched_weight / total_weight if total_weight else 0.0
        if confidence > best_confidence:
            best, best_confidence, best_matched = template, confidence, matched

    logger.debug(
        f"Detected template {best.id if best else None} ({best_confidence:.2f}) "
        f"for {len(headers)} headers"
    )
    return {
        "template": best,
        "confidence": round(min(best_confidence, 1.0), 4),
        "matched_fields": best_matched,
    }


def generate_mapping(headers: list[str], template: CSVTemplate) -> dict:
    """Map headers onto the template's fields.

    Returns ``mapping`` (header → field), per-field ``field_confidence``
    (exact 1.0, partial 0.7, known variation 0.5), their mean as
    ``confidence``, the headers left unmapped and the required fields no
    header covers.
    """
    normalized = [h.lower().strip() for h in headers]
    mapping: dict[str, str] = {}
    field_confidence: dict[str, float] = {}
    missing_fields = []

    for field_mapping in template.field_mappings:
        field = field_mapping.application_field
        expected = field_mapping.csv_column.lower().strip()

        index, score = None, 0.0
        if expected in normalized:
            index, score = normalized.index(expected), 1.0
        if index is None:
            index = next((i for i, h in enumerate(normalized) if _partial(h, expected)), None)
            score = 0.7
        if index is None:
            for variation in FIELD_VARIATIONS.get(field, []):
                index = next((i for i, h in enumerate(normalized) if _partial(h, variation)), None)
                if index is not None:
                    score = 0.5
                    break

        if index is not None and headers[index] not in mapping:
            mapping[headers[index]] = field
            field_confidence[field] = score
        elif index is None and field_mapping.required:
            missing_fields.append(field)

    scores = list(field_confidence.values())
    return {
        "mapping": mapping,
        "field_confidence": field_confidence,
        "confidence": round(sum(scores) / len(scores), 4) if scores else 0.0,
        "unmapped_headers": [h for h in headers if h not in mapping],
        "missing_fields": missing_fields,
    }


def _csv_cell(cell: str) -> str:
    if any(ch in cell for ch in (",", '"', "\n")):
        return '"' + cell.replace('"', '""') + '"'
    return cell


def generate_template_csv(template: CSVTemplate, include_examples: bool = True) -> str:
    """Header row of the template columns followed by its sample rows."""
    rows = [template.headers]
    if include_examples and len(template.sample_data) > 1:
        rows.extend(template.sample_data[1:])
    return "\n".join(",".join(_csv_cell(cell) for cell in row) for row in rows)


def generate_sample_data(
    template: CSVTemplate,
    count: int = 10,
    rng: Optional[random.Random] = None,
) -> list[dict]:
    """Random rows keyed by the template's CSV columns."""
    rng = rng or random.Random()
    today = utcnow().date()
    rows = []
    for _ in range(count):
        row = {}
        for mapping in template.field_mappings:
            field = mapping.application_field
            if field == "company":
                value = rng.choice(SAMPLE_COMPANIES)
            elif field == "position":
                value = rng.choice(SAMPLE_POSITIONS)
            elif field == "location":
                value = rng.choice(SAMPLE_LOCATIONS)
            elif field == "status":
                value = rng.choice(SAMPLE_STATUSES)
            elif field == "applied_date":
                value = (today - timedelta(days=rng.randrange(30))).isoformat()
            elif field == "salary_range":
                value = f"${rng.randrange(80, 180)}k"
            elif field == "job_type":
                value = "Part-time" if rng.random() > 0.8 else "Full-time"
            else:
                value = f"Sample {field}"
            row[mapping.csv_column] = value
        rows.append(row)
    return rows


def create_custom_template(
    name: str,
    description: str,
    mapping: dict[str, str],
    sample_data: Optional[list[list[str]]] = None,
) -> CSVTemplate:
    """Template from a user mapping of application field → CSV column."""
    field_mappings = [
        FieldMapping(
            csv_column=column,
            application_field=field,
            required=field in ("company", "position"),
        )
        for field, column in mapping.items()
    ]
    if sample_data is None:
        sample_data = [list(mapping.values())] + [
            ["Sample Data"] * len(mapping) for _ in range(3)
        ]
    return CSVTemplate(
        id=f"custom-{int(utcnow().timestamp() * 1000)}",
        name=name,
        description=description,
        source="custom",
        field_mappings=field_mappings,
        sample_data=sample_data,
    )


def validate_template(template: dict) -> dict:
    errors = []
    if not template.get("id"):
        errors.append("Template ID is required")
    if not template.get("name"):
        errors.append("Template name is required")
    if not template.get("description"):
        errors.append("Template description is required")
    if not template.get("source"):
        errors.append("Template source is required")
    mappings = template.get("field_mappings") or []
    if not mappings:
        errors.append("Template must have at least one field mapping")
    if not any(_get_field(m) == "company" for m in mappings):
        errors.append("Template must include company field mapping")
    return {"is_valid": not errors, "errors": errors}


def _get_field(mapping) -> Optional[str]:
    if isinstance(mapping, dict):
        return mapping.get("application_field")
    return getattr(mapping, "application_field", None)
