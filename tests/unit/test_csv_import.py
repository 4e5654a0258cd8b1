"""Tests for CSV import: decoding, value normalization and the import pipeline."""
from datetime import datetime

import pytest

from apptrack.db.models import Application
from apptrack.errors import NotFoundError, ValidationFailed
from apptrack.services.csv_import import (
    decode_content,
    default_position,
    import_csv,
    normalize_job_type,
    normalize_priority,
    normalize_status,
    parse_date,
    split_list,
)

LINKEDIN_CSV = (
    "Company,Position,Location,Applied Date,Status,Notes\n"
    "Google,Software Engineer,\"Mountain View, CA\",2024-01-15,Applied,Via referral\n"
    "Microsoft,Product Manager,\"Seattle, WA\",01/20/2024,Phone interview,\n"
).encode("utf-8")


def _apps(session, user):
    return (
        session.query(Application)
        .filter(Application.user_id == user.id)
        .order_by(Application.company)
        .all()
    )


class TestValueParsing:
    @pytest.mark.parametrize("value,expected", [
        ("2024-01-15", datetime(2024, 1, 15)),
        ("01/20/2024", datetime(2024, 1, 20)),
        ("20.01.2024", datetime(2024, 1, 20)),
        ("2024-01-15T08:30:00", datetime(2024, 1, 15, 8, 30)),
    ])
    def test_parse_date(self, value, expected):
        assert parse_date(value) == expected

    def test_parse_date_invalid(self):
        assert parse_date("soon") is None
        assert parse_date("") is None

    @pytest.mark.parametrize("value,expected", [
        ("applied", "Applied"),
        ("Phone interview", "Interviewing"),
        ("Got an offer!", "Offered"),
        ("Başvuru Yapıldı", "Applied"),
        ("Mülakat", "Interviewing"),
        ("no idea", "Pending"),
    ])
    def test_normalize_status(self, value, expected):
        assert normalize_status(value) == expected

    def test_normalize_job_type(self):
        assert normalize_job_type("full time") == "Full-time"
        assert normalize_job_type("Summer internship") == "Internship"
        assert normalize_job_type("Permanent") == "Full-time"

    def test_normalize_priority(self):
        assert normalize_priority("HIGH") == "High"
        assert normalize_priority("low-ish") == "Low"
        assert normalize_priority("?") == "Medium"

    def test_split_list(self):
        assert split_list("Backend; Music |Sweden,") == ["Backend", "Music", "Sweden"]

    def test_default_position(self):
        assert default_position("Fintech") == "Finance Intern"
        assert default_position("Security Tech") == "Security Intern"
        assert default_position("Software") == "Software Developer Intern"
        assert default_position("Farming") == "Intern"

    def test_decode_content(self):
        assert decode_content("\ufeffCompany".encode("utf-8")) == "Company"
        assert decode_content(b"Caf\xe9") == "Café"


class TestImportCsv:
    def test_detects_template_and_imports(self, session, user):
        result = import_csv(session, user.id, LINKEDIN_CSV)

        assert result["imported"] == 2
        assert result["skipped"] == 0
        assert result["errors"] == []
        assert result["template"] == "linkedin"
        assert result["confidence"] == 1.0

        google, microsoft = _apps(session, user)
        assert google.location == "Mountain View, CA"
        assert google.applied_date == datetime(2024, 1, 15)
        assert google.notes == "Via referral"
        assert microsoft.status == "Interviewing"
        assert microsoft.applied_date == datetime(2024, 1, 20)

    def test_dry_run_writes_nothing(self, session, user):
        result = import_csv(session, user.id, LINKEDIN_CSV, dry_run=True)
        assert result["imported"] == 2
        assert _apps(session, user) == []

    def test_skips_existing_and_repeated_rows(self, session, user, make_application):
        make_application(company="Google", position="Software Engineer")
        content = LINKEDIN_CSV + b"Microsoft,Product Manager,,,,\n"

        result = import_csv(session, user.id, content)
        assert result["imported"] == 1
        assert result["skipped"] == 2

    def test_keeps_duplicates_when_asked(self, session, user, make_application):
        make_application(company="Google", position="Software Engineer")
        result = import_csv(session, user.id, LINKEDIN_CSV, skip_duplicates=False)
        assert result["imported"] == 2
        assert len(_apps(session, user)) == 3

    def test_row_errors(self, session, user):
        content = (
            "Company,Position,Location,Applied Date,Status,Notes\n"
            ",Engineer,,,,\n"
            "Initech,,,,,\n"
            "Globex,Developer,,not-a-date,Applied,\n"
        ).encode("utf-8")
        result = import_csv(session, user.id, content, template_id="linkedin")

        assert result["imported"] == 1
        assert result["errors"] == [
            {"row": 2, "message": "Company is required"},
            {"row": 3, "message": "Position is required"},
        ]
        (globex,) = _apps(session, user)
        assert globex.applied_date is None

    def test_explicit_mapping_validation_error(self, session, user):
        content = b"Firm,Role,Mail\nAcme,Dev,not-an-email\n"
        result = import_csv(
            session, user.id, content,
            mapping={"Firm": "company", "Role": "position", "Mail": "contact_email"},
        )
        assert result["template"] is None
        assert result["imported"] == 0
        assert result["errors"][0]["row"] == 2
        assert result["errors"][0]["message"].startswith("contact_email")

    def test_mapping_with_unknown_column(self, session, user):
        with pytest.raises(ValidationFailed):
            import_csv(session, user.id, LINKEDIN_CSV, mapping={"Employer": "company"})

    def test_unknown_template(self, session, user):
        with pytest.raises(NotFoundError):
            import_csv(session, user.id, LINKEDIN_CSV, template_id="nope")

    def test_empty_file(self, session, user):
        with pytest.raises(ValidationFailed):
            import_csv(session, user.id, b"")

    def test_turkish_tracker_without_position(self, session, user):
        content = (
            "Şirket Adı,Ülke,Sektör,E-posta Tarihi,Cevap Tarihi,Durum,İletişim Bilgisi,Notlar\n"
            "Spotify,İsveç,Technology/Music,2024-01-15,,Başvuru Yapıldı,careers@spotify.com,Staj\n"
        ).encode("utf-8")
        result = import_csv(session, user.id, content)

        assert result["template"] == "erasmus_turkish"
        assert result["imported"] == 1
        (spotify,) = _apps(session, user)
        assert spotify.position == "Software Developer Intern"
        assert spotify.status == "Applied"
        assert spotify.location == "İsveç"
        assert spotify.tags == ["Technology/Music"]
