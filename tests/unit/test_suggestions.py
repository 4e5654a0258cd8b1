"""Tests for autocomplete suggestions and job URL parsing."""
import pytest

from apptrack.errors import ValidationFailed
from apptrack.services.suggestions import (
    SuggestionCache,
    add_suggestion,
    clean_company_name,
    parse_job_url,
    rank_matches,
    suggest,
)


class TestRanking:
    def test_exact_then_prefix_then_substring(self):
        candidates = ["Senior Data Engineer", "data", "Data Scientist", "Big Data", "Database Admin"]
        assert rank_matches(candidates, "Data") == [
            "data", "Data Scientist", "Database Admin", "Big Data", "Senior Data Engineer",
        ]

    def test_no_match(self):
        assert rank_matches(["Google"], "zzz") == []


class TestSuggest:
    def test_user_values_come_first(self, session, user, make_application):
        make_application(company="Zeta Labs")
        assert suggest(session, user.id, "companies", limit=1) == ["Zeta Labs"]

    def test_query_filters_seeds_and_user_values(self, session, user, make_application):
        make_application(company="Googleplex Ventures")
        assert suggest(session, user.id, "companies", "googl") == ["Google", "Googleplex Ventures"]

    def test_alias_puts_standard_value_first(self, session, user):
        assert suggest(session, user.id, "positions", "swe")[0] == "Software Engineer"
        assert suggest(session, user.id, "locations", "nyc") == ["New York, NY, USA"]

    def test_limit(self, session, user):
        assert len(suggest(session, user.id, "positions", "engineer", limit=3)) == 3

    def test_unknown_kind(self, session, user):
        with pytest.raises(ValidationFailed):
            suggest(session, user.id, "salaries", "x")

    def test_added_values_are_suggested(self, session, user):
        cache = SuggestionCache()
        assert add_suggestion("companies", "  Initech ", cache) is True
        assert add_suggestion("companies", "initech", cache) is False
        assert suggest(session, user.id, "companies", "init", cache=cache) == ["Initech"]

    def test_add_validation(self):
        cache = SuggestionCache()
        with pytest.raises(ValidationFailed):
            add_suggestion("companies", "   ", cache)
        with pytest.raises(ValidationFailed):
            add_suggestion("companies", "x" * 256, cache)


class TestParseJobUrl:
    def test_linkedin(self):
        result = parse_job_url("https://www.linkedin.com/jobs/view/12345?keywords=senior-python-developer")
        assert result["source"] == "LinkedIn"
        assert result["position"] == "Senior Python Developer"
        assert result["company"] is None

    def test_indeed(self):
        result = parse_job_url("https://www.indeed.com/viewjob?jk=abc123&cmp=Acme-Inc&q=data-engineer-job")
        assert result["source"] == "Indeed"
        assert result["company"] == "Acme"
        assert result["position"] == "Data Engineer"

    def test_glassdoor(self):
        result = parse_job_url("https://www.glassdoor.com/job-listing/backend-engineer/98765")
        assert result["source"] == "Glassdoor"
        assert result["position"] == "Backend Engineer"

    def test_wellfound(self):
        result = parse_job_url("https://wellfound.com/jobs/hooli/123")
        assert result["source"] == "Wellfound"
        assert result["company"] == "Hooli"

    def test_company_careers_page(self):
        result = parse_job_url("https://careers.stripe.com/jobs/platform-engineer")
        assert result["source"] == "Company Website"
        assert result["company"] == "Stripe"
        assert result["position"] == "Platform Engineer"
        assert result["company_website"] == "https://careers.stripe.com"

    @pytest.mark.parametrize("url", ["", "ftp://example.com/job", "not a url"])
    def test_invalid(self, url):
        with pytest.raises(ValidationFailed):
            parse_job_url(url)

    def test_clean_company_name(self):
        assert clean_company_name("globex_corporation") == "Globex"
