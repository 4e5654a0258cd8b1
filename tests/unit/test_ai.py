"""Tests for the AI client, rate limiter and fallbacks."""
import json
from datetime import datetime, timedelta

import httpx
import pytest

from apptrack.config import AIConfig
from apptrack.db.models import AIAnalysis, JobRecommendation
from apptrack.errors import RateLimitError, ValidationFailed
from apptrack.services.ai import (
    AIClient,
    AIService,
    AIUnavailableError,
    FALLBACK_INTERVIEW_PREPARATION,
    RateLimiter,
    conform_reply,
    update_recommendation,
)

NOW = datetime(2026, 3, 1, 12, 0)


def completion(payload) -> httpx.Response:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.fixture
def make_service(session, user):
    def _make(handler, api_key="sk-test"):
        config = AIConfig(api_key=api_key)
        client = AIClient(config, transport=httpx.MockTransport(handler))
        return AIService(session, user, config=config, client=client, limiter=RateLimiter(10, 100))

    return _make


class TestRateLimiter:
    def test_minute_window(self):
        limiter = RateLimiter(per_minute=2, per_day=100)
        limiter.check("u", NOW)
        limiter.check("u", NOW + timedelta(seconds=10))
        with pytest.raises(RateLimitError) as exc:
            limiter.check("u", NOW + timedelta(seconds=20))
        assert exc.value.status_code == 429
        assert exc.value.details["reset_time"] == (NOW + timedelta(minutes=1)).isoformat()
        limiter.check("u", NOW + timedelta(minutes=2))

    def test_day_window(self):
        limiter = RateLimiter(per_minute=10, per_day=2)
        limiter.check("u", NOW)
        limiter.check("u", NOW + timedelta(hours=1))
        with pytest.raises(RateLimitError, match="Daily"):
            limiter.check("u", NOW + timedelta(hours=2))
        limiter.check("other", NOW + timedelta(hours=2))


class TestAIClient:
    async def test_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return completion({"ok": True})

        client = AIClient(AIConfig(api_key="sk-test"), transport=httpx.MockTransport(handler))
        assert await client.complete_json("system", "prompt") == {"ok": True}

        (request,) = seen
        body = json.loads(request.content)
        assert request.url.path.endswith("/chat/completions")
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert body["model"] == "gpt-4o-mini"
        assert body["response_format"] == {"type": "json_object"}
        assert [m["role"] for m in body["messages"]] == ["system", "user"]

    async def test_non_object_reply(self):
        client = AIClient(AIConfig(api_key="k"), transport=httpx.MockTransport(lambda r: completion("[1, 2]")))
        with pytest.raises(ValueError):
            await client.complete_json("s", "p")


class TestAIService:
    async def test_unavailable_without_key(self, make_service, make_application):
        service = make_service(lambda r: completion({}), api_key="")
        with pytest.raises(AIUnavailableError) as exc:
            await service.analyze_application(make_application().id)
        assert exc.value.status_code == 503

    async def test_analyze_application(self, session, make_service, make_application):
        app = make_application()
        service = make_service(lambda r: completion({"match_score": 130, "strengths": ["Python"]}))

        result = await service.analyze_application(app.id)
        assert result["match_score"] == 100
        assert result["strengths"] == ["Python"]
        assert result["fallback"] is False
        assert app.ai_match_score == 100
        (analysis,) = session.query(AIAnalysis).all()
        assert analysis.analysis_type == "application"

    async def test_fallback_on_server_error(self, make_service, make_application):
        service = make_service(lambda r: httpx.Response(500))
        result = await service.analyze_application(make_application().id)
        assert result["fallback"] is True
        assert result["match_score"] == 50

    async def test_fallback_on_invalid_json(self, make_service, make_application):
        service = make_service(lambda r: completion("not json"))
        result = await service.interview_preparation(make_application().id)
        assert result["fallback"] is True
        assert result["likely_questions"]

    async def test_resume_too_short(self, make_service):
        service = make_service(lambda r: completion({}))
        with pytest.raises(ValidationFailed):
            await service.analyze_resume("too short")

    async def test_cover_letter_fallback_uses_name(self, make_service):
        service = make_service(lambda r: httpx.Response(502))
        result = await service.generate_cover_letter(company="Globex", position="Data Engineer")
        assert result["tone"] == "professional"
        assert "Data Engineer position at Globex" in result["cover_letter"]
        assert result["cover_letter"].endswith("Jane Doe")

    async def test_cover_letter_requires_target(self, make_service):
        service = make_service(lambda r: completion({}))
        with pytest.raises(ValidationFailed):
            await service.generate_cover_letter(company="Globex")
        with pytest.raises(ValidationFailed):
            await service.generate_cover_letter(company="Globex", position="x", tone="casual")

    async def test_pattern_summary(self, make_service, make_application):
        make_application(status="Interviewing")
        make_application(status="Applied")
        service = make_service(lambda r: completion({"key_insights": ["Apply earlier"]}))
        result = await service.analyze_applications()
        assert result["key_insights"] == ["Apply earlier"]
        assert result["summary"]["interview_rate"] == 50.0

    async def test_recommendations_skip_malformed(self, session, user, make_service):
        reply = {"recommendations": [
            {"job_title": "Data Engineer", "company": "Globex", "match_score": "87.6"},
            {"job_title": "No company"},
        ]}
        service = make_service(lambda r: completion(reply))
        (rec,) = await service.job_recommendations()
        assert rec.match_score == 88
        assert rec.source == "ai"

        with pytest.raises(ValidationFailed):
            update_recommendation(session, user.id, rec.id, {"status": "archived"})
        update_recommendation(session, user.id, rec.id, {"status": "saved"})
        assert session.query(JobRecommendation).one().status == "saved"

    async def test_recommendations_not_a_list(self, session, make_service):
        service = make_service(lambda r: completion({"recommendations": {"job_title": "Data Engineer"}}))
        assert await service.job_recommendations() == []
        assert session.query(JobRecommendation).count() == 0

    async def test_recommendation_lists_are_coerced(self, make_service):
        reply = {"recommendations": [{
            "job_title": "Data Engineer", "company": "Globex",
            "requirements": "SQL", "match_reasons": ["Python", {"x": 1}], "location": {"city": "Berlin"},
        }]}
        service = make_service(lambda r: completion(reply))
        (rec,) = await service.job_recommendations()
        assert rec.requirements == []
        assert rec.match_reasons == ["Python"]
        assert rec.location is None

    async def test_mistyped_fields_keep_defaults(self, make_service, make_application):
        service = make_service(lambda r: completion({"likely_questions": "Why us?", "research_topics": ["Funding"]}))
        result = await service.interview_preparation(make_application().id)
        assert result["likely_questions"] == FALLBACK_INTERVIEW_PREPARATION["likely_questions"]
        assert result["research_topics"] == ["Funding"]
        assert result["fallback"] is False


class TestCareerAnalyses:
    RESUME = "Backend engineer with six years of Python, SQL and cloud experience at scale."
    LETTER = "Dear team, I am excited to apply for the Data Engineer role at Globex because..."

    async def test_optimize_resume_defaults_goals(self, session, make_service):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return completion({"overall_score": 140, "keyword_suggestions": ["Kubernetes"]})

        result = await make_service(handler).optimize_resume(self.RESUME, target_role="Staff Engineer")
        assert result["overall_score"] == 100
        assert result["keyword_suggestions"] == ["Kubernetes"]
        assert result["optimized_sections"] == []
        prompt = seen[0]["messages"][1]["content"]
        assert "ats_optimization, keyword_enhancement" in prompt
        assert session.query(AIAnalysis).one().analysis_type == "resume_optimization"

    async def test_optimize_resume_validation(self, make_service):
        service = make_service(lambda r: completion({}))
        with pytest.raises(ValidationFailed):
            await service.optimize_resume("short")
        with pytest.raises(ValidationFailed) as exc:
            await service.optimize_resume(self.RESUME, goals=["make_it_pop"])
        assert "ats_optimization" in exc.value.details["supported"]

    async def test_career_path_uses_history(self, make_service, make_application):
        make_application(company="Globex", position="Data Engineer", status="Interviewing")
        seen = []

        def handler(request):
            seen.append(json.loads(request.content)["messages"][1]["content"])
            return httpx.Response(503)

        result = await make_service(handler).career_path_analysis(target_role="Engineering Manager")
        assert result["fallback"] is True
        assert result["current_level"] == "Mid-level professional"
        assert "Data Engineer at Globex (Interviewing)" in seen[0]
        assert "Target role: Engineering Manager" in seen[0]

    async def test_market_analysis_requires_all_fields(self, make_service):
        service = make_service(lambda r: completion({}))
        with pytest.raises(ValidationFailed, match="industry, location"):
            await service.market_analysis("Data Engineer", "", " ", "senior")

    async def test_market_analysis_fallback_shape(self, make_service):
        service = make_service(lambda r: completion({"demand_level": "high", "top_companies": "many"}))
        result = await service.market_analysis("Data Engineer", "Fintech", "Berlin", "senior")
        assert result["demand_level"] == "high"
        assert result["top_companies"][0]["openings"] == 50
        assert result["salary_trends"]["trend"] == "stable"

    async def test_cover_letter_analysis(self, make_service):
        service = make_service(lambda r: completion({"overall_score": "81.4", "improvements": ["Quantify impact"]}))
        result = await service.analyze_cover_letter(
            self.LETTER, "Build data pipelines in Python and SQL", "Globex",
        )
        assert result["overall_score"] == 81
        assert result["improvements"] == ["Quantify impact"]
        assert result["structure"]["has_closing"] is True

    @pytest.mark.parametrize("letter,description,company", [
        ("Too short", "Build data pipelines in Python", "Globex"),
        (LETTER, "Pipelines", "Globex"),
        (LETTER, "Build data pipelines in Python", "  "),
    ])
    async def test_cover_letter_analysis_validation(self, make_service, letter, description, company):
        service = make_service(lambda r: completion({}))
        with pytest.raises(ValidationFailed):
            await service.analyze_cover_letter(letter, description, company)


def test_conform_reply():
    merged, rejected = conform_reply(
        {"match_score": "72", "strengths": {"a": 1}, "extra": 1},
        {"match_score": 50, "strengths": []},
    )
    assert merged == {"match_score": "72", "strengths": [], "extra": 1}
    assert rejected == ["strengths"]
