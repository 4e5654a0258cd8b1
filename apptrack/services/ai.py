"""AI career-assistant features on top of an OpenAI-compatible API.

Every operation sends one chat-completion request in JSON mode and parses
the reply. When the call or the parsing fails the operation logs the error
and answers with a fallback payload instead (marked ``"fallback": true``),
so callers always get the documented shape.

Usage:
    service = AIService(session, user)
    result = await service.analyze_application(application_id)
"""

import json
import logging
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import AIConfig, get_config
from ..db.models import AIAnalysis, Application, JobRecommendation, User, utcnow
from ..errors import APIError, NotFoundError, RateLimitError, ValidationFailed
from . import applications as application_service

logger = logging.getLogger(__name__)

MIN_RESUME_LENGTH = 50
MIN_COVER_LETTER_LENGTH = 50
MIN_JOB_DESCRIPTION_LENGTH = 20
CAREER_HISTORY_LIMIT = 100
OPTIMIZATION_GOALS = (
    "ats_optimization", "keyword_enhancement", "achievement_quantification",
    "structure_improvement", "content_enhancement",
)
DEFAULT_OPTIMIZATION_GOALS = ("ats_optimization", "keyword_enhancement")
LARGE_DATASET = 20
PATTERN_SAMPLE = 50
COVER_LETTER_TONES = ("professional", "enthusiastic", "formal")
RECOMMENDATION_STATUSES = ("new", "viewed", "saved", "applied", "dismissed")

# ---------------------------------------------------------------------------
# Fallback payloads
# ---------------------------------------------------------------------------

FALLBACK_APPLICATION_ANALYSIS = {
    "match_score": 50,
    "strengths": ["Application submitted and being tracked"],
    "improvements": ["Detailed analysis temporarily unavailable"],
    "recommendations": [
        "Follow up one week after applying",
        "Tailor your resume to the job description",
    ],
    "success_probability": 50,
    "confidence": 0,
}

FALLBACK_PATTERN_ANALYSIS = {
    "success_patterns": [],
    "key_insights": ["Pattern analysis temporarily unavailable"],
    "recommendations": [
        "Keep applying consistently",
        "Follow up on applications older than a week",
    ],
    "best_performing_companies": [],
}

FALLBACK_RESUME_ANALYSIS = {
    "overall_score": 50,
    "strengths": ["Resume submitted for analysis"],
    "weaknesses": ["Analysis temporarily unavailable"],
    "suggestions": ["Please try again later"],
    "keyword_match": {"matched": [], "missing": [], "score": 0},
    "sections": [],
}

FALLBACK_INTERVIEW_PREPARATION = {
    "likely_questions": [
        "Tell me about yourself.",
        "Why do you want to work here?",
        "Describe a challenging project and how you handled it.",
        "Where do you see yourself in five years?",
    ],
    "talking_points": ["Relevant experience for the role", "Motivation for joining the company"],
    "research_topics": ["Company mission and products", "Recent company news", "Team and role structure"],
    "questions_to_ask": ["What does success look like in this role?"],
}

FALLBACK_RESUME_OPTIMIZATION = {
    "optimized_sections": [],
    "keyword_suggestions": [],
    "structural_changes": [],
    "ats_improvements": [],
    "overall_score": 50,
    "improvement_summary": ["Resume optimization temporarily unavailable"],
}

FALLBACK_CAREER_PATH = {
    "current_level": "Mid-level professional",
    "next_steps": [{
        "role": "Senior position in current field",
        "timeframe": "1-2 years",
        "requirements": ["Advanced skills", "Leadership experience"],
        "salary_range": "Market rate + 20-30%",
    }],
    "skill_gaps": [{
        "skill": "Leadership",
        "importance": "important",
        "learning_resources": ["Management courses", "Mentorship programs"],
    }],
    "industry_trends": ["Digital transformation", "Remote work adoption"],
    "recommendations": ["Focus on skill development", "Build professional network"],
}

FALLBACK_MARKET_ANALYSIS = {
    "demand_level": "medium",
    "competition_level": "medium",
    "salary_trends": {
        "current": "Competitive market rates",
        "trend": "stable",
        "factors": ["Economic conditions", "Industry growth"],
    },
    "top_companies": [{
        "name": "Various companies",
        "openings": 50,
        "average_salary": "Market rate",
        "culture": "Varies by company",
    }],
    "emerging_skills": ["Digital skills", "Data analysis", "Communication"],
    "location_analysis": [{
        "location": "Major cities",
        "opportunities": 100,
        "average_salary": "Market rate",
        "cost_of_living": "Varies",
    }],
}

FALLBACK_COVER_LETTER_ANALYSIS = {
    "overall_score": 50,
    "personalization": {
        "score": 50,
        "company_mentions": 0,
        "role_mentions": 0,
        "suggestions": ["Mention the company and role explicitly"],
    },
    "structure": {
        "score": 50,
        "has_opening": True,
        "has_body": True,
        "has_closing": True,
        "suggestions": ["Keep a clear opening, body and closing"],
    },
    "tone": {
        "score": 50,
        "assessment": "Unable to analyze tone",
        "suggestions": ["Keep the tone professional and specific"],
    },
    "improvements": ["Please try again later"],
}

# ---------------------------------------------------------------------------
# System prompts
# ---------------------------------------------------------------------------

APPLICATION_SYSTEM = """You are an expert career advisor and job market analyst. \
Analyze job applications and provide actionable insights to improve success rates.
Always respond with valid JSON in this exact format:
{"match_score": number (0-100), "strengths": [string], "improvements": [string], \
"recommendations": [string], "success_probability": number (0-100), "confidence": number (0-100)}"""

PATTERN_SYSTEM = """You are a senior data analyst specializing in job search optimization. \
Analyze application data to identify actionable success patterns and trends.
Respond with valid JSON in this format:
{"success_patterns": [string], "key_insights": [string], "recommendations": [string], \
"best_performing_companies": [{"name": string, "success_rate": number, "application_count": number}]}"""

RESUME_SYSTEM = """You are an expert resume reviewer and career coach. Analyze resumes and \
provide detailed, actionable feedback.
Respond with valid JSON in this format:
{"overall_score": number (0-100), "strengths": [string], "weaknesses": [string], \
"suggestions": [string], "keyword_match": {"matched": [string], "missing": [string], "score": number}, \
"sections": [{"name": string, "score": number, "feedback": string}]}"""

COVER_LETTER_SYSTEM = """You are an expert cover letter writer. Write concise, specific cover \
letters of three to four paragraphs without placeholders.
Respond with valid JSON in this format:
{"cover_letter": string, "key_points": [string]}"""

INTERVIEW_SYSTEM = """You are an experienced interview coach. Prepare a candidate for an \
interview for the given role.
Respond with valid JSON in this format:
{"likely_questions": [string], "talking_points": [string], "research_topics": [string], \
"questions_to_ask": [string]}"""

RECOMMENDATION_SYSTEM = """You are a career advisor recommending job roles that fit a \
candidate profile and application history.
Respond with valid JSON in this format:
{"recommendations": [{"job_title": string, "company": string, "location": string, \
"salary_range": string, "job_description": string, "requirements": [string], \
"match_score": number (0-100), "match_reasons": [string]}]}"""

OPTIMIZE_RESUME_SYSTEM = """You are an expert resume writer and ATS specialist. Rewrite \
resume sections to match a target role while keeping every statement truthful.
Respond with valid JSON in this format:
{"optimized_sections": [{"section": string, "original": string, "optimized": string, \
"improvements": [string]}], "keyword_suggestions": [string], "structural_changes": [string], \
"ats_improvements": [string], "overall_score": number (0-100), "improvement_summary": [string]}"""

CAREER_PATH_SYSTEM = """You are a career development strategist. Assess the candidate's \
current level and map realistic next career steps.
Respond with valid JSON in this format:
{"current_level": string, "next_steps": [{"role": string, "timeframe": string, \
"requirements": [string], "salary_range": string}], "skill_gaps": [{"skill": string, \
"importance": "critical|important|nice-to-have", "learning_resources": [string]}], \
"industry_trends": [string], "recommendations": [string]}"""

MARKET_SYSTEM = """You are a labor market analyst. Describe current hiring conditions for \
a role, industry and location.
Respond with valid JSON in this format:
{"demand_level": "low|medium|high", "competition_level": "low|medium|high", \
"salary_trends": {"current": string, "trend": "rising|stable|declining", "factors": [string]}, \
"top_companies": [{"name": string, "openings": number, "average_salary": string, "culture": string}], \
"emerging_skills": [string], "location_analysis": [{"location": string, "opportunities": number, \
"average_salary": string, "cost_of_living": string}]}"""

COVER_LETTER_REVIEW_SYSTEM = """You are a hiring manager reviewing cover letters. Score \
personalization, structure and tone against the job description.
Respond with valid JSON in this format:
{"overall_score": number (0-100), "personalization": {"score": number, "company_mentions": number, \
"role_mentions": number, "suggestions": [string]}, "structure": {"score": number, \
"has_opening": boolean, "has_body": boolean, "has_closing": boolean, "suggestions": [string]}, \
"tone": {"score": number, "assessment": string, "suggestions": [string]}, "improvements": [string]}"""


class AIUnavailableError(APIError):
    def __init__(self, message: str = "AI service is not configured"):
        super().__init__(503, "AI_UNAVAILABLE", message)


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimiter:
    """Sliding-window request counter per user (minute and day windows)."""

    def __init__(self, per_minute: int, per_day: int):
        self.per_minute = per_minute
        self.per_day = per_day
        self._requests: dict[str, deque] = defaultdict(deque)

    def check(self, user_id: str, now: Optional[datetime] = None) -> None:
        """Record a request or raise RateLimitError when a window is full."""
        now = now or utcnow()
        window = self._requests[user_id]
        while window and window[0] <= now - timedelta(days=1):
            window.popleft()

        if len(window) >= self.per_day:
            reset = window[0] + timedelta(days=1)
            raise RateLimitError("Daily AI request limit exceeded", reset.isoformat())

        last_minute = [t for t in window if t > now - timedelta(minutes=1)]
        if len(last_minute) >= self.per_minute:
            reset = last_minute[0] + timedelta(minutes=1)
            raise RateLimitError("Too many AI requests. Please try again later.", reset.isoformat())

        window.append(now)

    def reset(self) -> None:
        self._requests.clear()


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        ai_config = get_config().ai
        _rate_limiter = RateLimiter(ai_config.requests_per_minute, ai_config.requests_per_day)
    return _rate_limiter


def reset_rate_limiter() -> None:
    global _rate_limiter
    _rate_limiter = None


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


class AIClient:
    """Minimal chat-completions client (OpenAI wire format, JSON mode)."""

    def __init__(self, config: AIConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    @property
    def is_available(self) -> bool:
        return bool(self.config.api_key)

    async def complete_json(
        self,
        system: str,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 1200,
    ) -> dict:
        """Send one completion request and return the parsed JSON reply.

        Raises httpx.HTTPError on transport/status errors and ValueError when
        the reply is not a JSON object.
        """
        body = {
            "model": model or self.config.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self.config.api_key}"}
        async with httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        ) as client:
            resp = await client.post("/chat/completions", headers=headers, json=body)
            resp.raise_for_status()
            data = resp.json()

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Unexpected completion shape: {e}") from e
        if not content:
            raise ValueError("Empty completion")
        parsed = json.loads(content)
        if not isinstance(parsed, dict):
            raise ValueError("Completion is not a JSON object")
        return parsed


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------


def _profile_lines(user: User) -> list[str]:
    lines = []
    if user.experience_level:
        lines.append(f"Experience level: {user.experience_level}")
    if user.skills:
        lines.append(f"Skills: {', '.join(user.skills)}")
    if user.industries:
        lines.append(f"Industries: {', '.join(user.industries)}")
    if user.preferred_locations:
        lines.append(f"Preferred locations: {', '.join(user.preferred_locations)}")
    if user.job_types:
        lines.append(f"Job types: {', '.join(user.job_types)}")
    if user.desired_salary_min or user.desired_salary_max:
        lines.append(f"Desired salary: {user.desired_salary_min or '?'} - {user.desired_salary_max or '?'}")
    return lines


def _application_lines(app: Application) -> list[str]:
    lines = [f"Company: {app.company}", f"Position: {app.position}", f"Status: {app.status}"]
    if app.location:
        lines.append(f"Location: {app.location}")
    if app.job_type:
        lines.append(f"Job type: {app.job_type}")
    if app.salary_range:
        lines.append(f"Salary range: {app.salary_range}")
    if app.requirements:
        lines.append(f"Requirements: {', '.join(app.requirements)}")
    if app.job_description:
        lines.append(f"Job description:\n{app.job_description}")
    if app.notes:
        lines.append(f"Notes: {app.notes}")
    return lines


def build_application_prompt(app: Application, user: User) -> str:
    parts = ["Analyze this job application:", *_application_lines(app)]
    profile = _profile_lines(user)
    if profile:
        parts += ["", "Candidate profile:", *profile]
    return "\n".join(parts)


def build_pattern_prompt(apps: list[Application]) -> str:
    rows = []
    for app in apps[:PATTERN_SAMPLE]:
        applied = app.applied_date.date().isoformat() if app.applied_date else "unknown"
        rows.append(
            f"- {app.company} | {app.position} | {app.status} | {app.job_type or '-'} "
            f"| {app.location or '-'} | applied {applied}"
        )
    return "\n".join([
        f"Analyze these {len(apps)} job applications for success patterns:",
        *rows,
    ])


def build_resume_prompt(resume_text: str, job_description: Optional[str], target_role: Optional[str]) -> str:
    parts = [f"Resume:\n{resume_text}"]
    if target_role:
        parts.append(f"Target role: {target_role}")
    if job_description:
        parts.append(f"Job description to match against:\n{job_description}")
    return "\n\n".join(parts)


def build_cover_letter_prompt(
    company: str,
    position: str,
    tone: str,
    user: User,
    job_description: Optional[str] = None,
    resume_text: Optional[str] = None,
) -> str:
    name = " ".join(p for p in (user.first_name, user.last_name) if p) or "the candidate"
    parts = [
        f"Write a {tone} cover letter from {name} for the {position} position at {company}.",
    ]
    if job_description:
        parts.append(f"Job description:\n{job_description}")
    if resume_text:
        parts.append(f"Resume:\n{resume_text}")
    profile = _profile_lines(user)
    if profile:
        parts.append("Candidate profile:\n" + "\n".join(profile))
    return "\n\n".join(parts)


def _same_kind(value, template) -> bool:
    """Whether a reply value has the JSON type of the fallback value."""
    if isinstance(template, bool):
        return isinstance(value, bool)
    if isinstance(template, (int, float)):
        # numeric strings are clamped later
        return isinstance(value, (int, float, str)) and not isinstance(value, bool)
    for kind in (list, dict, str):
        if isinstance(template, kind):
            return isinstance(value, kind)
    return True


def conform_reply(reply: dict, fallback: dict) -> tuple[dict, list[str]]:
    """Merge a reply over its fallback, keeping fallback values for mistyped keys."""
    merged = dict(fallback)
    rejected = []
    for key, value in reply.items():
        if key in fallback and not _same_kind(value, fallback[key]):
            rejected.append(key)
            continue
        merged[key] = value
    return merged, rejected


def _str_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float))]


def _text(value, limit: Optional[int] = None) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)[:limit] if limit else str(value)


def fallback_cover_letter(company: str, position: str, user: User) -> dict:
    name = " ".join(p for p in (user.first_name, user.last_name) if p) or "Applicant"
    letter = (
        f"Dear Hiring Manager,\n\n"
        f"I am writing to apply for the {position} position at {company}. "
        f"My background and skills make me confident that I can contribute to your team.\n\n"
        f"I would welcome the opportunity to discuss how my experience fits the needs of {company}.\n\n"
        f"Thank you for your consideration.\n\n"
        f"Sincerely,\n{name}"
    )
    return {"cover_letter": letter, "key_points": []}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AIService:
    """AI operations for one user, persisting results as AIAnalysis rows."""

    def __init__(
        self,
        session: Session,
        user: User,
        config: Optional[AIConfig] = None,
        client: Optional[AIClient] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        self.session = session
        self.user = user
        self.config = config or get_config().ai
        self.client = client or AIClient(self.config)
        self.limiter = limiter or get_rate_limiter()

    def _guard(self) -> None:
        if not self.client.is_available:
            raise AIUnavailableError()
        self.limiter.check(self.user.id)

    async def _ask(self, system: str, prompt: str, fallback: dict, **kwargs) -> dict:
        try:
            result = await self.client.complete_json(system, prompt, **kwargs)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"AI request failed for user {self.user.id}: {e}")
            return {**fallback, "fallback": True}
        merged, rejected = conform_reply(result, fallback)
        if rejected:
            logger.warning(f"AI reply had unexpected types for {', '.join(rejected)}; using defaults")
        return {**merged, "fallback": False}

    def _record(
        self,
        analysis_type: str,
        input_data: dict,
        result: dict,
        application_id: Optional[str] = None,
        confidence: Optional[float] = None,
    ) -> AIAnalysis:
        analysis = AIAnalysis(
            user_id=self.user.id,
            application_id=application_id,
            analysis_type=analysis_type,
            input_data=input_data,
            analysis_result=result,
            confidence_score=confidence,
        )
        self.session.add(analysis)
        self.session.flush()
        return analysis

    async def analyze_application(self, application_id: str) -> dict:
        app = application_service.get_application(self.session, self.user.id, application_id)
        self._guard()
        result = await self._ask(
            APPLICATION_SYSTEM,
            build_application_prompt(app, self.user),
            FALLBACK_APPLICATION_ANALYSIS,
        )
        score = _clamp_score(result.get("match_score"))
        result["match_score"] = score
        app.ai_match_score = score
        app.ai_insights = result
        confidence = result.get("confidence")
        self._record(
            "application", {"application_id": app.id}, result,
            application_id=app.id,
            confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
        )
        logger.info(f"Analyzed application {app.id} (score={score}, fallback={result['fallback']})")
        return result

    async def analyze_applications(self, application_ids: Optional[list[str]] = None) -> dict:
        query = self.session.query(Application).filter(Application.user_id == self.user.id)
        if application_ids:
            query = query.filter(Application.id.in_(application_ids))
        apps = query.order_by(Application.created_at.desc()).all()
        if not apps:
            raise ValidationFailed("At least one application is required for analysis")

        self._guard()
        model = self.config.large_model if len(apps) > LARGE_DATASET else self.config.model
        result = await self._ask(
            PATTERN_SYSTEM, build_pattern_prompt(apps), FALLBACK_PATTERN_ANALYSIS,
            model=model, temperature=0.2, max_tokens=2000,
        )
        result["summary"] = _pattern_summary(apps)
        self._record("patterns", {"application_count": len(apps)}, result)
        return result

    async def analyze_resume(
        self,
        resume_text: str,
        job_description: Optional[str] = None,
        target_role: Optional[str] = None,
    ) -> dict:
        if len((resume_text or "").strip()) < MIN_RESUME_LENGTH:
            raise ValidationFailed(f"Resume text must be at least {MIN_RESUME_LENGTH} characters")
        self._guard()
        result = await self._ask(
            RESUME_SYSTEM,
            build_resume_prompt(resume_text, job_description, target_role),
            FALLBACK_RESUME_ANALYSIS,
            max_tokens=2000,
        )
        self._record(
            "resume",
            {"target_role": target_role, "has_job_description": bool(job_description)},
            result,
        )
        return result

    async def generate_cover_letter(
        self,
        application_id: Optional[str] = None,
        company: Optional[str] = None,
        position: Optional[str] = None,
        job_description: Optional[str] = None,
        resume_text: Optional[str] = None,
        tone: str = "professional",
    ) -> dict:
        if tone not in COVER_LETTER_TONES:
            raise ValidationFailed(f"tone must be one of {', '.join(COVER_LETTER_TONES)}")
        app = None
        if application_id:
            app = application_service.get_application(self.session, self.user.id, application_id)
            company = app.company
            position = app.position
            job_description = job_description or app.job_description
        if not company or not position:
            raise ValidationFailed("Either application_id or company and position are required")

        self._guard()
        prompt = build_cover_letter_prompt(company, position, tone, self.user, job_description, resume_text)
        result = await self._ask(
            COVER_LETTER_SYSTEM, prompt,
            fallback_cover_letter(company, position, self.user),
            temperature=0.7, max_tokens=1500,
        )
        result["tone"] = tone
        self._record(
            "cover_letter",
            {"company": company, "position": position, "tone": tone},
            result,
            application_id=app.id if app else None,
        )
        return result

    async def interview_preparation(self, application_id: str) -> dict:
        app = application_service.get_application(self.session, self.user.id, application_id)
        self._guard()
        prompt = "\n".join([
            "Prepare me for an interview for this application:",
            *_application_lines(app),
            *_profile_lines(self.user),
        ])
        result = await self._ask(INTERVIEW_SYSTEM, prompt, FALLBACK_INTERVIEW_PREPARATION, max_tokens=1500)
        self._record("interview_prep", {"application_id": app.id}, result, application_id=app.id)
        return result

    async def optimize_resume(
        self,
        resume_text: str,
        target_role: Optional[str] = None,
        target_industry: Optional[str] = None,
        job_description: Optional[str] = None,
        goals: Optional[list[str]] = None,
    ) -> dict:
        if len((resume_text or "").strip()) < MIN_RESUME_LENGTH:
            raise ValidationFailed(f"Resume text must be at least {MIN_RESUME_LENGTH} characters")
        goals = list(goals or DEFAULT_OPTIMIZATION_GOALS)
        unknown = [g for g in goals if g not in OPTIMIZATION_GOALS]
        if unknown:
            raise ValidationFailed(
                f"Unknown optimization goals: {', '.join(unknown)}",
                {"supported": list(OPTIMIZATION_GOALS)},
            )

        self._guard()
        parts = [build_resume_prompt(resume_text, job_description, target_role)]
        if target_industry:
            parts.append(f"Target industry: {target_industry}")
        parts.append(f"Optimization goals: {', '.join(goals)}")
        result = await self._ask(
            OPTIMIZE_RESUME_SYSTEM, "\n\n".join(parts), FALLBACK_RESUME_OPTIMIZATION,
            temperature=0.4, max_tokens=2500,
        )
        result["overall_score"] = _clamp_score(result.get("overall_score"))
        self._record(
            "resume_optimization",
            {"target_role": target_role, "target_industry": target_industry, "goals": goals},
            result,
        )
        return result

    async def career_path_analysis(self, target_role: Optional[str] = None) -> dict:
        """Career level and next steps from the profile and application history."""
        self._guard()
        apps = (
            self.session.query(Application)
            .filter(Application.user_id == self.user.id)
            .order_by(Application.created_at.desc())
            .limit(CAREER_HISTORY_LIMIT)
            .all()
        )
        parts = ["Analyze the career path of this candidate.", *_profile_lines(self.user)]
        if target_role:
            parts.append(f"Target role: {target_role}")
        if apps:
            parts.append(f"Application history ({len(apps)} most recent):")
            parts += [f"- {a.position} at {a.company} ({a.status})" for a in apps]
        result = await self._ask(
            CAREER_PATH_SYSTEM, "\n".join(parts), FALLBACK_CAREER_PATH, max_tokens=2000,
        )
        self._record(
            "career_path", {"target_role": target_role, "application_count": len(apps)}, result,
        )
        return result

    async def market_analysis(
        self,
        role: str,
        industry: str,
        location: str,
        experience_level: str,
    ) -> dict:
        missing = [
            name for name, value in (
                ("role", role), ("industry", industry),
                ("location", location), ("experience_level", experience_level),
            )
            if not (value or "").strip()
        ]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

        self._guard()
        prompt = "\n".join([
            "Analyze the job market for:",
            f"Role: {role}",
            f"Industry: {industry}",
            f"Location: {location}",
            f"Experience level: {experience_level}",
        ])
        result = await self._ask(MARKET_SYSTEM, prompt, FALLBACK_MARKET_ANALYSIS, max_tokens=2000)
        self._record(
            "market",
            {"role": role, "industry": industry, "location": location, "experience_level": experience_level},
            result,
        )
        return result

    async def analyze_cover_letter(
        self,
        cover_letter_text: str,
        job_description: str,
        company_name: str,
    ) -> dict:
        if len((cover_letter_text or "").strip()) < MIN_COVER_LETTER_LENGTH:
            raise ValidationFailed(
                f"Cover letter text must be at least {MIN_COVER_LETTER_LENGTH} characters"
            )
        if len((job_description or "").strip()) < MIN_JOB_DESCRIPTION_LENGTH:
            raise ValidationFailed(
                f"Job description must be at least {MIN_JOB_DESCRIPTION_LENGTH} characters"
            )
        if not (company_name or "").strip():
            raise ValidationFailed("Company name is required")

        self._guard()
        prompt = "\n\n".join([
            f"Company: {company_name}",
            f"Job description:\n{job_description}",
            f"Cover letter:\n{cover_letter_text}",
        ])
        result = await self._ask(
            COVER_LETTER_REVIEW_SYSTEM, prompt, FALLBACK_COVER_LETTER_ANALYSIS, max_tokens=1500,
        )
        result["overall_score"] = _clamp_score(result.get("overall_score"))
        self._record("cover_letter_review", {"company": company_name}, result)
        return result

    async def job_recommendations(self, count: int = 5) -> list[JobRecommendation]:
        """Ask for fresh recommendations and store them; fallback yields none."""
        self._guard()
        recent = (
            self.session.query(Application)
            .filter(Application.user_id == self.user.id)
            .order_by(Application.created_at.desc())
            .limit(20)
            .all()
        )
        prompt = "\n".join([
            f"Recommend {count} job roles for this candidate.",
            *_profile_lines(self.user),
            "Recent applications:",
            *(f"- {a.position} at {a.company} ({a.status})" for a in recent),
        ])
        result = await self._ask(RECOMMENDATION_SYSTEM, prompt, {"recommendations": []}, max_tokens=2000)

        created = []
        for item in result["recommendations"][:count]:
            if not isinstance(item, dict) or not item.get("job_title") or not item.get("company"):
                logger.debug(f"Skipping malformed recommendation: {item}")
                continue
            rec = JobRecommendation(
                user_id=self.user.id,
                job_title=str(item["job_title"])[:255],
                company=str(item["company"])[:255],
                location=_text(item.get("location"), 255),
                salary_range=_text(item.get("salary_range"), 100),
                job_description=_text(item.get("job_description")),
                requirements=_str_list(item.get("requirements")),
                job_url=_text(item.get("job_url")),
                source="ai",
                match_score=_clamp_score(item.get("match_score")),
                match_reasons=_str_list(item.get("match_reasons")),
                status="new",
            )
            self.session.add(rec)
            created.append(rec)
        self.session.flush()
        logger.info(f"Stored {len(created)} AI job recommendations for user {self.user.id}")
        return created


def _clamp_score(value) -> int:
    try:
        return max(0, min(100, int(round(float(value)))))
    except (TypeError, ValueError):
        return 0


def _pattern_summary(apps: list[Application]) -> dict:
    total = len(apps)
    responded = sum(1 for a in apps if a.status not in ("Pending", "Applied"))
    interviews = sum(1 for a in apps if a.status in ("Interviewing", "Offered", "Accepted"))
    offers = sum(1 for a in apps if a.status in ("Offered", "Accepted"))
    return {
        "total_applications": total,
        "response_rate": round(responded / total * 100, 2),
        "interview_rate": round(interviews / total * 100, 2),
        "offer_rate": round(offers / total * 100, 2),
    }


# ---------------------------------------------------------------------------
# Stored recommendations
# ---------------------------------------------------------------------------


def list_recommendations(
    session: Session,
    user_id: str,
    status: Optional[str] = None,
) -> list[JobRecommendation]:
    query = session.query(JobRecommendation).filter(JobRecommendation.user_id == user_id)
    if status:
        query = query.filter(JobRecommendation.status == status)
    return query.order_by(
        JobRecommendation.match_score.desc().nulls_last(),
        JobRecommendation.created_at.desc(),
    ).all()


def get_recommendation(session: Session, user_id: str, recommendation_id: str) -> JobRecommendation:
    rec = (
        session.query(JobRecommendation)
        .filter(JobRecommendation.id == recommendation_id, JobRecommendation.user_id == user_id)
        .first()
    )
    if rec is None:
        raise NotFoundError("Job recommendation not found")
    return rec


def update_recommendation(
    session: Session,
    user_id: str,
    recommendation_id: str,
    changes: dict,
) -> JobRecommendation:
    rec = get_recommendation(session, user_id, recommendation_id)
    status = changes.get("status")
    if status is not None and status not in RECOMMENDATION_STATUSES:
        raise ValidationFailed(f"status must be one of {', '.join(RECOMMENDATION_STATUSES)}")
    for key, value in changes.items():
        setattr(rec, key, value)
    session.flush()
    return rec


def delete_recommendation(session: Session, user_id: str, recommendation_id: str) -> None:
    session.delete(get_recommendation(session, user_id, recommendation_id))
    session.flush()


def serialize_recommendation(rec: JobRecommendation) -> dict:
    return {
        "id": rec.id,
        "job_title": rec.job_title,
        "company": rec.company,
        "location": rec.location,
        "salary_range": rec.salary_range,
        "job_description": rec.job_description,
        "requirements": rec.requirements or [],
        "job_url": rec.job_url,
        "source": rec.source,
        "match_score": rec.match_score,
        "match_reasons": rec.match_reasons or [],
        "status": rec.status,
        "created_at": rec.created_at.isoformat() if rec.created_at else None,
        "updated_at": rec.updated_at.isoformat() if rec.updated_at else None,
    }
