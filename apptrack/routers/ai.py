"""
AI API Endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import User
from ..errors import ok
from ..services import ai
from ..services.ai import AIService

router = APIRouter()


def get_ai_service(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AIService:
    return AIService(db, current_user)


class AnalyzeApplicationsRequest(BaseModel):
    application_ids: Optional[list[str]] = None


class ResumeRequest(BaseModel):
    resume_text: str
    job_description: Optional[str] = None
    target_role: Optional[str] = None


class CoverLetterRequest(BaseModel):
    application_id: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    job_description: Optional[str] = None
    resume_text: Optional[str] = None
    tone: str = "professional"


class OptimizeResumeRequest(BaseModel):
    resume_text: str
    target_role: Optional[str] = None
    target_industry: Optional[str] = None
    job_description: Optional[str] = None
    optimization_goals: Optional[list[str]] = None


class CareerPathRequest(BaseModel):
    target_role: Optional[str] = None


class MarketAnalysisRequest(BaseModel):
    role: str
    industry: str
    location: str
    experience_level: str


class CoverLetterAnalysisRequest(BaseModel):
    cover_letter_text: str
    job_description: str
    company_name: str


class RecommendationRequest(BaseModel):
    count: int = Field(5, ge=1, le=10)


class RecommendationUpdate(BaseModel):
    status: Optional[str] = None


@router.post("/analyze-application/{application_id}")
async def analyze_application(
    application_id: str,
    service: AIService = Depends(get_ai_service),
):
    return ok(await service.analyze_application(application_id))


@router.post("/analyze-applications")
async def analyze_applications(
    body: AnalyzeApplicationsRequest,
    service: AIService = Depends(get_ai_service),
):
    return ok(await service.analyze_applications(body.application_ids))


@router.post("/analyze-resume")
async def analyze_resume(
    body: ResumeRequest,
    service: AIService = Depends(get_ai_service),
):
    return ok(await service.analyze_resume(body.resume_text, body.job_description, body.target_role))


@router.post("/generate-cover-letter")
async def generate_cover_letter(
    body: CoverLetterRequest,
    service: AIService = Depends(get_ai_service),
):
    return ok(await service.generate_cover_letter(**body.model_dump()))


@router.post("/interview-preparation/{application_id}")
async def interview_preparation(
    application_id: str,
    service: AIService = Depends(get_ai_service),
):
    return ok(await service.interview_preparation(application_id))


@router.post("/optimize-resume")
async def optimize_resume(
    body: OptimizeResumeRequest,
    service: AIService = Depends(get_ai_service),
):
    return ok(await service.optimize_resume(
        body.resume_text,
        target_role=body.target_role,
        target_industry=body.target_industry,
        job_description=body.job_description,
        goals=body.optimization_goals,
    ))


@router.post("/career-path-analysis")
async def career_path_analysis(
    body: CareerPathRequest,
    service: AIService = Depends(get_ai_service),
):
    return ok(await service.career_path_analysis(body.target_role))


@router.post("/market-analysis")
async def market_analysis(
    body: MarketAnalysisRequest,
    service: AIService = Depends(get_ai_service),
):
    return ok(await service.market_analysis(**body.model_dump()))


@router.post("/cover-letter-analysis")
async def cover_letter_analysis(
    body: CoverLetterAnalysisRequest,
    service: AIService = Depends(get_ai_service),
):
    return ok(await service.analyze_cover_letter(**body.model_dump()))


@router.get("/job-recommendations")
async def list_recommendations(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    recs = ai.list_recommendations(db, current_user.id, status)
    return ok([ai.serialize_recommendation(r) for r in recs])


@router.post("/job-recommendations")
async def generate_recommendations(
    body: RecommendationRequest,
    service: AIService = Depends(get_ai_service),
):
    created = await service.job_recommendations(body.count)
    return ok([ai.serialize_recommendation(r) for r in created])


@router.get("/job-recommendations/{recommendation_id}")
async def get_recommendation(
    recommendation_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(ai.serialize_recommendation(ai.get_recommendation(db, current_user.id, recommendation_id)))


@router.put("/job-recommendations/{recommendation_id}")
async def update_recommendation(
    recommendation_id: str,
    body: RecommendationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rec = ai.update_recommendation(
        db, current_user.id, recommendation_id, body.model_dump(exclude_unset=True)
    )
    return ok(ai.serialize_recommendation(rec))


@router.delete("/job-recommendations/{recommendation_id}")
async def delete_recommendation(
    recommendation_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ai.delete_recommendation(db, current_user.id, recommendation_id)
    return ok({"id": recommendation_id, "deleted": True})
