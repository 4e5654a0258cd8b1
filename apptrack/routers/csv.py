"""
CSV Templates and Import API Endpoints
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import User
from ..errors import NotFoundError, ValidationFailed, ok
from ..services import csv_import, csv_templates
from ..services.csv_templates import CSVTemplate

router = APIRouter()

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
MAX_SAMPLE_ROWS = 100


class HeadersRequest(BaseModel):
    headers: list[str] = Field(..., min_length=1)


class CustomTemplateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    mapping: dict[str, str] = Field(..., description="application field → CSV column")
    sample_data: Optional[list[list[str]]] = None


def serialize_template(template: CSVTemplate) -> dict:
    return {**template.model_dump(), "headers": template.headers}


def _template_or_404(template_id: str) -> CSVTemplate:
    template = csv_templates.get_template(template_id)
    if template is None:
        raise NotFoundError(f"Template not found: {template_id}")
    return template


@router.get("/templates")
async def list_templates(
    source: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    return ok([serialize_template(t) for t in csv_templates.list_templates(source)])


@router.post("/templates/detect")
async def detect_template(
    body: HeadersRequest,
    current_user: User = Depends(get_current_user),
):
    result = csv_templates.detect_template(body.headers)
    template = result["template"]
    return ok({
        **result,
        "template": serialize_template(template) if template else None,
    })


@router.get("/templates/sample-data")
async def sample_data(
    template: str = "linkedin",
    rows: int = Query(10, ge=1, le=MAX_SAMPLE_ROWS),
    current_user: User = Depends(get_current_user),
):
    selected = _template_or_404(template)
    return ok({
        "template": selected.id,
        "headers": selected.headers,
        "rows": csv_templates.generate_sample_data(selected, rows),
    })


@router.post("/templates/custom")
async def create_custom_template(
    body: CustomTemplateRequest,
    current_user: User = Depends(get_current_user),
):
    template = csv_templates.create_custom_template(
        body.name, body.description, body.mapping, body.sample_data
    )
    validation = csv_templates.validate_template(template.model_dump())
    if not validation["is_valid"]:
        raise ValidationFailed("Invalid custom template", validation["errors"])
    return ok(serialize_template(template))


@router.get("/templates/{template_id}")
async def get_template(
    template_id: str,
    current_user: User = Depends(get_current_user),
):
    return ok(serialize_template(_template_or_404(template_id)))


@router.get("/templates/{template_id}/download")
async def download_template(
    template_id: str,
    include_examples: bool = True,
    current_user: User = Depends(get_current_user),
):
    template = _template_or_404(template_id)
    content = csv_templates.generate_template_csv(template, include_examples)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{template.id}_template.csv"'},
    )


@router.post("/templates/{template_id}/mapping")
async def generate_mapping(
    template_id: str,
    body: HeadersRequest,
    current_user: User = Depends(get_current_user),
):
    template = _template_or_404(template_id)
    return ok(csv_templates.generate_mapping(body.headers, template))


@router.post("/import")
async def import_csv(
    file: UploadFile = File(...),
    template: Optional[str] = Form(None),
    mapping: Optional[str] = Form(None, description="JSON object: CSV column → field"),
    skip_duplicates: bool = Form(True),
    dry_run: bool = Form(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    content = await file.read()
    if not content:
        raise ValidationFailed("Uploaded file is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationFailed("CSV file is too large (max 5 MB)")

    parsed_mapping = None
    if mapping:
        try:
            parsed_mapping = json.loads(mapping)
        except json.JSONDecodeError:
            raise ValidationFailed("mapping must be a JSON object")
        if not isinstance(parsed_mapping, dict):
            raise ValidationFailed("mapping must be a JSON object")

    result = csv_import.import_csv(
        db, current_user.id, content,
        template_id=template or None,
        mapping=parsed_mapping,
        skip_duplicates=skip_duplicates,
        dry_run=dry_run,
    )
    return ok(result)
