"""
Contacts API Endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import Contact, User
from ..errors import ok
from ..schemas import ContactCreate, ContactResponse, ContactUpdate, serialize
from ..services import contacts as service
from .applications import clamp_limit, pagination

router = APIRouter()


@router.get("")
async def list_contacts(
    search: Optional[str] = None,
    company: Optional[str] = None,
    relationship_type: Optional[str] = None,
    connection_strength: Optional[str] = None,
    tags: Optional[str] = Query(None, description="Comma-separated, matches any"),
    sort_by: str = Query("name", pattern="^(name|company|last_contact|created)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    limit = clamp_limit(limit)
    tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    contacts, total = service.list_contacts(
        db, current_user.id,
        search=search, company=company,
        relationship_type=relationship_type, connection_strength=connection_strength,
        tags=tag_list, sort_by=sort_by, sort_order=sort_order,
        page=page, limit=limit,
    )
    return ok(
        [serialize(ContactResponse, c) for c in contacts],
        pagination=pagination(page, limit, total),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_contact(
    body: ContactCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    contact = service.create_contact(db, current_user.id, body.model_dump())
    return ok(serialize(ContactResponse, contact))


@router.get("/stats")
async def contact_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.get_contact_stats(db, current_user.id))


@router.get("/search")
async def search_contacts(
    q: str = "",
    type: str = "contacts",
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    results = service.search(db, current_user.id, q, type, limit)
    data = [serialize(ContactResponse, r) if isinstance(r, Contact) else r for r in results]
    return ok(data)


@router.get("/{contact_id}")
async def get_contact(
    contact_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(serialize(ContactResponse, service.get_contact(db, current_user.id, contact_id)))


@router.put("/{contact_id}")
async def update_contact(
    contact_id: str,
    body: ContactUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    contact = service.update_contact(
        db, current_user.id, contact_id, body.model_dump(exclude_unset=True)
    )
    return ok(serialize(ContactResponse, contact))


@router.delete("/{contact_id}")
async def delete_contact(
    contact_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service.delete_contact(db, current_user.id, contact_id)
    return ok({"id": contact_id, "deleted": True})
