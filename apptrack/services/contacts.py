"""Networking contacts: duplicate guard, filtered listing, stats and search."""
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..db.models import Application, Contact, utcnow
from ..errors import ConflictError, NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "name": (Contact.last_name, Contact.first_name),
    "company": (Contact.company,),
    "last_contact": (Contact.last_contact_date,),
    "created": (Contact.created_at,),
}

SEARCH_TYPES = ("companies", "positions", "tags", "contacts")

RECENT_DAYS = 30
FOLLOW_UP_DAYS = 90


def find_duplicate_contact(
    session: Session,
    user_id: str,
    first_name: str,
    last_name: str,
    email: Optional[str] = None,
    company: Optional[str] = None,
    position: Optional[str] = None,
    exclude_id: Optional[str] = None,
) -> Optional[Contact]:
    """Same name (case-insensitive) and either same email or same company+position."""
    query = session.query(Contact).filter(
        Contact.user_id == user_id,
        func.lower(Contact.first_name) == first_name.strip().lower(),
        func.lower(Contact.last_name) == last_name.strip().lower(),
    )
    if exclude_id:
        query = query.filter(Contact.id != exclude_id)

    for candidate in query.all():
        if email and candidate.email and candidate.email.lower() == email.lower():
            return candidate
        if (
            company and position
            and (candidate.company or "").lower() == company.lower()
            and (candidate.position or "").lower() == position.lower()
        ):
            return candidate
    return None


def create_contact(session: Session, user_id: str, data: dict) -> Contact:
    duplicate = find_duplicate_contact(
        session,
        user_id,
        data["first_name"],
        data["last_name"],
        email=data.get("email"),
        company=data.get("company"),
        position=data.get("position"),
    )
    if duplicate is not None:
        raise ConflictError(
            "DUPLICATE_CONTACT",
            "A contact with this name already exists",
            {"existing_id": duplicate.id},
        )
    contact = Contact(user_id=user_id, **data)
    session.add(contact)
    session.flush()
    logger.info(f"Created contact {contact.id} for user {user_id}")
    return contact


def get_contact(session: Session, user_id: str, contact_id: str) -> Contact:
    contact = (
        session.query(Contact)
        .filter(Contact.id == contact_id, Contact.user_id == user_id)
        .first()
    )
    if contact is None:
        raise NotFoundError("Contact not found")
    return contact


def update_contact(session: Session, user_id: str, contact_id: str, changes: dict) -> Contact:
    """Partial update; renaming onto another contact's identity is a conflict."""
    contact = get_contact(session, user_id, contact_id)
    if any(changes.get(k, "") is None for k in ("first_name", "last_name")):
        raise ValidationFailed("first_name and last_name cannot be cleared")
    merged = {
        key: changes.get(key, getattr(contact, key))
        for key in ("first_name", "last_name", "email", "company", "position")
    }
    duplicate = find_duplicate_contact(session, user_id, exclude_id=contact.id, **merged)
    if duplicate is not None:
        raise ConflictError(
            "DUPLICATE_CONTACT",
            "A contact with this name already exists",
            {"existing_id": duplicate.id},
        )
    for key, value in changes.items():
        setattr(contact, key, value)
    session.flush()
    return contact


def delete_contact(session: Session, user_id: str, contact_id: str) -> None:
    session.delete(get_contact(session, user_id, contact_id))
    session.flush()
    logger.info(f"Deleted contact {contact_id}")


def list_contacts(
    session: Session,
    user_id: str,
    search: Optional[str] = None,
    company: Optional[str] = None,
    relationship_type: Optional[str] = None,
    connection_strength: Optional[str] = None,
    tags: Optional[list[str]] = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Contact], int]:
    """Filtered, sorted page of contacts plus the unpaged total."""
    query = session.query(Contact).filter(Contact.user_id == user_id)

    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(
            func.lower(Contact.first_name).like(pattern),
            func.lower(Contact.last_name).like(pattern),
            func.lower(Contact.email).like(pattern),
            func.lower(Contact.company).like(pattern),
            func.lower(Contact.position).like(pattern),
        ))
    if company:
        query = query.filter(func.lower(Contact.company).like(f"%{company.lower()}%"))
    if relationship_type:
        query = query.filter(Contact.relationship_type == relationship_type)
    if connection_strength:
        query = query.filter(Contact.connection_strength == connection_strength)

    columns = SORT_COLUMNS.get(sort_by, SORT_COLUMNS["name"])
    if sort_order == "desc":
        query = query.order_by(*(c.desc() for c in columns))
    else:
        query = query.order_by(*(c.asc() for c in columns))

    contacts = query.all()
    # JSON list columns: tag filtering happens in Python
    if tags:
        wanted = {t.lower() for t in tags}
        contacts = [c for c in contacts if wanted & {t.lower() for t in (c.tags or [])}]

    total = len(contacts)
    start = (page - 1) * limit
    return contacts[start:start + limit], total


def get_contact_stats(
    session: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    recent_cutoff = now - timedelta(days=RECENT_DAYS)
    follow_up_cutoff = now - timedelta(days=FOLLOW_UP_DAYS)
    contacts = session.query(Contact).filter(Contact.user_id == user_id).all()

    by_company = Counter(c.company for c in contacts if c.company)
    recent = [
        c for c in contacts
        if c.created_at >= recent_cutoff
        or (c.last_contact_date is not None and c.last_contact_date >= recent_cutoff)
    ]
    overdue = [
        c for c in contacts
        if (c.last_contact_date is not None and c.last_contact_date < follow_up_cutoff)
        or (c.last_contact_date is None and c.created_at < follow_up_cutoff)
    ]

    return {
        "total_contacts": len(contacts),
        "by_relationship_type": dict(
            Counter(c.relationship_type or "other" for c in contacts)
        ),
        "by_connection_strength": dict(
            Counter(c.connection_strength or "medium" for c in contacts)
        ),
        "by_company": [
            {"company": name, "count": count}
            for name, count in by_company.most_common(10)
        ],
        "recent_contacts": len(recent),
        "overdue_follow_ups": len(overdue),
    }


def search(
    session: Session,
    user_id: str,
    q: str,
    search_type: str = "contacts",
    limit: int = 10,
) -> list:
    """Autocomplete over the user's contacts and applications.

    companies / positions / tags return distinct strings, contacts
    returns Contact rows.
    """
    q = (q or "").strip()
    if len(q) < 2:
        raise ValidationFailed("Search query must be at least 2 characters")
    if search_type not in SEARCH_TYPES:
        raise ValidationFailed(
            f"Invalid search type: {search_type}",
            {"allowed": list(SEARCH_TYPES)},
        )
    needle = q.lower()

    if search_type == "contacts":
        pattern = f"%{needle}%"
        return (
            session.query(Contact)
            .filter(
                Contact.user_id == user_id,
                or_(
                    func.lower(Contact.first_name).like(pattern),
                    func.lower(Contact.last_name).like(pattern),
                    func.lower(Contact.email).like(pattern),
                    func.lower(Contact.company).like(pattern),
                ),
            )
            .order_by(Contact.last_name.asc(), Contact.first_name.asc())
            .limit(limit)
            .all()
        )

    values: set[str] = set()
    contacts = session.query(Contact).filter(Contact.user_id == user_id).all()
    applications = session.query(Application).filter(Application.user_id == user_id).all()

    if search_type == "companies":
        values.update(c.company for c in contacts if c.company)
        values.update(a.company for a in applications if a.company)
    elif search_type == "positions":
        values.update(c.position for c in contacts if c.position)
        values.update(a.position for a in applications if a.position)
    else:
        for row in [*contacts, *applications]:
            values.update(row.tags or [])

    matches = sorted(v for v in values if needle in v.lower())
    return matches[:limit]
