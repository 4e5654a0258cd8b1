"""Tests for contact duplicate guards, listing, stats and search."""
from datetime import datetime, timedelta

import pytest

from apptrack.errors import ConflictError, ValidationFailed
from apptrack.services.contacts import (
    create_contact,
    get_contact_stats,
    list_contacts,
    search,
    update_contact,
)

NOW = datetime(2026, 3, 1, 12, 0)


@pytest.fixture
def add_contact(session, user):
    def _add(first_name, last_name, **fields):
        return create_contact(session, user.id, {"first_name": first_name, "last_name": last_name, **fields})

    return _add


class TestDuplicateGuard:
    def test_same_name_and_email(self, add_contact):
        existing = add_contact("Ada", "Lovelace", email="ada@example.com")
        with pytest.raises(ConflictError) as exc:
            add_contact("ada", "LOVELACE", email="ADA@example.com")
        assert exc.value.code == "DUPLICATE_CONTACT"
        assert exc.value.details == {"existing_id": existing.id}

    def test_same_name_company_and_position(self, add_contact):
        add_contact("Ada", "Lovelace", company="Analytical", position="Engineer")
        with pytest.raises(ConflictError):
            add_contact("Ada", "Lovelace", company="analytical", position="engineer")

    def test_same_name_different_person(self, add_contact):
        add_contact("Ada", "Lovelace", email="ada@example.com")
        other = add_contact("Ada", "Lovelace", email="ada.l@other.org")
        assert other.id

    def test_rename_onto_existing(self, session, user, add_contact):
        add_contact("Ada", "Lovelace", email="ada@example.com")
        grace = add_contact("Grace", "Hopper", email="ada@example.com")
        with pytest.raises(ConflictError):
            update_contact(session, user.id, grace.id, {"first_name": "Ada", "last_name": "Lovelace"})

    def test_names_cannot_be_cleared(self, session, user, add_contact):
        grace = add_contact("Grace", "Hopper")
        with pytest.raises(ValidationFailed):
            update_contact(session, user.id, grace.id, {"first_name": None})

    def test_update_keeps_identity(self, session, user, add_contact):
        grace = add_contact("Grace", "Hopper", email="grace@navy.mil")
        updated = update_contact(session, user.id, grace.id, {"company": "Navy"})
        assert updated.company == "Navy"


class TestListContacts:
    @pytest.fixture(autouse=True)
    def contacts(self, add_contact):
        add_contact("Ada", "Lovelace", company="Analytical", relationship_type="mentor", tags=["math"])
        add_contact("Grace", "Hopper", company="Navy", relationship_type="colleague", tags=["COBOL"])
        add_contact("Alan", "Turing", company="Bletchley", relationship_type="colleague")

    def test_default_sort_by_last_name(self, session, user):
        contacts, total = list_contacts(session, user.id)
        assert total == 3
        assert [c.last_name for c in contacts] == ["Hopper", "Lovelace", "Turing"]

    def test_search_and_filters(self, session, user):
        contacts, _ = list_contacts(session, user.id, search="navy")
        assert [c.first_name for c in contacts] == ["Grace"]
        contacts, _ = list_contacts(session, user.id, relationship_type="colleague", sort_by="company")
        assert [c.company for c in contacts] == ["Bletchley", "Navy"]

    def test_tag_filter_is_case_insensitive(self, session, user):
        contacts, total = list_contacts(session, user.id, tags=["cobol"])
        assert total == 1
        assert contacts[0].last_name == "Hopper"

    def test_paging(self, session, user):
        contacts, total = list_contacts(session, user.id, sort_order="desc", page=2, limit=2)
        assert total == 3
        assert [c.last_name for c in contacts] == ["Hopper"]


def _seed_stats(add_contact):
    add_contact("Ada", "Lovelace", company="Analytical", created_at=NOW - timedelta(days=5))
    add_contact("Grace", "Hopper", company="Navy", relationship_type="mentor",
                connection_strength="strong", created_at=NOW - timedelta(days=200),
                last_contact_date=NOW - timedelta(days=120))
    add_contact("Alan", "Turing", company="Navy", created_at=NOW - timedelta(days=100))


class TestStatsAndSearch:
    def test_stats_counts(self, session, user, add_contact):
        _seed_stats(add_contact)
        stats = get_contact_stats(session, user.id, now=NOW)
        assert stats["total_contacts"] == 3
        assert stats["by_relationship_type"] == {"other": 2, "mentor": 1}
        assert stats["by_connection_strength"] == {"medium": 2, "strong": 1}
        assert stats["by_company"][0] == {"company": "Navy", "count": 2}
        assert stats["recent_contacts"] == 1
        assert stats["overdue_follow_ups"] == 2

    def test_search_companies_merges_applications(self, session, user, add_contact, make_application):
        add_contact("Ada", "Lovelace", company="Analytical Engines")
        make_application(company="Analytics Co")
        assert search(session, user.id, "analy", "companies") == ["Analytical Engines", "Analytics Co"]

    def test_search_contacts(self, session, user, add_contact):
        add_contact("Ada", "Lovelace", email="ada@example.com")
        (contact,) = search(session, user.id, "lovel")
        assert contact.first_name == "Ada"

    def test_search_validation(self, session, user):
        with pytest.raises(ValidationFailed):
            search(session, user.id, "a")
        with pytest.raises(ValidationFailed):
            search(session, user.id, "ab", "people")
