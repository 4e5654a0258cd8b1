"""Tests for the application service: updates and status date stamping."""
from datetime import datetime

import pytest

from apptrack.errors import ValidationFailed
from apptrack.services.applications import update_application

NOW = datetime(2026, 3, 1, 12, 0)


class TestUpdateApplication:
    def test_clearing_required_fields_is_rejected(self, session, user, make_application):
        app = make_application()
        with pytest.raises(ValidationFailed, match="company, status"):
            update_application(session, user.id, app.id, {"company": None, "status": None}, now=NOW)
        assert app.company == "Acme Corp"
        assert app.status == "Applied"

    def test_optional_fields_can_be_cleared(self, session, user, make_application):
        app = make_application(location="Berlin")
        update_application(session, user.id, app.id, {"location": None}, now=NOW)
        assert app.location is None

    def test_offer_stamps_response_and_offer_dates(self, session, user, make_application):
        app = make_application()
        update_application(session, user.id, app.id, {"status": "Offered"}, now=NOW)
        assert app.offer_date == NOW
        assert app.response_date == NOW
