"""
Unit tests for reimbursement email drafting.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import MagicMock

from core.exceptions import AIServiceError
from core.models import EmailDraft, Expense, ExpenseCategory, TripMetadata
from core.reporting import (
    FALLBACK_EMAIL, UNSPECIFIED_DESTINATION, ReportComposer, build_mailto_url,
    format_date, format_expense_line,
)


@pytest.mark.parametrize("value,expected", [
    (date(2024, 3, 5), "05/03/2024"),
    (datetime(2024, 3, 5, 8, 0), "05/03/2024 08:00"),
    ("2024-03-05", "05/03/2024"),
    ("2024-03-05T20:00:00", "05/03/2024 20:00"),
    ("next week", "next week"),
    (None, "N/A"),
    ("", "N/A"),
])
def test_format_date(value, expected):
    assert format_date(value) == expected


class TestMailtoUrl:
    """Test cases for the mail client link."""

    def test_encodes_subject_and_body(self):
        draft = EmailDraft(subject="Demande de remboursement - Paris",
                           body="Bonjour Sandrine,\n\nTotal : 89.50 EUR & taxes")

        url = build_mailto_url("sandrine@example.com", draft)

        assert url == (
            "mailto:sandrine@example.com"
            "?subject=Demande%20de%20remboursement%20-%20Paris"
            "&body=Bonjour%20Sandrine%2C%0A%0ATotal%20%3A%2089.50%20EUR%20%26%20taxes"
        )

    def test_without_address(self):
        url = build_mailto_url("", EmailDraft(subject="Note", body="x"))
        assert url == "mailto:?subject=Note&body=x"


class TestExpenseLines:
    """Test cases for the expense list embedded in the prompt."""

    def test_plain_line(self):
        expense = Expense(trip_id="t1", date=date(2024, 3, 12), category=ExpenseCategory.TAXI,
                          location="G7, Paris", amount=Decimal("32.00"))
        assert format_expense_line(expense) == "12/03/2024 | Taxi | G7, Paris | 32.00 EUR"

    def test_hotel_line_has_details(self):
        expense = Expense(trip_id="t1", date=date(2024, 3, 12), category=ExpenseCategory.HOTEL,
                          location="Lutetia", amount=Decimal("389.50"),
                          hotel_nights=2, hotel_breakfasts=1)
        assert format_expense_line(expense).endswith(
            "(Détails: 2 Nuits, 1 Petits-déjeuners)"
        )


class TestReportComposer:
    """Test cases for ReportComposer class."""

    @pytest.fixture
    def expenses(self):
        return [
            Expense(trip_id="t1", date=date(2024, 3, 11), category=ExpenseCategory.FUEL,
                    location="Aral, Hamburg", amount=Decimal("80.00")),
            Expense(trip_id="t1", date=date(2024, 3, 13), category=ExpenseCategory.HOTEL,
                    location="Lutetia, Paris, France", amount=Decimal("389.50"),
                    hotel_nights=2, hotel_breakfasts=2),
        ]

    @pytest.fixture
    def ai_client(self):
        client = MagicMock()
        client.complete_json.return_value = {
            "subject": "Demande de remboursement – Déplacement professionnel à Paris",
            "body": "Bonjour Sandrine, ...",
        }
        return client

    def test_prompt_uses_trip_dates(self, ai_client, expenses):
        trip = TripMetadata(destination="France",
                            departure_date=datetime(2024, 3, 11, 8, 0),
                            return_date=datetime(2024, 3, 13, 20, 0))
        prompt = ReportComposer(ai_client).build_prompt(trip, expenses)

        assert "Ville de destination : France" in prompt
        assert "Départ : Hamburg, Germany le 11/03/2024 08:00" in prompt
        assert "Retour : le 13/03/2024 20:00" in prompt
        assert "(Détails: 2 Nuits, 2 Petits-déjeuners)" in prompt
        assert "Sandrine" in prompt
        assert "Yohan Bouyssiere" in prompt

    def test_prompt_falls_back_to_expense_dates(self, ai_client, expenses):
        prompt = ReportComposer(ai_client).build_prompt(TripMetadata(), expenses)

        assert UNSPECIFIED_DESTINATION in prompt
        assert "le 11/03/2024" in prompt
        assert "Retour : le 13/03/2024" in prompt

    def test_custom_recipient(self, ai_client, expenses):
        composer = ReportComposer(ai_client, recipient="Marc", signature="Anna Weber",
                                  recipient_email="marc@example.com")
        prompt = composer.build_prompt(TripMetadata(), expenses)

        assert "Bonjour Marc" in prompt
        assert "Signature : Anna Weber" in prompt
        assert composer.recipient_email == "marc@example.com"

    def test_compose_email(self, ai_client, expenses):
        email = ReportComposer(ai_client).compose_email(TripMetadata(), expenses)

        assert email.subject.startswith("Demande de remboursement")
        assert email.body == "Bonjour Sandrine, ..."

    def test_ai_failure_returns_fallback(self, ai_client, expenses):
        ai_client.complete_json.side_effect = AIServiceError("network down")

        email = ReportComposer(ai_client).compose_email(TripMetadata(), expenses)

        assert email == FALLBACK_EMAIL

    def test_incomplete_reply_returns_fallback(self, ai_client, expenses):
        ai_client.complete_json.return_value = {"subject": "Only a subject"}

        email = ReportComposer(ai_client).compose_email(TripMetadata(), expenses)

        assert email == FALLBACK_EMAIL
