"""
Unit tests for receipt preparation and AI-assisted extraction.
"""

import io
import base64
import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import fitz  # PyMuPDF
from PIL import Image

from core.exceptions import AIServiceError, ReceiptParseError
from core.models import ExpenseCategory, ExpenseDraft, ParsedReceipt
from core.receipts import (
    MAX_IMAGE_SIDE, ReceiptInterpreter, compress_image, is_pdf, merge_into_draft,
    prepare_receipt, render_pdf_first_page, split_data_url, to_data_url,
)


def make_png(width=2400, height=1200):
    output = io.BytesIO()
    Image.new("RGB", (width, height), color=(240, 240, 240)).save(output, format="PNG")
    return output.getvalue()


def make_pdf():
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Hotel Lutetia - Total 389.50 EUR")
    content = doc.tobytes()
    doc.close()
    return content


class TestDataUrls:
    """Test cases for data URL helpers."""

    def test_split_data_url(self):
        mime, payload = split_data_url("data:image/png;base64,QUJD")
        assert mime == "image/png"
        assert payload == "QUJD"

    def test_bare_base64_defaults_to_jpeg(self):
        assert split_data_url("QUJD") == ("image/jpeg", "QUJD")

    def test_is_pdf_from_header(self):
        assert is_pdf("data:application/pdf;base64,AAAA")

    def test_is_pdf_from_content(self):
        assert is_pdf(to_data_url(b"%PDF-1.7 body", "application/octet-stream"))

    def test_is_not_pdf(self):
        assert not is_pdf(to_data_url(make_png(10, 10), "image/png"))
        assert not is_pdf("")


class TestReceiptPreparation:
    """Test cases for compressing uploads."""

    def test_large_image_is_downscaled(self):
        compressed = compress_image(make_png())

        with Image.open(io.BytesIO(compressed)) as img:
            assert img.format == "JPEG"
            assert max(img.size) == MAX_IMAGE_SIDE
            assert img.size == (1600, 800)

    def test_small_image_keeps_size(self):
        compressed = compress_image(make_png(300, 200))

        with Image.open(io.BytesIO(compressed)) as img:
            assert img.size == (300, 200)

    def test_not_an_image(self):
        assert compress_image(b"plain text") is None

    def test_prepare_image(self):
        data_url = prepare_receipt(make_png(), "image/png")
        assert data_url.startswith("data:image/jpeg;base64,")

    def test_prepare_pdf_kept_as_is(self):
        content = make_pdf()
        data_url = prepare_receipt(content, "application/pdf")

        mime, payload = split_data_url(data_url)
        assert mime == "application/pdf"
        assert base64.b64decode(payload) == content

    def test_render_pdf_first_page(self):
        png = render_pdf_first_page(make_pdf())
        assert png.startswith(b"\x89PNG")


class TestMergeIntoDraft:
    """Test cases for merging AI output into a draft."""

    def test_valid_fields_applied(self):
        draft = ExpenseDraft(date=date(2024, 1, 1))
        parsed = ParsedReceipt(date="2024-03-12", amount=389.5, currency="eur",
                               location="Paris, France", category="hotel",
                               hotel_nights=2, hotel_breakfasts=1)

        merged = merge_into_draft(draft, parsed)

        assert merged.date == date(2024, 3, 12)
        assert merged.amount == Decimal("389.5")
        assert merged.currency == "EUR"
        assert merged.location == "Paris, France"
        assert merged.category == ExpenseCategory.HOTEL
        assert merged.hotel_nights == 2
        assert merged.hotel_breakfasts == 1

    def test_invalid_fields_ignored(self):
        """Test that bad values keep the draft's own fields."""
        draft = ExpenseDraft(date=date(2024, 1, 1), amount=Decimal("5"), location="Kiosk",
                             category=ExpenseCategory.TAXI)
        parsed = ParsedReceipt(date="12/03/2024", amount="-3", currency="GBP",
                               location="   ", category="Groceries")

        merged = merge_into_draft(draft, parsed)

        assert merged.date == date(2024, 1, 1)
        assert merged.amount == Decimal("5")
        assert merged.currency == "EUR"
        assert merged.location == "Kiosk"
        assert merged.category == ExpenseCategory.TAXI

    def test_string_amount(self):
        merged = merge_into_draft(ExpenseDraft(), ParsedReceipt(amount="42.10"))
        assert merged.amount == Decimal("42.10")

    def test_hotel_defaults_one_night(self):
        merged = merge_into_draft(ExpenseDraft(), ParsedReceipt(category="Hotel"))

        assert merged.hotel_nights == 1
        assert merged.hotel_breakfasts == 0

    def test_other_category_defaults_zero_nights(self):
        merged = merge_into_draft(ExpenseDraft(), ParsedReceipt(category="Meals"))
        assert merged.hotel_nights == 0

    def test_existing_counts_kept(self):
        draft = ExpenseDraft(category=ExpenseCategory.HOTEL, hotel_nights=3, hotel_breakfasts=2)
        merged = merge_into_draft(draft, ParsedReceipt())

        assert merged.hotel_nights == 3
        assert merged.hotel_breakfasts == 2


class TestReceiptInterpreter:
    """Test cases for ReceiptInterpreter class."""

    @pytest.fixture
    def ai_client(self):
        client = MagicMock()
        client.complete_json.return_value = {
            "date": "2024-03-12",
            "amount": 389.5,
            "currency": "EUR",
            "location": "Hotel Lutetia, Paris, France",
            "category": "Hotel",
            "hotelNights": 2,
            "hotelBreakfasts": 1,
        }
        return client

    def test_parse_image_receipt(self, ai_client):
        interpreter = ReceiptInterpreter(ai_client)
        data_url = to_data_url(make_png(50, 50), "image/png")

        parsed = interpreter.parse_receipt(data_url)

        assert parsed.hotel_nights == 2
        content = ai_client.complete_json.call_args[0][0]
        assert content[0]["image_url"]["url"] == data_url
        assert "Meals, Hotel, Taxi" in content[1]["text"]

    def test_pdf_sent_as_png(self, ai_client):
        """Test that PDF receipts are rendered before the AI call."""
        interpreter = ReceiptInterpreter(ai_client)

        interpreter.parse_receipt(to_data_url(make_pdf(), "application/pdf"))

        content = ai_client.complete_json.call_args[0][0]
        assert content[0]["image_url"]["url"].startswith("data:image/png;base64,")

    def test_ai_failure_becomes_parse_error(self, ai_client):
        ai_client.complete_json.side_effect = AIServiceError("timeout")
        interpreter = ReceiptInterpreter(ai_client)

        with pytest.raises(ReceiptParseError):
            interpreter.parse_receipt("data:image/jpeg;base64,AAAA")

    def test_malformed_field_keeps_the_others(self, ai_client):
        """Test that one badly typed field does not discard the extraction."""
        ai_client.complete_json.return_value = {
            "date": "2024-03-12",
            "amount": 89.5,
            "currency": "EUR",
            "location": ["Paris"],
            "category": "Hotel",
            "hotelNights": "2 nuits",
            "hotelBreakfasts": 1.5,
        }
        interpreter = ReceiptInterpreter(ai_client)

        draft = interpreter.fill_draft(ExpenseDraft(location="Kiosk"),
                                       "data:image/jpeg;base64,AAAA")

        assert draft.date == date(2024, 3, 12)
        assert draft.amount == Decimal("89.5")
        assert draft.category == ExpenseCategory.HOTEL
        assert draft.location == "Kiosk"
        assert draft.hotel_nights == 1
        assert draft.hotel_breakfasts == 0

    def test_unreadable_pdf_becomes_parse_error(self, ai_client):
        interpreter = ReceiptInterpreter(ai_client)

        with pytest.raises(ReceiptParseError):
            interpreter.parse_receipt(to_data_url(b"%PDF-broken", "application/pdf"))
        ai_client.complete_json.assert_not_called()

    def test_fill_draft(self, ai_client):
        interpreter = ReceiptInterpreter(ai_client)
        data_url = to_data_url(make_png(50, 50), "image/png")

        draft = interpreter.fill_draft(ExpenseDraft(), data_url)

        assert draft.receipt_data_url == data_url
        assert draft.amount == Decimal("389.5")
        assert draft.category == ExpenseCategory.HOTEL
