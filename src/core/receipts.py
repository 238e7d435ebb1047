"""
Receipt capture and AI-assisted extraction.
Prepares uploaded receipts for storage and fills expense drafts from them.
"""

import io
import re
import base64
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from .exceptions import AIServiceError, ReceiptParseError
from .llm import AIClient
from .models import (
    ExpenseCategory, ExpenseDraft, ParsedReceipt, SUPPORTED_CURRENCIES,
)

logger = logging.getLogger(__name__)

MAX_IMAGE_SIDE = 1600
JPEG_QUALITY = 82
PDF_RENDER_DPI = 150

DATA_URL_PATTERN = re.compile(r"^data:([a-zA-Z0-9]+/[a-zA-Z0-9\-.+]+)?(;base64)?,(.*)$", re.DOTALL)

EXTRACTION_PROMPT = """
Analyze this receipt. Extract the following fields:
- date (YYYY-MM-DD format)
- amount (number)
- currency (string code like EUR, USD)
- location (City, Country if available, or Merchant Name)
- category (Must be exactly one of: {categories})

IF Category is 'Hotel':
- hotelNights (integer): Number of nights stayed. Look for "Nights", "Nächte", or quantity. Default to 1 if unsure but it looks like a night stay.
- hotelBreakfasts (integer): Number of breakfasts charged. Look for "Breakfast", "Frühstück". Default to 0 if not found.

Return ONLY a JSON object with exactly these keys (omit a key or use null when unknown):
{{"date": "2024-01-31", "amount": 12.5, "currency": "EUR", "location": "Paris, France",
  "category": "Meals", "hotelNights": null, "hotelBreakfasts": null}}
"""


def to_data_url(content: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def split_data_url(data_url: str) -> Tuple[str, str]:
    """Split a data URL into (mime type, base64 payload).

    Bare base64 strings are accepted and assumed to be JPEG.
    """
    match = DATA_URL_PATTERN.match(data_url.strip())
    if not match:
        return "image/jpeg", data_url.strip()
    return match.group(1) or "image/jpeg", match.group(3)


def is_pdf(data_url: str) -> bool:
    """Sniff a receipt for a PDF marker in its header or content."""
    if not data_url:
        return False
    header = data_url.split(",", 1)[0].lower()
    if "pdf" in header:
        return True
    _, payload = split_data_url(data_url)
    try:
        return base64.b64decode(payload[:16] + "=" * (-len(payload[:16]) % 4)).startswith(b"%PDF")
    except (ValueError, TypeError):
        return False


def compress_image(content: bytes, max_side: int = MAX_IMAGE_SIDE,
                   quality: int = JPEG_QUALITY) -> Optional[bytes]:
    """Downscale an image and re-encode it as JPEG.

    Returns:
        JPEG bytes, or None if the content is not a readable image
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            img = img.convert("RGB")
            scale = min(1.0, max_side / max(img.width, img.height))
            if scale < 1.0:
                size = (round(img.width * scale), round(img.height * scale))
                img = img.resize(size, Image.LANCZOS)
            output = io.BytesIO()
            img.save(output, format="JPEG", quality=quality)
            return output.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"Could not compress image, keeping original: {str(e)}")
        return None


def prepare_receipt(content: bytes, mime_type: str) -> str:
    """Turn an uploaded file into the data URL stored on the expense.

    PDFs are kept as-is; images are compressed.
    """
    if mime_type == "application/pdf" or content.startswith(b"%PDF"):
        return to_data_url(content, "application/pdf")
    compressed = compress_image(content)
    if compressed is None:
        return to_data_url(content, mime_type or "image/jpeg")
    return to_data_url(compressed, "image/jpeg")


def render_pdf_first_page(content: bytes, dpi: int = PDF_RENDER_DPI) -> bytes:
    """Render the first page of a PDF to PNG bytes."""
    with fitz.open(stream=content, filetype="pdf") as pdf_document:
        if pdf_document.page_count == 0:
            raise ReceiptParseError("PDF file is empty")
        pixmap = pdf_document[0].get_pixmap(dpi=dpi)
        return pixmap.tobytes("png")


def _parse_date(value):
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def _parse_amount(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def _parse_count(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        count = int(value)
    except (TypeError, ValueError):
        return None
    return count if count >= 0 else None


def merge_into_draft(draft: ExpenseDraft, parsed: ParsedReceipt) -> ExpenseDraft:
    """Overwrite draft fields with the valid values the AI returned.

    Fields that are missing or fail validation keep the draft's value.
    """
    updates = {}

    parsed_date = _parse_date(parsed.date) if parsed.date else None
    if parsed_date:
        updates["date"] = parsed_date

    amount = _parse_amount(parsed.amount)
    if amount is not None:
        updates["amount"] = amount

    currency = (parsed.currency or "").strip().upper()
    if currency in SUPPORTED_CURRENCIES:
        updates["currency"] = currency

    if parsed.location and parsed.location.strip():
        updates["location"] = parsed.location.strip()

    category = ExpenseCategory.match(parsed.category)
    if category:
        updates["category"] = category

    final_category = updates.get("category", draft.category)
    nights = _parse_count(parsed.hotel_nights)
    if nights:
        updates["hotel_nights"] = nights
    elif not draft.hotel_nights:
        updates["hotel_nights"] = 1 if final_category == ExpenseCategory.HOTEL else 0

    breakfasts = _parse_count(parsed.hotel_breakfasts)
    if breakfasts is not None:
        updates["hotel_breakfasts"] = breakfasts
    elif draft.hotel_breakfasts is None:
        updates["hotel_breakfasts"] = 0

    skipped = set(parsed.model_dump(exclude_none=True)) - set(updates)
    if skipped:
        logger.info(f"Ignored AI fields: {', '.join(sorted(skipped))}")
    return draft.model_copy(update=updates)


class ReceiptInterpreter:
    """Reads receipts through the AI vision endpoint."""

    def __init__(self, ai_client: AIClient):
        self.ai_client = ai_client
        self.logger = logger

    def _image_for_ai(self, data_url: str) -> str:
        """Data URL of an image the vision endpoint accepts."""
        if not is_pdf(data_url):
            return data_url
        _, payload = split_data_url(data_url)
        png = render_pdf_first_page(base64.b64decode(payload))
        return to_data_url(png, "image/png")

    def parse_receipt(self, data_url: str) -> ParsedReceipt:
        """Extract expense fields from a receipt.

        Args:
            data_url: Receipt as a data URL (image or PDF)

        Returns:
            ParsedReceipt with whatever fields the AI could read

        Raises:
            ReceiptParseError: On any failure; there is no retry
        """
        categories = ", ".join(c.value for c in ExpenseCategory)
        try:
            image_url = self._image_for_ai(data_url)
            result = self.ai_client.complete_json([
                {"type": "image_url", "image_url": {"url": image_url}},
                {"type": "text", "text": EXTRACTION_PROMPT.format(categories=categories)},
            ])
            parsed = ParsedReceipt.model_validate(result)
        except ReceiptParseError:
            raise
        except (AIServiceError, ValidationError) as e:
            self.logger.error(f"Receipt extraction failed: {str(e)}")
            raise ReceiptParseError(str(e)) from e
        except (ValueError, RuntimeError) as e:
            # undecodable base64 or a PDF PyMuPDF cannot open
            self.logger.error(f"Receipt could not be read: {str(e)}")
            raise ReceiptParseError(f"Receipt could not be read: {str(e)}") from e

        self.logger.info("Receipt extracted by AI")
        return parsed

    def fill_draft(self, draft: ExpenseDraft, data_url: str) -> ExpenseDraft:
        """Merge the extracted fields into the draft and attach the receipt."""
        parsed = self.parse_receipt(data_url)
        merged = merge_into_draft(draft, parsed)
        return merged.model_copy(update={"receipt_data_url": data_url})
