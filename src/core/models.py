"""
Data models using Pydantic for the travel expense application.
Provides validation and type checking for expenses, trips and archives.
"""

import random
import string
import datetime as dt
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

SUPPORTED_CURRENCIES = ("EUR", "USD")
DEFAULT_CURRENCY = "EUR"
DEFAULT_DEPARTURE_LOCATION = "Hamburg, Germany"
DEFAULT_TRIP_NAME = "Voyage Professionnel"
NEW_TRIP_NAME = "Nouveau Voyage"


def generate_id(length: int = 9) -> str:
    """Generate a short random identifier for expenses, trips and archives."""
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choices(alphabet, k=length))


class ExpenseCategory(str, Enum):
    """Fixed set of expense categories."""

    MEALS = "Meals"
    HOTEL = "Hotel"
    TAXI = "Taxi"
    TRANSPORT = "Transport"
    PARKING = "Parking"
    FUEL = "Fuel"
    TOLLS = "Tolls"
    MISC = "Misc"

    @classmethod
    def match(cls, value: Optional[str]) -> Optional["ExpenseCategory"]:
        """Case-insensitive lookup, None when the value is not a category."""
        if not value:
            return None
        for category in cls:
            if category.value.lower() == str(value).strip().lower():
                return category
        return None


class ExpenseStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    VALIDATED = "Validated"


class TripStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


def _normalize_currency(v):
    code = str(v).strip().upper()
    if code not in SUPPORTED_CURRENCIES:
        raise ValueError(f"Currency must be one of: {', '.join(SUPPORTED_CURRENCIES)}")
    return code


class ExpenseDraft(BaseModel):
    """Editable expense fields, as filled in by the form or the receipt reader."""

    date: dt.date = Field(default_factory=dt.date.today, description="Date of the expense")
    category: ExpenseCategory = Field(ExpenseCategory.MEALS, description="Expense category")
    location: str = Field("", max_length=300, description="Merchant, city or country")
    amount: Decimal = Field(Decimal("0"), ge=0, description="Amount paid (non-negative)")
    currency: str = Field(DEFAULT_CURRENCY, description="Currency code")
    status: ExpenseStatus = Field(ExpenseStatus.DRAFT, description="Workflow status (stored only)")
    receipt_data_url: Optional[str] = Field(None, description="Receipt as a base64 data URL")
    description: Optional[str] = Field(None, max_length=500, description="Additional notes")
    hotel_nights: Optional[int] = Field(None, ge=0, description="Nights stayed (Hotel only)")
    hotel_breakfasts: Optional[int] = Field(None, ge=0, description="Breakfasts charged (Hotel only)")

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        """Validate currency code against the supported list."""
        return _normalize_currency(v)

    @field_validator('location')
    @classmethod
    def clean_location(cls, v):
        return (v or "").strip()


class Expense(ExpenseDraft):
    """A single logged expense belonging to a trip."""

    id: str = Field(default_factory=generate_id, description="Expense identifier")
    trip_id: str = Field(..., description="Owning trip identifier")

    @property
    def has_receipt(self) -> bool:
        return bool(self.receipt_data_url)

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "k3j9x0a1b",
                "trip_id": "t8s7d6f5g",
                "date": "2024-03-12",
                "category": "Hotel",
                "location": "Hotel Lutetia, Paris, France",
                "amount": "389.50",
                "currency": "EUR",
                "status": "Draft",
                "hotel_nights": 2,
                "hotel_breakfasts": 1
            }
        }
    }


class ExpenseUpdate(BaseModel):
    """Model for partial expense edits."""

    date: Optional[dt.date] = Field(None)
    category: Optional[ExpenseCategory] = Field(None)
    location: Optional[str] = Field(None, max_length=300)
    amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None)
    status: Optional[ExpenseStatus] = Field(None)
    receipt_data_url: Optional[str] = Field(None)
    description: Optional[str] = Field(None, max_length=500)
    hotel_nights: Optional[int] = Field(None, ge=0)
    hotel_breakfasts: Optional[int] = Field(None, ge=0)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        if v is None:
            return v
        return _normalize_currency(v)


class TripMetadata(BaseModel):
    """Descriptive metadata of a trip."""

    id: str = Field(default_factory=generate_id)
    status: TripStatus = Field(TripStatus.ACTIVE)
    name: str = Field(DEFAULT_TRIP_NAME, max_length=200)
    departure_location: str = Field(DEFAULT_DEPARTURE_LOCATION, description="Origin of the trip")
    destination: str = Field("", description="Destination country or city")
    departure_date: Optional[datetime] = Field(None)
    return_date: Optional[datetime] = Field(None)
    start_date_manual: Optional[date] = Field(None)
    end_date_manual: Optional[date] = Field(None)

    def is_default(self, default_departure_location: str = DEFAULT_DEPARTURE_LOCATION) -> bool:
        """True when nothing has been entered on this trip yet."""
        return (
            self.status == TripStatus.ACTIVE
            and not self.destination
            and self.departure_date is None
            and self.return_date is None
            and self.start_date_manual is None
            and self.end_date_manual is None
            and self.departure_location == default_departure_location
        )


class ArchivedTrip(BaseModel):
    """Immutable snapshot of a closed trip and its expenses."""

    id: str = Field(default_factory=generate_id)
    trip: TripMetadata
    expenses: List[Expense] = Field(default_factory=list)
    archived_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(frozen=True)

    @property
    def total(self) -> Decimal:
        return sum((e.amount for e in self.expenses), Decimal("0"))

    @property
    def currency(self) -> str:
        return self.expenses[0].currency if self.expenses else DEFAULT_CURRENCY


class EmailDraft(BaseModel):
    """Reimbursement email, transient and never persisted."""

    subject: str
    body: str


class ParsedReceipt(BaseModel):
    """Fields extracted from a receipt image by the AI service.

    Every field is optional; a value of the wrong shape is dropped to None
    so the other fields survive. Values are checked again when merged into
    a draft.
    """

    date: Optional[str] = None
    amount: Optional[Union[float, str]] = None
    currency: Optional[str] = None
    location: Optional[str] = None
    category: Optional[str] = None
    hotel_nights: Optional[int] = Field(None, alias="hotelNights")
    hotel_breakfasts: Optional[int] = Field(None, alias="hotelBreakfasts")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("*", mode="wrap")
    @classmethod
    def drop_invalid(cls, v, handler):
        try:
            return handler(v)
        except ValidationError:
            return None


class StoreSnapshot(BaseModel):
    """Full application state as mirrored to the remote row."""

    expenses: List[Expense] = Field(default_factory=list)
    archives: List[ArchivedTrip] = Field(default_factory=list)
    trip: TripMetadata = Field(default_factory=TripMetadata)


class SyncStatus(BaseModel):
    """Outcome of the latest remote mirror operation."""

    last_synced_at: Optional[datetime] = None
    last_error: Optional[str] = None
    remote_exists: Optional[bool] = None
    pending: bool = False


class RemoteIdentity(BaseModel):
    """Signed-in user of the remote mirror."""

    user_id: str
    email: Optional[str] = None
    access_token: str
