"""
Application state for the expense application.

ExpenseStore owns the active expenses, the archive list and the active trip.
Each mutation writes the touched collections to the local mirror and then
notifies subscribers (the remote mirror schedules its push from there).
"""

import logging
from datetime import datetime, time
from decimal import Decimal
from typing import Callable, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from .archiver import build_archive, new_trip, search_archives
from .database import DatabaseManager, KEY_ARCHIVE, KEY_EXPENSES, KEY_LAST_SYNC, KEY_TRIP
from .exceptions import ConfirmationRequiredError, ExpenseNotFoundError
from .models import (
    ArchivedTrip, Expense, ExpenseDraft, ExpenseUpdate, StoreSnapshot, TripMetadata,
    DEFAULT_DEPARTURE_LOCATION, DEFAULT_TRIP_NAME,
)

logger = logging.getLogger(__name__)

_expense_list = TypeAdapter(List[Expense])
_archive_list = TypeAdapter(List[ArchivedTrip])

DEPARTURE_HOUR = time(8, 0)
RETURN_HOUR = time(20, 0)

Listener = Callable[["ExpenseStore"], None]

TRIP_FIELDS = {
    "name", "departure_location", "destination", "departure_date",
    "return_date", "start_date_manual", "end_date_manual",
}


def infer_destination(location: Optional[str]) -> str:
    """Destination implied by an expense location.

    Text after the last comma, or the whole location when there is none.
    """
    if not location:
        return ""
    parts = location.split(",")
    if len(parts) > 1:
        return parts[-1].strip()
    return location.strip()


class ExpenseStore:
    """Single owner of the mutable application state."""

    def __init__(self, db_manager: DatabaseManager,
                 default_departure_location: str = DEFAULT_DEPARTURE_LOCATION):
        self.db_manager = db_manager
        self.default_departure_location = default_departure_location
        self.logger = logger
        self._expenses: List[Expense] = []
        self._archives: List[ArchivedTrip] = []
        self._trip = new_trip(DEFAULT_TRIP_NAME, default_departure_location)
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    def load(self) -> "ExpenseStore":
        """Read all collections from the local mirror, falling back to defaults."""
        self._expenses = self._load_list(KEY_EXPENSES, _expense_list)
        self._archives = self._load_list(KEY_ARCHIVE, _archive_list)

        raw_trip = self.db_manager.read_json(KEY_TRIP)
        trip = None
        if raw_trip is not None:
            try:
                trip = TripMetadata.model_validate(raw_trip)
            except ValidationError as e:
                self.logger.warning(f"Stored trip is invalid, starting a new one: {e}")
        self._trip = trip or new_trip(DEFAULT_TRIP_NAME, self.default_departure_location)

        self.logger.info(
            f"Loaded {len(self._expenses)} expenses and {len(self._archives)} archives"
        )
        return self

    def _load_list(self, key: str, adapter: TypeAdapter) -> list:
        raw = self.db_manager.read_json(key)
        if raw is None:
            return []
        try:
            return adapter.validate_python(raw)
        except ValidationError as e:
            self.logger.warning(f"Stored data under {key} is invalid, ignoring it: {e}")
            return []

    def _commit(self, expenses: Optional[List[Expense]] = None,
                archives: Optional[List[ArchivedTrip]] = None,
                trip: Optional[TripMetadata] = None, notify: bool = True) -> None:
        """Write the given collections in one transaction, then adopt them.

        A failed write leaves the in-memory state untouched.
        """
        values = {}
        if expenses is not None:
            values[KEY_EXPENSES] = _expense_list.dump_python(expenses, mode="json")
        if archives is not None:
            values[KEY_ARCHIVE] = _archive_list.dump_python(archives, mode="json")
        if trip is not None:
            values[KEY_TRIP] = trip.model_dump(mode="json")
        self.db_manager.write_many(values)

        if expenses is not None:
            self._expenses = list(expenses)
        if archives is not None:
            self._archives = list(archives)
        if trip is not None:
            self._trip = trip
        if notify:
            self._notify()

    def read_last_sync(self) -> Optional[datetime]:
        raw = self.db_manager.read_json(KEY_LAST_SYNC)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except (TypeError, ValueError):
            self.logger.warning(f"Ignoring invalid last sync timestamp: {raw!r}")
            return None

    def record_last_sync(self, when: datetime) -> None:
        self.db_manager.write_json(KEY_LAST_SYNC, when.isoformat())

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback run after every mutation.

        Returns:
            Function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                self.logger.error(f"Store listener failed: {str(e)}")

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def expenses(self) -> List[Expense]:
        return list(self._expenses)

    @property
    def archives(self) -> List[ArchivedTrip]:
        return list(self._archives)

    @property
    def trip(self) -> TripMetadata:
        return self._trip

    def get_expense(self, expense_id: str) -> Expense:
        for expense in self._expenses:
            if expense.id == expense_id:
                return expense
        raise ExpenseNotFoundError(expense_id)

    def get_archive(self, archive_id: str) -> Optional[ArchivedTrip]:
        for archive in self._archives:
            if archive.id == archive_id:
                return archive
        return None

    def total(self) -> Decimal:
        return sum((e.amount for e in self._expenses), Decimal("0"))

    def search_archives(self, term: str = "") -> List[ArchivedTrip]:
        return search_archives(self._archives, term)

    def is_empty(self) -> bool:
        """True for a default trip with no expenses and no archive."""
        return (
            not self._expenses
            and not self._archives
            and self._trip.is_default(self.default_departure_location)
        )

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            expenses=[e.model_copy(deep=True) for e in self._expenses],
            archives=list(self._archives),
            trip=self._trip.model_copy(deep=True),
        )

    # ------------------------------------------------------------------
    # Expense mutations
    # ------------------------------------------------------------------

    def add_expense(self, draft: ExpenseDraft) -> Expense:
        """Add an expense to the active trip."""
        expense = Expense(**draft.model_dump(exclude={"id", "trip_id"}), trip_id=self._trip.id)
        self._expenses_changed(self._expenses + [expense])
        self.logger.info(f"Added expense {expense.id} ({expense.amount} {expense.currency})")
        return expense

    def update_expense(self, expense_id: str,
                       changes: Union[ExpenseDraft, ExpenseUpdate]) -> Expense:
        """Apply edits to an existing expense.

        A full ExpenseDraft replaces every editable field; an ExpenseUpdate only
        the fields that were set.
        """
        current = self.get_expense(expense_id)
        if isinstance(changes, ExpenseUpdate):
            update_dict = changes.model_dump(exclude_unset=True)
        else:
            update_dict = changes.model_dump(exclude={"id", "trip_id"})

        updated = Expense.model_validate({**current.model_dump(), **update_dict})
        expenses = [updated if e.id == expense_id else e for e in self._expenses]
        self._expenses_changed(expenses)
        self.logger.info(f"Updated expense {expense_id}")
        return updated

    def delete_expense(self, expense_id: str, confirmed: bool = False) -> None:
        if not confirmed:
            raise ConfirmationRequiredError("delete_expense")
        self.get_expense(expense_id)
        self._expenses_changed([e for e in self._expenses if e.id != expense_id])
        self.logger.info(f"Deleted expense {expense_id}")

    def clear_expenses(self, confirmed: bool = False) -> int:
        """Remove every active expense.

        Returns:
            Number of expenses removed
        """
        if not confirmed:
            raise ConfirmationRequiredError("clear_expenses")
        count = len(self._expenses)
        self._expenses_changed([])
        self.logger.info(f"Cleared {count} expenses")
        return count

    def _expenses_changed(self, expenses: List[Expense]) -> None:
        self._commit(expenses=expenses, trip=self._trip_for_expenses(expenses))

    def _trip_for_expenses(self, expenses: List[Expense]) -> Optional[TripMetadata]:
        """Derive trip dates and destination from an expense list.

        Departure is the earliest expense day at 08:00, return the latest at
        20:00. An empty destination is taken from the last expense location.

        Returns:
            The updated trip, or None if it does not change
        """
        if not expenses:
            return None

        dates = sorted(e.date for e in expenses)
        departure = datetime.combine(dates[0], DEPARTURE_HOUR)
        return_date = datetime.combine(dates[-1], RETURN_HOUR)

        trip = self._trip
        destination = trip.destination or infer_destination(expenses[-1].location)
        if (trip.departure_date == departure and trip.return_date == return_date
                and trip.destination == destination):
            return None

        return trip.model_copy(update={
            "departure_date": departure,
            "return_date": return_date,
            "destination": destination,
        })

    # ------------------------------------------------------------------
    # Trip and archive mutations
    # ------------------------------------------------------------------

    def update_trip(self, **fields) -> TripMetadata:
        """Change editable trip metadata fields."""
        unknown = set(fields) - TRIP_FIELDS
        if unknown:
            raise ValueError(f"Unknown trip fields: {', '.join(sorted(unknown))}")

        self._commit(trip=TripMetadata.model_validate({**self._trip.model_dump(), **fields}))
        self.logger.info(f"Updated trip fields: {', '.join(sorted(fields))}")
        return self._trip

    def archive_current_trip(self, confirmed: bool = False) -> ArchivedTrip:
        """Close the active trip and start a fresh one."""
        if not confirmed:
            raise ConfirmationRequiredError("archive_current_trip")

        archive = build_archive(self._trip, self._expenses)
        self._commit(
            expenses=[],
            archives=[archive] + self._archives,
            trip=new_trip(departure_location=self.default_departure_location),
        )
        self.logger.info(f"Archived trip as {archive.id} ({archive.trip.name})")
        return archive

    def delete_archive(self, archive_id: str, confirmed: bool = False) -> bool:
        """Permanently remove an archive.

        Returns:
            True if the archive existed, False otherwise
        """
        if not confirmed:
            raise ConfirmationRequiredError("delete_archive")
        if self.get_archive(archive_id) is None:
            self.logger.warning(f"Archive {archive_id} not found for deletion")
            return False
        self._commit(archives=[a for a in self._archives if a.id != archive_id])
        self.logger.info(f"Deleted archive {archive_id}")
        return True

    def replace_from_snapshot(self, snapshot: StoreSnapshot, notify: bool = True) -> None:
        """Overwrite local state with a full snapshot (remote pull)."""
        self._commit(
            expenses=list(snapshot.expenses),
            archives=list(snapshot.archives),
            trip=snapshot.trip,
            notify=notify,
        )
        self.logger.info(
            f"Replaced local state: {len(self._expenses)} expenses, {len(self._archives)} archives"
        )
