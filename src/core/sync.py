"""
Optional remote mirror of the application state.

One row per signed-in user holds the expenses, the archive list and the trip
as JSON. Local state stays authoritative: the row is pulled automatically only
when the local store is empty, and every later change pushes a full snapshot
after a quiet period.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

import requests
from pydantic import ValidationError

from .exceptions import SyncError
from .models import RemoteIdentity, StoreSnapshot, SyncStatus
from .store import ExpenseStore

logger = logging.getLogger(__name__)


class RemoteStore:
    """Reads and upserts snapshot rows through the hosted REST API."""

    def __init__(self, base_url: str, anon_key: str, table: str = "expense_snapshots",
                 timeout: float = 20.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.table = table
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self, identity: RemoteIdentity) -> dict:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {identity.access_token}",
            "Content-Type": "application/json",
        }

    def fetch(self, identity: RemoteIdentity) -> Optional[Tuple[StoreSnapshot, Optional[datetime]]]:
        """Read the user's row.

        Returns:
            (snapshot, updated_at), or None if the user has no row yet

        Raises:
            SyncError: On transport errors or an unreadable row
        """
        try:
            response = self.session.get(
                self.table_url,
                params={"user_id": f"eq.{identity.user_id}", "select": "*"},
                headers=self._headers(identity),
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise SyncError(f"Remote read failed: {str(e)}") from e

        if not isinstance(rows, list):
            raise SyncError(f"Remote read returned an unexpected payload: {type(rows).__name__}")
        if not rows:
            return None

        row = rows[0]
        if not isinstance(row, dict):
            raise SyncError(f"Remote row has an unexpected shape: {type(row).__name__}")
        try:
            snapshot = StoreSnapshot.model_validate({
                "expenses": row.get("expenses") or [],
                "archives": row.get("archives") or [],
                "trip": row.get("trip") or {},
            })
        except ValidationError as e:
            raise SyncError(f"Remote row is invalid: {str(e)}") from e

        updated_at = None
        if row.get("updated_at"):
            try:
                updated_at = datetime.fromisoformat(row["updated_at"])
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid remote timestamp {row['updated_at']!r}")
        return snapshot, updated_at

    def upsert(self, identity: RemoteIdentity, snapshot: StoreSnapshot) -> datetime:
        """Insert or replace the user's row with a full snapshot.

        Returns:
            The updated_at timestamp written
        """
        updated_at = datetime.now(timezone.utc)
        data = snapshot.model_dump(mode="json")
        payload = {
            "user_id": identity.user_id,
            "expenses": data["expenses"],
            "archives": data["archives"],
            "trip": data["trip"],
            "updated_at": updated_at.isoformat(),
        }
        headers = self._headers(identity)
        headers["Prefer"] = "resolution=merge-duplicates,return=minimal"
        try:
            response = self.session.post(
                self.table_url,
                params={"on_conflict": "user_id"},
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise SyncError(f"Remote write failed: {str(e)}") from e
        return updated_at


class DebouncedTask:
    """A single pending call that each schedule() pushes back."""

    def __init__(self, delay: float, func: Callable[[], None]):
        self.delay = delay
        self.func = func
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        """Cancel any pending run and start the quiet period again."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._run)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> bool:
        """Drop the pending run, if any.

        Returns:
            True if a run was pending
        """
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            return True

    def _run(self) -> None:
        with self._lock:
            if self._timer is not threading.current_thread():
                return
            self._timer = None
        self.func()


class SyncController:
    """Keeps one user's remote row in step with the local store."""

    def __init__(self, store: ExpenseStore, remote: RemoteStore, debounce_seconds: float = 2.0):
        self.store = store
        self.remote = remote
        self.identity: Optional[RemoteIdentity] = None
        self.status = SyncStatus(last_synced_at=store.read_last_sync())
        self.logger = logger
        self._lock = threading.Lock()
        self._task = DebouncedTask(debounce_seconds, self._scheduled_push)
        self._unsubscribe = None

    @property
    def active(self) -> bool:
        return self.identity is not None

    def attach(self, identity: RemoteIdentity) -> SyncStatus:
        """Start mirroring for a newly signed-in identity.

        No remote row: the local snapshot is inserted. A row and an empty
        local store: the row replaces local state. Otherwise local state is
        kept and only the sync time is recorded.
        """
        self.detach()
        self.identity = identity
        self._unsubscribe = self.store.subscribe(self._on_store_change)

        try:
            fetched = self.remote.fetch(identity)
            if fetched is None:
                self.logger.info(f"No remote row for {identity.user_id}, uploading local state")
                synced_at = self.remote.upsert(identity, self.store.snapshot())
                self._record_success(synced_at, remote_exists=True)
            else:
                snapshot, updated_at = fetched
                if self.store.is_empty():
                    self.logger.info("Local state is empty, restoring remote snapshot")
                    self.store.replace_from_snapshot(snapshot, notify=False)
                else:
                    self.logger.info("Local state kept, remote row left unchanged")
                self._record_success(datetime.now(timezone.utc), remote_exists=True)
        except SyncError as e:
            self._record_failure(e)
        return self.status

    def detach(self) -> None:
        """Stop mirroring and drop any pending push."""
        self._task.cancel()
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self.identity = None
        with self._lock:
            self.status = self.status.model_copy(update={"pending": False})

    def _on_store_change(self, store: ExpenseStore) -> None:
        if self.identity is None:
            return
        with self._lock:
            self.status = self.status.model_copy(update={"pending": True})
        self._task.schedule()

    def _scheduled_push(self) -> None:
        try:
            self.push_now()
        except SyncError:
            # already recorded in status
            pass

    def push_now(self) -> SyncStatus:
        """Upsert the current snapshot immediately.

        Raises:
            SyncError: If there is no identity or the write fails
        """
        identity = self._require_identity()
        self._task.cancel()
        try:
            synced_at = self.remote.upsert(identity, self.store.snapshot())
        except SyncError as e:
            self._record_failure(e)
            raise
        self._record_success(synced_at, remote_exists=True)
        self.logger.info(f"Pushed snapshot for {identity.user_id}")
        return self.status

    def pull_now(self) -> SyncStatus:
        """Replace local state with the remote row immediately.

        Raises:
            SyncError: If there is no identity, no row, or the read fails
        """
        identity = self._require_identity()
        try:
            fetched = self.remote.fetch(identity)
            if fetched is None:
                raise SyncError("No remote data for this account yet")
        except SyncError as e:
            self._record_failure(e)
            raise

        snapshot, _ = fetched
        self._task.cancel()
        self.store.replace_from_snapshot(snapshot, notify=False)
        self._record_success(datetime.now(timezone.utc), remote_exists=True)
        self.logger.info(f"Pulled snapshot for {identity.user_id}")
        return self.status

    def _require_identity(self) -> RemoteIdentity:
        if self.identity is None:
            raise SyncError("Sign in to use remote sync")
        return self.identity

    def _record_success(self, when: datetime, remote_exists: bool) -> None:
        self.store.record_last_sync(when)
        with self._lock:
            self.status = SyncStatus(
                last_synced_at=when,
                last_error=None,
                remote_exists=remote_exists,
                pending=self._task.pending,
            )

    def _record_failure(self, error: Exception) -> None:
        self.logger.error(f"Remote sync failed: {str(error)}")
        with self._lock:
            self.status = self.status.model_copy(update={
                "last_error": str(error),
                "pending": self._task.pending,
            })
