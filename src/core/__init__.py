"""
Core functionality modules for travel expense tracking.
"""

from .models import (
    Expense, ExpenseDraft, ExpenseUpdate, ExpenseCategory, TripMetadata,
    ArchivedTrip, EmailDraft,
)
from .database import DatabaseManager
from .store import ExpenseStore
from .export import DataExporter
from .receipts import ReceiptInterpreter
from .reporting import ReportComposer
from .sync import RemoteStore, SyncController

__all__ = [
    'Expense',
    'ExpenseDraft',
    'ExpenseUpdate',
    'ExpenseCategory',
    'TripMetadata',
    'ArchivedTrip',
    'EmailDraft',
    'DatabaseManager',
    'ExpenseStore',
    'DataExporter',
    'ReceiptInterpreter',
    'ReportComposer',
    'RemoteStore',
    'SyncController'
]
