"""
User interface components for the travel expense application.
"""

from .components import (
    display_login_screen,
    setup_sidebar,
    display_trip_details,
    display_expense_table,
    display_export_buttons,
    display_email_section,
    expense_dialog,
    confirm_dialog,
    reset_expense_draft,
    show_notification
)

__all__ = [
    'display_login_screen',
    'setup_sidebar',
    'display_trip_details',
    'display_expense_table',
    'display_export_buttons',
    'display_email_section',
    'expense_dialog',
    'confirm_dialog',
    'reset_expense_draft',
    'show_notification'
]
