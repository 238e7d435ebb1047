"""
Current trip page for the travel expense application.
Lists the active expenses and offers exports, the email draft and archiving.
"""

import streamlit as st
import logging

from ui.components import (
    confirm_dialog, display_email_section, display_expense_table,
    display_export_buttons, display_trip_details, expense_dialog,
    format_currency, reset_expense_draft, show_notification,
)

logger = logging.getLogger(__name__)


def main():
    """Main function for the current trip page."""
    st.title("🧳 Voyage en cours")

    if 'store' not in st.session_state:
        st.error("Application not initialized. Please return to the main page.")
        return

    store = st.session_state.store
    exporter = st.session_state.exporter
    interpreter = st.session_state.get("interpreter")
    composer = st.session_state.get("composer")

    show_notification()

    display_trip_details(store)
    st.markdown("---")

    col1, col2, col3 = st.columns([3, 1, 1])
    with col1:
        st.subheader("🧾 Dépenses")
    with col2:
        if st.button("➕ Ajouter", type="primary", use_container_width=True):
            reset_expense_draft()
            expense_dialog(store, interpreter)
    with col3:
        if st.button("🧹 Tout effacer", use_container_width=True, disabled=not store.expenses):
            confirm_dialog(
                "ALERTE : Voulez-vous supprimer TOUTES les factures du tableau ? "
                "Cette action est irréversible.",
                lambda: store.clear_expenses(confirmed=True),
                "Tableau réinitialisé.",
            )

    display_expense_table(store, interpreter)

    expenses = store.expenses
    if expenses:
        st.metric("Total", format_currency(store.total(), expenses[0].currency))

    st.markdown("---")
    st.subheader("📤 Rapport")
    display_export_buttons(expenses, exporter, key="current")
    display_email_section(store.trip, expenses, composer, key="current")

    st.markdown("---")
    if st.button("🗄️ Clôturer et archiver le voyage", disabled=not expenses):
        confirm_dialog(
            "Archiver ce voyage ? Les dépenses seront déplacées dans les archives "
            "et un nouveau voyage commencera. Cette action est irréversible.",
            lambda: store.archive_current_trip(confirmed=True),
            "Voyage archivé avec succès.",
        )


if __name__ == "__main__":
    main()
