"""
Archives page for the travel expense application.
Search closed trips, review them read-only, export them again or delete them.
"""

import streamlit as st
import plotly.express as px
import logging

from core.reporting import format_date
from ui.components import (
    confirm_dialog, display_email_section, display_expense_table,
    display_export_buttons, format_currency, show_notification,
)

logger = logging.getLogger(__name__)


def display_category_chart(archive, exporter):
    """Pie chart of the archive's spending by category."""
    totals = exporter.category_totals(archive.expenses)
    if totals.empty:
        return
    fig = px.pie(
        totals,
        values="Amount",
        names="Category",
        title="Répartition par catégorie",
        hole=0.4
    )
    fig.update_layout(height=350, margin=dict(t=50, b=0, l=0, r=0))
    st.plotly_chart(fig, use_container_width=True)


def display_archive_detail(archive, store, exporter, composer):
    """Read-only view of one archived trip."""
    trip = archive.trip
    col1, col2, col3 = st.columns(3)
    with col1:
        st.write(f"**Départ :** {trip.departure_location or '—'}")
        st.write(f"**Le :** {format_date(trip.departure_date)}")
    with col2:
        st.write(f"**Destination :** {trip.destination or '—'}")
        st.write(f"**Retour :** {format_date(trip.return_date)}")
    with col3:
        st.metric("Total", format_currency(archive.total, archive.currency))

    display_category_chart(archive, exporter)
    display_expense_table(store, None, read_only=True, expenses=archive.expenses)
    display_export_buttons(archive.expenses, exporter, key=archive.id)
    display_email_section(trip, archive.expenses, composer, key=archive.id)

    if st.button("🗑️ Supprimer l'archive", key=f"delete_archive_{archive.id}"):
        confirm_dialog(
            "Voulez-vous vraiment supprimer définitivement ce rapport archivé ?",
            lambda archive_id=archive.id: store.delete_archive(archive_id, confirmed=True),
            "Archive supprimée.",
        )


def main():
    """Main function for the archives page."""
    st.title("🗄️ Archives")

    if 'store' not in st.session_state:
        st.error("Application not initialized. Please return to the main page.")
        return

    store = st.session_state.store
    exporter = st.session_state.exporter
    composer = st.session_state.get("composer")

    show_notification()

    search_term = st.text_input(
        "Rechercher",
        placeholder="Nom, lieu de départ, destination, date...",
        help="Recherche dans le nom, les lieux et les dates des voyages archivés"
    )

    archives = store.search_archives(search_term)
    if not store.archives:
        st.info("📝 Aucun voyage archivé pour le moment.")
        return
    if not archives:
        st.warning("Aucune archive ne correspond à cette recherche.")
        return

    st.caption(f"{len(archives)} archive(s)")
    for archive in archives:
        label = (
            f"{archive.trip.name} · {archive.trip.destination or '—'} · "
            f"{format_currency(archive.total, archive.currency)} · "
            f"archivé le {archive.archived_at.strftime('%d/%m/%Y')}"
        )
        with st.expander(label):
            try:
                display_archive_detail(archive, store, exporter, composer)
            except Exception as e:
                logger.error(f"Error displaying archive {archive.id}: {str(e)}")
                st.error(f"Error displaying archive: {str(e)}")


if __name__ == "__main__":
    main()
