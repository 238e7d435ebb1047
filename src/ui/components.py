"""
UI components for the travel expense application.
Provides reusable interface elements for expenses, exports, reports and sync.
"""

import streamlit as st
import base64
import logging
from datetime import datetime, time
from decimal import Decimal
from typing import Callable, Optional, Sequence
from pathlib import Path
from pydantic import ValidationError

from core.auth import verify_password
from core.exceptions import AuthError, ReceiptParseError, SyncError
from core.export import DataExporter
from core.models import (
    EmailDraft, Expense, ExpenseCategory, ExpenseDraft, SUPPORTED_CURRENCIES,
    TripMetadata,
)
from core.receipts import is_pdf, prepare_receipt, split_data_url
from core.reporting import build_mailto_url, format_date
from core.store import ExpenseStore

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'.pdf', '.png', '.jpg', '.jpeg', '.webp', '.heic'}
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def display_login_screen(expected_password: str) -> bool:
    """Show the password gate.

    Returns:
        True once the session is authenticated
    """
    if st.session_state.get("authenticated"):
        return True

    st.title("🔒 ExpenseFlow")
    with st.form("login_form"):
        password = st.text_input("Mot de passe", type="password",
                                 placeholder="Entrez votre mot de passe")
        submitted = st.form_submit_button("Se connecter", type="primary")

    if submitted:
        if verify_password(password, expected_password):
            st.session_state.authenticated = True
            logger.info("Session authenticated")
            st.rerun()
        else:
            st.error("Mot de passe incorrect")
    return False


def setup_sidebar(store: ExpenseStore):
    """Setup the main sidebar with trip stats, sync controls and logout."""
    with st.sidebar:
        st.header("🧾 ExpenseFlow")

        expenses = store.expenses
        st.subheader("📊 Voyage en cours")
        st.metric("Dépenses", len(expenses))
        currency = expenses[0].currency if expenses else "EUR"
        st.metric("Total", format_currency(store.total(), currency))
        if store.trip.destination:
            st.metric("Destination", store.trip.destination)
        st.metric("Archives", len(store.archives))

        st.markdown("---")
        display_sync_panel()

        st.markdown("---")
        if st.button("🚪 Déconnexion", use_container_width=True):
            st.session_state.authenticated = False
            st.rerun()


def display_sync_panel():
    """Sign-in and manual push/pull controls for the remote mirror."""
    st.subheader("☁️ Synchronisation")
    sync = st.session_state.get("sync_controller")
    auth = st.session_state.get("magic_link_auth")

    if sync is None or auth is None:
        st.caption("Synchronisation distante non configurée.")
        return

    if not sync.active:
        email = st.text_input("Email", key="sync_email")
        if st.button("✉️ Envoyer le lien", use_container_width=True):
            try:
                auth.send_magic_link(email)
                st.success("Lien envoyé, vérifiez votre boîte mail.")
            except AuthError as e:
                st.error(str(e))

        code = st.text_input("Code reçu par email", key="sync_code")
        if st.button("🔑 Se connecter", use_container_width=True):
            try:
                identity = auth.verify_code(email, code)
            except AuthError as e:
                st.error(str(e))
                return
            with st.spinner("Synchronisation..."):
                sync.attach(identity)
            st.rerun()
        return

    st.caption(f"Connecté : {sync.identity.email or sync.identity.user_id}")
    status = sync.status
    if status.last_synced_at:
        st.caption(f"Dernière synchro : {status.last_synced_at.strftime('%d/%m/%Y %H:%M:%S')}")
    if status.pending:
        st.caption("⏳ Envoi en attente...")
    if status.last_error:
        st.error(status.last_error)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("⬆️ Envoyer", use_container_width=True):
            try:
                with st.spinner("Envoi..."):
                    sync.push_now()
                st.success("Données envoyées.")
            except SyncError as e:
                st.error(str(e))
    with col2:
        if st.button("⬇️ Récupérer", use_container_width=True):
            try:
                with st.spinner("Récupération..."):
                    sync.pull_now()
                st.rerun()
            except SyncError as e:
                st.error(str(e))

    if st.button("Se déconnecter de la synchro", use_container_width=True):
        sync.detach()
        st.rerun()


def display_trip_details(store: ExpenseStore):
    """Editable origin, destination and dates of the active trip."""
    trip = store.trip
    st.subheader("🗺️ Détails du voyage")

    with st.form("trip_form"):
        col1, col2 = st.columns(2)
        with col1:
            departure_location = st.text_input("Lieu de départ", value=trip.departure_location)
            departure_day = st.date_input("Date de départ",
                                          value=trip.departure_date.date() if trip.departure_date else None)
            departure_time = st.time_input("Heure de départ",
                                           value=trip.departure_date.time() if trip.departure_date else time(8, 0))
        with col2:
            destination = st.text_input("Destination", value=trip.destination)
            return_day = st.date_input("Date de retour",
                                       value=trip.return_date.date() if trip.return_date else None)
            return_time = st.time_input("Heure de retour",
                                        value=trip.return_date.time() if trip.return_date else time(20, 0))
        saved = st.form_submit_button("💾 Enregistrer le voyage")

    if saved:
        try:
            store.update_trip(
                departure_location=departure_location.strip(),
                destination=destination.strip(),
                departure_date=datetime.combine(departure_day, departure_time) if departure_day else None,
                return_date=datetime.combine(return_day, return_time) if return_day else None,
            )
            st.success("Voyage mis à jour.")
        except ValidationError as e:
            display_error_message("Données de voyage invalides", str(e))


def _current_draft() -> ExpenseDraft:
    if st.session_state.get("expense_draft") is None:
        st.session_state.expense_draft = ExpenseDraft(hotel_nights=0, hotel_breakfasts=0)
    return st.session_state.expense_draft


def reset_expense_draft(editing: Optional[Expense] = None):
    """Start a new draft, prefilled from the expense being edited."""
    if editing is not None:
        st.session_state.expense_draft = ExpenseDraft(
            **editing.model_dump(exclude={"id", "trip_id"})
        )
    else:
        st.session_state.expense_draft = None
    st.session_state.form_version = st.session_state.get("form_version", 0) + 1


def display_receipt_capture(interpreter):
    """Upload or photograph a receipt and let the AI prefill the draft."""
    source = st.radio("Justificatif", ["📁 Fichier", "📷 Photo"], horizontal=True,
                      key=f"receipt_source_{st.session_state.get('form_version', 0)}")
    if source == "📷 Photo":
        uploaded = st.camera_input("Photographier le justificatif")
    else:
        uploaded = st.file_uploader(
            "Choisir un justificatif",
            type=[ext.lstrip('.') for ext in ALLOWED_EXTENSIONS],
            help="Image ou PDF, 10 Mo maximum"
        )

    if not uploaded:
        return

    is_valid, error = validate_file_upload(uploaded)
    if not is_valid:
        st.error(error)
        return

    if st.button("✨ Analyser avec l'IA", type="primary", disabled=interpreter is None):
        data_url = prepare_receipt(uploaded.getvalue(), uploaded.type or "image/jpeg")
        draft = _current_draft().model_copy(update={"receipt_data_url": data_url})
        try:
            with st.spinner("Analyse du justificatif..."):
                draft = interpreter.fill_draft(draft, data_url)
            st.success("Champs pré-remplis par l'IA, vérifiez-les avant d'enregistrer.")
        except ReceiptParseError:
            st.error("L'IA n'a pas pu analyser ce document. Veuillez remplir les champs manuellement.")
        st.session_state.expense_draft = draft
        st.session_state.form_version = st.session_state.get("form_version", 0) + 1

    if interpreter is None:
        st.caption("Analyse IA indisponible (OPENAI_API_KEY manquant).")
    if st.button("📎 Joindre sans analyse"):
        data_url = prepare_receipt(uploaded.getvalue(), uploaded.type or "image/jpeg")
        st.session_state.expense_draft = _current_draft().model_copy(update={"receipt_data_url": data_url})
        st.success("Justificatif joint.")


def display_expense_form(store: ExpenseStore, editing: Optional[Expense] = None) -> bool:
    """Render the expense form for the current draft.

    Returns:
        True when the expense was saved
    """
    draft = _current_draft()
    categories = list(ExpenseCategory)
    currencies = list(SUPPORTED_CURRENCIES)
    version = st.session_state.get("form_version", 0)

    if draft.receipt_data_url:
        st.caption("📎 Justificatif joint")

    with st.form(f"expense_form_{version}"):
        col1, col2 = st.columns(2)
        with col1:
            expense_date = st.date_input("Date", value=draft.date)
            category = st.selectbox(
                "Catégorie",
                options=categories,
                index=categories.index(draft.category),
                format_func=lambda c: c.value
            )
            location = st.text_input("Lieu", value=draft.location,
                                     placeholder="Ville, Pays ou commerçant")
        with col2:
            amount = st.number_input("Montant", min_value=0.0, value=float(draft.amount),
                                     step=0.01, format="%.2f")
            currency = st.selectbox(
                "Devise",
                options=currencies,
                index=currencies.index(draft.currency) if draft.currency in currencies else 0
            )
            description = st.text_input("Note", value=draft.description or "")

        st.markdown("**Hôtel uniquement**")
        col3, col4 = st.columns(2)
        with col3:
            nights = st.number_input("Nuits", min_value=0, value=int(draft.hotel_nights or 0), step=1)
        with col4:
            breakfasts = st.number_input("Petits-déjeuners", min_value=0,
                                         value=int(draft.hotel_breakfasts or 0), step=1)

        submitted = st.form_submit_button("💾 Enregistrer", type="primary")

    if not submitted:
        return False

    is_hotel = category == ExpenseCategory.HOTEL
    try:
        final = ExpenseDraft(
            date=expense_date,
            category=category,
            location=location,
            amount=Decimal(str(round(amount, 2))),
            currency=currency,
            status=draft.status,
            receipt_data_url=draft.receipt_data_url,
            description=description or None,
            hotel_nights=int(nights) if is_hotel else 0,
            hotel_breakfasts=int(breakfasts) if is_hotel else 0,
        )
    except ValidationError as e:
        display_error_message("Dépense invalide", str(e))
        return False

    if editing is not None:
        store.update_expense(editing.id, final)
        st.session_state.notification = "Dépense mise à jour."
    else:
        store.add_expense(final)
        st.session_state.notification = "Dépense ajoutée !"
    reset_expense_draft()
    return True


@st.dialog("Dépense", width="large")
def expense_dialog(store: ExpenseStore, interpreter, editing: Optional[Expense] = None):
    """Modal wrapping receipt capture and the expense form."""
    display_receipt_capture(interpreter)
    st.markdown("---")
    if display_expense_form(store, editing):
        st.rerun()


@st.dialog("Confirmation")
def confirm_dialog(message: str, on_confirm: Callable[[], None], success_message: str = ""):
    """Ask for explicit confirmation before a destructive action."""
    st.warning(message)
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Confirmer", type="primary", use_container_width=True):
            on_confirm()
            if success_message:
                st.session_state.notification = success_message
            st.rerun()
    with col2:
        if st.button("Annuler", use_container_width=True):
            st.rerun()


def display_receipt_preview(expense: Expense):
    """Show an attached receipt inline, or offer it for download if it is a PDF."""
    if not expense.receipt_data_url:
        return
    _, payload = split_data_url(expense.receipt_data_url)
    content = base64.b64decode(payload)
    if is_pdf(expense.receipt_data_url):
        st.download_button("📄 Justificatif PDF", data=content,
                           file_name=f"facture_{expense.date.isoformat()}.pdf",
                           mime="application/pdf", key=f"pdf_{expense.id}")
    else:
        st.image(content, use_container_width=True)


def display_expense_table(store: ExpenseStore, interpreter, read_only: bool = False,
                          expenses: Optional[Sequence[Expense]] = None):
    """List expenses with edit, delete and receipt preview actions."""
    rows = list(expenses) if expenses is not None else store.expenses
    if not rows:
        st.info("📝 Aucune dépense pour le moment.")
        return

    for expense in rows:
        col1, col2, col3, col4, col5 = st.columns([2, 2, 4, 2, 2])
        with col1:
            st.write(format_date(expense.date))
        with col2:
            st.write(expense.category.value)
        with col3:
            details = expense.location or "—"
            if expense.category == ExpenseCategory.HOTEL:
                details += f" · {expense.hotel_nights or 0} nuit(s), {expense.hotel_breakfasts or 0} PDJ"
            st.write(details)
        with col4:
            st.write(f"**{format_currency(expense.amount, expense.currency)}**")
        with col5:
            if not read_only:
                edit_col, delete_col = st.columns(2)
                if edit_col.button("✏️", key=f"edit_{expense.id}", help="Modifier"):
                    reset_expense_draft(expense)
                    expense_dialog(store, interpreter, editing=expense)
                if delete_col.button("🗑️", key=f"delete_{expense.id}", help="Supprimer"):
                    confirm_dialog(
                        "Voulez-vous vraiment supprimer cette facture ?",
                        lambda expense_id=expense.id: store.delete_expense(expense_id, confirmed=True),
                        "Facture supprimée.",
                    )
        if expense.has_receipt:
            with st.expander("📎 Justificatif"):
                display_receipt_preview(expense)


def display_export_buttons(expenses: Sequence[Expense], exporter: DataExporter, key: str):
    """CSV and ZIP download buttons for a list of expenses."""
    col1, col2 = st.columns(2)
    with col1:
        csv_content = exporter.export_to_csv(expenses)
        st.download_button(
            "📥 Export CSV",
            data=(csv_content or "").encode("utf-8"),
            file_name=exporter.get_export_filename("csv"),
            mime="text/csv",
            disabled=csv_content is None,
            use_container_width=True,
            key=f"csv_{key}",
        )
    with col2:
        zip_content = exporter.export_receipts_zip(expenses)
        st.download_button(
            "🗂️ Justificatifs ZIP",
            data=zip_content or b"",
            file_name=exporter.get_export_filename("zip"),
            mime="application/zip",
            disabled=zip_content is None,
            use_container_width=True,
            key=f"zip_{key}",
        )
        if zip_content is None and expenses:
            st.caption("Aucun justificatif n'est disponible.")


def display_email_section(trip: TripMetadata, expenses: Sequence[Expense], composer, key: str):
    """Generate and show the reimbursement email draft."""
    drafts = st.session_state.setdefault("email_drafts", {})

    if st.button("✉️ Générer l'email de remboursement", key=f"email_{key}",
                 disabled=composer is None or not expenses):
        with st.spinner("Rédaction de l'email..."):
            generated = composer.compose_email(trip, expenses)
        drafts[key] = generated
        # editable copies, refreshed on each generation
        st.session_state[f"subject_{key}"] = generated.subject
        st.session_state[f"body_{key}"] = generated.body

    if composer is None:
        st.caption("Rédaction IA indisponible (OPENAI_API_KEY manquant).")

    draft: Optional[EmailDraft] = drafts.get(key)
    if draft is not None:
        st.session_state.setdefault(f"subject_{key}", draft.subject)
        st.session_state.setdefault(f"body_{key}", draft.body)
        st.text_input("Objet", key=f"subject_{key}")
        st.text_area("Corps", height=400, key=f"body_{key}")

        edited = EmailDraft(subject=st.session_state[f"subject_{key}"],
                            body=st.session_state[f"body_{key}"])
        st.link_button(
            f"📨 Transférer à {composer.recipient} (Email)",
            build_mailto_url(composer.recipient_email, edited),
            use_container_width=True
        )


def show_notification():
    """Display and clear the pending one-shot notification."""
    message = st.session_state.pop("notification", None)
    if message:
        st.toast(message)


def display_error_message(error: str, details: Optional[str] = None):
    """Display formatted error message.

    Args:
        error: Main error message
        details: Optional detailed error information
    """
    st.error(f"❌ {error}")

    if details:
        with st.expander("🔍 Détails"):
            st.code(details, language="text")


def format_currency(amount: Decimal, currency: str = "EUR") -> str:
    """Format currency amount for display.

    Args:
        amount: Amount to format
        currency: Currency code

    Returns:
        Formatted currency string
    """
    currency_symbols = {
        "USD": "$",
        "EUR": "€",
    }
    symbol = currency_symbols.get(currency, currency)
    return f"{amount:,.2f} {symbol}"


def validate_file_upload(uploaded_file) -> tuple[bool, str]:
    """Validate an uploaded receipt.

    Args:
        uploaded_file: Streamlit uploaded file object

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not uploaded_file:
        return False, "Aucun fichier"

    if uploaded_file.size > MAX_UPLOAD_BYTES:
        return False, f"Fichier trop volumineux ({uploaded_file.size:,} octets, 10 Mo maximum)"

    file_ext = Path(uploaded_file.name).suffix.lower()
    # camera captures have no meaningful name
    if file_ext and file_ext not in ALLOWED_EXTENSIONS:
        return False, f"Type de fichier '{file_ext}' non supporté"

    return True, ""
