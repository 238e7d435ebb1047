"""
ExpenseFlow - Main Entry Point
Travel expense tracking and reimbursement application using Streamlit.
"""

import streamlit as st
import sys
import logging
from pathlib import Path

# Add src directory to Python path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from core.auth import MagicLinkAuth
from core.config import get_settings
from core.database import DatabaseManager
from core.export import DataExporter
from core.llm import AIClient
from core.receipts import ReceiptInterpreter
from core.reporting import ReportComposer
from core.store import ExpenseStore
from core.sync import RemoteStore, SyncController
from ui.components import display_login_screen, setup_sidebar

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.log_file),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


def initialize_app():
    """Initialize the application, the local store and the optional services."""
    try:
        if 'db_manager' not in st.session_state:
            db_manager = DatabaseManager(settings.db_path)
            db_manager.initialize_database()
            st.session_state.db_manager = db_manager

        if 'store' not in st.session_state:
            store = ExpenseStore(
                st.session_state.db_manager,
                default_departure_location=settings.default_departure_location
            )
            store.load()
            st.session_state.store = store

        if 'exporter' not in st.session_state:
            st.session_state.exporter = DataExporter()

        if 'interpreter' not in st.session_state:
            if settings.ai_enabled:
                ai_client = AIClient.from_settings(settings)
                st.session_state.interpreter = ReceiptInterpreter(ai_client)
                st.session_state.composer = ReportComposer(
                    ai_client,
                    recipient=settings.report_recipient,
                    signature=settings.report_signature,
                    recipient_email=settings.report_recipient_email
                )
            else:
                logger.warning("OPENAI_API_KEY not set, AI features disabled")
                st.session_state.interpreter = None
                st.session_state.composer = None

        if 'sync_controller' not in st.session_state:
            if settings.remote_enabled:
                st.session_state.magic_link_auth = MagicLinkAuth(
                    settings.remote_url, settings.remote_anon_key,
                    timeout=settings.http_timeout_seconds
                )
                remote = RemoteStore(
                    settings.remote_url, settings.remote_anon_key,
                    table=settings.remote_table,
                    timeout=settings.http_timeout_seconds
                )
                st.session_state.sync_controller = SyncController(
                    st.session_state.store, remote,
                    debounce_seconds=settings.sync_debounce_seconds
                )
            else:
                st.session_state.magic_link_auth = None
                st.session_state.sync_controller = None

        logger.debug("Application initialized successfully")

    except Exception as e:
        logger.error(f"Failed to initialize application: {str(e)}")
        st.error(f"Failed to initialize application: {str(e)}")
        st.stop()


def main():
    """Main application function."""
    st.set_page_config(
        page_title="ExpenseFlow",
        page_icon="🧾",
        layout="wide",
        initial_sidebar_state="expanded"
    )

    if not settings.app_password:
        st.error("APP_PASSWORD is not configured. Set it in the environment or in .env.")
        st.stop()

    if not display_login_screen(settings.app_password):
        st.stop()

    initialize_app()

    setup_sidebar(st.session_state.store)

    navigation = st.navigation([
        st.Page("src/pages/1_Current_Trip.py", title="Voyage en cours", icon="🧳", default=True),
        st.Page("src/pages/2_Archives.py", title="Archives", icon="🗄️"),
    ])
    navigation.run()


if __name__ == "__main__":
    main()
