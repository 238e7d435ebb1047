"""
Export functionality for trip expenses.
Provides the accounting CSV and the ZIP bundle of receipt files.
"""

import io
import csv
import base64
import zipfile
import logging
from datetime import date
from typing import List, Optional, Sequence
import pandas as pd

from .models import Expense
from .receipts import is_pdf, split_data_url
from .reporting import format_date

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Date", "Categorie", "Lieu", "Montant", "Devise", "Nuits", "PDJ"]
CSV_DELIMITER = ";"
BOM = "\ufeff"
ZIP_FILENAME = "justificatifs_frais.zip"


class DataExporter:
    """Handles data export functionality for expenses."""

    def __init__(self):
        """Initialize the data exporter."""
        self.logger = logger

    def export_rows(self, expenses: Sequence[Expense]) -> List[List[str]]:
        """Flatten expenses into CSV rows (header excluded)."""
        rows = []
        for expense in expenses:
            rows.append([
                format_date(expense.date),
                expense.category.value,
                expense.location,
                str(expense.amount),
                expense.currency,
                str(expense.hotel_nights) if expense.hotel_nights else "",
                str(expense.hotel_breakfasts) if expense.hotel_breakfasts else "",
            ])
        return rows

    def export_to_csv(self, expenses: Sequence[Expense]) -> Optional[str]:
        """Export expenses to the semicolon-delimited CSV.

        Args:
            expenses: Expenses to export

        Returns:
            CSV content starting with a byte-order mark, or None if there is
            nothing to export
        """
        if not expenses:
            return None

        try:
            output = io.StringIO()
            writer = csv.writer(output, delimiter=CSV_DELIMITER, lineterminator="\n")
            writer.writerow(CSV_HEADERS)
            writer.writerows(self.export_rows(expenses))
            csv_content = BOM + output.getvalue()
            output.close()

            self.logger.info(f"Exported {len(expenses)} expenses to CSV")
            return csv_content

        except Exception as e:
            self.logger.error(f"CSV export failed: {str(e)}")
            raise

    def to_dataframe(self, expenses: Sequence[Expense]) -> pd.DataFrame:
        """Tabular view of expenses for display and charts."""
        columns = ["ID", "Date", "Category", "Location", "Amount", "Currency",
                   "Nights", "Breakfasts", "Receipt"]
        rows = [
            {
                "ID": e.id,
                "Date": e.date,
                "Category": e.category.value,
                "Location": e.location,
                "Amount": float(e.amount),
                "Currency": e.currency,
                "Nights": e.hotel_nights or 0,
                "Breakfasts": e.hotel_breakfasts or 0,
                "Receipt": e.has_receipt,
            }
            for e in expenses
        ]
        return pd.DataFrame(rows, columns=columns)

    def category_totals(self, expenses: Sequence[Expense]) -> pd.DataFrame:
        """Amount spent per category and currency, largest first."""
        df = self.to_dataframe(expenses)
        if df.empty:
            return pd.DataFrame(columns=["Category", "Currency", "Amount"])
        totals = df.groupby(["Category", "Currency"], as_index=False)["Amount"].sum()
        return totals.sort_values("Amount", ascending=False).reset_index(drop=True)

    def receipt_filename(self, expense: Expense, position: int) -> str:
        """Archive member name for a receipt: facture_<date>_<position>.<ext>."""
        ext = "pdf" if is_pdf(expense.receipt_data_url or "") else "jpg"
        return f"facture_{expense.date.isoformat()}_{position}.{ext}"

    def export_receipts_zip(self, expenses: Sequence[Expense]) -> Optional[bytes]:
        """Bundle every attached receipt into a ZIP archive.

        Members are numbered by the expense's 1-based position in the list.

        Returns:
            ZIP bytes, or None if no expense has a receipt
        """
        count = 0
        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for position, expense in enumerate(expenses, start=1):
                    if not expense.receipt_data_url:
                        continue
                    _, payload = split_data_url(expense.receipt_data_url)
                    archive.writestr(
                        self.receipt_filename(expense, position),
                        base64.b64decode(payload),
                    )
                    count += 1

        except Exception as e:
            self.logger.error(f"ZIP export failed: {str(e)}")
            raise

        if count == 0:
            self.logger.info("No receipts available for ZIP export")
            return None

        self.logger.info(f"Exported {count} receipts to ZIP")
        return buffer.getvalue()

    def get_export_filename(self, format_type: str, on_date: Optional[date] = None) -> str:
        """Generate the download filename for an export.

        Args:
            format_type: 'csv' or 'zip'
            on_date: Date stamped into the CSV name, today if omitted

        Returns:
            Generated filename
        """
        if format_type.lower() == "zip":
            return ZIP_FILENAME
        stamp = (on_date or date.today()).isoformat()
        return f"frais_export_{stamp}.{format_type.lower()}"
