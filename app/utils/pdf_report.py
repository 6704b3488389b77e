import csv
import io
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fpdf import FPDF

from app.utils import storage
from app.utils.insights import category_totals, expenses_only, tx_amount

logger = logging.getLogger(__name__)

SPIKE_THRESHOLD = 1000


def summarize_month(month: str, transactions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Income, expenses, per-category expense totals and spikes (> $1000) for one month."""
    income = sum(tx_amount(tx) for tx in transactions if tx.get("type") == "income")
    expenses = expenses_only(transactions)
    total = sum(tx_amount(tx) for tx in expenses)
    categories = {c: round(t, 2) for c, t in sorted(category_totals(transactions).items(), key=lambda i: -i[1])}
    spikes = [
        {
            "category": tx.get("category"),
            "amount": tx_amount(tx),
            "note": tx.get("note") or "",
            "date": tx["date"].date().isoformat() if isinstance(tx.get("date"), datetime) else "",
        }
        for tx in expenses
        if tx_amount(tx) > SPIKE_THRESHOLD
    ]
    return {
        "month": month,
        "transaction_count": len(transactions),
        "total_income": round(income, 2),
        "total_expenses": round(total, 2),
        "net": round(income - total, 2),
        "categories": categories,
        "spikes": spikes,
    }


def _latin1(text: Any) -> str:
    # core PDF fonts only cover latin-1
    return str(text).encode("latin-1", "replace").decode("latin-1")


def render_pdf(user_name: str, summary: Dict[str, Any]) -> bytes:
    user_name = _latin1(user_name)
    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("Helvetica", "B", 16)
    pdf.cell(0, 10, f"Monthly Report - {summary['month']}", new_x="LMARGIN", new_y="NEXT")

    pdf.set_font("Helvetica", "", 12)
    pdf.cell(0, 10, f"Prepared for: {user_name}", new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 10, f"Income: ${summary['total_income']:.2f}", new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 10, f"Expenses: ${summary['total_expenses']:.2f}", new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 10, f"Net: ${summary['net']:.2f}", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(5)

    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 10, "Spending by Category:", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 12)
    if summary["categories"]:
        for category, amount in summary["categories"].items():
            pdf.cell(0, 10, _latin1(f"- {category}: ${amount:.2f}"), new_x="LMARGIN", new_y="NEXT")
    else:
        pdf.cell(0, 10, "None", new_x="LMARGIN", new_y="NEXT")

    pdf.ln(5)
    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 10, f"Spending Spikes (>${SPIKE_THRESHOLD}):", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 12)
    for spike in summary["spikes"]:
        line = f"- {spike['category']}: ${spike['amount']:.2f} on {spike['date']}"
        pdf.cell(0, 10, _latin1(line), new_x="LMARGIN", new_y="NEXT")

    return bytes(pdf.output())


def render_csv(transactions: List[Dict[str, Any]]) -> bytes:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=["date", "type", "category", "amount", "note"])
    writer.writeheader()
    for tx in transactions:
        writer.writerow({
            "date": tx["date"].date().isoformat() if isinstance(tx.get("date"), datetime) else "",
            "type": tx.get("type"),
            "category": tx.get("category"),
            "amount": f"{tx_amount(tx):.2f}",
            "note": tx.get("note") or "",
        })
    return output.getvalue().encode("utf-8")


def generate_and_upload_pdf(user_id: str, user_name: str, summary: Dict[str, Any], report_id: str) -> Optional[str]:
    key = f"reports/{user_id}/{report_id}.pdf"
    logger.info(f"Rendering monthly PDF report {report_id} for user {user_id}")
    return storage.upload_bytes(key, render_pdf(user_name, summary), "application/pdf")


def generate_and_upload_csv(user_id: str, transactions: List[Dict[str, Any]], report_id: str) -> Optional[str]:
    key = f"reports/{user_id}/{report_id}.csv"
    return storage.upload_bytes(key, render_csv(transactions), "text/csv")
