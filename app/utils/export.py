"""
CSV / Excel export of transactions and the summary shown next to an export.
"""
import csv
import io
from typing import Any, Dict, List

from openpyxl import Workbook
from openpyxl.styles import Font

from app.db.mongo import iso
from app.utils.insights import tx_amount

EXPORT_HEADERS = ["Transaction ID", "Type", "Amount", "Category", "Note", "Date", "Created At", "Updated At"]
COLUMN_WIDTHS = [25, 10, 12, 15, 30, 12, 22, 22]

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def prepare_for_export(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "id": str(doc["_id"]),
            "type": doc.get("type"),
            "amount": tx_amount(doc),
            "category": doc.get("category") or "",
            "note": doc.get("note") or "",
            "date": doc["date"].date().isoformat() if doc.get("date") else "",
            "created_at": iso(doc.get("created_at")) or "",
            "updated_at": iso(doc.get("updated_at")) or "",
        }
        for doc in docs
    ]


def _format_amount(amount: float) -> str:
    if amount == int(amount):
        return str(int(amount))
    return f"{amount:.2f}"


def _row(tx: Dict[str, Any]) -> List[Any]:
    return [
        tx["id"], tx["type"], tx["amount"], tx["category"],
        tx["note"], tx["date"], tx["created_at"], tx["updated_at"],
    ]


def generate_csv(rows: List[Dict[str, Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_HEADERS)
    for tx in rows:
        row = _row(tx)
        row[2] = _format_amount(tx["amount"])
        writer.writerow(row)
    return buf.getvalue()


def generate_excel(rows: List[Dict[str, Any]]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Transactions"
    sheet.append(EXPORT_HEADERS)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for tx in rows:
        sheet.append(_row(tx))

    for index, width in enumerate(COLUMN_WIDTHS):
        sheet.column_dimensions[chr(ord("A") + index)].width = width

    out = io.BytesIO()
    workbook.save(out)
    return out.getvalue()


def summary_stats(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    total_income = 0.0
    total_expenses = 0.0
    categories: Dict[str, Dict[str, Any]] = {}
    dates = [tx["date"] for tx in rows if tx["date"]]

    for tx in rows:
        if tx["type"] == "income":
            total_income += tx["amount"]
        else:
            total_expenses += tx["amount"]
        entry = categories.setdefault(tx["category"], {"count": 0, "total": 0.0})
        entry["count"] += 1
        entry["total"] = round(entry["total"] + tx["amount"], 2)

    return {
        "total_transactions": len(rows),
        "total_income": round(total_income, 2),
        "total_expenses": round(total_expenses, 2),
        "net_amount": round(total_income - total_expenses, 2),
        "category_summary": categories,
        "date_range": {
            "from": min(dates) if dates else "N/A",
            "to": max(dates) if dates else "N/A",
        },
    }
