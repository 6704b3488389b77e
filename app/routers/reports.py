import logging
import uuid
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException

from app.core.security import get_current_user_id
from app.db import transactions as transactions_db
from app.db import users
from app.utils import pdf_report
from app.utils.dates import month_bounds, parse_month

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/monthly/{month}")
def generate_monthly_report(month: str, user_id: str = Depends(get_current_user_id)) -> Dict:
    """
    Generate the report for a month (e.g. '2025-11'), upload PDF and CSV to S3,
    and return the summary with download links.
    """
    parsed = parse_month(month)
    if parsed is None:
        raise HTTPException(status_code=400, detail="bad_month")

    start, end = month_bounds(*parsed)
    transactions = transactions_db.find_in_range(user_id, start, end)
    logger.info(f"Found {len(transactions)} transactions for user {user_id} in month {month}")
    if not transactions:
        raise HTTPException(status_code=404, detail="no_transactions_for_month")

    summary = pdf_report.summarize_month(month, transactions)
    user = users.get_user_by_id(user_id) or {}
    report_id = f"{month}_{uuid.uuid4().hex[:6]}"

    pdf_url = pdf_report.generate_and_upload_pdf(
        user_id, user.get("name") or user.get("email") or user_id, summary, report_id
    )
    logger.info(f"PDF uploaded: {pdf_url}")
    csv_url = pdf_report.generate_and_upload_csv(user_id, transactions, report_id)
    logger.info(f"CSV uploaded: {csv_url}")

    return {
        **summary,
        "pdf_report_url": pdf_url,
        "csv_report_url": csv_url,
    }
